# =============================================================================
# Domain Errors
# =============================================================================
#
# Every error the queue raises derives from QueueError. The API layer turns
# them into JSON responses using `status_code`; library callers catch the
# specific subclasses.
#
# Propagation rules:
#   - NotFound / InvalidArgument / InvalidState: raised synchronously to the
#     caller of the service facade.
#   - ExtractionError: raised by the extraction collaborator and recorded on
#     the task (status=failed). It never reaches the facade caller.
#   - StoreIOError: the store could not read or write its file. The current
#     operation is aborted and the error is surfaced un-swallowed.
# =============================================================================


class QueueError(Exception):
    """Base class for all queue errors."""

    status_code: int = 500


class NotFoundError(QueueError):
    """Unknown task id or missing file."""

    status_code = 404


class InvalidArgumentError(QueueError):
    """Bad concurrency value, malformed reorder list, non-PDF upload."""

    status_code = 400


class InvalidStateError(QueueError):
    """Operation not allowed in the task's (or queue's) current state."""

    status_code = 409


class DuplicateIdError(QueueError):
    """A task with the same id is already stored."""

    status_code = 409


class ExtractionError(QueueError):
    """The extraction collaborator could not process a file."""

    status_code = 422


class StoreIOError(QueueError):
    """The task store could not be read from or written to disk."""

    status_code = 500
