# =============================================================================
# API Request Models — Pydantic V2 Schemas
# =============================================================================
#
# Range checks that belong to the queue (concurrency bounds, reorder set
# membership) are enforced by the service so that library callers and HTTP
# callers get the same InvalidArgumentError. These models only check shape.
# =============================================================================

from pydantic import BaseModel, Field


class ConcurrencyRequest(BaseModel):
    """
    Request body for POST /queue/concurrency.

    Example:
        {"concurrency": 3}
    """

    concurrency: int = Field(
        ...,
        description="Maximum number of PDFs processed at once (1-10)",
        examples=[3],
    )


class ReorderRequest(BaseModel):
    """
    Request body for POST /tasks/reorder.

    Must list every pending task id exactly once, in the desired order.
    """

    task_ids: list[str] = Field(
        ...,
        description="All pending task ids in the new processing order",
        examples=[["pdf_1718000000000_abc123xyz", "pdf_1718000000100_def456uvw"]],
    )
