# =============================================================================
# Upload API — PDF Upload and Uploaded File Management
# =============================================================================
#
# ENDPOINTS:
#   POST   /upload             — Save 1..N PDFs and queue one task per file
#   GET    /files              — List the PDFs in the upload directory
#   GET    /files/{filename}   — Download one uploaded PDF
#   DELETE /files/{filename}   — Delete an upload, its tasks and its text export
#   DELETE /files              — Delete every upload
#
# Uploads are stored as "<epoch-ms>-<original name>". The file is created
# exclusively and the stamp bumped on a clash, so two uploads of
# "report.pdf" in the same millisecond never overwrite each other. The {filename} path parameter
# always refers to that stored name, as returned by GET /files.
#
# Every file in a request is checked (extension, size, %PDF signature)
# before any of them is written, so a bad file rejects the whole request
# instead of queuing half of it.
# =============================================================================

from __future__ import annotations

import logging
import time
from datetime import UTC, datetime
from pathlib import Path

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import FileResponse

from pdf_ingest.api.deps import get_queue_service
from pdf_ingest.config import Settings, get_settings
from pdf_ingest.errors import InvalidArgumentError, NotFoundError, QueueError
from pdf_ingest.models.responses import (
    ClearedResponse,
    FileInfo,
    FileListResponse,
    MessageResponse,
    UploadedTask,
    UploadResponse,
)
from pdf_ingest.services.extraction import PDF_SIGNATURE, extracted_text_filename
from pdf_ingest.services.queue_service import PdfQueueService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Upload"])


def _resolve_upload(settings: Settings, filename: str) -> Path:
    # Stored names never contain a directory part.
    if Path(filename).name != filename or not filename.lower().endswith(".pdf"):
        raise InvalidArgumentError(f"Invalid file name: {filename}")
    path = Path(settings.upload_dir) / filename
    if not path.is_file():
        raise NotFoundError(f"File not found: {filename}")
    return path


def _save_upload(upload_dir: Path, name: str, content: bytes) -> Path:
    """Write an upload under a fresh "<epoch-ms>-<name>", never replacing one."""
    stamp = int(time.time() * 1000)
    while True:
        file_path = upload_dir / f"{stamp}-{name}"
        try:
            with file_path.open("xb") as f:
                f.write(content)
            return file_path
        except FileExistsError:
            stamp += 1


async def _delete_upload(service: PdfQueueService, settings: Settings, path: Path) -> int:
    """Remove the tasks of an upload, then the file and its text export."""
    removed = await service.remove_tasks_for_file(path.name)
    path.unlink(missing_ok=True)
    if settings.extracted_text_dir:
        export = Path(settings.extracted_text_dir) / extracted_text_filename(path)
        export.unlink(missing_ok=True)
    logger.info("Deleted upload %s (%d task(s) removed)", path.name, removed)
    return removed


# ---------------------------------------------------------------------------
# POST /upload — Queue PDFs for extraction
# ---------------------------------------------------------------------------


@router.post(
    "/upload",
    response_model=UploadResponse,
    status_code=202,
    summary="Upload PDFs for text extraction",
    description=(
        "Upload one or more PDF files (multipart field `pdf`). Each file "
        "becomes a pending task; poll GET /status/{task_id} for the result."
    ),
)
async def upload_pdfs(
    pdf: list[UploadFile] = File(
        ...,
        description="PDF files to extract (up to MAX_FILES_PER_UPLOAD)",
    ),
    service: PdfQueueService = Depends(get_queue_service),
    settings: Settings = Depends(get_settings),
) -> UploadResponse:
    """Validate, save and queue each uploaded PDF."""
    if not pdf:
        raise InvalidArgumentError("No files uploaded")
    if len(pdf) > settings.max_files_per_upload:
        raise InvalidArgumentError(
            f"Too many files: at most {settings.max_files_per_upload} per upload"
        )

    # --- Validate every file before writing any ---
    max_bytes = settings.max_upload_size_mb * 1024 * 1024
    staged: list[tuple[str, bytes]] = []
    for upload in pdf:
        name = Path(upload.filename or "").name
        if not name.lower().endswith(".pdf"):
            raise InvalidArgumentError(
                f"Only PDF files are accepted (got '{upload.filename or ''}')"
            )
        content = await upload.read()
        if not content:
            raise InvalidArgumentError(f"Uploaded file is empty: {name}")
        if len(content) > max_bytes:
            raise InvalidArgumentError(
                f"{name} exceeds the {settings.max_upload_size_mb} MB upload limit"
            )
        if not content.startswith(PDF_SIGNATURE):
            raise InvalidArgumentError(f"Invalid PDF file: {name}")
        staged.append((name, content))

    # --- Save and queue ---
    upload_dir = Path(settings.upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)

    queued: list[UploadedTask] = []
    for name, content in staged:
        file_path = _save_upload(upload_dir, name, content)
        logger.info("Saved upload: %s (%d bytes) → %s", name, len(content), file_path)
        try:
            task_id = await service.add_task(name, file_path)
        except QueueError:
            file_path.unlink(missing_ok=True)
            raise
        queued.append(UploadedTask(task_id=task_id, filename=name))

    return UploadResponse(
        message=f"{len(queued)} file(s) uploaded and queued for processing",
        tasks=queued,
        queue_length=service.get_queue_stats().queue.length,
    )


# ---------------------------------------------------------------------------
# /files — Uploaded file management
# ---------------------------------------------------------------------------


@router.get(
    "/files",
    response_model=FileListResponse,
    summary="List uploaded PDFs",
)
async def list_files(settings: Settings = Depends(get_settings)) -> FileListResponse:
    upload_dir = Path(settings.upload_dir)
    files: list[FileInfo] = []
    if upload_dir.is_dir():
        for path in upload_dir.glob("*.pdf"):
            stats = path.stat()
            files.append(
                FileInfo(
                    filename=path.name,
                    size=stats.st_size,
                    uploaded_at=datetime.fromtimestamp(stats.st_ctime, UTC),
                    modified_at=datetime.fromtimestamp(stats.st_mtime, UTC),
                )
            )
    files.sort(key=lambda f: f.uploaded_at, reverse=True)
    return FileListResponse(files=files, total=len(files))


@router.get(
    "/files/{filename}",
    response_class=FileResponse,
    summary="Download an uploaded PDF",
)
async def get_file(
    filename: str,
    settings: Settings = Depends(get_settings),
) -> FileResponse:
    path = _resolve_upload(settings, filename)
    return FileResponse(path, media_type="application/pdf", filename=filename)


@router.delete(
    "/files/{filename}",
    response_model=MessageResponse,
    summary="Delete an uploaded PDF and its tasks",
    description=(
        "Removes the file, every task created from it and its extracted "
        "text export. Fails with 409 if one of its tasks is being processed."
    ),
)
async def delete_file(
    filename: str,
    service: PdfQueueService = Depends(get_queue_service),
    settings: Settings = Depends(get_settings),
) -> MessageResponse:
    path = _resolve_upload(settings, filename)
    removed = await _delete_upload(service, settings, path)
    return MessageResponse(message=f"Deleted {filename} and {removed} task(s)")


@router.delete(
    "/files",
    response_model=ClearedResponse,
    summary="Delete every uploaded PDF",
)
async def delete_all_files(
    service: PdfQueueService = Depends(get_queue_service),
    settings: Settings = Depends(get_settings),
) -> ClearedResponse:
    upload_dir = Path(settings.upload_dir)
    deleted = 0
    if upload_dir.is_dir():
        for path in sorted(upload_dir.glob("*.pdf")):
            await _delete_upload(service, settings, path)
            deleted += 1
    return ClearedResponse(message=f"Deleted {deleted} file(s)", cleared_count=deleted)
