# =============================================================================
# Application Configuration — Pydantic Settings
# =============================================================================
#
# Settings are loaded in this priority order (highest first):
#   1. Environment variables (e.g., `UPLOAD_DIR=...`)
#   2. Values from the .env file
#   3. Default values defined below
#
# USAGE:
#   from pdf_ingest.config import settings
#   print(settings.database_path)
# =============================================================================

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

# Bounds for the worker pool size. Requests outside this range are rejected
# with InvalidArgumentError by the queue engine.
MIN_CONCURRENCY = 1
MAX_CONCURRENCY = 10


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings have defaults suitable for running the service locally
    from the project root.
    """

    # -------------------------------------------------------------------------
    # Application
    # -------------------------------------------------------------------------
    app_name: str = "PDF Ingestion Queue"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"

    # -------------------------------------------------------------------------
    # Storage Locations
    # -------------------------------------------------------------------------
    # upload_dir: where POST /upload writes incoming PDFs.
    # extracted_text_dir: one markdown file per completed task
    #   (<upload name without .pdf>_extracted.md). Empty string disables it.
    # database_path: the JSON task store (tasks + settings + statistics).
    # backup_dir: target of POST /database/backup.
    # -------------------------------------------------------------------------
    upload_dir: str = "data/uploads"
    extracted_text_dir: str = "data/extracted-texts"
    database_path: str = "data/database.json"
    backup_dir: str = "data/backups"

    # -------------------------------------------------------------------------
    # Queue
    # -------------------------------------------------------------------------
    # default_concurrency only seeds a newly created database file; after
    # that the persisted value (changed through POST /queue/concurrency)
    # wins across restarts.
    #
    # extraction_timeout_seconds: a worker whose extraction call exceeds
    # this is recorded as failed and its slot is released.
    #
    # shutdown_drain_seconds: how long shutdown waits for in-flight workers
    # before cancelling them. Cancelled tasks stay "processing" on disk and
    # are reset to pending by recovery on the next start.
    # -------------------------------------------------------------------------
    default_concurrency: int = 1
    extraction_timeout_seconds: float = 300.0
    shutdown_drain_seconds: float = 10.0
    clear_failed_tasks: bool = True  # DELETE /tasks/completed also drops failed

    # -------------------------------------------------------------------------
    # Upload Limits
    # -------------------------------------------------------------------------
    max_upload_size_mb: int = 10
    max_files_per_upload: int = 10

    # -------------------------------------------------------------------------
    # Docling Pipeline
    # -------------------------------------------------------------------------
    docling_do_ocr: bool = True
    docling_do_table_structure: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    """
    Create and cache a Settings instance.

    In tests, override with FastAPI's dependency_overrides:
        app.dependency_overrides[get_settings] = lambda: Settings(upload_dir=...)
    """
    return Settings()


settings = Settings()
