# =============================================================================
# PDF Ingestion Queue
# =============================================================================
# Accepts uploaded PDF files, queues them for text extraction with bounded
# concurrency, persists task state in a JSON file and serves results back
# through status endpoints.
#
# Package structure:
#   pdf_ingest/
#   ├── api/          → FastAPI route handlers (upload, status, queue control,
#   │                    task and file management, database maintenance)
#   ├── models/       → Pydantic V2 task records and request/response schemas
#   ├── services/     → Task store, extraction collaborator, queue engine
#   │                    and the service facade
#   ├── config.py     → Pydantic Settings (environment / .env)
#   ├── errors.py     → Domain exception hierarchy
#   └── main.py       → Application factory and lifespan wiring
# =============================================================================

__version__ = "0.1.0"
