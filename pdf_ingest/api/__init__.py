# =============================================================================
# API Package — FastAPI Route Handlers
# =============================================================================
# Each module defines an APIRouter:
#   - upload.py: PDF upload and uploaded-file management
#   - tasks.py: task status, removal, reordering, retry
#   - queue.py: queue stats, pause/resume, concurrency, health
#   - database.py: task database info, statistics, backup, reset
# Shared dependencies live in deps.py; request logging in middleware.py.
# =============================================================================
