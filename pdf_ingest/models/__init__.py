# =============================================================================
# Models Package — Pydantic V2 Schemas
# =============================================================================
#   - task.py: persisted records (Task, TaskResult, settings, statistics)
#   - requests.py / responses.py: API contract
#
# API schemas are kept apart from the persisted records so the wire format
# can change without touching the database file layout.
# =============================================================================
