# =============================================================================
# Services Package — Queue Core
# =============================================================================
#   - task_store.py: JSON-file task store (tasks, settings, statistics)
#   - extraction.py: extractor protocol, output type, PDF signature check
#   - docling_extractor.py: Docling-backed extractor
#   - queue_engine.py: admission, bounded-concurrency workers, recovery
#   - queue_service.py: public facade used by the API
# =============================================================================
