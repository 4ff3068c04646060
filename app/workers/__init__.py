# =============================================================================
# Workers Package — Celery Background Tasks
# =============================================================================
#   - celery_app.py: Celery application configuration
#   - tasks.py: reference-corpus ingestion (chunk → embed → upsert)
# =============================================================================
