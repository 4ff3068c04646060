# =============================================================================
# Celery Application Configuration
# =============================================================================
#
# Celery runs the bulk reference-corpus loading in the background:
#   POST /reference-documents → Chunk → Embed → Upsert
#
# ARCHITECTURE:
# ┌──────────┐     ┌────────┐     ┌───────────────┐     ┌────────┐
# │ FastAPI  │────▶│ Redis  │────▶│ Celery Worker │────▶│ Redis  │
# │(producer)│     │(broker)│     │  (consumer)   │     │(result)│
# └──────────┘     └────────┘     └───────────────┘     └────────┘
#                     db 0                                  db 1
#
# The API only enqueues; a worker picks the task up, writes embeddings to
# the similarity store and leaves a summary in the result backend for
# GET /reference-documents/{task_id}.
# =============================================================================

from celery import Celery, signals

from app.config import settings
from app.logging_config import configure_logging

celery_app = Celery(
    "app.workers",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

celery_app.conf.update(
    # JSON only: task payloads are plain documents and metadata
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # Acknowledge after completion so a crashed worker's task is re-queued.
    # Upserts are keyed by content hash, so running a batch twice is harmless.
    task_acks_late=True,
    task_reject_on_worker_lost=True,

    # One task at a time per worker process; embedding batches are long-running
    worker_prefetch_multiplier=1,

    # SIGTERM after 5 minutes, SIGKILL after 10
    task_soft_time_limit=300,
    task_time_limit=600,

    # Report STARTED so pollers can tell queued from running
    task_track_started=True,

    result_expires=3600,

    include=["app.workers.tasks"],
)


@signals.setup_logging.connect
def _setup_worker_logging(**kwargs) -> None:
    # Connecting this signal stops Celery from replacing the root handlers
    configure_logging()
