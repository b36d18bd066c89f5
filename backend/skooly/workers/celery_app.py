"""
Celery app for Skooly background work.

Queues:
    embedding  material embedding and the periodic backfill
    video      Veo generation jobs (long running, one per worker process)
"""

from celery import Celery
from celery.schedules import crontab

from skooly.core.config import settings

# Create Celery application
celery_app = Celery(
    "skooly",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["skooly.tasks.embedding_tasks", "skooly.tasks.video_tasks"],
)

# Configure Celery
celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone=settings.CELERY_TIMEZONE,
    enable_utc=True,
    task_track_started=True,
    task_time_limit=30 * 60,  # 30 minutes
    task_soft_time_limit=25 * 60,  # 25 minutes
    result_expires=3600,  # 1 hour
    # Video jobs run for minutes; one at a time per worker process
    worker_prefetch_multiplier=1,
    task_acks_late=True,
)

# Catch materials whose upload-time embedding failed
celery_app.conf.beat_schedule = {
    'backfill-missing-embeddings': {
        'task': 'embedding.backfill_embeddings',
        'schedule': crontab(minute='*/30'),
        'options': {'queue': 'embedding'},
    },
}

# Task routing
celery_app.conf.task_routes = {
    'embedding.*': {'queue': 'embedding'},
    'video.*': {'queue': 'video'},
}
