"""
Celery application configuration.

This module sets up the Celery app with Redis as broker and backend.
"""
from celery import Celery

from app.core.config import settings

# Create Celery app
celery_app = Celery(
    "listing_extractor",
    broker=settings.redis_url,
    backend=f"{settings.redis_url}/1",  # Use different DB for results
    include=["app.workers.tasks", "app.workers.scheduler"],
)

# Configure Celery
celery_app.conf.update(
    # Serialization
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],

    # Timezone
    timezone="UTC",
    enable_utc=True,

    # Task settings
    task_track_started=True,
    task_time_limit=600,  # fetch + several LLM calls
    task_soft_time_limit=540,

    # Worker settings
    worker_prefetch_multiplier=1,  # Don't prefetch (extraction is slow)
    task_acks_late=True,  # Ack after completion for reliability
    worker_concurrency=4,

    # Result settings
    result_expires=3600,  # Results expire after 1 hour
)

# Auto-discover tasks from workers module
celery_app.autodiscover_tasks(["app.workers"])
