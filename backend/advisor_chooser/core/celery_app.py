"""
Celery application configuration.

Handles scheduled billing work:
- Hourly renewal of lapsed memberships with a card on file
- Daily expiry notices (06:00 UTC)
"""
import logging

from celery import Celery
from celery.schedules import crontab
from celery.signals import task_prerun, task_postrun, task_failure

from advisor_chooser.core.config import settings

logger = logging.getLogger(__name__)

# Create Celery app
celery_app = Celery(
    "advisor_chooser",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "advisor_chooser.tasks.billing_tasks",
    ]
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=1800,  # 30 minute hard limit per sweep
    task_soft_time_limit=1700,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
)

# Task routes (billing work gets its own queue)
celery_app.conf.task_routes = {
    "advisor_chooser.tasks.billing_tasks.*": {"queue": "billing"},
}

# Expiry notices must never share a tick with the renewal sweep.
celery_app.conf.beat_schedule = {
    "renew-lapsed-memberships": {
        "task": "advisor_chooser.tasks.billing_tasks.renew_lapsed_memberships",
        "schedule": crontab(minute=0),
    },
    "send-expiry-notices": {
        "task": "advisor_chooser.tasks.billing_tasks.send_expiry_notices",
        "schedule": crontab(minute=30, hour=6),
    },
}


@task_prerun.connect
def task_prerun_handler(task_id, task, *args, **kwargs):
    """Handler called before task execution."""
    logger.info(f"Task starting: {task.name} (ID: {task_id})")


@task_postrun.connect
def task_postrun_handler(task_id, task, *args, retval=None, **kwargs):
    """Handler called after task execution."""
    logger.info(f"Task completed: {task.name} (ID: {task_id})")


@task_failure.connect
def task_failure_handler(task_id, exception, *args, **kwargs):
    """Handler called on task failure."""
    logger.error(f"Task failed: {task_id}, Exception: {str(exception)}")
