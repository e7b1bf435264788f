"""Celery application configuration."""

from datetime import timedelta

from celery import Celery
from celery.schedules import crontab

from finops_agent.core.config import settings

celery_app = Celery(
    "finops_agent",
    broker=str(settings.REDIS_URL),
    backend=str(settings.REDIS_URL),
    include=["finops_agent.workers.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=900,  # 15 minutes max per task
    task_soft_time_limit=840,
    worker_prefetch_multiplier=1,  # Fetch one task at a time
    worker_max_tasks_per_child=50,
    beat_schedule_filename="/tmp/celerybeat-schedule",
)


# Celery Beat schedule
celery_app.conf.beat_schedule = {
    "drift-tick": {
        "task": "finops_agent.workers.tasks.run_drift_tick",
        "schedule": timedelta(minutes=settings.DRIFT_TICK_INTERVAL_MINUTES),
    },
    "wake-snoozed-recommendations": {
        "task": "finops_agent.workers.tasks.wake_snoozed_recommendations",
        "schedule": crontab(minute="*/15"),
    },
    "execute-scheduled-recommendations": {
        "task": "finops_agent.workers.tasks.execute_scheduled_recommendations",
        "schedule": crontab(minute="*/5"),
    },
    "expire-stale-recommendations": {
        "task": "finops_agent.workers.tasks.expire_stale_recommendations",
        "schedule": crontab(hour=3, minute=0),  # Every day at 3:00 AM UTC
    },
    "enforce-policy-locks": {
        "task": "finops_agent.workers.tasks.enforce_policy_locks",
        "schedule": crontab(hour=2, minute=0),  # Every day at 2:00 AM UTC
    },
}

if __name__ == "__main__":
    celery_app.start()
