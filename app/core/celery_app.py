from celery import Celery
from celery.schedules import crontab
from app.core.config import settings

# Create Celery app
celery_app = Celery(
    "budgets",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["app.tasks.budget_tasks"]
)

# Configure Celery
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone=settings.TIMEZONE,
    enable_utc=True,
    broker_connection_retry_on_startup=True,
    task_routes={
        "app.tasks.budget_tasks.*": {"queue": "budgets"},
    },
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    worker_max_tasks_per_child=50,
    beat_schedule={
        "recalculate-active-budgets": {
            "task": "app.tasks.budget_tasks.recalculate_active_budgets_task",
            "schedule": settings.RECALCULATE_INTERVAL_MINUTES * 60,
            "options": {"queue": "budgets"},
        },
        "roll-over-expired-budgets": {
            "task": "app.tasks.budget_tasks.roll_over_expired_budgets_task",
            "schedule": crontab(minute=5, hour=0),  # Daily, just after midnight in settings.TIMEZONE
            "options": {"queue": "budgets"},
        },
    },
)

if __name__ == "__main__":
    celery_app.start()
