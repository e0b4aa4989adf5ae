from celery import Celery
from waitlist.core.config import settings

# Create Celery app
celery_app = Celery(
    "waitlist",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["waitlist.tasks.notification_tasks"]
)

# Configure Celery
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    broker_connection_retry_on_startup=True,
    task_routes={
        "waitlist.tasks.notification_tasks.*": {"queue": "notifications"},
    },
    # Publishing happens after a ranking commit; give up quickly if the broker is down
    task_publish_retry_policy={
        "max_retries": 2,
        "interval_start": 0,
        "interval_step": 0.5,
        "interval_max": 1,
    },
    task_ignore_result=True,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    worker_max_tasks_per_child=200,
)

if __name__ == "__main__":
    celery_app.start()
