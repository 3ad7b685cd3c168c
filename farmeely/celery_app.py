from celery import Celery
from farmeely.config import settings


celery_app = Celery(
    "farmeely_tasks",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["farmeely.notifications.tasks"],
)

celery_app.conf.update(task_track_started=True, task_serializer="json", accept_content=["json"])
