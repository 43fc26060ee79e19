"""
Celery application: broker and result backend from settings.
Tasks are in novelhub.workers.tasks (auto-unlock, rent balance recalculation).
"""
from celery import Celery
from celery.schedules import crontab

from novelhub.core.config import settings
from novelhub.core.logging import configure_logging

configure_logging()

celery_app = Celery(
    "novelhub",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "novelhub.workers.tasks.unlock",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_track_started=True,
    task_time_limit=600,
    result_expires=86400,
    beat_schedule={
        "recalculate-rent-balances": {
            "task": "novelhub.workers.tasks.unlock.recalculate_rent_balances",
            "schedule": crontab(minute=0, hour="*/6"),
        },
    },
)

celery_app.conf.task_routes = {
    "novelhub.workers.tasks.unlock.run_auto_unlock": {"queue": "unlock"},
}

celery_app.autodiscover_tasks(["novelhub.workers.tasks"])
