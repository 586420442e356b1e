"""Celery configuration"""
from celery import Celery
from celery.schedules import crontab
from zonekeeper.core.config import settings

celery_app = Celery(
    "zonekeeper",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=[
        "zonekeeper.tasks.dns_tasks",
    ]
)

celery_app.conf.task_routes = {
    "zonekeeper.tasks.dns.*": {"queue": "dns"},
}

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
)

# Periodic tasks
celery_app.conf.beat_schedule = {
    "sync-all-providers": {
        "task": "zonekeeper.tasks.dns.sync_all_providers",
        "schedule": crontab(minute=f"*/{settings.SYNC_INTERVAL_MINUTES}"),
    },
    "monitor-dnssec-daily": {
        "task": "zonekeeper.tasks.dns.monitor_dnssec",
        "schedule": crontab(hour=3, minute=0),
    },
}
