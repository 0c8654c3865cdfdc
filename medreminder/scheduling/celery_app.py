import logging

from celery import Celery
from celery.signals import setup_logging
from kombu import Exchange, Queue
from medreminder.core.config import settings


broker_url = settings.CELERY_BROKER_URL or settings.RABBITMQ_URL
result_backend = settings.CELERY_RESULT_BACKEND or None

celery_app = Celery(
    "medreminder",
    broker=broker_url,
    backend=result_backend,
)

exchange = Exchange(settings.EXCHANGE, type="direct", durable=True)

celery_app.conf.update(
    task_acks_late=True,
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    worker_prefetch_multiplier=1,
    worker_concurrency=settings.WORKER_CONCURRENCY,
    enable_utc=True,
    timezone=settings.DEFAULT_TIMEZONE or "UTC",
    task_default_queue=settings.SCHEDULING_QUEUE,
    task_default_exchange=settings.EXCHANGE,
    task_default_routing_key=settings.SCHEDULING_QUEUE,
    include=["medreminder.scheduling.tasks"],
    task_queues=(
        Queue(settings.SCHEDULING_QUEUE, exchange=exchange, routing_key=settings.SCHEDULING_QUEUE, durable=True),
        Queue(settings.ALARM_QUEUE, exchange=exchange, routing_key=settings.ALARM_QUEUE, durable=True),
        Queue(settings.OUTPUT_QUEUE, exchange=exchange, routing_key=settings.OUTPUT_QUEUE, durable=True),
    ),
)

# Periodic background tick: re-project every medication's horizon
celery_app.conf.beat_schedule = {
    "refresh-all-medications": {
        "task": "reminders.refresh_all_medications",
        "schedule": settings.REFRESH_INTERVAL_SECONDS,
    },
}


@setup_logging.connect
def configure_worker_logging(**kwargs):
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
