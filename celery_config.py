from celery import Celery
from config import config

# NOTE: You must have a Celery broker running (e.g., Redis or RabbitMQ)
BROKER_URL = config.celery_broker_url
BACKEND_URL = config.celery_backend_url

celery_app = Celery(
    "experiment_reports",
    broker=BROKER_URL,
    backend=BACKEND_URL,
    # This ensures the tasks are loaded when the worker starts
    include=["celery_tasks.event_tasks", "celery_tasks.report_tasks"]
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,

    # === Producer-Side (Sending Message) Retry Settings ===
    # Retry publishing when the client cannot connect to the broker.
    task_publish_retry=True,
    task_publish_retry_policy={
        'max_retries': 10,       # Maximum number of retries before giving up
        'interval_start': 0.5,   # Initial wait time in seconds
        'interval_step': 0.5,    # Amount to increase wait time by
        'interval_max': 5,       # Maximum wait time
    },

    # Report jobs can take a while on large experiments, hand them out one at a time
    worker_prefetch_multiplier=1,
    task_acks_late=True,
)

celery_app.conf.task_routes = {
    # events are small and frequent, reports are heavy
    'celery_tasks.event_tasks.*': {'queue': 'default'},
    'celery_tasks.report_tasks.*': {'queue': 'reports'},
}
