# storefront/celery_worker.py
from celery import Celery

from storefront.utils.settings import (
    CELERY_BROKER_URL,
    CELERY_RESULT_BACKEND,
    PAYMENT_SWEEP_INTERVAL_SECONDS,
)

celery_app = Celery(
    "storefront",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
)

#taski musza byc zaimportowane zeby celery je zarejestrowal
celery_app.conf.imports = (
    "storefront.tasks.expire",
)

celery_app.conf.beat_schedule = {
    "expire-stale-payments": {
        "task": "storefront.tasks.expire.expire_stale_payments_task",
        "schedule": PAYMENT_SWEEP_INTERVAL_SECONDS,
    },
}

celery_app.conf.timezone = "UTC"
