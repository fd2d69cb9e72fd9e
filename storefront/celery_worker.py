# storefront/celery_worker.py
from celery import Celery

from storefront.utils.settings import (
    CELERY_BROKER_URL,
    CELERY_RESULT_BACKEND,
    RECONCILE_INTERVAL_SECONDS,
)

celery_app = Celery(
    "storefront",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
)

# WAŻNE: Explicite importuj taski, żeby Celery je zarejestrował
celery_app.conf.imports = (
    "storefront.tasks.reconcile",
    "storefront.services.notification_service",
)

# sweep zamowien z nierozliczona platnoscia
celery_app.conf.beat_schedule = {
    "reconcile-pending-payments": {
        "task": "storefront.tasks.reconcile.reconcile_payments_task",
        "schedule": float(RECONCILE_INTERVAL_SECONDS),
    },
}

celery_app.conf.timezone = "UTC"
