# storefront/tasks/reconcile.py
import os
import socket

from storefront.celery_worker import celery_app
from storefront.data.database import SessionLocal
from storefront.services.lock_service import LockService
from storefront.services.momo_client import MomoClient
from storefront.services.reconciliation_service import ReconciliationService
from storefront.utils.logging import get_logger
from storefront.utils.settings import RECONCILE_INTERVAL_SECONDS

logger = get_logger(__name__)

LOCK_NAME = "reconcile-payments"
# lock nie moze wygasnac w trakcie dlugiego sweepu
LOCK_TTL_SECONDS = RECONCILE_INTERVAL_SECONDS * 3

# jeden klient (i cache tokena) na proces workera
momo_client = MomoClient()


@celery_app.task(name="storefront.tasks.reconcile.reconcile_payments_task")
def reconcile_payments_task():
    logger.info("Reconcile payments task started")

    lock_service = LockService()
    owner = f"{socket.gethostname()}:{os.getpid()}"
    if not lock_service.acquire(LOCK_NAME, owner, ttl=LOCK_TTL_SECONDS):
        logger.info("Another reconciliation is running, skipping")
        return {"skipped": True}

    db = SessionLocal()
    try:
        return ReconciliationService(db, momo_client=momo_client).sweep()
    finally:
        db.close()
        lock_service.release(LOCK_NAME, owner)
