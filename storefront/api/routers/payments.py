# storefront/api/routers/payments.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from storefront.api.deps import get_db, get_momo_client
from storefront.domain.schemas import (
    CallbackAck,
    Envelope,
    MomoCallbackIn,
    PaymentCreate,
    PaymentInitiationOut,
    PaymentOut,
    PaymentVerificationOut,
)
from storefront.services.momo_client import MomoClient
from storefront.services.momo_service import MomoService
from storefront.services.payment_service import PaymentService
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


def get_service(db: Session, momo_client: MomoClient):
    return PaymentService(db, momo_client=momo_client)


@router.post("", response_model=Envelope[PaymentInitiationOut], status_code=201)
def create_payment(
    payload: PaymentCreate,
    user_id: int = Query(...),
    db: Session = Depends(get_db),
    momo_client: MomoClient = Depends(get_momo_client),
):
    svc = get_service(db, momo_client)
    payment = svc.create_payment(
        user_id=user_id,
        order_id=payload.order_id,
        method=payload.payment_method,
        momo_phone=payload.momo_phone,
    )
    return {"success": True, "message": payment["message"], "data": payment}


@router.get("/{payment_id}", response_model=Envelope[PaymentOut])
def get_payment(
    payment_id: int,
    user_id: int = Query(...),
    db: Session = Depends(get_db),
    momo_client: MomoClient = Depends(get_momo_client),
):
    svc = get_service(db, momo_client)
    return {"success": True, "data": svc.get_payment(payment_id, user_id)}


@router.get("/{payment_id}/verify", response_model=Envelope[PaymentVerificationOut])
def verify_payment(
    payment_id: int,
    user_id: int = Query(...),
    db: Session = Depends(get_db),
    momo_client: MomoClient = Depends(get_momo_client),
):
    """
    Odpytuje dostawce o status i zapisuje go, jesli sie zmienil.
    """
    svc = get_service(db, momo_client)
    return {"success": True, "data": svc.verify_payment(payment_id, user_id)}


@router.post("/webhook/momo", response_model=CallbackAck)
def momo_webhook(
    payload: MomoCallbackIn,
    db: Session = Depends(get_db),
    momo_client: MomoClient = Depends(get_momo_client),
):
    """
    Callback od MTN MoMo.

    Zawsze 200 (poza brakiem wymaganych pol), zeby dostawca nie ponawial
    w nieskonczonosc. Powtorzony callback jest no-opem.
    """
    logger.info(f"MoMo callback for {payload.reference_id}: {payload.status}")

    try:
        found = MomoService(db, momo_client).handle_callback(
            payload.reference_id, payload.status
        )
    except Exception:
        logger.exception(f"Error processing MoMo callback for {payload.reference_id}")
        return CallbackAck(success=False, message="Webhook received with errors")

    if not found:
        logger.warning(f"MoMo callback for unknown reference {payload.reference_id}")
        return CallbackAck(success=False, message="Payment not found")

    return CallbackAck(success=True, message="Callback processed successfully")
