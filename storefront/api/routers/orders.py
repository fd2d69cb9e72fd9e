# storefront/api/routers/orders.py
import math

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from storefront.api.deps import get_db, get_momo_client
from storefront.domain.enums import OrderStatus
from storefront.domain.errors import InternalError, StorefrontError
from storefront.domain.filters import OrderFilter
from storefront.domain.schemas import Envelope, OrderCreate, OrderListOut, OrderOut
from storefront.services.momo_client import MomoClient
from storefront.services.order_service import OrderService
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])


def get_service(db: Session, momo_client: MomoClient):
    return OrderService(db, momo_client=momo_client)


@router.post("", response_model=Envelope[OrderOut], status_code=201)
def create_order(
    payload: OrderCreate,
    user_id: int = Query(...),
    db: Session = Depends(get_db),
    momo_client: MomoClient = Depends(get_momo_client),
):
    """
    Tworzy zamówienie z koszyka użytkownika.
    MoMo: zwraca paymentUrl i transactionId, COD: od razu AWAITING_CONFIRMATION.
    """
    svc = get_service(db, momo_client)
    try:
        order = svc.create_order(
            user_id=user_id,
            shipping_address_id=payload.shipping_address_id,
            payment_method=payload.payment_method,
            momo_phone=payload.momo_phone,
        )
    except StorefrontError:
        raise
    except Exception as e:
        logger.exception(f"Unexpected error while creating order for user {user_id}")
        raise InternalError(str(e), code="ORDER_CREATION_FAILED") from e

    return {"success": True, "message": "Order placed successfully", "data": order}


@router.get("", response_model=OrderListOut)
def list_orders(
    user_id: int = Query(...),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: OrderStatus | None = Query(None),
    db: Session = Depends(get_db),
    momo_client: MomoClient = Depends(get_momo_client),
):
    svc = get_service(db, momo_client)
    orders, total = svc.get_user_orders(
        OrderFilter(user_id=user_id, status=status, page=page, limit=limit)
    )

    return {
        "success": True,
        "data": orders,
        "pagination": {
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": math.ceil(total / limit),
        },
    }


@router.get("/{order_id}", response_model=Envelope[OrderOut])
def get_order(
    order_id: int,
    user_id: int = Query(...),
    db: Session = Depends(get_db),
    momo_client: MomoClient = Depends(get_momo_client),
):
    """
    Pobiera szczegóły zamówienia.
    """
    svc = get_service(db, momo_client)
    return {"success": True, "data": svc.get_order_details(order_id, user_id)}


@router.put("/{order_id}", response_model=Envelope[OrderOut])
def cancel_order(
    order_id: int,
    user_id: int = Query(...),
    db: Session = Depends(get_db),
    momo_client: MomoClient = Depends(get_momo_client),
):
    """
    Anuluje zamówienie i zwraca towar na stan (albo zwalnia rezerwację).
    """
    svc = get_service(db, momo_client)
    try:
        order = svc.cancel_order(order_id, user_id)
    except StorefrontError:
        raise
    except Exception as e:
        logger.exception(f"Unexpected error while cancelling order {order_id}")
        raise InternalError(str(e), code="ORDER_CANCELLATION_FAILED") from e

    return {"success": True, "message": "Order cancelled successfully", "data": order}
