from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from storefront.api.deps import get_db
from storefront.domain.schemas import NotificationOut
from storefront.services.notification_service import NotificationService

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=List[NotificationOut])
def list_notifications(
    user_id: int = Query(...),
    unread_only: bool = Query(False),
    db: Session = Depends(get_db),
):
    notifications = NotificationService(db).list_notifications(user_id, unread_only=unread_only)
    return [NotificationOut.model_validate(n) for n in notifications]


@router.put("/{notification_id}/read", response_model=NotificationOut)
def mark_as_read(
    notification_id: int,
    user_id: int = Query(...),
    db: Session = Depends(get_db),
):
    notification = NotificationService(db).mark_as_read(notification_id, user_id)
    return NotificationOut.model_validate(notification)
