# storefront/services/notification_service.py
import smtplib
from email.message import EmailMessage
from typing import List

from sqlalchemy.orm import Session

from storefront.celery_worker import celery_app
from storefront.data.models.notification import NotificationModel
from storefront.data.models.order import OrderModel
from storefront.domain.errors import ForbiddenError, NotFoundError
from storefront.repos.notification_repo import NotificationRepo
from storefront.repos.user_repo import UserRepo
from storefront.utils import settings
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class NotificationService:
    """
    Powiadomienia o zamowieniach: wpis in-app w bazie + email przez Celery.
    Fire-and-forget - bledy sa logowane i nigdy nie cofaja zamowienia.
    """

    def __init__(self, db: Session):
        self.db = db
        self.repo = NotificationRepo(db)
        self.user_repo = UserRepo(db)

    def notify_order_placed(self, order: OrderModel) -> None:
        self._notify(
            order,
            title="Order Placed",
            message=f"Your order #{order.order_number} has been placed successfully",
        )

    def notify_order_cancelled(self, order: OrderModel) -> None:
        self._notify(
            order,
            title="Order Cancelled",
            message=f"Your order #{order.order_number} has been cancelled",
        )

    def list_notifications(self, user_id: int, unread_only: bool = False) -> List[NotificationModel]:
        return self.repo.list_notifications(user_id, unread_only=unread_only)

    def mark_as_read(self, notification_id: int, user_id: int) -> NotificationModel:
        notification = self.repo.get_notification(notification_id)
        if not notification:
            raise NotFoundError("Notification not found", code="NOTIFICATION_NOT_FOUND")
        if notification.user_id != user_id:
            raise ForbiddenError("Not authorized to update this notification")

        notification.is_read = True
        self.repo.commit()
        return notification

    def _notify(self, order: OrderModel, title: str, message: str) -> None:
        user_id, order_id, order_number = order.user_id, order.id, order.order_number

        try:
            self.repo.create_notification(
                NotificationModel(user_id=user_id, type="ORDER", title=title, message=message)
            )
        except Exception as e:
            self.db.rollback()
            logger.warning(f"Failed to create notification for order {order_id}: {e}")

        try:
            email = self.user_repo.get_email(user_id)
            if email:
                send_order_email_task.delay(email, f"{title}: #{order_number}", message)
        except Exception as e:
            logger.warning(f"Failed to queue email for order {order_id}: {e}")


@celery_app.task(name="storefront.services.notification_service.send_order_email_task")
def send_order_email_task(to: str, subject: str, body: str):
    """
    Celery task - wysyla email przez SMTP, jesli jest skonfigurowany.
    Bez SMTP_HOST tylko loguje.
    """
    if not settings.SMTP_HOST:
        logger.info(f"[EMAIL] to={to} subject={subject!r}")
        return {"to": to, "status": "logged"}

    msg = EmailMessage()
    msg["From"] = settings.EMAIL_FROM
    msg["To"] = to
    msg["Subject"] = subject
    msg.set_content(body)

    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT) as smtp:
        smtp.starttls()
        if settings.SMTP_USER:
            smtp.login(settings.SMTP_USER, settings.SMTP_PASSWORD)
        smtp.send_message(msg)

    logger.info(f"[EMAIL] sent to={to} subject={subject!r}")
    return {"to": to, "status": "sent"}
