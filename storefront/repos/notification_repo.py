from typing import List

from sqlalchemy import select
from sqlalchemy.orm import Session

from storefront.data.models.notification import NotificationModel


class NotificationRepo:
    def __init__(self, db: Session):
        self.db = db

    def create_notification(self, notification: NotificationModel) -> NotificationModel:
        self.db.add(notification)
        self.db.commit()
        return notification

    def list_notifications(self, user_id: int, unread_only: bool = False) -> List[NotificationModel]:
        stmt = select(NotificationModel).where(NotificationModel.user_id == user_id)
        if unread_only:
            stmt = stmt.where(NotificationModel.is_read.is_(False))
        return list(
            self.db.execute(stmt.order_by(NotificationModel.id.desc())).scalars().all()
        )

    def get_notification(self, notification_id: int) -> NotificationModel | None:
        return self.db.get(NotificationModel, notification_id)

    def commit(self):
        self.db.commit()
