from datetime import datetime

from bookshare.extensions import db
from bookshare.models.delivery_log import DeliveryLog
from bookshare.models.notification import Notification


class NotificationRepo:
    def already_sent(self, related_id: str | None, notif_type: str, user_id: str) -> bool:
        return Notification.query.filter_by(
            related_id=related_id, type=notif_type, user_id=user_id
        ).first() is not None

    def create(self, notification: Notification):
        db.session.add(notification)
        db.session.commit()
        return notification

    def get(self, notification_id: str):
        return db.session.get(Notification, notification_id)

    def list_for_user(self, user_id: str, unread_only: bool = False, page: int = 1, limit: int = 20):
        query = Notification.query.filter_by(user_id=user_id)
        if unread_only:
            query = query.filter_by(is_read=False)
        return (
            query.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )

    def mark_read(self, notification: Notification):
        notification.is_read = True
        db.session.commit()
        return notification

    def delete_older_than(self, cutoff: datetime) -> int:
        deleted = Notification.query.filter(Notification.created_at < cutoff).delete(
            synchronize_session=False
        )
        db.session.commit()
        return deleted

    def log_delivery(self, entry: DeliveryLog):
        db.session.add(entry)
        db.session.commit()
        return entry

    def rollback(self):
        db.session.rollback()
