import uuid
from datetime import datetime
from bookshare.extensions import db


class Notification(db.Model):
    __tablename__ = "notifications"
    # idempotency key: one record per (event, recipient)
    __table_args__ = (
        db.UniqueConstraint("related_id", "type", "user_id", name="uq_notification_event_recipient"),
        db.Index("ix_notifications_user_created", "user_id", "created_at"),
    )

    id = db.Column(db.String(64), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = db.Column(db.String(64), nullable=False, index=True)

    # NotificationType value
    type = db.Column(db.String(50), nullable=False)
    title = db.Column(db.String(200), nullable=False)
    message = db.Column(db.String(1000), nullable=False)

    is_read = db.Column(db.Boolean, nullable=False, default=False)
    related_id = db.Column(db.String(64), nullable=True, index=True)
    group_id = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
