from datetime import datetime
from bookshare.extensions import db


class DeliveryLog(db.Model):
    __tablename__ = "delivery_logs"

    id = db.Column(db.Integer, primary_key=True)
    notification_id = db.Column(db.String(64), nullable=True, index=True)
    user_id = db.Column(db.String(64), nullable=True)

    channel = db.Column(db.String(20), nullable=False)  # push / email
    target = db.Column(db.String(255), nullable=True)   # device token or e-mail

    success = db.Column(db.Boolean, nullable=False, default=False)
    error = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
