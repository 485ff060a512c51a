import uuid
from datetime import datetime
from bookshare.extensions import db


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.String(64), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    profile_image_url = db.Column(db.String(500), nullable=True)

    # registered by the client; this service only reads it
    device_token = db.Column(db.String(255), nullable=True)

    # notification preferences
    push_enabled = db.Column(db.Boolean, nullable=False, default=True)
    email_enabled = db.Column(db.Boolean, nullable=False, default=True)
    borrow_requests = db.Column(db.Boolean, nullable=False, default=True)
    due_date_reminders = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
