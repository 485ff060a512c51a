import uuid
from datetime import datetime
from bookshare.extensions import db


class Book(db.Model):
    __tablename__ = "books"

    id = db.Column(db.String(64), primary_key=True, default=lambda: str(uuid.uuid4()))
    title = db.Column(db.String(200), nullable=False, index=True)
    author = db.Column(db.String(200), nullable=False, default="")
    image_url = db.Column(db.String(500), nullable=True)

    owner_id = db.Column(db.String(64), db.ForeignKey("users.id"), nullable=False, index=True)
    group_id = db.Column(db.String(64), nullable=True, index=True)

    lending_price_per_week = db.Column(db.Numeric(10, 2), nullable=False, default=0)

    is_available = db.Column(db.Boolean, nullable=False, default=True)
    current_transaction_id = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    owner = db.relationship("User", backref="books")
