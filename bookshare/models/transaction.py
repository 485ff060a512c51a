import math
import uuid
from datetime import datetime
from decimal import Decimal

from bookshare.extensions import db
from bookshare.models.enums import TransactionStatus


class Transaction(db.Model):
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_transactions_borrower_status", "borrower_id", "status"),
        db.Index("ix_transactions_owner_status", "owner_id", "status"),
        # at most one open request per book and borrower
        db.Index(
            "uq_transactions_open_request",
            "book_id",
            "borrower_id",
            unique=True,
            sqlite_where=db.text("status IN ('PENDING', 'APPROVED', 'ACTIVE')"),
            postgresql_where=db.text("status IN ('PENDING', 'APPROVED', 'ACTIVE')"),
        ),
        db.CheckConstraint("owner_id <> borrower_id", name="ck_transactions_distinct_parties"),
        db.CheckConstraint("lending_fee >= 0", name="ck_transactions_fee_non_negative"),
    )

    id = db.Column(db.String(64), primary_key=True, default=lambda: str(uuid.uuid4()))

    book_id = db.Column(db.String(64), db.ForeignKey("books.id"), nullable=False, index=True)
    owner_id = db.Column(db.String(64), db.ForeignKey("users.id"), nullable=False)
    borrower_id = db.Column(db.String(64), db.ForeignKey("users.id"), nullable=False)
    group_id = db.Column(db.String(64), nullable=True)

    # copied when the request is made, not kept in sync
    book_title = db.Column(db.String(200), nullable=False, default="")
    book_image_url = db.Column(db.String(500), nullable=True)
    owner_name = db.Column(db.String(120), nullable=False, default="")
    owner_profile_image_url = db.Column(db.String(500), nullable=True)
    borrower_name = db.Column(db.String(120), nullable=False, default="")
    borrower_profile_image_url = db.Column(db.String(500), nullable=True)

    status = db.Column(db.String(20), nullable=False, default=TransactionStatus.PENDING.value)

    duration = db.Column(db.String(20), nullable=False)
    duration_days = db.Column(db.Integer, nullable=False)

    # per week; 0 means free
    lending_fee = db.Column(db.Numeric(10, 2), nullable=False, default=0)

    request_message = db.Column(db.String(1000), nullable=True)
    rejection_reason = db.Column(db.String(1000), nullable=True)
    cancellation_reason = db.Column(db.String(1000), nullable=True)

    handover_otp = db.Column(db.String(4), nullable=True)
    handover_otp_expiry = db.Column(db.DateTime, nullable=True)
    return_otp = db.Column(db.String(4), nullable=True)
    return_otp_expiry = db.Column(db.DateTime, nullable=True)

    borrower_payment_confirmed = db.Column(db.Boolean, nullable=False, default=False)
    owner_payment_confirmed = db.Column(db.Boolean, nullable=False, default=False)

    requested_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    approved_at = db.Column(db.DateTime, nullable=True)
    handover_at = db.Column(db.DateTime, nullable=True)
    due_date = db.Column(db.DateTime, nullable=True, index=True)
    returned_at = db.Column(db.DateTime, nullable=True)
    closed_at = db.Column(db.DateTime, nullable=True)  # rejected / cancelled

    # owner_rating is the owner's rating of the borrower, borrower_rating the reverse
    owner_rating = db.Column(db.Integer, nullable=True)
    owner_comment = db.Column(db.String(1000), nullable=True)
    borrower_rating = db.Column(db.Integer, nullable=True)
    borrower_comment = db.Column(db.String(1000), nullable=True)
    book_condition_rating = db.Column(db.Integer, nullable=True)

    # sweep markers
    last_overdue_notified_at = db.Column(db.DateTime, nullable=True)
    due_soon_notified_at = db.Column(db.DateTime, nullable=True)

    book = db.relationship("Book", foreign_keys=[book_id])

    @property
    def payment_complete(self) -> bool:
        return bool(self.borrower_payment_confirmed and self.owner_payment_confirmed)

    @property
    def total_cost(self) -> Decimal:
        fee = Decimal(str(self.lending_fee or 0))
        return (fee * Decimal(self.duration_days) / Decimal(7)).quantize(Decimal("0.01"))

    def is_owner(self, user_id: str) -> bool:
        return self.owner_id == user_id

    def is_borrower(self, user_id: str) -> bool:
        return self.borrower_id == user_id

    def is_party(self, user_id: str) -> bool:
        return self.is_owner(user_id) or self.is_borrower(user_id)

    def is_overdue(self, now: datetime) -> bool:
        if self.status != TransactionStatus.ACTIVE or self.due_date is None:
            return False
        return now > self.due_date

    def days_until_due(self, now: datetime):
        """Whole days left until the due date, negative once overdue."""
        if self.status != TransactionStatus.ACTIVE or self.due_date is None:
            return None
        return math.floor((self.due_date - now).total_seconds() / 86400)
