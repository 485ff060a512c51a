from datetime import timedelta
from decimal import Decimal

from flask import current_app

from bookshare.errors import (
    ConflictStale,
    DuplicateRequest,
    Forbidden,
    InvalidTransition,
    NotFound,
    OTPExpired,
    OTPMismatch,
    ValidationError,
)
from bookshare.models.enums import (
    BorrowDuration,
    NotificationType,
    PartyRole,
    TransactionStatus,
    can_transition,
)
from bookshare.models.transaction import Transaction
from bookshare.services.notification_service import TransitionEvent
from bookshare.services.otp_service import OTPCheck


class TransactionService:
    """
    Borrow/return lifecycle.

    Every status change is one conditional write: the row is only updated if
    its status is still the one this call read. Whoever loses a race gets
    ``ConflictStale`` and the row is left exactly as the winner wrote it.
    Notifications go out after the commit and can never undo it.
    """

    def __init__(self, repo, users, books, otp, dispatcher, clock):
        self.repo = repo
        self.users = users
        self.books = books
        self.otp = otp
        self.dispatcher = dispatcher
        self.clock = clock

    # ---------------------------------------------------------------- helpers

    def _load(self, txn_id: str):
        txn = self.repo.get(txn_id)
        if txn is None:
            raise NotFound("Transaction not found")
        return txn

    @staticmethod
    def _require_owner(txn, user_id):
        if not txn.is_owner(user_id):
            raise Forbidden("Only the book owner can do this")

    @staticmethod
    def _require_borrower(txn, user_id):
        if not txn.is_borrower(user_id):
            raise Forbidden("Only the borrower can do this")

    @staticmethod
    def _require_party(txn, user_id):
        if not txn.is_party(user_id):
            raise Forbidden("You are not part of this transaction")

    @staticmethod
    def _require_transition(txn, target: TransactionStatus):
        if not can_transition(txn.status, target):
            raise InvalidTransition(f"Cannot move transaction from {txn.status} to {target.value}")

    def _apply(self, txn, expected_status, values: dict, *conditions):
        if not self.repo.update_if_status(txn.id, expected_status, values, *conditions):
            self.repo.rollback()
            current_app.logger.info(f"[transactions] Stale write on {txn.id} (expected {expected_status})")
            raise ConflictStale("Transaction changed in the meantime, reload and try again")

    def _commit(self, txn_id: str):
        self.repo.commit()
        return self.repo.get(txn_id)

    @staticmethod
    def _parse_duration(duration, duration_days):
        try:
            duration = BorrowDuration(duration)
        except ValueError:
            raise ValidationError(f"Unknown duration: {duration}")

        days = duration_days if duration_days is not None else duration.days
        try:
            days = int(days)
        except (TypeError, ValueError):
            raise ValidationError("durationDays must be a number")
        if days <= 0:
            raise ValidationError("durationDays must be positive")
        return duration, days

    @staticmethod
    def _check_rating(value, field: str):
        if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= 5:
            raise ValidationError(f"{field} must be an integer between 1 and 5")

    # --------------------------------------------------------------- requests

    def request_book(self, book_id: str, borrower_id: str, duration, duration_days=None, message=None):
        """Borrow request starting from a book id; owner and group come from the book."""
        book = self.books.get(book_id)
        if book is None:
            raise NotFound("Book not found")
        return self.create_request(
            book_id=book.id,
            borrower_id=borrower_id,
            owner_id=book.owner_id,
            group_id=book.group_id,
            duration=duration,
            duration_days=duration_days,
            message=message,
        )

    def create_request(self, book_id: str, borrower_id: str, owner_id: str, group_id,
                       duration, duration_days=None, message=None):
        duration, days = self._parse_duration(duration, duration_days)

        if borrower_id == owner_id:
            raise ValidationError("You cannot borrow your own book")

        book = self.books.get(book_id)
        if book is None:
            raise NotFound("Book not found")
        if book.owner_id != owner_id:
            raise ValidationError("Owner does not match the book")

        borrower = self.users.get_by_id(borrower_id)
        if borrower is None:
            raise NotFound("Borrower not found")
        owner = self.users.get_by_id(owner_id)
        if owner is None:
            raise NotFound("Owner not found")

        if self.repo.find_open_for_book_and_borrower(book_id, borrower_id):
            raise DuplicateRequest("You already have an open request for this book")

        fee = Decimal(str(book.lending_price_per_week or 0))
        if fee < 0:
            raise ValidationError("Lending fee cannot be negative")

        txn = Transaction(
            book_id=book.id,
            book_title=book.title,
            book_image_url=book.image_url,
            borrower_id=borrower.id,
            borrower_name=borrower.name,
            borrower_profile_image_url=borrower.profile_image_url,
            owner_id=owner.id,
            owner_name=owner.name,
            owner_profile_image_url=owner.profile_image_url,
            group_id=group_id,
            status=TransactionStatus.PENDING.value,
            duration=duration.value,
            duration_days=days,
            lending_fee=fee,
            request_message=(message or "").strip() or None,
            requested_at=self.clock.now(),
        )
        self.repo.create(txn)
        current_app.logger.info(f"[transactions] Request {txn.id} created for book {book_id} by {borrower_id}")

        self.dispatcher.notify(TransitionEvent(NotificationType.BORROW_REQUEST, txn))
        return txn

    def approve(self, txn_id: str, acting_user_id: str):
        txn = self._load(txn_id)
        self._require_owner(txn, acting_user_id)
        self._require_transition(txn, TransactionStatus.APPROVED)

        code, expiry = self.otp.generate()
        values = {
            "status": TransactionStatus.APPROVED.value,
            "approved_at": self.clock.now(),
            "handover_otp": code,
            "handover_otp_expiry": expiry,
        }
        owner = self.users.get_by_id(txn.owner_id)
        if owner is not None:
            values["owner_name"] = owner.name
            values["owner_profile_image_url"] = owner.profile_image_url

        self._apply(txn, TransactionStatus.PENDING, values)
        txn = self._commit(txn_id)
        current_app.logger.info(f"[transactions] {txn_id} approved")

        self.dispatcher.notify(TransitionEvent(NotificationType.REQUEST_APPROVED, txn))
        return txn

    def reject(self, txn_id: str, acting_user_id: str, reason=None):
        txn = self._load(txn_id)
        self._require_owner(txn, acting_user_id)
        self._require_transition(txn, TransactionStatus.REJECTED)

        self._apply(txn, TransactionStatus.PENDING, {
            "status": TransactionStatus.REJECTED.value,
            "rejection_reason": (reason or "").strip() or None,
            "closed_at": self.clock.now(),
        })
        txn = self._commit(txn_id)
        current_app.logger.info(f"[transactions] {txn_id} rejected")

        self.dispatcher.notify(TransitionEvent(NotificationType.REQUEST_REJECTED, txn))
        return txn

    def cancel(self, txn_id: str, acting_user_id: str, reason=None):
        """Called off after approval but before the book changed hands."""
        txn = self._load(txn_id)
        self._require_party(txn, acting_user_id)
        self._require_transition(txn, TransactionStatus.CANCELLED)

        self._apply(txn, TransactionStatus.APPROVED, {
            "status": TransactionStatus.CANCELLED.value,
            "cancellation_reason": (reason or "").strip() or None,
            "closed_at": self.clock.now(),
            "handover_otp": None,
            "handover_otp_expiry": None,
        })
        current_app.logger.info(f"[transactions] {txn_id} cancelled by {acting_user_id}")
        return self._commit(txn_id)

    # ------------------------------------------------------------------- OTPs

    def refresh_otp(self, txn_id: str, acting_user_id: str):
        """Replaces the live code; the previous one stops working at once."""
        txn = self._load(txn_id)
        self._require_party(txn, acting_user_id)

        if txn.status == TransactionStatus.APPROVED:
            fields = ("handover_otp", "handover_otp_expiry")
        elif txn.status == TransactionStatus.ACTIVE:
            fields = ("return_otp", "return_otp_expiry")
        else:
            raise InvalidTransition(f"No code to refresh while {txn.status}")

        values = dict(zip(fields, self.otp.generate()))

        self._apply(txn, txn.status, values)
        current_app.logger.info(f"[transactions] Code refreshed on {txn_id}")
        return self._commit(txn_id)

    def _check_code(self, entered, stored, expiry):
        result = self.otp.validate(entered, stored, expiry, self.clock.now())
        if result == OTPCheck.EXPIRED:
            raise OTPExpired("Code expired, ask for a new one")
        if result == OTPCheck.MISMATCH:
            raise OTPMismatch("Code does not match, try again")

    def confirm_handover(self, txn_id: str, acting_user_id: str, entered_code: str):
        # the owner types in the code the borrower shows them
        txn = self._load(txn_id)
        self._require_owner(txn, acting_user_id)
        self._require_transition(txn, TransactionStatus.ACTIVE)
        self._check_code(entered_code, txn.handover_otp, txn.handover_otp_expiry)

        now = self.clock.now()
        return_code, return_expiry = self.otp.generate()
        self._apply(
            txn,
            TransactionStatus.APPROVED,
            {
                "status": TransactionStatus.ACTIVE.value,
                "handover_at": now,
                "due_date": now + timedelta(days=txn.duration_days),
                "handover_otp": None,
                "handover_otp_expiry": None,
                "return_otp": return_code,
                "return_otp_expiry": return_expiry,
            },
            Transaction.handover_otp == txn.handover_otp,
        )
        if not self.books.mark_lent(txn.book_id, txn.id):
            self.repo.rollback()
            current_app.logger.warning(f"[transactions] {txn_id}: book {txn.book_id} is already lent out")
            raise InvalidTransition("This copy is already lent out")
        txn = self._commit(txn_id)
        current_app.logger.info(f"[transactions] {txn_id} handed over, due {txn.due_date}")
        return txn

    def confirm_return(self, txn_id: str, acting_user_id: str, entered_code: str):
        # custody has flipped: the borrower types in the owner's code
        txn = self._load(txn_id)
        self._require_borrower(txn, acting_user_id)
        self._require_transition(txn, TransactionStatus.RETURNED)
        self._check_code(entered_code, txn.return_otp, txn.return_otp_expiry)

        self._apply(
            txn,
            TransactionStatus.ACTIVE,
            {
                "status": TransactionStatus.RETURNED.value,
                "returned_at": self.clock.now(),
                "return_otp": None,
                "return_otp_expiry": None,
            },
            Transaction.return_otp == txn.return_otp,
        )
        self.books.mark_available(txn.book_id, txn.id)
        txn = self._commit(txn_id)
        current_app.logger.info(f"[transactions] {txn_id} returned")

        self.dispatcher.notify(TransitionEvent(NotificationType.BOOK_RETURNED, txn))
        return txn

    # ------------------------------------------------------- after the return

    def rate(self, txn_id: str, acting_user_id: str, rating, comment=None, book_condition_rating=None):
        txn = self._load(txn_id)
        self._require_party(txn, acting_user_id)

        is_owner = txn.is_owner(acting_user_id)
        if book_condition_rating is not None and not is_owner:
            raise Forbidden("Only the owner can rate the book's condition")
        if txn.status != TransactionStatus.RETURNED:
            raise InvalidTransition("Ratings open once the book has been returned")

        self._check_rating(rating, "rating")
        if book_condition_rating is not None:
            self._check_rating(book_condition_rating, "bookConditionRating")

        comment = (comment or "").strip() or None
        if is_owner:
            if txn.owner_rating is not None:
                raise InvalidTransition("You have already rated this transaction")
            values = {"owner_rating": rating, "owner_comment": comment}
            if book_condition_rating is not None:
                values["book_condition_rating"] = book_condition_rating
            guard = Transaction.owner_rating.is_(None)
        else:
            if txn.borrower_rating is not None:
                raise InvalidTransition("You have already rated this transaction")
            values = {"borrower_rating": rating, "borrower_comment": comment}
            guard = Transaction.borrower_rating.is_(None)

        self._apply(txn, TransactionStatus.RETURNED, values, guard)
        current_app.logger.info(f"[transactions] {txn_id} rated by {acting_user_id}")
        return self._commit(txn_id)

    def mark_payment_confirmed(self, txn_id: str, acting_user_id: str, role):
        try:
            role = PartyRole(str(role).upper())
        except ValueError:
            raise ValidationError("role must be BORROWER or OWNER")

        txn = self._load(txn_id)
        if role == PartyRole.OWNER:
            self._require_owner(txn, acting_user_id)
            field = "owner_payment_confirmed"
        else:
            self._require_borrower(txn, acting_user_id)
            field = "borrower_payment_confirmed"

        if txn.status in (TransactionStatus.REJECTED, TransactionStatus.CANCELLED):
            raise InvalidTransition(f"Payment cannot be confirmed while {txn.status}")

        self._apply(txn, txn.status, {field: True})
        current_app.logger.info(f"[transactions] Payment confirmed by {role.value} on {txn_id}")
        return self._commit(txn_id)

    # ------------------------------------------------------------------ reads

    def get_for_user(self, txn_id: str, user_id: str):
        txn = self._load(txn_id)
        self._require_party(txn, user_id)
        return txn

    def list_for_user(self, user_id: str, role=None, status=None, page: int = 1, limit: int = 20):
        if role is not None:
            try:
                role = PartyRole(str(role).upper())
            except ValueError:
                raise ValidationError("role must be BORROWER or OWNER")
        if status is not None:
            try:
                status = TransactionStatus(str(status).upper())
            except ValueError:
                raise ValidationError(f"Unknown status: {status}")
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive")
        return self.repo.list_by_user(user_id, role=role, status=status, page=page, limit=limit)
