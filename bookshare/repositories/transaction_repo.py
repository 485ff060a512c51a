from datetime import datetime

from sqlalchemy import update, or_
from sqlalchemy.exc import IntegrityError

from bookshare.errors import DuplicateRequest
from bookshare.extensions import db
from bookshare.models.enums import OPEN_STATUSES, ON_LOAN_STATUSES, PartyRole, TransactionStatus
from bookshare.models.transaction import Transaction


class TransactionRepo:
    def get(self, txn_id: str):
        return db.session.get(Transaction, txn_id)

    def list_by_user(self, user_id: str, role=None, status=None, page: int = 1, limit: int = 20):
        query = Transaction.query
        if role == PartyRole.BORROWER:
            query = query.filter(Transaction.borrower_id == user_id)
        elif role == PartyRole.OWNER:
            query = query.filter(Transaction.owner_id == user_id)
        else:
            query = query.filter(or_(Transaction.borrower_id == user_id, Transaction.owner_id == user_id))

        if status is not None:
            query = query.filter(Transaction.status == TransactionStatus(status).value)

        return (
            query.order_by(Transaction.requested_at.desc(), Transaction.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )

    def find_open_for_book_and_borrower(self, book_id: str, borrower_id: str):
        return Transaction.query.filter(
            Transaction.book_id == book_id,
            Transaction.borrower_id == borrower_id,
            Transaction.status.in_([s.value for s in OPEN_STATUSES]),
        ).first()

    def create(self, txn: Transaction):
        db.session.add(txn)
        try:
            db.session.commit()
        except IntegrityError:
            # another request for the same book and borrower got in first
            db.session.rollback()
            raise DuplicateRequest("You already have an open request for this book")
        return txn

    def update_if_status(self, txn_id: str, expected_status, values: dict, *conditions) -> bool:
        """
        Conditional write: applies ``values`` only while the stored status is
        still ``expected_status`` (and any extra ``conditions`` hold).
        Flushes but does not commit; returns False when nothing matched.
        """
        stmt = (
            update(Transaction)
            .where(
                Transaction.id == txn_id,
                Transaction.status == TransactionStatus(expected_status).value,
                *conditions,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = db.session.execute(stmt)
        return result.rowcount == 1

    def find_overdue(self, now: datetime):
        return Transaction.query.filter(
            Transaction.status.in_([s.value for s in ON_LOAN_STATUSES]),
            Transaction.due_date.isnot(None),
            Transaction.due_date < now,
            Transaction.last_overdue_notified_at.is_(None),
        ).order_by(Transaction.due_date).all()

    def find_due_between(self, start: datetime, end: datetime):
        return Transaction.query.filter(
            Transaction.status.in_([s.value for s in ON_LOAN_STATUSES]),
            Transaction.due_date >= start,
            Transaction.due_date < end,
            Transaction.due_soon_notified_at.is_(None),
        ).order_by(Transaction.due_date).all()

    def commit(self):
        db.session.commit()

    def rollback(self):
        db.session.rollback()
