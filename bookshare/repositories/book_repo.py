from sqlalchemy import update

from bookshare.extensions import db
from bookshare.models.book import Book


class BookRepo:
    def get(self, book_id: str):
        return db.session.get(Book, book_id)

    # custody flags ride along with the transaction's commit
    def mark_lent(self, book_id: str, txn_id: str) -> bool:
        """False when the copy is already out with another loan."""
        result = db.session.execute(
            update(Book)
            .where(Book.id == book_id, Book.is_available.is_(True))
            .values(is_available=False, current_transaction_id=txn_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def mark_available(self, book_id: str, txn_id: str):
        db.session.execute(
            update(Book)
            .where(Book.id == book_id, Book.current_transaction_id == txn_id)
            .values(is_available=True, current_transaction_id=None)
            .execution_options(synchronize_session=False)
        )
