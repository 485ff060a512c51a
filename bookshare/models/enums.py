from enum import Enum


class TransactionStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    ACTIVE = "ACTIVE"
    RETURNED = "RETURNED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


# Lifecycle graph; a status missing from the keys is terminal.
ALLOWED_TRANSITIONS = {
    TransactionStatus.PENDING: {TransactionStatus.APPROVED, TransactionStatus.REJECTED},
    TransactionStatus.APPROVED: {TransactionStatus.ACTIVE, TransactionStatus.CANCELLED},
    TransactionStatus.ACTIVE: {TransactionStatus.RETURNED},
}

OPEN_STATUSES = (
    TransactionStatus.PENDING,
    TransactionStatus.APPROVED,
    TransactionStatus.ACTIVE,
)

# Statuses during which the borrower holds the book and a due date runs.
ON_LOAN_STATUSES = (TransactionStatus.ACTIVE,)


def can_transition(current, target) -> bool:
    return TransactionStatus(target) in ALLOWED_TRANSITIONS.get(TransactionStatus(current), set())


class BorrowDuration(str, Enum):
    ONE_WEEK = "1_WEEK"
    TWO_WEEKS = "2_WEEKS"
    ONE_MONTH = "1_MONTH"
    CUSTOM = "CUSTOM"

    @property
    def days(self) -> int:
        return {
            BorrowDuration.ONE_WEEK: 7,
            BorrowDuration.TWO_WEEKS: 14,
            BorrowDuration.ONE_MONTH: 30,
            BorrowDuration.CUSTOM: 0,
        }[self]


class PartyRole(str, Enum):
    BORROWER = "BORROWER"
    OWNER = "OWNER"


class NotificationType(str, Enum):
    BORROW_REQUEST = "BORROW_REQUEST"
    REQUEST_APPROVED = "REQUEST_APPROVED"
    REQUEST_REJECTED = "REQUEST_REJECTED"
    DUE_SOON = "DUE_SOON"
    OVERDUE = "OVERDUE"
    BOOK_RETURNED = "BOOK_RETURNED"
    NEW_BOOK_IN_GROUP = "NEW_BOOK_IN_GROUP"


class DeliveryChannel(str, Enum):
    PUSH = "push"
    EMAIL = "email"
