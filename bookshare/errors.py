"""
Typed errors raised by the lending services.

Every error carries a machine-readable ``code`` and the HTTP status the
controllers answer with. They subclass ``ValueError`` so callers that only
care about "the request was refused" can keep catching that.
"""


class LendingError(ValueError):
    code = "LENDING_ERROR"
    status_code = 400

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message())

    @classmethod
    def default_message(cls) -> str:
        return cls.code.replace("_", " ").capitalize()


class ValidationError(LendingError):
    code = "VALIDATION_ERROR"
    status_code = 400


class NotFound(LendingError):
    code = "NOT_FOUND"
    status_code = 404


class Forbidden(LendingError):
    code = "FORBIDDEN"
    status_code = 403


class InvalidTransition(LendingError):
    code = "INVALID_TRANSITION"
    status_code = 409


class DuplicateRequest(LendingError):
    code = "DUPLICATE_REQUEST"
    status_code = 409


class ConflictStale(LendingError):
    """The conditional write lost the race; re-fetch and decide again."""

    code = "CONFLICT_STALE"
    status_code = 409


class OTPExpired(LendingError):
    code = "OTP_EXPIRED"
    status_code = 400


class OTPMismatch(LendingError):
    code = "OTP_MISMATCH"
    status_code = 400


class DeliveryFailure(LendingError):
    # Only raised inside the notification channels, never to a client.
    code = "DELIVERY_FAILURE"
    status_code = 502
