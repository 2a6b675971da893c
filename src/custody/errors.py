"""Custody error taxonomy.

Malformed input is reported with ``protean.exceptions.ValidationError`` and
unknown records with ``protean.exceptions.ObjectNotFoundError``. Everything
else a caller can run into is a ``CustodyError`` carrying a stable ``code``.
"""


class CustodyError(Exception):
    """Base class for custody rule violations."""

    code = "CUSTODY_ERROR"

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, **self.details}


class InvalidToken(CustodyError):
    """A QR token failed integrity checks or does not match its container."""

    code = "INVALID_TOKEN"


class Conflict(CustodyError):
    """The request collides with state that already exists."""

    code = "CONFLICT"


class ForbiddenTransition(CustodyError):
    """The requested status edge is not in the transition table."""

    code = "FORBIDDEN_TRANSITION"


class ForbiddenActor(CustodyError):
    """The acting wallet's role or assignment does not permit the request."""

    code = "FORBIDDEN_ACTOR"


class ForbiddenAssignment(CustodyError):
    """A wallet could not be assigned to a custody slot."""

    code = "FORBIDDEN_ASSIGNMENT"


class StaleOrOutOfOrderScan(CustodyError):
    """A legitimate token scanned at the wrong point in the workflow."""

    code = "STALE_OR_OUT_OF_ORDER_SCAN"


class RetryableError(CustodyError):
    """Infrastructure failure; the operation may be retried later."""

    code = "RETRYABLE"


class StoreUnavailable(RetryableError):
    code = "STORE_UNAVAILABLE"


class ChainUnavailable(RetryableError):
    code = "CHAIN_UNAVAILABLE"
