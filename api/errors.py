from typing import Optional

from bidding.lifecycle import InvalidTransition
from bidding.validator import RejectReason


class AuctionClientError(Exception):
    """Base for every error the client surfaces to callers."""


class ValidationError(AuctionClientError):
    """A bid rule was violated locally; nothing was sent."""

    def __init__(self, reason: RejectReason, message: str):
        self.reason = reason
        self.message = message
        super().__init__(message)


class NetworkError(AuctionClientError):
    """The transport failed and no response was received."""


class ApiError(AuctionClientError):
    """The server answered with a non-2xx status (after any retry)."""

    def __init__(self, status: int, message: str):
        self.status = status
        self.message = message
        super().__init__(f"{status}: {message}")


class SessionExpired(AuctionClientError):
    """The session could not be renewed. The session store has already been cleared."""

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or "Session expired. Please log in again.")


__all__ = [
    "AuctionClientError", "ValidationError", "NetworkError", "ApiError", "SessionExpired", "InvalidTransition",
]
