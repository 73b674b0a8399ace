"""
Auction lifecycle: effective state from stored status plus wall-clock time.

ACTIVE -> CLOSED happens silently when end_time passes, so the stored status
alone can still read ACTIVE for a finished auction. Anything gating bids must
go through effective_status().
"""
from datetime import datetime, timedelta
from typing import Optional
import pytz

from .models import Auction, AuctionStatus

TERMINAL_STATES = frozenset({AuctionStatus.CLOSED, AuctionStatus.CANCELLED})


class InvalidTransition(Exception):
    """Raised when a lifecycle move would leave a terminal state."""

    def __init__(self, current: AuctionStatus, target: AuctionStatus):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move auction from {current.value} to {target.value}")


def utc_now() -> datetime:
    return datetime.now(pytz.UTC)


def as_utc(moment: datetime) -> datetime:
    """Treat naive datetimes from the server as UTC."""
    if moment.tzinfo is None:
        return pytz.UTC.localize(moment)
    return moment.astimezone(pytz.UTC)


def effective_status(auction: Auction, now: Optional[datetime] = None) -> AuctionStatus:
    now = as_utc(now) if now is not None else utc_now()
    stored = AuctionStatus(auction.status)
    if stored == AuctionStatus.ACTIVE:
        return AuctionStatus.ACTIVE if now < as_utc(auction.end_time) else AuctionStatus.CLOSED
    return stored


def is_open(auction: Auction, now: Optional[datetime] = None) -> bool:
    return effective_status(auction, now) == AuctionStatus.ACTIVE


def check_transition(current: AuctionStatus, target: AuctionStatus):
    """
    Validate a lifecycle move.

    Allowed: ACTIVE -> CLOSED, ACTIVE -> CANCELLED, and staying in place.
    CLOSED and CANCELLED are terminal.

    Raises:
        InvalidTransition: For any move out of a terminal state or back to ACTIVE
    """
    current = AuctionStatus(current)
    target = AuctionStatus(target)
    if current == target:
        return
    if current in TERMINAL_STATES:
        raise InvalidTransition(current, target)


def time_remaining(auction: Auction, now: Optional[datetime] = None) -> timedelta:
    """Time left before bidding ends, zero once the auction is no longer effectively active."""
    now = as_utc(now) if now is not None else utc_now()
    if effective_status(auction, now) != AuctionStatus.ACTIVE:
        return timedelta(0)
    return as_utc(auction.end_time) - now
