from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Optional, Union

from .lifecycle import effective_status
from .models import Auction, AuctionStatus

# Smallest currency unit; the minimum raise over the current floor.
DEFAULT_BID_INCREMENT = Decimal("0.01")

Amount = Union[Decimal, str, int, float]


class RejectReason(str, Enum):
    AUCTION_NOT_ACTIVE = "AuctionNotActive"
    BELOW_FLOOR = "BelowFloor"
    INVALID_AMOUNT = "InvalidAmount"


@dataclass(frozen=True)
class BidDecision:
    accepted: bool
    reason: Optional[RejectReason] = None
    floor: Optional[Decimal] = None

    @property
    def message(self) -> str:
        if self.accepted:
            return "Bid accepted"
        if self.reason == RejectReason.AUCTION_NOT_ACTIVE:
            return "Bidding has ended for this auction"
        if self.reason == RejectReason.BELOW_FLOOR:
            return f"Bid must be higher than ${self.floor}"
        return "Bid amount is not a valid number"


def to_amount(value: Amount) -> Decimal:
    """
    Coerce a user or wire amount to Decimal.

    Floats go through str() so 250.01 stays 250.01 instead of its binary expansion.

    Raises:
        InvalidOperation: If the value is not a finite number
    """
    if isinstance(value, Decimal):
        amount = value
    else:
        amount = Decimal(str(value).replace("$", "").replace(",", "").strip())
    if not amount.is_finite():
        raise InvalidOperation(f"Not a finite amount: {value}")
    return amount


def bid_floor(auction: Auction, current_highest: Optional[Decimal]) -> Decimal:
    """The amount a new bid must exceed."""
    return current_highest if current_highest is not None else auction.starting_price


def validate(
    auction: Auction,
    current_highest: Optional[Decimal],
    proposed: Amount,
    now: Optional[datetime] = None,
) -> BidDecision:
    """
    Decide whether a proposed bid may be sent.

    Rules are checked in order, first failure wins:
    1. Effective auction state must be ACTIVE
    2. Amount must be strictly greater than the current highest bid,
       or the starting price when there are no bids
    """
    if effective_status(auction, now) != AuctionStatus.ACTIVE:
        return BidDecision(accepted=False, reason=RejectReason.AUCTION_NOT_ACTIVE)

    floor = bid_floor(auction, current_highest)
    try:
        amount = to_amount(proposed)
    except (InvalidOperation, ValueError):
        return BidDecision(accepted=False, reason=RejectReason.INVALID_AMOUNT, floor=floor)

    if amount <= floor:
        return BidDecision(accepted=False, reason=RejectReason.BELOW_FLOOR, floor=floor)
    return BidDecision(accepted=True, floor=floor)


def minimum_next_bid(
    auction: Auction,
    current_highest: Optional[Decimal],
    increment: Decimal = DEFAULT_BID_INCREMENT,
) -> Decimal:
    """Advisory pre-fill for the bid form. validate() remains the authoritative check."""
    return bid_floor(auction, current_highest) + increment
