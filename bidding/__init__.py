from .models import (
    Auction, AuctionStatus, AuthResult, Bid, BidStatus, Identity, ProductPage, Session, TokenPair, UserBidItem,
)
from .session_store import SessionStore
from .lifecycle import InvalidTransition, effective_status, check_transition, time_remaining
from .validator import BidDecision, RejectReason, validate, minimum_next_bid, DEFAULT_BID_INCREMENT
from .ledger import BidLedger

__all__ = [
    "Auction", "AuctionStatus", "AuthResult", "Bid", "BidStatus", "Identity", "ProductPage", "Session",
    "TokenPair", "UserBidItem", "SessionStore", "InvalidTransition", "effective_status", "check_transition",
    "time_remaining", "BidDecision", "RejectReason", "validate", "minimum_next_bid", "DEFAULT_BID_INCREMENT",
    "BidLedger",
]
