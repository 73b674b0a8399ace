"""
In-memory view over the known bids of one auction.

Status changes made here are a local projection only. The bid list fetched
from the server is authoritative and replaces them through sync().
"""
from typing import Dict, Iterable, Iterator, List, Optional
import logging

from .models import Bid, BidStatus

logger = logging.getLogger(__name__)


def _rank_key(bid: Bid):
    # Highest amount first; on equal amounts the earlier bid ranks higher.
    return (-bid.amount, bid.created_at)


class RecencyView:
    """Bids newest first. Sorted on each iteration, so it can be walked any number of times."""

    def __init__(self, ledger: "BidLedger"):
        self._ledger = ledger

    def __iter__(self) -> Iterator[Bid]:
        for bid in sorted(self._ledger._bids.values(), key=lambda b: b.created_at, reverse=True):
            yield bid

    def __len__(self) -> int:
        return len(self._ledger)


class BidLedger:
    def __init__(self, product_id: str, bids: Optional[Iterable[Bid]] = None):
        self.product_id = product_id
        self._bids: Dict[str, Bid] = {}
        if bids is not None:
            self.sync(bids)

    def __len__(self) -> int:
        return len(self._bids)

    def __iter__(self) -> Iterator[Bid]:
        return iter(list(self._bids.values()))

    def __contains__(self, bid_id: str) -> bool:
        return bid_id in self._bids

    def get(self, bid_id: str) -> Optional[Bid]:
        return self._bids.get(bid_id)

    def highest(self) -> Optional[Bid]:
        if not self._bids:
            return None
        return min(self._bids.values(), key=_rank_key)

    def highest_amount(self):
        top = self.highest()
        return top.amount if top is not None else None

    def insert(self, bid: Bid) -> bool:
        """
        Add a bid, projecting statuses locally.

        A bid that becomes the new highest is marked ACTIVE and the previous
        highest OUTBID; any other newcomer is OUTBID.

        Returns:
            False if a bid with the same id was already known (nothing changes)

        Raises:
            ValueError: If the bid belongs to another auction
        """
        if bid.product_id != self.product_id:
            raise ValueError(f"Bid {bid.id} is for product {bid.product_id}, not {self.product_id}")
        if bid.id in self._bids:
            return False

        previous = self.highest()
        self._bids[bid.id] = bid
        current = self.highest()

        if current is bid:
            if previous is not None and previous.status == BidStatus.ACTIVE:
                previous.status = BidStatus.OUTBID
            bid.status = BidStatus.ACTIVE
        elif bid.status == BidStatus.ACTIVE:
            bid.status = BidStatus.OUTBID
        return True

    def sync(self, bids: Iterable[Bid]):
        """Overwrite local state with the server's list."""
        fresh = {}
        for bid in bids:
            if bid.product_id != self.product_id:
                logger.warning(f"Ignoring bid {bid.id} for product {bid.product_id} in ledger of {self.product_id}")
                continue
            fresh[bid.id] = bid
        self._bids = fresh

    def settle(self):
        """Auction closed: the top bid wins, every other bid is OUTBID."""
        top = self.highest()
        for bid in self._bids.values():
            bid.status = BidStatus.WON if bid is top else BidStatus.OUTBID

    def ordered_for_display(self) -> RecencyView:
        return RecencyView(self)

    def ranked(self) -> List[Bid]:
        return sorted(self._bids.values(), key=_rank_key)
