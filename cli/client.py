import asyncio
import math
from datetime import datetime
from typing import Awaitable, TypeVar

import pytz

from api.service import MarketplaceClient
from bidding.lifecycle import as_utc, time_remaining
from bidding.models import Auction
from bidding.session_store import SessionStore
from .config import (
    get_bid_increment, get_request_timeout, get_server_url, get_timezone, load_session, save_session,
)

T = TypeVar("T")


class AuctionCLIClient:
    """Runs marketplace calls for one CLI command and keeps the saved session in step."""

    def __init__(self):
        self.session_store = SessionStore(load_session())
        self.api = MarketplaceClient(
            get_server_url(),
            self.session_store,
            timeout=get_request_timeout(),
            bid_increment=get_bid_increment(),
        )
        self.timezone = pytz.timezone(get_timezone())

    def run(self, coro: Awaitable[T]) -> T:
        """Run a coroutine to completion, then save whatever session results (refreshed, new or cleared)."""
        try:
            return asyncio.run(coro)
        finally:
            save_session(self.session_store.read())

    def require_login(self):
        if not self.session_store.is_authenticated():
            raise ValueError("Not logged in. Run 'auction login' first.")

    def to_local_time(self, moment: datetime) -> str:
        """Convert a UTC (or naive UTC) datetime to a local timezone string without seconds."""
        return as_utc(moment).astimezone(self.timezone).strftime("%Y-%m-%d %H:%M")

    def time_until_end(self, auction: Auction) -> str:
        """Format time remaining before bidding ends.

        Returns:
            - Minutes (e.g., "45m") if less than 1 hour remaining
            - Hours (e.g., "5h") if 1-36 hours remaining
            - Days (e.g., "3d") if 36 hours or more remaining
            - "Ended" once the auction is no longer effectively active
        """
        total_seconds = time_remaining(auction).total_seconds()
        if total_seconds <= 0:
            return "Ended"

        total_hours = total_seconds / 3600
        if total_hours < 1:
            return f"{int(total_seconds / 60)}m"
        elif total_hours < 36:
            return f"{int(total_hours)}h"
        else:
            # Round up to whole days: 36.5 hours -> 2d
            return f"{math.ceil(total_hours / 24)}d"
