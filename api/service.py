import asyncio
import mimetypes
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional, Type, TypeVar
import logging

from pydantic import BaseModel, ValidationError as PayloadError

from bidding.ledger import BidLedger
from bidding.lifecycle import check_transition, effective_status, time_remaining
from bidding.models import (
    Auction, AuctionStatus, AuthResult, Bid, Identity, ProductPage, UserBidItem,
)
from bidding.session_store import SessionStore
from bidding.validator import DEFAULT_BID_INCREMENT, Amount, minimum_next_bid, to_amount, validate
from .drafts import DraftStore
from .errors import ApiError, AuctionClientError, SessionExpired, ValidationError
from .pipeline import DEFAULT_TIMEOUT, RequestPipeline

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


@dataclass
class AuctionView:
    """Everything a details screen needs for one listing, fetched together."""
    auction: Auction
    ledger: BidLedger
    status: AuctionStatus
    minimum_bid: Decimal
    remaining: timedelta

    @property
    def highest_bid(self) -> Optional[Bid]:
        return self.ledger.highest()


class MarketplaceClient:
    """Async client for the marketplace API."""

    def __init__(
        self,
        base_url: str,
        session_store: Optional[SessionStore] = None,
        timeout: float = DEFAULT_TIMEOUT,
        bid_increment: Decimal = DEFAULT_BID_INCREMENT,
    ):
        self.session_store = session_store if session_store is not None else SessionStore()
        self.pipeline = RequestPipeline(base_url, self.session_store, timeout=timeout)
        self.bid_increment = bid_increment
        # Per-session caches of the last known snapshots. A fetch overwrites an entry;
        # starting or ending a session empties them.
        self._auctions: Dict[str, Auction] = {}
        self._ledgers: Dict[str, BidLedger] = {}

    def is_authenticated(self) -> bool:
        return self.session_store.is_authenticated()

    def _parse(self, model: Type[M], data: Any) -> M:
        try:
            return model.model_validate(data)
        except PayloadError as e:
            logger.error(f"Unexpected {model.__name__} payload: {e}")
            raise ApiError(200, "Malformed response from server") from e

    def _parse_listings(self, data: Any) -> List[Auction]:
        # Paged and unpaged servers both exist: accept a bare list or a page object
        if isinstance(data, dict):
            return self._parse(ProductPage, data).content
        return [self._parse(Auction, item) for item in (data or [])]

    def ledger_for(self, product_id: str) -> BidLedger:
        if product_id not in self._ledgers:
            self._ledgers[product_id] = BidLedger(product_id)
        return self._ledgers[product_id]

    # ---------------- auth ---------------- #

    async def _start_session(self, path: str, body: Dict[str, Any]) -> Identity:
        data = await self.pipeline.execute("POST", path, body)
        result = self._parse(AuthResult, data)
        session = self.session_store.store(result.token_pair(), result.identity())
        self._reset_caches()
        logger.info(f"Signed in as {session.identity.email}")
        return session.identity

    async def login(self, email: str, password: str) -> Identity:
        return await self._start_session("/auth/login", {"email": email, "password": password})

    async def register(self, email: str, password: str, full_name: str, phone: Optional[str] = None) -> Identity:
        body = {"email": email, "password": password, "fullName": full_name}
        if phone:
            body["phone"] = phone
        return await self._start_session("/auth/register", body)

    async def logout(self):
        """End the session locally; telling the server is best effort."""
        session = self.session_store.read()
        try:
            if session is not None:
                await self.pipeline.execute("POST", "/auth/logout", {"refreshToken": session.refresh_token})
        except AuctionClientError as e:
            logger.warning(f"Server logout failed, clearing local session anyway: {e}")
        finally:
            self.session_store.clear()
            self._reset_caches()

    def _reset_caches(self):
        self._auctions.clear()
        self._ledgers.clear()

    # ---------------- products ---------------- #

    async def list_products(
        self,
        status: Optional[AuctionStatus] = None,
        category: Optional[str] = None,
        search: Optional[str] = None,
        page: Optional[int] = None,
        size: Optional[int] = None,
    ) -> List[Auction]:
        params = {
            "status": AuctionStatus(status).value if status else None,
            "category": category,
            "search": search,
            "page": page,
            "size": size,
        }
        data = await self.pipeline.execute("GET", "/products", params=params)
        auctions = self._parse_listings(data)
        for auction in auctions:
            self._auctions[auction.id] = auction
        return auctions

    async def list_my_listings(self) -> List[Auction]:
        """
        The logged-in seller's own listings, in any status.

        Raises:
            SessionExpired: If no session is held
        """
        session = self.session_store.read()
        if session is None:
            raise SessionExpired()
        seller_id = session.identity.id
        if seller_id is None:
            # Auth responses and older saved sessions may lack the user id
            seller_id = (await self.get_profile()).id
        if seller_id is None:
            raise ApiError(200, "Server did not report a user id")

        data = await self.pipeline.execute("GET", "/products", params={"sellerId": seller_id})
        auctions = self._parse_listings(data)
        # Servers that ignore the filter return every listing
        mine = [a for a in auctions if a.seller_id == seller_id]
        for auction in mine:
            self._auctions[auction.id] = auction
        return mine

    async def get_product(self, product_id: str) -> Auction:
        data = await self.pipeline.execute("GET", f"/products/{product_id}")
        auction = self._parse(Auction, data)
        self._auctions[auction.id] = auction
        return auction

    async def create_product(self, payload: Dict[str, Any]) -> Auction:
        data = await self.pipeline.execute("POST", "/products", payload)
        auction = self._parse(Auction, data)
        self._auctions[auction.id] = auction
        return auction

    async def update_product(self, product_id: str, changes: Dict[str, Any]) -> Auction:
        data = await self.pipeline.execute("PUT", f"/products/{product_id}", changes)
        auction = self._parse(Auction, data)
        self._auctions[auction.id] = auction
        return auction

    async def cancel_product(self, product_id: str) -> Auction:
        """
        Seller action: ACTIVE -> CANCELLED.

        Raises:
            InvalidTransition: If the listing already closed or was cancelled
        """
        auction = await self.get_product(product_id)
        check_transition(effective_status(auction), AuctionStatus.CANCELLED)
        return await self.update_product(product_id, {"status": AuctionStatus.CANCELLED.value})

    async def delete_product(self, product_id: str):
        await self.pipeline.execute("DELETE", f"/products/{product_id}")
        self._auctions.pop(product_id, None)
        self._ledgers.pop(product_id, None)

    # ---------------- bids ---------------- #

    async def get_bids(self, product_id: str) -> BidLedger:
        data = await self.pipeline.execute("GET", f"/bids/product/{product_id}")
        bids = [self._parse(Bid, item) for item in (data or [])]
        ledger = self.ledger_for(product_id)
        ledger.sync(bids)
        return ledger

    async def load_auction(self, product_id: str) -> AuctionView:
        auction, ledger = await asyncio.gather(self.get_product(product_id), self.get_bids(product_id))
        status = effective_status(auction)
        if status == AuctionStatus.CLOSED:
            ledger.settle()
        return AuctionView(
            auction=auction,
            ledger=ledger,
            status=status,
            minimum_bid=minimum_next_bid(auction, self._current_highest(auction, ledger), self.bid_increment),
            remaining=time_remaining(auction),
        )

    def _current_highest(self, auction: Auction, ledger: BidLedger) -> Optional[Decimal]:
        """Best local knowledge of the highest bid: the ledger or the listing's price, whichever is higher."""
        candidates = []
        if len(ledger):
            candidates.append(ledger.highest_amount())
        if auction.bid_count > 0:
            candidates.append(auction.current_price)
        return max(candidates) if candidates else None

    async def place_bid(self, product_id: str, amount: Amount) -> Bid:
        """
        Validate locally, then submit a bid.

        Raises:
            ValidationError: Rejected locally; no request was sent
            ApiError: Rejected by the server (e.g. outbid meanwhile)
        """
        auction = self._auctions.get(product_id)
        if auction is None:
            auction = await self.get_product(product_id)
        ledger = self.ledger_for(product_id)

        decision = validate(auction, self._current_highest(auction, ledger), amount)
        if not decision.accepted:
            logger.info(f"Bid on {product_id} rejected locally: {decision.reason.value}")
            raise ValidationError(decision.reason, decision.message)

        value = to_amount(amount)
        try:
            data = await self.pipeline.execute("POST", "/bids", {"productId": product_id, "amount": float(value)})
        except ApiError as e:
            if e.status in (400, 409):
                # Somebody else probably got there first
                await self._resync(product_id)
            raise

        bid = self._parse(Bid, data)
        ledger.insert(bid)
        # Local projection until the next fetch
        if bid.amount > auction.current_price:
            auction.current_price = bid.amount
        auction.bid_count += 1
        logger.info(f"Bid {bid.id} of {bid.amount} placed on {product_id}")
        return bid

    async def _resync(self, product_id: str):
        try:
            await asyncio.gather(self.get_product(product_id), self.get_bids(product_id))
        except AuctionClientError as e:
            logger.warning(f"Could not resync auction {product_id}: {e}")

    # ---------------- user ---------------- #

    async def get_my_bids(self) -> List[UserBidItem]:
        data = await self.pipeline.execute("GET", "/user/bids")
        return [self._parse(UserBidItem, item) for item in (data or [])]

    async def get_profile(self) -> Identity:
        data = await self.pipeline.execute("GET", "/user/me")
        identity = self._parse(Identity, data)
        self.session_store.update_identity(identity)
        return identity

    async def update_profile(self, changes: Dict[str, Any]) -> Identity:
        data = await self.pipeline.execute("PUT", "/user/me", changes)
        identity = self._parse(Identity, data)
        self.session_store.update_identity(identity)
        return identity

    # ---------------- uploads & drafts ---------------- #

    async def upload_image(self, path: Path) -> str:
        """Upload one image and return its URL."""
        path = Path(path)
        content = await asyncio.to_thread(path.read_bytes)
        mime_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        # Bytes rather than an open file so the single retry after a refresh resends the same body
        data = await self.pipeline.execute("POST", "/upload", files={"file": (path.name, content, mime_type)})
        if isinstance(data, dict):
            if data.get("url"):
                return data["url"]
            if data.get("urls"):
                return data["urls"][0]
        raise ApiError(200, "Malformed response from server")

    async def publish_draft(self, drafts: DraftStore, draft_id: str) -> Auction:
        """
        Upload the draft's images one by one, create the listing, then drop the draft.

        The draft stays in the store if any step fails so it can be retried or discarded.

        Raises:
            KeyError: If the draft is unknown
        """
        draft = drafts.get(draft_id)
        if draft is None:
            raise KeyError(draft_id)
        image_urls = []
        for image_path in draft.image_paths:
            image_urls.append(await self.upload_image(image_path))
        auction = await self.create_product(draft.to_payload(image_urls))
        drafts.consume(draft_id)
        logger.info(f"Draft {draft_id} published as product {auction.id}")
        return auction


def ends_within(auction: Auction, window: timedelta, now: Optional[datetime] = None) -> bool:
    """True for listings still open that close inside the given window."""
    left = time_remaining(auction, now)
    return timedelta(0) < left <= window
