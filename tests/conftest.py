import pytest
import threading
import time
from datetime import datetime, timedelta
from decimal import Decimal
from unittest.mock import MagicMock
import pytz

from bidding.models import Auction, AuctionStatus, Bid, BidStatus, Identity, TokenPair
from bidding.session_store import SessionStore

BASE_URL = "http://market.test/api"


def _fake_response(status_code, body=None):
    """A requests.Response stand-in. body=None means no (or unparseable) JSON body."""
    response = MagicMock()
    response.status_code = status_code
    if body is None:
        response.json.side_effect = ValueError("No JSON body")
    else:
        response.json.return_value = body
    return response


def _envelope(data=None, message="OK", success=True):
    body = {"success": success, "message": message}
    if data is not None:
        body["data"] = data
    return body


@pytest.fixture
def base_url():
    return BASE_URL


@pytest.fixture
def fake_response():
    return _fake_response


@pytest.fixture
def envelope():
    return _envelope


@pytest.fixture
def identity():
    return Identity(email="alice@example.com", full_name="Alice Doe", role="BUYER")


@pytest.fixture
def session_store(identity):
    """A store holding an (about to be rejected) token pair."""
    store = SessionStore()
    store.store(TokenPair(access_token="old-access", refresh_token="old-refresh"), identity)
    return store


@pytest.fixture
def make_auction():
    def _make(**overrides):
        fields = dict(
            id="p1",
            title="Vintage Camera",
            description="Classic 35mm film camera",
            category="Electronics",
            images=["https://img.test/camera.jpg"],
            starting_price=Decimal("250"),
            status=AuctionStatus.ACTIVE,
            end_time=datetime.now(pytz.UTC) + timedelta(days=2),
            seller_id="seller1",
            bid_count=0,
        )
        fields.update(overrides)
        return Auction(**fields)
    return _make


@pytest.fixture
def make_bid():
    counter = {"value": 0}
    start = datetime(2026, 2, 10, 12, 0, tzinfo=pytz.UTC)

    def _make(amount, **overrides):
        counter["value"] += 1
        fields = dict(
            id=f"b{counter['value']}",
            product_id="p1",
            bidder_id=f"u{counter['value']}",
            bidder_name=f"Bidder {counter['value']}",
            amount=Decimal(str(amount)),
            status=BidStatus.ACTIVE,
            created_at=start + timedelta(minutes=counter["value"]),
        )
        fields.update(overrides)
        return Bid(**fields)
    return _make


class FakeMarketplace:
    """
    Routes requests.request calls to an in-memory marketplace.

    Tokens listed in expired_tokens get 401s. Calls are recorded as (method, path, headers, json).
    """

    def __init__(self):
        self.lock = threading.Lock()
        self.calls = []
        self.expired_tokens = set()
        self.valid_refresh_tokens = {"old-refresh"}
        self.refresh_delay = 0.0
        self.products = {}
        self.bids = {}
        self.generation = 0

    def count(self, method, path):
        with self.lock:
            return sum(1 for m, p, _, _ in self.calls if m == method and p == path)

    def __call__(self, method, url, headers=None, json=None, params=None, files=None, data=None, timeout=None):
        path = url[len(BASE_URL):]
        headers = headers or {}
        with self.lock:
            self.calls.append((method, path, dict(headers), json))

        if path == "/auth/login":
            if json["password"] != "secret":
                return _fake_response(401, _envelope(message="Invalid email or password", success=False))
            return _fake_response(200, _envelope(self._issue(json["email"])))
        if path == "/auth/refresh":
            time.sleep(self.refresh_delay)
            if json["refreshToken"] not in self.valid_refresh_tokens:
                return _fake_response(401, _envelope(message="Refresh token expired", success=False))
            return _fake_response(200, _envelope(self._issue(None, pair_only=True)))
        if path == "/auth/logout":
            return _fake_response(204)

        token = headers.get("Authorization", "").replace("Bearer ", "")
        public = method == "GET" and (path == "/products" or path.startswith("/products/"))
        if not public and (not token or token in self.expired_tokens):
            return _fake_response(401, _envelope(message="Token expired", success=False))

        if method == "GET" and path == "/products":
            return _fake_response(200, _envelope(list(self.products.values())))
        if method == "GET" and path.startswith("/products/"):
            product = self.products.get(path.rsplit("/", 1)[1])
            if product is None:
                return _fake_response(404, _envelope(message="Product not found", success=False))
            return _fake_response(200, _envelope(product))
        if method == "GET" and path.startswith("/bids/product/"):
            return _fake_response(200, _envelope(self.bids.get(path.rsplit("/", 1)[1], [])))
        if method == "POST" and path == "/bids":
            return self._place_bid(json)
        if method == "GET" and path == "/user/me":
            return _fake_response(200, _envelope({"id": "u-alice", "email": "alice@example.com", "fullName": "Alice Doe", "role": "BUYER"}))
        return _fake_response(404, _envelope(message="Not found", success=False))

    def _issue(self, email, pair_only=False):
        with self.lock:
            self.generation += 1
            generation = self.generation
        refresh = f"refresh-{generation}"
        self.valid_refresh_tokens.add(refresh)
        data = {"accessToken": f"access-{generation}", "refreshToken": refresh}
        if not pair_only:
            data.update({"id": "u-alice", "email": email, "fullName": "Alice Doe", "role": "BUYER"})
        return data

    def _place_bid(self, body):
        product = self.products[body["productId"]]
        amount = Decimal(str(body["amount"]))
        if amount <= Decimal(product["currentPrice"]):
            return _fake_response(409, _envelope(message="Bid must exceed the current highest bid", success=False))
        existing = self.bids.setdefault(body["productId"], [])
        bid = {
            "id": f"srv-{len(existing) + 1}",
            "productId": body["productId"],
            "bidderId": "u-alice",
            "bidderName": "Alice Doe",
            "amount": str(amount),
            "status": "ACTIVE",
            "createdAt": datetime.now(pytz.UTC).isoformat(),
        }
        for other in existing:
            other["status"] = "OUTBID"
        existing.append(bid)
        product["currentPrice"] = str(amount)
        product["bidCount"] += 1
        return _fake_response(201, _envelope(bid))


@pytest.fixture
def marketplace():
    market = FakeMarketplace()
    market.products["p1"] = {
        "id": "p1",
        "title": "Vintage Camera",
        "description": "Classic 35mm film camera",
        "category": "Electronics",
        "images": [],
        "startingPrice": "250",
        "currentPrice": "250",
        "status": "ACTIVE",
        "endTime": (datetime.now(pytz.UTC) + timedelta(days=2)).isoformat(),
        "sellerId": "seller1",
        "bidCount": 0,
    }
    return market
