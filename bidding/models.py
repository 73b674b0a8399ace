from pydantic import BaseModel, ConfigDict, Field, model_validator
from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from enum import Enum


class AuctionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"
    CANCELLED = "CANCELLED"


class BidStatus(str, Enum):
    ACTIVE = "ACTIVE"
    OUTBID = "OUTBID"
    WON = "WON"


class WireModel(BaseModel):
    """Base for payloads exchanged with the server (camelCase on the wire)."""

    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class TokenPair(WireModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    access_token: str = Field(alias="accessToken")
    refresh_token: str = Field(alias="refreshToken")


class Identity(WireModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: Optional[str] = None
    email: str
    full_name: str = Field(alias="fullName")
    role: str = "BUYER"
    phone: Optional[str] = None


class Session(BaseModel):
    model_config = ConfigDict(frozen=True)

    tokens: TokenPair
    identity: Identity

    @property
    def access_token(self) -> str:
        return self.tokens.access_token

    @property
    def refresh_token(self) -> str:
        return self.tokens.refresh_token


class AuthResult(WireModel):
    """Payload of a successful login or register call."""

    access_token: str = Field(alias="accessToken")
    refresh_token: str = Field(alias="refreshToken")
    id: Optional[str] = None
    email: str
    full_name: str = Field(alias="fullName")
    role: str = "BUYER"

    def token_pair(self) -> TokenPair:
        return TokenPair(access_token=self.access_token, refresh_token=self.refresh_token)

    def identity(self) -> Identity:
        return Identity(id=self.id, email=self.email, full_name=self.full_name, role=self.role)


class Auction(WireModel):
    id: str
    title: str
    description: str = ""
    category: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    starting_price: Decimal = Field(alias="startingPrice", gt=0)
    current_price: Optional[Decimal] = Field(default=None, alias="currentPrice")
    status: AuctionStatus = AuctionStatus.ACTIVE
    end_time: datetime = Field(alias="endTime")
    seller_id: str = Field(alias="sellerId")
    bid_count: int = Field(default=0, alias="bidCount", ge=0)

    @model_validator(mode="after")
    def _price_floor(self):
        # A listing without bids reports no current price on some endpoints.
        if self.current_price is None or self.current_price < self.starting_price:
            self.current_price = self.starting_price
        return self


class Bid(WireModel):
    id: str
    product_id: str = Field(alias="productId")
    bidder_id: Optional[str] = Field(default=None, alias="bidderId")
    bidder_name: str = Field(default="", alias="bidderName")
    amount: Decimal
    status: BidStatus = BidStatus.ACTIVE
    created_at: datetime = Field(alias="createdAt")


class UserBidItem(WireModel):
    product_id: str = Field(alias="productId")
    product_title: str = Field(alias="productTitle")
    product_image: Optional[str] = Field(default=None, alias="productImage")
    my_bid_amount: Decimal = Field(alias="myBidAmount")
    current_highest_bid: Decimal = Field(alias="currentHighestBid")
    is_my_bid_winning: bool = Field(default=False, alias="isMyBidWinning")
    bid_status: str = Field(default="active", alias="bidStatus")
    total_bids: int = Field(default=0, alias="totalBids")
    end_time: Optional[datetime] = Field(default=None, alias="endTime")


class ProductPage(WireModel):
    content: List[Auction] = Field(default_factory=list)
    page: int = 0
    size: int = 0
    total_elements: int = Field(default=0, alias="totalElements")
