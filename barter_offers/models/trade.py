import json
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class TradeStatus(str, Enum):
    PENDING = "pending"
    COUNTERED = "countered"
    ACCEPTED = "accepted"
    ACTIVE = "active"
    DECLINED = "declined"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    COMPLETED = "completed"


TERMINAL_STATUSES = frozenset(
    {
        TradeStatus.DECLINED,
        TradeStatus.CANCELLED,
        TradeStatus.EXPIRED,
        TradeStatus.COMPLETED,
    }
)
OPEN_STATUSES = frozenset({TradeStatus.PENDING, TradeStatus.COUNTERED})
ONGOING_STATUSES = frozenset({TradeStatus.ACCEPTED, TradeStatus.ACTIVE})


class TradeOption(str, Enum):
    MEETUP = "meetup"
    DELIVERY = "delivery"


class Party(str, Enum):
    BUYER = "buyer"
    SELLER = "seller"


_OFFERED_BY_ALIASES = {
    "buyer": Party.BUYER,
    "from_buyer": Party.BUYER,
    "sender": Party.BUYER,
    "seller": Party.SELLER,
    "from_seller": Party.SELLER,
    "recipient": Party.SELLER,
}


def first_image_url(raw) -> Optional[str]:
    """Pick the first usable URL out of a list or a JSON-encoded list string."""
    if isinstance(raw, str):
        text = raw.strip()
        if not text.startswith("["):
            return text or None
        try:
            raw = json.loads(text)
        except json.JSONDecodeError:
            return None
    if isinstance(raw, list):
        for url in raw:
            if isinstance(url, str) and url.strip():
                return url.strip()
    return None


class TradeItem(BaseModel):
    id: Optional[int] = None
    product_id: int
    offered_by: Party
    product_title: Optional[str] = None
    product_image_url: Optional[str] = None
    product_status: Optional[str] = None
    created_at: Optional[datetime] = None

    @model_validator(mode="before")
    @classmethod
    def normalize_image(cls, data):
        if isinstance(data, dict) and not data.get("product_image_url"):
            images = data.get("product_image_urls") or data.get("productImages")
            if images:
                data = {**data, "product_image_url": first_image_url(images)}
        return data

    @field_validator("offered_by", mode="before")
    @classmethod
    def normalize_offered_by(cls, v):
        if isinstance(v, str):
            party = _OFFERED_BY_ALIASES.get(v.strip().lower())
            if party is None:
                raise ValueError(f"unknown offered_by value: {v!r}")
            return party
        return v


class Trade(BaseModel):
    """A proposed or executing exchange between a buyer and a seller.

    The buyer is the party who made the offer; the seller owns the target
    product. Instances are treated as immutable values: transitions return
    a new copy via ``model_copy``.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: int
    buyer_id: int
    seller_id: int
    target_product_id: int
    status: TradeStatus = TradeStatus.PENDING
    trade_option: TradeOption = TradeOption.MEETUP
    items: List[TradeItem] = Field(default_factory=list)

    message: Optional[str] = None
    offered_cash_amount: Optional[float] = None
    decline_feedback: Optional[str] = None

    buyer_meetup_confirmed: bool = False
    seller_meetup_confirmed: bool = False
    # Combined flag as reported by the server, see ``meetup_confirmed``
    server_meetup_confirmed: bool = Field(default=False, alias="meetup_confirmed")
    meetup_location: Optional[str] = None

    # Completion needs both parties; the server flips the status once both flags are set
    buyer_completed: bool = False
    seller_completed: bool = False

    buyer_name: Optional[str] = None
    seller_name: Optional[str] = None
    product_title: Optional[str] = None
    product_image_url: Optional[str] = None

    created_at: datetime
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @field_validator(
        "server_meetup_confirmed",
        "buyer_meetup_confirmed",
        "seller_meetup_confirmed",
        "buyer_completed",
        "seller_completed",
        mode="before",
    )
    @classmethod
    def null_flag_is_false(cls, v):
        return bool(v) if v is not None else False

    @field_validator("items", mode="before")
    @classmethod
    def null_items_is_empty(cls, v):
        return v or []

    @model_validator(mode="after")
    def completed_at_matches_status(self) -> "Trade":
        if self.status != TradeStatus.COMPLETED:
            self.completed_at = None
        elif self.completed_at is None:
            self.completed_at = self.updated_at or self.created_at
        return self

    @property
    def meetup_confirmed(self) -> bool:
        if self.status not in ONGOING_STATUSES:
            return False
        return self.server_meetup_confirmed or (
            self.buyer_meetup_confirmed and self.seller_meetup_confirmed
        )

    @property
    def awaiting_other_party(self) -> bool:
        """One party marked the trade completed and the other has not yet."""
        if self.status not in ONGOING_STATUSES:
            return False
        return self.buyer_completed != self.seller_completed

    def completed_by(self, party: Optional[Party]) -> bool:
        if party == Party.BUYER:
            return self.buyer_completed
        if party == Party.SELLER:
            return self.seller_completed
        return False

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def party_of(self, user_id: int) -> Optional[Party]:
        if user_id == self.buyer_id:
            return Party.BUYER
        if user_id == self.seller_id:
            return Party.SELLER
        return None

    def counterparty_name(self, viewer_id: int) -> Optional[str]:
        party = self.party_of(viewer_id)
        if party == Party.BUYER:
            return self.seller_name
        if party == Party.SELLER:
            return self.buyer_name
        return None

    def offered_items(self, party: Party) -> List[TradeItem]:
        return [item for item in self.items if item.offered_by == party]

    def product_ids(self) -> List[int]:
        """Target product first, then every item's product, without duplicates."""
        ids = [self.target_product_id]
        for item in self.items:
            if item.product_id not in ids:
                ids.append(item.product_id)
        return ids

    def __repr__(self) -> str:
        return f"<Trade {self.id} {self.status.value}>"
