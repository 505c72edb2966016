from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from barter_offers.models.trade import Trade, TradeItem, TradeOption, TradeStatus


class TradeAction(str, Enum):
    ACCEPT = "accept"
    DECLINE = "decline"
    CANCEL = "cancel"
    COUNTER = "counter"
    CONFIRM_MEETUP = "confirm_meetup"
    COMPLETE = "complete"
    EXPIRE = "expire"


class TradeDirection(str, Enum):
    INCOMING = "incoming"
    OUTGOING = "outgoing"


class TradeActionRequest(BaseModel):
    action: TradeAction = Field(..., examples=["accept"])
    message: Optional[str] = Field(default=None, max_length=500)
    counter_offered_product_ids: List[int] = Field(default_factory=list)
    counter_offered_cash_amount: Optional[float] = Field(default=None, ge=0)
    meetup_location: Optional[str] = Field(default=None, max_length=200)

    @field_validator("message", "meetup_location")
    @classmethod
    def blank_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return v.strip()

    def upstream_payload(self) -> dict:
        """Body for ``PUT /api/trades/{id}`` on the marketplace service."""
        payload: dict = {"action": self.action.value}
        if self.message is not None:
            payload["message"] = self.message
        if self.action == TradeAction.COUNTER:
            payload["counter_offered_product_ids"] = list(self.counter_offered_product_ids)
            if self.counter_offered_cash_amount is not None:
                payload["counter_offered_cash_amount"] = self.counter_offered_cash_amount
        if self.action == TradeAction.CONFIRM_MEETUP and self.meetup_location:
            payload["meetup_location"] = self.meetup_location
        return payload


class UpstreamEnvelope(BaseModel):
    """Response wrapper used by every marketplace endpoint."""

    success: bool = True
    message: Optional[str] = None
    data: Any = None
    error: Optional[str] = None


class TradeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    buyer_id: int
    seller_id: int
    target_product_id: int
    status: TradeStatus
    trade_option: TradeOption
    items: List[TradeItem]
    message: Optional[str] = None
    offered_cash_amount: Optional[float] = None
    decline_feedback: Optional[str] = None
    buyer_meetup_confirmed: bool
    seller_meetup_confirmed: bool
    meetup_confirmed: bool
    meetup_location: Optional[str] = None
    buyer_completed: bool = False
    seller_completed: bool = False
    awaiting_other_party: bool = False
    buyer_name: Optional[str] = None
    seller_name: Optional[str] = None
    product_title: Optional[str] = None
    product_image_url: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    # "sent" or "received" relative to the viewer; set on history entries
    source: Optional[str] = None
    pending_action: Optional[str] = None
    available_actions: List[str] = Field(default_factory=list)


class OfferPage(BaseModel):
    bucket: str
    items: List[TradeResponse]
    page: int
    page_size: int
    total_items: int
    total_pages: int
    stale: bool = False
    error: Optional[str] = None


class TradeCounts(BaseModel):
    sent_pending: int = 0
    received_pending: int = 0
    ongoing: int = 0
    completed: int = 0


class RefreshResult(BaseModel):
    applied: bool
    sequence: int
    stale: bool
    error: Optional[str] = None


class PushEvent(BaseModel):
    type: str = Field(..., examples=["trade_updated"])
    data: dict = Field(default_factory=dict)


def to_response(
    trade: Trade,
    source: Optional[str] = None,
    pending_action: Optional[str] = None,
    available_actions: Optional[List[str]] = None,
) -> TradeResponse:
    return TradeResponse(
        id=trade.id,
        buyer_id=trade.buyer_id,
        seller_id=trade.seller_id,
        target_product_id=trade.target_product_id,
        status=trade.status,
        trade_option=trade.trade_option,
        items=trade.items,
        message=trade.message,
        offered_cash_amount=trade.offered_cash_amount,
        decline_feedback=trade.decline_feedback,
        buyer_meetup_confirmed=trade.buyer_meetup_confirmed,
        seller_meetup_confirmed=trade.seller_meetup_confirmed,
        meetup_confirmed=trade.meetup_confirmed,
        meetup_location=trade.meetup_location,
        buyer_completed=trade.buyer_completed,
        seller_completed=trade.seller_completed,
        awaiting_other_party=trade.awaiting_other_party,
        buyer_name=trade.buyer_name,
        seller_name=trade.seller_name,
        product_title=trade.product_title,
        product_image_url=trade.product_image_url,
        created_at=trade.created_at,
        updated_at=trade.updated_at,
        completed_at=trade.completed_at,
        source=source,
        pending_action=pending_action,
        available_actions=available_actions or [],
    )
