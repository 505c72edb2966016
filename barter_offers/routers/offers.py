from typing import Optional

from fastapi import APIRouter, Depends, Query

from barter_offers.models.trade import TradeStatus
from barter_offers.routers.deps import get_service
from barter_offers.schemas.trade import OfferPage, TradeCounts
from barter_offers.services.categorizer import Bucket, SortOrder
from barter_offers.services.trade_service import TradeService

router = APIRouter(prefix="/api/v1/offers", tags=["offers"])


@router.get("/counts", response_model=TradeCounts, summary="Badge counts")
async def get_counts(service: TradeService = Depends(get_service)):
    return await service.get_counts()


@router.get(
    "/{bucket}",
    response_model=OfferPage,
    summary="One page of a bucket",
    description=(
        "Sent, received, ongoing or history offers for the current user. "
        "Search, status and sort are remembered per bucket; omitted parameters "
        "keep their previous value. Pages past the end are clamped to the last page."
    ),
)
async def get_offer_page(
    bucket: Bucket,
    search: Optional[str] = Query(default=None, max_length=100),
    status: Optional[TradeStatus] = None,
    sort: Optional[SortOrder] = None,
    page: Optional[int] = Query(default=None, ge=1),
    service: TradeService = Depends(get_service),
):
    return await service.get_offer_page(
        bucket,
        search_term=search,
        status_filter=status,
        sort_order=sort,
        page=page,
    )
