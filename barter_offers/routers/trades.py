from typing import List

from fastapi import APIRouter, Depends, status

from barter_offers.routers.deps import get_service
from barter_offers.schemas.trade import (
    PushEvent,
    RefreshResult,
    TradeActionRequest,
    TradeResponse,
)
from barter_offers.services.trade_service import TradeService

router = APIRouter(prefix="/api/v1", tags=["trades"])


@router.get(
    "/trades",
    response_model=List[TradeResponse],
    summary="Every trade of the current user, including declined and cancelled",
)
async def list_trades(service: TradeService = Depends(get_service)):
    return await service.get_all_trades()


@router.post(
    "/trades/refresh",
    response_model=RefreshResult,
    summary="Refetch the trade list",
)
async def refresh_trades(service: TradeService = Depends(get_service)):
    return await service.refresh()


@router.post(
    "/trades/{trade_id}/actions",
    response_model=TradeResponse,
    responses={
        status.HTTP_409_CONFLICT: {
            "description": "Action not allowed for the trade's current state; "
            "refresh when refresh_required is set.",
        },
        status.HTTP_503_SERVICE_UNAVAILABLE: {
            "description": "Marketplace service unavailable; retry later.",
        },
    },
)
async def perform_action(
    trade_id: int,
    request: TradeActionRequest,
    service: TradeService = Depends(get_service),
):
    return await service.perform_action(trade_id, request)


@router.post(
    "/events",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=RefreshResult,
    summary="Push notification from the marketplace (trade_created, trade_updated)",
)
async def push_event(event: PushEvent, service: TradeService = Depends(get_service)):
    return await service.handle_push_event(event)
