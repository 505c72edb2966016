from typing import Optional

from fastapi import Depends

from barter_offers.services.session_registry import SessionRegistry
from barter_offers.services.trade_service import TradeService
from barter_offers.upstream import (
    get_bearer_token,
    get_current_user_id,
    get_session_registry,
)


async def get_service(
    user_id: int = Depends(get_current_user_id),
    token: Optional[str] = Depends(get_bearer_token),
    sessions: SessionRegistry = Depends(get_session_registry),
) -> TradeService:
    return await sessions.service(user_id, token)
