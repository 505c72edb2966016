from typing import List, Optional

from pydantic import ValidationError

from barter_offers.exceptions.trade_exceptions import StaleStateError
from barter_offers.logging_config import get_logger
from barter_offers.models.trade import Trade
from barter_offers.repositories.base import MarketplaceRepository
from barter_offers.schemas.trade import TradeAction, TradeActionRequest, TradeDirection

logger = get_logger(__name__)


class TradeRepository(MarketplaceRepository):
    async def list_trades(self, direction: TradeDirection) -> List[Trade]:
        """Trades where the current user is the seller (incoming) or buyer (outgoing)."""
        envelope = await self._send(
            "GET", "/api/trades", params={"direction": direction.value}
        )
        raw = envelope.data if isinstance(envelope.data, list) else []
        trades = []
        for entry in raw:
            try:
                trades.append(Trade.model_validate(entry))
            except ValidationError as exc:
                logger.warning(
                    "trade_payload_skipped",
                    direction=direction.value,
                    trade_id=entry.get("id") if isinstance(entry, dict) else None,
                    error=str(exc),
                )
        return trades

    async def get_trade(self, trade_id: int) -> Trade:
        envelope = await self._send("GET", f"/api/trades/{trade_id}")
        return self._trade_from(envelope.data, trade_id)

    async def apply_trade_action(self, trade_id: int, request: TradeActionRequest) -> Trade:
        """Submit an action; returns the trade as the server now has it."""
        envelope = await self._send(
            "PUT", f"/api/trades/{trade_id}", json=request.upstream_payload()
        )
        logger.info("trade_action_submitted", trade_id=trade_id, action=request.action.value)
        if isinstance(envelope.data, dict) and "status" in envelope.data:
            return self._trade_from(envelope.data, trade_id)
        # Older endpoints answer {"success": true, "message": ...} without the trade
        return await self.get_trade(trade_id)

    async def confirm_meetup(
        self, trade_id: int, meetup_location: Optional[str] = None
    ) -> Trade:
        return await self.apply_trade_action(
            trade_id,
            TradeActionRequest(
                action=TradeAction.CONFIRM_MEETUP, meetup_location=meetup_location
            ),
        )

    @staticmethod
    def _trade_from(data, trade_id: int) -> Trade:
        try:
            return Trade.model_validate(data)
        except ValidationError as exc:
            raise StaleStateError(
                f"Marketplace returned an unreadable trade {trade_id}: {exc.error_count()} errors"
            ) from exc
