from typing import Optional

import httpx
from pydantic import ValidationError

from barter_offers.config import settings
from barter_offers.exceptions.trade_exceptions import (
    NotAuthorizedError,
    StaleStateError,
    TransientFetchError,
)
from barter_offers.logging_config import get_logger
from barter_offers.schemas.trade import UpstreamEnvelope

logger = get_logger(__name__)

# Statuses meaning "the server's view of the trade differs from ours"
_STALE_STATUSES = frozenset({400, 404, 409, 410, 422})


def _retry_after(response: httpx.Response) -> int:
    raw = response.headers.get("Retry-After", "")
    return int(raw) if raw.isdigit() else settings.refresh_retry_after_seconds


class MarketplaceRepository:
    """Shared request handling for the marketplace REST service.

    Every ``httpx`` failure is converted here into one of the domain errors so
    nothing above the repositories has to know about HTTP.
    """

    def __init__(self, client: httpx.AsyncClient, auth_token: Optional[str] = None) -> None:
        self._client = client
        self._auth_token = auth_token

    def _headers(self) -> dict:
        token = self._auth_token or settings.upstream_auth_token
        return {"Authorization": f"Bearer {token}"} if token else {}

    async def _send(self, method: str, url: str, **kwargs) -> UpstreamEnvelope:
        try:
            response = await self._client.request(
                method, url, headers=self._headers(), **kwargs
            )
        except httpx.HTTPError as exc:
            logger.warning("upstream_unreachable", method=method, url=url, error=str(exc))
            raise TransientFetchError(
                f"Marketplace service unreachable: {exc.__class__.__name__}",
                retry_after_seconds=settings.refresh_retry_after_seconds,
            ) from exc

        envelope = self._parse(response)
        if response.status_code >= 500 or response.status_code == 429:
            logger.warning(
                "upstream_server_error",
                method=method,
                url=url,
                status_code=response.status_code,
            )
            raise TransientFetchError(
                envelope.error or f"Marketplace service answered {response.status_code}",
                retry_after_seconds=_retry_after(response),
            )
        if response.status_code in (401, 403):
            logger.warning(
                "upstream_not_authorized",
                method=method,
                url=url,
                status_code=response.status_code,
            )
            raise NotAuthorizedError(
                envelope.error or "Marketplace service refused the credentials"
            )
        if response.status_code in _STALE_STATUSES or not envelope.success:
            logger.info(
                "upstream_rejected",
                method=method,
                url=url,
                status_code=response.status_code,
                error=envelope.error,
            )
            raise StaleStateError(
                envelope.error or f"Marketplace service rejected the request ({response.status_code})"
            )
        return envelope

    @staticmethod
    def _parse(response: httpx.Response) -> UpstreamEnvelope:
        try:
            body = response.json()
        except ValueError:
            return UpstreamEnvelope(success=response.is_success)
        if not isinstance(body, dict):
            return UpstreamEnvelope(success=response.is_success, data=body)
        body.setdefault("success", response.is_success)
        try:
            return UpstreamEnvelope.model_validate(body)
        except ValidationError as exc:
            # the status code still decides how the request failed
            logger.warning(
                "upstream_envelope_unreadable",
                status_code=response.status_code,
                errors=exc.error_count(),
            )
            error = body.get("error")
            return UpstreamEnvelope(
                success=response.is_success,
                data=body.get("data"),
                error=str(error) if error is not None else None,
            )
