from typing import Optional

import httpx
from fastapi import Header, HTTPException, Request, status

from barter_offers.config import settings
from barter_offers.services.session_registry import SessionRegistry


def create_upstream_client(transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=settings.marketplace_api_url,
        timeout=settings.upstream_timeout_seconds,
        headers={"Content-Type": "application/json"},
        transport=transport,
    )


def get_http_client(request: Request) -> httpx.AsyncClient:
    """FastAPI dependency: the shared upstream client created during lifespan startup."""
    return request.app.state.http_client


def get_session_registry(request: Request) -> SessionRegistry:
    return request.app.state.sessions


def get_current_user_id(x_user_id: Optional[str] = Header(default=None)) -> int:
    """User id as asserted by the identity layer in front of this service."""
    if x_user_id is None or not x_user_id.strip().isdigit():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid X-User-ID header",
        )
    return int(x_user_id)


def get_bearer_token(authorization: Optional[str] = Header(default=None)) -> Optional[str]:
    if authorization and authorization.lower().startswith("bearer "):
        return authorization[7:].strip() or None
    return None
