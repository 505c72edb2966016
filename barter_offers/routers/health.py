import httpx
from fastapi import APIRouter, Depends

from barter_offers.services.session_registry import SessionRegistry
from barter_offers.upstream import get_http_client, get_session_registry

router = APIRouter(prefix="/api/v1", tags=["health"])


@router.get("/health")
async def health_check(
    client: httpx.AsyncClient = Depends(get_http_client),
    sessions: SessionRegistry = Depends(get_session_registry),
):
    upstream_status = "ok"

    try:
        response = await client.get("/")
        if response.status_code >= 500:
            upstream_status = f"error: status {response.status_code}"
    except httpx.HTTPError as exc:
        upstream_status = f"error: {exc.__class__.__name__}"

    overall = "ok" if upstream_status == "ok" else "degraded"

    return {
        "status": overall,
        "marketplace": upstream_status,
        "sessions": len(sessions),
    }
