from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from barter_offers.config import settings
from barter_offers.exceptions.trade_exceptions import (
    InvalidTransitionError,
    MeetupConfirmationRequiredError,
    NotAuthorizedError,
    StaleStateError,
    TransientFetchError,
)
from barter_offers.logging_config import (
    bind_request_context,
    configure_logging,
    get_logger,
)
from barter_offers.routers import health, offers, trades
from barter_offers.services.session_registry import SessionRegistry
from barter_offers.upstream import create_upstream_client

configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "application_starting",
        environment=settings.environment,
        marketplace=settings.marketplace_api_url,
    )

    async with create_upstream_client() as http_client:
        app.state.http_client = http_client
        app.state.sessions = SessionRegistry(http_client)
        app.state.sessions.start_sweeping(settings.session_sweep_interval_seconds)

        yield

        await app.state.sessions.close()

    logger.info("application_stopped")


app = FastAPI(
    title="Barter Offers API",
    description="Trade/offer lifecycle and offer views for the barter marketplace client.",
    version="1.0.0",
    lifespan=lifespan,
)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    correlation_id = bind_request_context(
        request.method,
        request.url.path,
        request.headers.get("X-Correlation-ID"),
    )
    response = await call_next(request)
    response.headers["X-Correlation-ID"] = correlation_id
    return response


# StaleStateError first: TerminalStateError is both kinds and must ask for a refresh
@app.exception_handler(StaleStateError)
async def stale_state_exception_handler(request: Request, exc: StaleStateError):
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"detail": exc.message, "refresh_required": True},
    )


@app.exception_handler(InvalidTransitionError)
async def invalid_transition_exception_handler(
    request: Request, exc: InvalidTransitionError
):
    if isinstance(exc, StaleStateError):
        return await stale_state_exception_handler(request, exc)
    content = {"detail": exc.message, "refresh_required": False}
    if isinstance(exc, MeetupConfirmationRequiredError):
        content["next_step"] = exc.next_step
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content=content)


@app.exception_handler(TransientFetchError)
async def transient_fetch_exception_handler(request: Request, exc: TransientFetchError):
    retry_after = exc.retry_after_seconds or settings.refresh_retry_after_seconds
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": exc.message, "retry_after_seconds": retry_after},
        headers={"Retry-After": str(retry_after)},
    )


@app.exception_handler(NotAuthorizedError)
async def not_authorized_exception_handler(request: Request, exc: NotAuthorizedError):
    return JSONResponse(
        status_code=status.HTTP_403_FORBIDDEN,
        content={"detail": exc.message},
    )


app.include_router(offers.router)
app.include_router(trades.router)
app.include_router(health.router)
