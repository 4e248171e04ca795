"""FastAPI application entrypoint."""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse

from portfolio_ai import __version__
from portfolio_ai.config import get_settings
from portfolio_ai.container import build_sql_container
from portfolio_ai.db import dispose_engine
from portfolio_ai.exceptions import (
    ConfigurationMissing,
    CredentialInvalid,
    EntityConflict,
    EntityNotFound,
    InputTooLarge,
    ProviderTransient,
    QuotaExceeded,
)
from portfolio_ai.logging_config import configure_logging, get_logger
from portfolio_ai.middleware.correlation_id import CorrelationIdMiddleware
from portfolio_ai.middleware.rate_limit import RateLimitMiddleware
from portfolio_ai.routers import (
    api_health_router,
    chat_router,
    health_router,
    knowledge_router,
    personalities_router,
    settings_router,
)
from portfolio_ai.schemas.common import error_body

logger = get_logger(__name__)


def quota_exceeded_message(exc: QuotaExceeded) -> str:
    lines = [
        f"🚫 You have used all {exc.limit} free attempts for today.",
        "",
        "To keep using the assistant, set your own API key:",
        "",
        "  apikey set YOUR_API_KEY",
    ]
    if exc.reset_in:
        hours, rest = divmod(exc.reset_in, 3600)
        lines += ["", f"Free attempts reset in {hours}h {rest // 60}m."]
    return "\n".join(lines)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown: logging, service container, quota backend connection."""
    configure_logging()
    if getattr(app.state, "container", None) is None:
        app.state.container = build_sql_container(get_settings())
    await app.state.container.startup()
    logger.info("app_started", version=__version__)
    yield
    await app.state.container.shutdown()
    await dispose_engine()
    logger.info("app_shutdown")


app = FastAPI(
    title="Portfolio AI",
    version=__version__,
    lifespan=lifespan,
)
app.add_middleware(RateLimitMiddleware)
app.add_middleware(CorrelationIdMiddleware)

app.include_router(api_health_router)
app.include_router(health_router)
app.include_router(chat_router)
app.include_router(knowledge_router)
app.include_router(settings_router)
app.include_router(personalities_router)


@app.exception_handler(QuotaExceeded)
async def quota_exceeded_handler(request: Request, exc: QuotaExceeded) -> PlainTextResponse:
    return PlainTextResponse(quota_exceeded_message(exc), status_code=status.HTTP_403_FORBIDDEN)


@app.exception_handler(EntityNotFound)
async def not_found_handler(request: Request, exc: EntityNotFound) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content=error_body(str(exc)))


@app.exception_handler(EntityConflict)
async def conflict_handler(request: Request, exc: EntityConflict) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content=error_body(str(exc)))


@app.exception_handler(InputTooLarge)
async def input_too_large_handler(request: Request, exc: InputTooLarge) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, content=error_body(str(exc)))


@app.exception_handler(ConfigurationMissing)
async def configuration_missing_handler(request: Request, exc: ConfigurationMissing) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=error_body("generation is not configured", "configuration_missing"),
    )


@app.exception_handler(CredentialInvalid)
async def credential_invalid_handler(request: Request, exc: CredentialInvalid) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content=error_body("the provider rejected the API key", "credential_invalid"),
    )


@app.exception_handler(ProviderTransient)
async def provider_error_handler(request: Request, exc: ProviderTransient) -> JSONResponse:
    logger.warning("provider.error", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content=error_body("text generation failed", "provider_error"),
    )


@app.get("/")
def root() -> dict[str, str]:
    """Root endpoint: app name and version."""
    return {"name": "portfolio_ai", "version": __version__}
