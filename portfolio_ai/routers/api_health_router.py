# /api/healthz (liveness), /api/readyz (readiness: DB + quota backend state).
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from portfolio_ai.db import get_db
from portfolio_ai.dependencies import get_quota_limiter
from portfolio_ai.logging_config import get_logger
from portfolio_ai.services.quota_service import ConnectionState, QuotaLimiter

router = APIRouter(prefix="/api", tags=["health"])
logger = get_logger(__name__)


@router.get("/healthz")
def healthz() -> dict[str, str]:
    """Liveness: process is up. Always 200."""
    return {"status": "ok"}


@router.get("/readyz")
async def readyz(
    db: AsyncSession = Depends(get_db),
    limiter: QuotaLimiter = Depends(get_quota_limiter),
):
    """
    Readiness: 503 when the DB is unreachable.
    A degraded quota backend is reported but never fails readiness (the in-process store serves).
    """
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning("readyz.db_fail", error=str(e))
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "db": "fail"},
        )

    if limiter.state == ConnectionState.CONNECTED:
        await limiter.probe()
    return {"status": "ok", "db": "ok", "quota_backend": limiter.state.value}
