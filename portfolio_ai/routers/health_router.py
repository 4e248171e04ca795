"""Plain health check (load balancer / Docker)."""
from fastapi import APIRouter

from portfolio_ai import __version__

router = APIRouter(tags=["health"])


@router.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok", "version": __version__}
