"""Client identity for quota and throttling: first X-Forwarded-For hop, else the peer address."""
from uuid import UUID

from fastapi import Request

UNKNOWN_CLIENT = "unknown"


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For", "")
    if forwarded.strip():
        return forwarded.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_CLIENT


def quota_identity(tenant_id: UUID, request: Request) -> str:
    """Quota identities are tenant-scoped: one visitor has a separate allowance per portfolio."""
    return f"{tenant_id}:{client_ip(request)}"
