"""Carry structlog context variables into streamed response bodies."""
from typing import Any, AsyncIterator, Mapping

import structlog


async def with_log_context(fragments: AsyncIterator[str], context: Mapping[str, Any]) -> AsyncIterator[str]:
    """
    Re-bind context around every step of fragments.

    StreamingResponse drains the body after the handler (and any middleware
    binding) has returned, so log lines emitted while generating would otherwise
    lose the request's correlation_id. Closing this iterator closes fragments.
    """
    try:
        while True:
            with structlog.contextvars.bound_contextvars(**context):
                try:
                    fragment = await fragments.__anext__()
                except StopAsyncIteration:
                    return
            yield fragment
    finally:
        aclose = getattr(fragments, "aclose", None)
        if aclose is not None:
            await aclose()
