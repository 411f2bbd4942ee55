"""FastAPI dependency injection providers.

These are used with Depends() in route handlers to inject the marketplace
service; ``idempotent`` guards creation routes against replayed requests.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import Request

from chainflow_escrow.domain.exceptions import DuplicateOperationError
from chainflow_escrow.infrastructure import redis_client

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from chainflow_escrow.services.marketplace_service import MarketplaceService


def get_marketplace(request: Request) -> MarketplaceService:
    """Provide the MarketplaceService built at application startup."""
    return request.app.state.marketplace


@asynccontextmanager
async def idempotent(key: str | None) -> AsyncIterator[None]:
    """Reject a replayed creation request.

    Without a key, or while Redis is unavailable, the request runs unguarded.
    A claimed key is released again if the guarded block fails, so the client
    may retry a request that was rejected.
    """
    if key is None or not redis_client.is_redis_available():
        yield
        return
    if not await redis_client.claim_idempotency(key):
        raise DuplicateOperationError(key)
    try:
        yield
    except Exception:
        await redis_client.release_idempotency(key)
        raise
