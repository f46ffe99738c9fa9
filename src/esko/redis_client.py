"""Redis client for reward event fan-out.

Publishing is optional. Until init_redis() runs, event_redis() returns None
and publish_event() drops events.
"""

import redis.asyncio as redis

_client: redis.Redis | None = None


async def init_redis(url: str) -> None:
    """Create the shared client. No connection is opened until first publish."""
    global _client  # noqa: PLW0603
    _client = redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=20,
    )


async def close_redis() -> None:
    global _client  # noqa: PLW0603
    if _client is not None:
        await _client.aclose()
        _client = None


def get_redis() -> redis.Redis:
    """Get the client, failing loudly if the process never initialized it."""
    if _client is None:
        msg = "Redis not initialized. Call init_redis() first."
        raise RuntimeError(msg)
    return _client


def event_redis() -> redis.Redis | None:
    """The client for best-effort publishing, or None when events are off."""
    return _client
