"""Best-effort publishing of reward events over Redis pub/sub."""

from __future__ import annotations

import json
import logging

logger = logging.getLogger(__name__)


async def publish_event(redis: object, channel: str, payload: dict) -> bool:
    """Publish a JSON payload on ``pubsub:<channel>``.

    Returns True if published. Never raises: a failed broadcast must not
    undo a reward that has already been committed.
    """
    if redis is None:
        return False
    try:
        await redis.publish(  # type: ignore[attr-defined]
            f"pubsub:{channel}",
            json.dumps(payload, default=str),
        )
    except Exception:
        logger.warning("Failed to publish %s event", channel, exc_info=True)
        return False
    return True
