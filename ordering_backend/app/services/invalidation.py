"""
Cache invalidation hook.

Fired after every committed state transition. Publishes a change event on
the tenant channel and drops cached views of the touched entity. Failures are
logged and never undo the transition that triggered them.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Optional

from redis.exceptions import RedisError

import ordering_backend.app.core.redis_client as redis_client_module
from ordering_backend.app.core.config import settings

logger = logging.getLogger(__name__)


def tenant_channel(tenant_id: int) -> str:
    return f"{settings.invalidation_channel_prefix}:{tenant_id}"


def cache_key(tenant_id: int, entity_type: str, entity_id: Optional[int] = None) -> str:
    if entity_id is None:
        return f"{settings.cache_key_prefix}:{tenant_id}:{entity_type}"
    return f"{settings.cache_key_prefix}:{tenant_id}:{entity_type}:{entity_id}"


async def notify_change(
    tenant_id: int,
    entity_type: str,
    entity_id: int,
    event: str,
) -> bool:
    """
    Announce a committed change.

    Returns:
        True if the event was published, False if Redis was unavailable
    """
    client = redis_client_module.redis_client
    payload = json.dumps({
        "tenant_id": tenant_id,
        "entity_type": entity_type,
        "entity_id": entity_id,
        "event": event,
        "at": datetime.now(timezone.utc).isoformat(),
    })

    try:
        await client.delete(
            cache_key(tenant_id, entity_type, entity_id),
            cache_key(tenant_id, entity_type),
        )
        await client.publish(tenant_channel(tenant_id), payload)
        return True
    except (RedisError, OSError) as e:
        logger.warning(
            "Invalidation hook failed for %s %s (%s): %s",
            entity_type, entity_id, event, e,
        )
        return False
