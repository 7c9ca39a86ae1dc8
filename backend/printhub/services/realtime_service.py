from printhub.core.redis_client import get_redis_client
from datetime import datetime
import json
import logging

CHANNEL_PREFIX = "realtime"
logger = logging.getLogger(__name__)

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"


def channel_name(table: str, shop_owner_id) -> str:
    """Channel for one table filtered by owner, e.g. realtime:print_jobs:shop_owner_id=eq.<id>"""
    return f"{CHANNEL_PREFIX}:{table}:shop_owner_id=eq.{shop_owner_id}"


def build_event(event_type: str, table: str, new: dict = None, old: dict = None) -> dict:
    return {
        "eventType": event_type,
        "table": table,
        "new": new or {},
        "old": old or {},
        "commit_timestamp": datetime.utcnow().isoformat(),
    }


async def publish_change(event_type: str, table: str, shop_owner_id, new: dict = None, old: dict = None):
    """
    Publish a row change to the owner's channel.

    Subscribers that miss events recover by polling, so a failed publish is
    logged and dropped.
    """
    event = build_event(event_type, table, new, old)
    channel = channel_name(table, shop_owner_id)
    try:
        redis_client = get_redis_client()
        await redis_client.publish(channel, json.dumps(event, default=str))
        logger.info(f"Published {event_type} on {channel}")
    except Exception as e:
        logger.error(f"Failed to publish {event_type} on {channel}: {e}")
