import redis.asyncio as redis
from printhub.core.config import get_settings

settings = get_settings()

# Decode responses to get strings instead of bytes
redis_client = redis.from_url(settings.REDIS_URL, decode_responses=True)

def get_redis_client():
    return redis_client
