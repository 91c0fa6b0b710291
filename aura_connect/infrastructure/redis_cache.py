# aura_connect/infrastructure/redis_cache.py
import redis.asyncio as aioredis
import structlog

logger = structlog.get_logger(__name__)


def build_redis(redis_url: str) -> aioredis.Redis:
    return aioredis.from_url(redis_url, decode_responses=True)


class StateNonceStore:
    """Remembers consumed OAuth state nonces until the state could have expired anyway."""

    def __init__(self, redis_client, ttl_seconds: int):
        self.redis = redis_client
        self.ttl_seconds = ttl_seconds

    async def claim(self, nonce: str) -> bool:
        claimed = await self.redis.set(f"oauth_state_used:{nonce}", "1", nx=True, ex=self.ttl_seconds)
        if not claimed:
            logger.warning("oauth_state_replayed", nonce=nonce)
        return bool(claimed)
