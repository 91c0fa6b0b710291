# aura_connect/context.py
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

import httpx
import structlog
from sqlalchemy.ext.asyncio import AsyncEngine

from aura_connect.accounts.utils import TokenCipher
from aura_connect.config import PlatformConfig, Settings, build_platform_table
from aura_connect.infrastructure.database import build_engine, get_session, init_db
from aura_connect.infrastructure.redis_cache import StateNonceStore, build_redis
from aura_connect.services.oauth_state import now_ms

logger = structlog.get_logger(__name__)


class ServiceContext:
    """
    Everything a request handler needs that outlives a single request: the
    database engine, the Redis client, the outbound HTTP client, the token
    cipher and the platform table. Built once by the process entry point,
    which also owns ``init()`` and ``dispose()``.
    """

    def __init__(
        self,
        settings: Settings,
        engine: Optional[AsyncEngine] = None,
        redis_client=None,
        http: Optional[httpx.AsyncClient] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.settings = settings
        self.platforms: Dict[str, PlatformConfig] = build_platform_table(settings)
        self.cipher = TokenCipher(settings.token_encryption_key)
        self.engine = engine if engine is not None else build_engine(settings.database_url)
        self.redis = redis_client if redis_client is not None else build_redis(settings.redis_url)
        self.http = http if http is not None else httpx.AsyncClient(timeout=settings.http_timeout_seconds)
        self.clock = clock or now_ms
        self.nonces = StateNonceStore(self.redis, ttl_seconds=settings.oauth_state_max_age_seconds)

    @property
    def state_max_age_ms(self) -> int:
        return self.settings.oauth_state_max_age_seconds * 1000

    def utcnow(self) -> datetime:
        # naive UTC, matching the datetime columns
        return datetime.fromtimestamp(self.clock() / 1000, tz=timezone.utc).replace(tzinfo=None)

    def session(self):
        return get_session(self.engine)

    async def init(self) -> None:
        await init_db(self.engine)
        logger.info("service_context_ready", platforms=sorted(self.platforms))

    async def dispose(self) -> None:
        await self.http.aclose()
        await self.redis.aclose()
        await self.engine.dispose()
        logger.info("service_context_disposed")
