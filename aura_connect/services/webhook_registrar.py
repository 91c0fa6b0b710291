# aura_connect/services/webhook_registrar.py
from typing import Callable, Optional
from datetime import datetime
from urllib.parse import quote

import structlog
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from aura_connect.models.social import Webhook

logger = structlog.get_logger(__name__)


def webhook_url(base_url: str, platform: str, user_id: str) -> str:
    return f"{base_url.rstrip('/')}/webhook/{platform.lower()}/{quote(user_id, safe='')}"


class WebhookRegistrar:
    """
    Records where the automation engine expects push deliveries for a
    (user, platform) pair. This is a registration of intent: nothing is sent to
    the engine, so an "active" row does not mean the engine confirmed it.
    """

    def __init__(self, session: AsyncSession, base_url: str, clock: Callable[[], datetime] = datetime.utcnow):
        self.session = session
        self.base_url = base_url
        self.clock = clock

    async def get(self, user_id: str, platform: str) -> Optional[Webhook]:
        q = select(Webhook).where(Webhook.user_id == user_id, Webhook.platform == platform.lower())
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def register(self, user_id: str, platform: str, access_token: str, commit: bool = True) -> str:
        # access_token is never persisted on the webhook row
        url = webhook_url(self.base_url, platform, user_id)
        now = self.clock()
        hook = await self.get(user_id, platform)
        if hook is None:
            hook = Webhook(user_id=user_id, platform=platform.lower(), url=url, created_at=now)
        hook.url = url
        hook.active = True
        hook.updated_at = now
        self.session.add(hook)
        if commit:
            await self.session.commit()
        else:
            await self.session.flush()
        logger.info("webhook_registered", user_id=user_id, platform=platform, url=url)
        return url

    async def deactivate(self, user_id: str, platform: str, commit: bool = True) -> bool:
        hook = await self.get(user_id, platform)
        if hook is None:
            return False
        hook.active = False
        hook.updated_at = self.clock()
        self.session.add(hook)
        if commit:
            await self.session.commit()
        else:
            await self.session.flush()
        logger.info("webhook_deactivated", user_id=user_id, platform=platform)
        return True
