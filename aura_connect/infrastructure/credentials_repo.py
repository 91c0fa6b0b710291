# aura_connect/infrastructure/credentials_repo.py
from typing import Callable, List, Optional, Type, TypeVar
from datetime import datetime

import structlog
from sqlmodel import SQLModel, select
from sqlmodel.ext.asyncio.session import AsyncSession

from aura_connect.models.social import SocialAccount, SocialToken

logger = structlog.get_logger(__name__)

T = TypeVar("T", SocialToken, SocialAccount)

_KEY_FIELDS = {"id", "user_id", "platform", "created_at"}


class CredentialStore:
    """
    Writer for the per-(user, platform) credential and connection records.
    Writes merge the given fields into the existing row (or a new one); rows
    are never deleted, disconnecting only nulls the secret fields.
    """

    def __init__(self, session: AsyncSession, clock: Callable[[], datetime] = datetime.utcnow):
        self.session = session
        self.clock = clock

    async def _get(self, model: Type[T], user_id: str, platform: str) -> Optional[T]:
        q = select(model).where(model.user_id == user_id, model.platform == platform)
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def get_token(self, user_id: str, platform: str) -> Optional[SocialToken]:
        return await self._get(SocialToken, user_id, platform)

    async def get_connection(self, user_id: str, platform: str) -> Optional[SocialAccount]:
        return await self._get(SocialAccount, user_id, platform)

    async def list_connections(self, user_id: str) -> List[SocialAccount]:
        q = select(SocialAccount).where(SocialAccount.user_id == user_id).order_by(SocialAccount.platform)
        res = await self.session.execute(q)
        return list(res.scalars().all())

    async def _merge(self, model: Type[T], user_id: str, platform: str, fields: dict) -> T:
        unknown = set(fields) - (set(model.model_fields) - _KEY_FIELDS)
        if unknown:
            raise ValueError(f"unknown {model.__name__} fields: {sorted(unknown)}")
        row = await self._get(model, user_id, platform)
        if row is None:
            row = model(user_id=user_id, platform=platform, created_at=self.clock())
        for key, value in fields.items():
            setattr(row, key, value)
        row.updated_at = self.clock()
        self.session.add(row)
        return row

    async def _finish(self, row: SQLModel, commit: bool) -> None:
        if commit:
            await self.session.commit()
            await self.session.refresh(row)
        else:
            await self.session.flush()

    async def write(self, user_id: str, platform: str, fields: dict, commit: bool = True) -> SocialToken:
        fields = dict(fields)
        fields.setdefault("disconnected_at", None)
        row = await self._merge(SocialToken, user_id, platform, fields)
        await self._finish(row, commit)
        logger.info("credential_written", user_id=user_id, platform=platform, fields=sorted(k for k in fields if not k.endswith("_enc")))
        return row

    async def write_connection(self, user_id: str, platform: str, fields: dict, commit: bool = True) -> SocialAccount:
        row = await self._merge(SocialAccount, user_id, platform, fields)
        await self._finish(row, commit)
        logger.info("connection_written", user_id=user_id, platform=platform, connected=row.connected)
        return row

    async def mark_disconnected(self, user_id: str, platform: str, commit: bool = True) -> Optional[SocialToken]:
        now = self.clock()
        token = await self.get_token(user_id, platform)
        if token is not None:
            token.access_token_enc = None
            token.refresh_token_enc = None
            token.token_expires_at = None
            token.scope = None
            token.last_synced_at = now
            token.disconnected_at = now
            token.updated_at = now
            self.session.add(token)

        account = await self.get_connection(user_id, platform)
        if account is not None:
            account.connected = False
            account.last_disconnected_at = now
            account.updated_at = now
            self.session.add(account)

        if commit:
            await self.session.commit()
        else:
            await self.session.flush()
        logger.info("credential_disconnected", user_id=user_id, platform=platform, had_token=token is not None)
        return token
