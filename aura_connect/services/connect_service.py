# aura_connect/services/connect_service.py
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional

import structlog
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel.ext.asyncio.session import AsyncSession

from aura_connect.accounts.repository import UserRepository
from aura_connect.config import PlatformConfig
from aura_connect.context import ServiceContext
from aura_connect.infrastructure.credentials_repo import CredentialStore
from aura_connect.infrastructure.oauth_client import ProviderClient
from aura_connect.models.social import SocialAccount
from aura_connect.services.authorization import build_authorization_url, get_platform
from aura_connect.services.errors import (
    AuxiliaryFetchFailure,
    InvalidState,
    MissingCode,
    MissingState,
    NotConnected,
    PersistenceError,
    UnsupportedPlatform,
    UserNotFound,
)
from aura_connect.services.oauth_state import StatePayload, check_freshness, decode_state
from aura_connect.services.webhook_registrar import WebhookRegistrar

logger = structlog.get_logger(__name__)


@dataclass
class EnrichmentResult:
    profile: dict = field(default_factory=dict)
    page_id: Optional[str] = None
    business_account_id: Optional[str] = None
    warning: Optional[str] = None


def select_page(pages: List[dict]) -> Optional[dict]:
    """Prefer the first page that has an Instagram business account linked."""
    for page in pages:
        if (page.get("instagram_business_account") or {}).get("id"):
            return page
    return pages[0] if pages else None


@dataclass
class ConnectResult:
    user_id: str
    platform: str
    provider_user_id: Optional[str]
    username: Optional[str]
    expires_at: Optional[datetime]
    webhook_url: Optional[str]
    warning: Optional[str] = None


@dataclass
class ConnectionStatus:
    platform: str
    connected: bool
    expired: bool = False
    expires_at: Optional[datetime] = None
    username: Optional[str] = None


class ConnectService:
    def __init__(self, ctx: ServiceContext, session: AsyncSession):
        self.ctx = ctx
        self.session = session
        self.providers = ProviderClient(ctx.http)
        self.store = CredentialStore(session, clock=ctx.utcnow)
        self.users = UserRepository(session)
        self.webhooks = WebhookRegistrar(session, ctx.settings.automation_base_url, clock=ctx.utcnow)

    def platform(self, platform: str) -> PlatformConfig:
        return get_platform(self.ctx.platforms, platform)

    def authorization_url(self, platform: str, user_id: str) -> str:
        return build_authorization_url(
            platform, user_id, self.ctx.platforms, self.ctx.settings.oauth_state_secret, now=self.ctx.clock()
        )

    async def validate_state(self, platform: str, state: str) -> StatePayload:
        payload = decode_state(state, self.ctx.settings.oauth_state_secret)
        check_freshness(payload, self.ctx.state_max_age_ms, now=self.ctx.clock())
        if payload.platform != platform:
            raise InvalidState("state was issued for another platform")
        if self.ctx.settings.oauth_state_single_use:
            try:
                claimed = await self.ctx.nonces.claim(payload.nonce)
            except RedisError as exc:
                logger.error("oauth_state_guard_unavailable", error=str(exc))
                raise PersistenceError("state replay guard unavailable")
            if not claimed:
                raise InvalidState("state was already used")
        return payload

    async def enrich_profile(self, cfg: PlatformConfig, access_token: str) -> EnrichmentResult:
        result = EnrichmentResult()
        try:
            result.profile = await self.providers.fetch_profile(cfg, access_token)
            if cfg.provider.pages_url:
                page = select_page(await self.providers.fetch_pages(cfg, access_token))
                if page is not None:
                    result.page_id = str(page["id"])
                    business = (page.get("instagram_business_account") or {}).get("id")
                    result.business_account_id = str(business) if business else None
        except AuxiliaryFetchFailure as exc:
            logger.warning("profile_enrichment_failed", platform=cfg.name, error=exc.message)
            result.warning = exc.message
        return result

    async def handle_callback(self, platform: str, code: Optional[str], state: Optional[str]) -> ConnectResult:
        """
        Complete a provider redirect: validate the state, exchange the code
        (twice for providers with long-lived tokens), then persist the credential,
        the connection record and the webhook registration in one transaction.
        No outbound request is made until the state has been accepted.
        """
        cfg = self.platform(platform)
        if not code:
            raise MissingCode("authorization code is missing")
        if not state:
            raise MissingState("state parameter is missing")
        payload = await self.validate_state(cfg.name, state)
        log = logger.bind(user_id=payload.user_id, platform=cfg.name)

        short = await self.providers.exchange_code(cfg, code)
        token_data = dict(short)
        if cfg.has_long_token_exchange:
            token_data.update(await self.providers.exchange_long_lived(cfg, short["access_token"]))

        user = await self.users.get_by_id(payload.user_id)
        if user is None:
            log.warning("callback_user_not_found")
            raise UserNotFound(f"user {payload.user_id} does not exist")

        access_token = token_data["access_token"]
        enrichment = await self.enrich_profile(cfg, access_token)
        profile = enrichment.profile

        now = self.ctx.utcnow()
        expires_at = None
        if token_data.get("expires_in"):
            expires_at = now + timedelta(seconds=int(token_data["expires_in"]))
        provider_user_id = short.get("user_id") or profile.get("user_id") or profile.get("id") or profile.get("sub")
        provider_user_id = str(provider_user_id) if provider_user_id else None
        username = short.get("username") or profile.get("username") or profile.get("email") or profile.get("name")

        credential = {
            "access_token_enc": self.ctx.cipher.encrypt(access_token),
            "token_type": token_data.get("token_type"),
            "token_expires_at": expires_at,
            "scope": token_data.get("scope") or cfg.scope_param,
            "provider_user_id": provider_user_id,
            "last_synced_at": now,
        }
        if token_data.get("refresh_token"):
            # providers omit the refresh token on re-consent; keep the stored one then
            credential["refresh_token_enc"] = self.ctx.cipher.encrypt(token_data["refresh_token"])
        if profile.get("account_type") in ("BUSINESS", "MEDIA_CREATOR"):
            credential["business_account_id"] = provider_user_id
        if enrichment.page_id:
            credential["page_id"] = enrichment.page_id
        if enrichment.business_account_id:
            credential["business_account_id"] = enrichment.business_account_id

        connection = {
            "connected": True,
            "provider_user_id": provider_user_id,
            "username": username,
            "profile": profile or None,
            "enrichment_warning": enrichment.warning,
            "last_connected_at": now,
        }

        try:
            await self.store.write(user.id, cfg.name, credential, commit=False)
            await self.store.write_connection(user.id, cfg.name, connection, commit=False)
            url = await self.webhooks.register(user.id, cfg.name, access_token, commit=False)
            await self.users.mark_social_linked(user, commit=False)
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            # the provider already granted access; nothing is revoked on this path
            log.error("callback_persistence_failed", error=str(exc))
            raise PersistenceError("could not store the connection")

        log.info("platform_connected", provider_user_id=provider_user_id, warning=enrichment.warning)
        return ConnectResult(
            user_id=user.id,
            platform=cfg.name,
            provider_user_id=provider_user_id,
            username=username,
            expires_at=expires_at,
            webhook_url=url,
            warning=enrichment.warning,
        )

    async def _disconnect(self, user_id: str, platform: str) -> None:
        try:
            await self.store.mark_disconnected(user_id, platform, commit=False)
            await self.webhooks.deactivate(user_id, platform, commit=False)
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            logger.error("disconnect_failed", user_id=user_id, platform=platform, error=str(exc))
            raise PersistenceError("could not disconnect")

    async def disconnect(self, user_id: str, platform: str) -> None:
        cfg = self.platform(platform)
        await self._disconnect(user_id, cfg.name)
        logger.info("platform_disconnected", user_id=user_id, platform=cfg.name)

    async def connection_status(self, user_id: str, platform: str) -> ConnectionStatus:
        cfg = self.platform(platform)
        token = await self.store.get_token(user_id, cfg.name)
        account = await self.store.get_connection(user_id, cfg.name)
        username = account.username if account else None
        if token is None or not token.access_token_enc:
            return ConnectionStatus(platform=cfg.name, connected=False, username=username)
        if token.token_expires_at is not None and token.token_expires_at <= self.ctx.utcnow():
            logger.info("token_expired_at_read", user_id=user_id, platform=cfg.name)
            expired_at = token.token_expires_at
            await self._disconnect(user_id, cfg.name)
            return ConnectionStatus(platform=cfg.name, connected=False, expired=True, expires_at=expired_at, username=username)
        return ConnectionStatus(platform=cfg.name, connected=True, expires_at=token.token_expires_at, username=username)

    async def list_connections(self, user_id: str) -> List[SocialAccount]:
        return await self.store.list_connections(user_id)

    async def refresh(self, user_id: str, platform: str) -> ConnectionStatus:
        cfg = self.platform(platform)
        if not cfg.can_refresh:
            raise UnsupportedPlatform(f"{cfg.name} tokens cannot be refreshed")
        token = await self.store.get_token(user_id, cfg.name)
        if token is None or not token.access_token_enc:
            raise NotConnected(f"{cfg.name} is not connected")

        if cfg.provider.refresh_grant == "refresh_token":
            secret = self.ctx.cipher.decrypt(token.refresh_token_enc)
        else:
            secret = self.ctx.cipher.decrypt(token.access_token_enc)
        if not secret:
            raise NotConnected(f"no usable token stored for {cfg.name}")

        data = await self.providers.refresh(cfg, secret)
        now = self.ctx.utcnow()
        fields = {
            "access_token_enc": self.ctx.cipher.encrypt(data["access_token"]),
            "token_expires_at": now + timedelta(seconds=int(data["expires_in"])) if data.get("expires_in") else None,
            "last_synced_at": now,
        }
        if data.get("refresh_token"):
            fields["refresh_token_enc"] = self.ctx.cipher.encrypt(data["refresh_token"])
        try:
            await self.store.write(user_id, cfg.name, fields)
        except SQLAlchemyError as exc:
            await self.session.rollback()
            logger.error("refresh_persistence_failed", user_id=user_id, platform=cfg.name, error=str(exc))
            raise PersistenceError("could not store the refreshed token")
        return ConnectionStatus(platform=cfg.name, connected=True, expires_at=fields["token_expires_at"])
