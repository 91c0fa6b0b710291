# aura_connect/infrastructure/oauth_client.py
from typing import List, Optional, Type

import httpx
import structlog

from aura_connect.config import PlatformConfig
from aura_connect.services.errors import (
    AuxiliaryFetchFailure,
    ConnectFlowError,
    LongTokenExchangeError,
    ProviderReportedError,
    TokenExchangeError,
    TokenRefreshError,
)

logger = structlog.get_logger(__name__)

PROVIDER_ERROR_KEYS = ("error", "error_type", "error_message")
PAGE_FIELDS = "id,name,category,instagram_business_account"


def _provider_error(body: dict) -> Optional[str]:
    for key in PROVIDER_ERROR_KEYS:
        value = body.get(key)
        if value:
            if isinstance(value, dict):
                return value.get("message") or str(value)
            return body.get("error_message") or body.get("error_description") or str(value)
    return None


class ProviderClient:
    """Outbound calls to the OAuth providers' token and profile endpoints."""

    def __init__(self, http: httpx.AsyncClient):
        self.http = http

    async def _send(self, method: str, url: str, error_cls: Type[ConnectFlowError], **kwargs) -> dict:
        try:
            r = await self.http.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            logger.error("provider_request_failed", url=url, error=str(exc))
            raise error_cls(f"provider unreachable: {exc.__class__.__name__}")

        try:
            body = r.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if r.status_code >= 400:
            logger.warning("provider_http_error", url=url, status=r.status_code)
            raise error_cls(
                _provider_error(body) or f"provider returned HTTP {r.status_code}",
                details={"status": r.status_code},
            )
        return body

    async def exchange_code(self, cfg: PlatformConfig, code: str) -> dict:
        data = {
            "client_id": cfg.client_id,
            "client_secret": cfg.client_secret,
            "grant_type": "authorization_code",
            "redirect_uri": cfg.redirect_uri,
            "code": code,
        }
        body = await self._send("POST", cfg.provider.token_url, TokenExchangeError, data=data)
        message = _provider_error(body)
        if message:
            # some providers answer 200 with an error payload
            raise ProviderReportedError(message, details={"platform": cfg.name})
        if not body.get("access_token"):
            raise TokenExchangeError("no access token returned from provider")
        logger.info("token_exchanged", platform=cfg.name)
        return body

    async def exchange_long_lived(self, cfg: PlatformConfig, short_token: str) -> dict:
        grant = cfg.provider.long_token_grant
        if grant == "fb_exchange_token":
            params = {
                "grant_type": grant,
                "client_id": cfg.client_id,
                "client_secret": cfg.client_secret,
                "fb_exchange_token": short_token,
            }
        else:
            params = {"grant_type": grant, "client_secret": cfg.client_secret, "access_token": short_token}
        body = await self._send("GET", cfg.provider.long_token_url, LongTokenExchangeError, params=params)
        message = _provider_error(body)
        if message or not body.get("access_token"):
            raise LongTokenExchangeError(message or "no long-lived token returned", details={"platform": cfg.name})
        logger.info("long_lived_token_exchanged", platform=cfg.name)
        return body

    async def refresh(self, cfg: PlatformConfig, token: str) -> dict:
        """``token`` is the refresh token for refresh_token grants, the current access token otherwise."""
        grant = cfg.provider.refresh_grant
        if grant == "refresh_token":
            data = {
                "client_id": cfg.client_id,
                "client_secret": cfg.client_secret,
                "grant_type": grant,
                "refresh_token": token,
            }
            body = await self._send("POST", cfg.provider.refresh_url, TokenRefreshError, data=data)
        else:
            params = {"grant_type": grant, "access_token": token}
            body = await self._send("GET", cfg.provider.refresh_url, TokenRefreshError, params=params)
        message = _provider_error(body)
        if message or not body.get("access_token"):
            raise TokenRefreshError(message or "no access token returned on refresh")
        logger.info("token_refreshed", platform=cfg.name)
        return body

    async def fetch_profile(self, cfg: PlatformConfig, access_token: str) -> dict:
        if not cfg.provider.profile_url:
            return {}
        if cfg.provider.profile_fields:
            kwargs = {"params": {"fields": cfg.provider.profile_fields, "access_token": access_token}}
        else:
            kwargs = {"headers": {"Authorization": f"Bearer {access_token}"}}
        body = await self._send("GET", cfg.provider.profile_url, AuxiliaryFetchFailure, **kwargs)
        message = _provider_error(body)
        if message:
            raise AuxiliaryFetchFailure(message)
        return body

    async def fetch_pages(self, cfg: PlatformConfig, access_token: str) -> List[dict]:
        """Pages the user manages, each with its linked Instagram business account when there is one."""
        params = {"fields": PAGE_FIELDS, "access_token": access_token}
        body = await self._send("GET", cfg.provider.pages_url, AuxiliaryFetchFailure, params=params)
        message = _provider_error(body)
        if message:
            raise AuxiliaryFetchFailure(message)
        pages = body.get("data") or []
        return [page for page in pages if isinstance(page, dict) and page.get("id")]
