# aura_connect/services/authorization.py
from typing import Dict, Optional

import httpx
import structlog

from aura_connect.config import PlatformConfig
from aura_connect.services.errors import UnsupportedPlatform
from aura_connect.services.oauth_state import encode_state

logger = structlog.get_logger(__name__)


def get_platform(platforms: Dict[str, PlatformConfig], platform: str) -> PlatformConfig:
    cfg = platforms.get((platform or "").lower())
    if cfg is None:
        raise UnsupportedPlatform(f"platform not supported: {platform}")
    return cfg


def build_authorization_url(
    platform: str,
    user_id: str,
    platforms: Dict[str, PlatformConfig],
    state_secret: str,
    now: Optional[int] = None,
) -> str:
    """Return the provider URL the browser is sent to in order to grant access."""
    cfg = get_platform(platforms, platform)
    if not isinstance(user_id, str) or not user_id.strip():
        raise ValueError("user_id must be a non-empty string")

    params = {
        "client_id": cfg.client_id,
        "redirect_uri": cfg.redirect_uri,
        "scope": cfg.scope_param,
        "response_type": "code",
        "state": encode_state(user_id, cfg.name, state_secret, now=now),
    }
    params.update(dict(cfg.provider.extra_params))
    url = httpx.URL(cfg.provider.authorize_url).copy_merge_params(params)
    logger.info("authorization_url_built", user_id=user_id, platform=cfg.name)
    return str(url)
