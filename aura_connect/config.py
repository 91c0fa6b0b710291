# aura_connect/config.py
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import structlog
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = structlog.get_logger(__name__)


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class ProviderDefaults:
    authorize_url: str
    token_url: str
    scopes: Tuple[str, ...]
    scope_separator: str = ","
    long_token_url: Optional[str] = None
    long_token_grant: Optional[str] = None
    refresh_url: Optional[str] = None
    refresh_grant: Optional[str] = None
    profile_url: Optional[str] = None
    profile_fields: Optional[str] = None
    pages_url: Optional[str] = None
    extra_params: Tuple[Tuple[str, str], ...] = ()


PROVIDERS: Dict[str, ProviderDefaults] = {
    "instagram": ProviderDefaults(
        authorize_url="https://api.instagram.com/oauth/authorize",
        token_url="https://api.instagram.com/oauth/access_token",
        scopes=(
            "instagram_business_basic",
            "instagram_business_manage_messages",
            "instagram_business_manage_comments",
        ),
        long_token_url="https://graph.instagram.com/access_token",
        long_token_grant="ig_exchange_token",
        refresh_url="https://graph.instagram.com/refresh_access_token",
        refresh_grant="ig_refresh_token",
        profile_url="https://graph.instagram.com/me",
        profile_fields="id,username,account_type,media_count,followers_count",
    ),
    "facebook": ProviderDefaults(
        authorize_url="https://www.facebook.com/v18.0/dialog/oauth",
        token_url="https://graph.facebook.com/v18.0/oauth/access_token",
        scopes=("pages_show_list", "pages_messaging", "pages_manage_metadata", "pages_read_engagement"),
        long_token_url="https://graph.facebook.com/v18.0/oauth/access_token",
        long_token_grant="fb_exchange_token",
        profile_url="https://graph.facebook.com/v18.0/me",
        profile_fields="id,name",
        pages_url="https://graph.facebook.com/v18.0/me/accounts",
    ),
    "gmail": ProviderDefaults(
        authorize_url="https://accounts.google.com/o/oauth2/v2/auth",
        token_url="https://oauth2.googleapis.com/token",
        scopes=(
            "https://www.googleapis.com/auth/gmail.readonly",
            "https://www.googleapis.com/auth/gmail.send",
            "https://www.googleapis.com/auth/gmail.modify",
            "https://www.googleapis.com/auth/userinfo.email",
        ),
        scope_separator=" ",
        refresh_url="https://oauth2.googleapis.com/token",
        refresh_grant="refresh_token",
        profile_url="https://www.googleapis.com/oauth2/v3/userinfo",
        extra_params=(("access_type", "offline"), ("prompt", "consent")),
    ),
}


@dataclass(frozen=True)
class PlatformConfig:
    """Provider endpoints merged with this deployment's OAuth client credentials."""

    name: str
    client_id: str
    client_secret: str
    redirect_uri: str
    provider: ProviderDefaults
    scopes: List[str] = field(default_factory=list)

    @property
    def scope_param(self) -> str:
        return self.provider.scope_separator.join(self.scopes)

    @property
    def has_long_token_exchange(self) -> bool:
        return self.provider.long_token_url is not None

    @property
    def can_refresh(self) -> bool:
        return self.provider.refresh_url is not None


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    environment: str = "development"
    database_url: str = "sqlite+aiosqlite:///./aura_connect.db"
    redis_url: str = "redis://localhost:6379/0"
    app_base_url: str = "http://localhost:5173"
    http_timeout_seconds: float = 30.0

    # bearer tokens issued by the external auth provider
    auth_jwt_secret: str = ""
    auth_jwt_algorithm: str = "HS256"

    oauth_state_secret: str = ""
    oauth_state_max_age_seconds: int = 600
    oauth_state_single_use: bool = True
    token_encryption_key: str = ""

    automation_base_url: str = ""
    automation_shared_secret: str = ""

    enabled_platforms: str = "instagram,gmail"
    trial_days: int = 14

    instagram_client_id: str = ""
    instagram_client_secret: str = ""
    instagram_redirect_uri: str = ""
    instagram_scopes: str = ""
    instagram_verify_token: str = ""

    facebook_client_id: str = ""
    facebook_client_secret: str = ""
    facebook_redirect_uri: str = ""
    facebook_scopes: str = ""

    gmail_client_id: str = ""
    gmail_client_secret: str = ""
    gmail_redirect_uri: str = ""
    gmail_scopes: str = ""

    @property
    def platform_names(self) -> List[str]:
        return [p.strip().lower() for p in self.enabled_platforms.split(",") if p.strip()]

    def missing_keys(self) -> List[str]:
        missing = []
        for key in ("auth_jwt_secret", "oauth_state_secret", "automation_base_url"):
            if not getattr(self, key):
                missing.append(key)
        if not self.token_encryption_key and self.environment.lower() != "development":
            missing.append("token_encryption_key")
        for name in self.platform_names:
            if name not in PROVIDERS:
                missing.append(f"{name} (unknown platform)")
                continue
            for suffix in ("client_id", "client_secret", "redirect_uri"):
                if not getattr(self, f"{name}_{suffix}", ""):
                    missing.append(f"{name}_{suffix}")
        return missing


def load_settings(**overrides) -> Settings:
    """Build settings once at startup; refuse to start with required keys missing."""
    settings = Settings(**overrides)
    missing = settings.missing_keys()
    if missing:
        raise ConfigError("missing required configuration: " + ", ".join(missing))
    return settings


def build_platform_table(settings: Settings) -> Dict[str, PlatformConfig]:
    table = {}
    for name in settings.platform_names:
        provider = PROVIDERS[name]
        override = getattr(settings, f"{name}_scopes", "")
        if override:
            scopes = [s.strip() for s in override.replace(" ", ",").split(",") if s.strip()]
        else:
            scopes = list(provider.scopes)
        table[name] = PlatformConfig(
            name=name,
            client_id=getattr(settings, f"{name}_client_id"),
            client_secret=getattr(settings, f"{name}_client_secret"),
            redirect_uri=getattr(settings, f"{name}_redirect_uri"),
            provider=provider,
            scopes=scopes,
        )
    logger.debug("platform_table_built", platforms=list(table))
    return table
