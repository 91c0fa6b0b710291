# aura_connect/schemas/platform_schema.py
from pydantic import BaseModel, ConfigDict
from typing import Optional
from datetime import datetime


class AuthUrlRead(BaseModel):
    auth_url: str
    platform: str


class ConnectionStatusRead(BaseModel):
    platform: str
    connected: bool
    expired: bool = False
    expires_at: Optional[datetime] = None
    username: Optional[str] = None


class ConnectionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    platform: str
    connected: bool
    provider_user_id: Optional[str] = None
    username: Optional[str] = None
    profile: Optional[dict] = None
    enrichment_warning: Optional[str] = None
    last_connected_at: Optional[datetime] = None
    last_disconnected_at: Optional[datetime] = None


class WebhookRead(BaseModel):
    platform: str
    url: str
    active: bool


class CallbackBody(BaseModel):
    # both optional so a missing value is reported as missing_code / missing_state
    code: Optional[str] = None
    state: Optional[str] = None
