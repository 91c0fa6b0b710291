# aura_connect/models/social.py
from sqlmodel import SQLModel, Field, Column
from typing import Optional
from datetime import datetime
import uuid
from sqlalchemy import String, JSON, UniqueConstraint


class SocialToken(SQLModel, table=True):
    """Credential record, one per (user, platform). Tokens are stored encrypted."""

    __table_args__ = (UniqueConstraint("user_id", "platform", name="uq_socialtoken_user_platform"),)

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: str = Field(foreign_key="user.id", index=True)
    platform: str = Field(sa_column=Column(String, index=True, nullable=False))
    access_token_enc: Optional[str] = None
    refresh_token_enc: Optional[str] = None
    token_type: Optional[str] = None
    token_expires_at: Optional[datetime] = None
    scope: Optional[str] = None
    provider_user_id: Optional[str] = None
    page_id: Optional[str] = None
    business_account_id: Optional[str] = None
    last_synced_at: Optional[datetime] = None
    disconnected_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class SocialAccount(SQLModel, table=True):
    """UI-facing connection status, kept next to the credential record."""

    __table_args__ = (UniqueConstraint("user_id", "platform", name="uq_socialaccount_user_platform"),)

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: str = Field(foreign_key="user.id", index=True)
    platform: str = Field(sa_column=Column(String, index=True, nullable=False))
    connected: bool = Field(default=False)
    provider_user_id: Optional[str] = None
    username: Optional[str] = None
    profile: Optional[dict] = Field(sa_column=Column(JSON), default=None)
    enrichment_warning: Optional[str] = None
    last_connected_at: Optional[datetime] = None
    last_disconnected_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class Webhook(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("user_id", "platform", name="uq_webhook_user_platform"),)

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: str = Field(foreign_key="user.id", index=True)
    platform: str = Field(sa_column=Column(String, index=True, nullable=False))
    url: str
    active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
