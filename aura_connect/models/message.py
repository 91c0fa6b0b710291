# aura_connect/models/message.py
from sqlmodel import SQLModel, Field, Column
from typing import Optional
import uuid
from datetime import datetime
from sqlalchemy import String, JSON, UniqueConstraint


class Message(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("user_id", "platform", "external_id", name="uq_message_user_platform_external"),)

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: str = Field(foreign_key="user.id", index=True)
    platform: str = Field(sa_column=Column(String, index=True, nullable=False))
    external_id: Optional[str] = Field(default=None)  # provider message id, used for dedupe
    thread_id: str = Field(index=True)  # assigned once at ingestion
    sender: str
    recipient: str
    content: str = Field(default="")
    subject: Optional[str] = Field(default=None)
    timestamp: datetime = Field(index=True)
    is_from_me: bool = Field(default=False)
    is_read: bool = Field(default=False)
    responded: bool = Field(default=False)
    response_time_seconds: Optional[float] = Field(default=None)
    ai_assisted: bool = Field(default=False)
    meta: Optional[dict] = Field(sa_column=Column(JSON), default=None)
    created_at: datetime = Field(default_factory=datetime.utcnow)
