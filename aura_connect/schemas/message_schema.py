# aura_connect/schemas/message_schema.py
from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, Optional
import uuid
from datetime import datetime


class MessageIngest(BaseModel):
    external_id: Optional[str] = None
    sender: str
    recipient: str
    content: str = ""
    subject: Optional[str] = None
    timestamp: datetime
    is_from_me: bool = False
    thread_key: Optional[str] = None  # provider conversation id, when the provider has one
    ai_assisted: bool = False
    metadata: Optional[dict] = None


class MessageRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    platform: str
    thread_id: str
    sender: str
    recipient: str
    content: str
    subject: Optional[str]
    timestamp: datetime
    is_from_me: bool
    is_read: bool
    responded: bool
    response_time_seconds: Optional[float]
    ai_assisted: bool


class ThreadRead(BaseModel):
    thread_id: str
    platform: str
    last_message: MessageRead
    unread_count: int


class PlatformStats(BaseModel):
    inbound: int = 0
    outbound: int = 0
    unread: int = 0


class AnalyticsRead(BaseModel):
    days: int
    total_messages: int
    inbound: int
    outbound: int
    unread: int
    response_rate: float
    avg_response_time_seconds: Optional[float]
    ai_assisted_replies: int
    by_platform: Dict[str, PlatformStats] = Field(default_factory=dict)
