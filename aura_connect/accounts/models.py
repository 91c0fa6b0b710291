# aura_connect/accounts/models.py
from sqlmodel import SQLModel, Field, Column
from typing import Optional
from datetime import datetime
from sqlalchemy import String


class User(SQLModel, table=True):
    # id is the uid issued by the external auth provider
    id: str = Field(sa_column=Column(String, primary_key=True))
    email: Optional[str] = Field(sa_column=Column(String, index=True), default=None)
    display_name: Optional[str] = None
    is_paid: bool = Field(default=False)
    trial_started_at: Optional[datetime] = None
    trial_ends_at: Optional[datetime] = None
    social_linked: bool = Field(default=False)
    created_at: datetime = Field(default_factory=datetime.utcnow)
