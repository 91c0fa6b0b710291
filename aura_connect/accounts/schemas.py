# aura_connect/accounts/schemas.py
from pydantic import BaseModel, ConfigDict, EmailStr
from typing import Optional
from datetime import datetime


class UserProfileCreate(BaseModel):
    email: Optional[EmailStr] = None
    display_name: Optional[str] = None


class UserRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: Optional[str]
    display_name: Optional[str]
    is_paid: bool
    trial_started_at: Optional[datetime]
    trial_ends_at: Optional[datetime]
    social_linked: bool
    created_at: datetime


class TokenPayload(BaseModel):
    sub: str
    exp: int
