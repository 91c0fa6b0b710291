# aura_connect/accounts/repository.py
from sqlmodel.ext.asyncio.session import AsyncSession
from sqlmodel import select
from aura_connect.accounts.models import User
from typing import Optional
from datetime import datetime, timedelta


class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, user_id: str) -> Optional[User]:
        q = select(User).where(User.id == user_id)
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def create(self, user: User) -> User:
        self.session.add(user)
        await self.session.commit()
        await self.session.refresh(user)
        return user

    async def ensure(self, user_id: str, email: Optional[str], display_name: Optional[str], trial_days: int) -> User:
        """Return the user's record, creating it with a fresh trial on first sign-in."""
        existing = await self.get_by_id(user_id)
        if existing:
            return existing
        now = datetime.utcnow()
        user = User(
            id=user_id,
            email=email,
            display_name=display_name,
            trial_started_at=now,
            trial_ends_at=now + timedelta(days=trial_days),
        )
        return await self.create(user)

    async def mark_social_linked(self, user: User, commit: bool = True) -> User:
        user.social_linked = True
        self.session.add(user)
        if commit:
            await self.session.commit()
            await self.session.refresh(user)
        return user
