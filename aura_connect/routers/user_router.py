# aura_connect/routers/user_router.py
from fastapi import APIRouter, Depends, HTTPException
from sqlmodel.ext.asyncio.session import AsyncSession

from aura_connect.accounts.repository import UserRepository
from aura_connect.accounts.schemas import UserProfileCreate, UserRead
from aura_connect.context import ServiceContext
from aura_connect.dependencies.auth import get_current_user
from aura_connect.dependencies.db import get_context, get_session_dep

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me", response_model=UserRead)
async def me(user_id: str = Depends(get_current_user), session: AsyncSession = Depends(get_session_dep)):
    user = await UserRepository(session).get_by_id(user_id)
    if not user:
        raise HTTPException(status_code=404, detail="user not found")
    return user


@router.post("/me", response_model=UserRead)
async def ensure_me(
    payload: UserProfileCreate,
    user_id: str = Depends(get_current_user),
    session: AsyncSession = Depends(get_session_dep),
    ctx: ServiceContext = Depends(get_context),
):
    """Create the dashboard record on first sign-in; later calls return it unchanged."""
    repo = UserRepository(session)
    return await repo.ensure(user_id, payload.email, payload.display_name, ctx.settings.trial_days)
