# aura_connect/routers/messages_router.py
import secrets
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Path, Query, status
from sqlmodel.ext.asyncio.session import AsyncSession
import structlog

from aura_connect.context import ServiceContext
from aura_connect.dependencies.auth import get_current_user
from aura_connect.dependencies.db import get_context, get_session_dep
from aura_connect.schemas.message_schema import AnalyticsRead, MessageIngest, MessageRead, ThreadRead
from aura_connect.services.errors import UserNotFound
from aura_connect.services.message_service import MessageService

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/messages", tags=["messages"])

PLATFORM_PATTERN = r"^[a-z0-9_-]{1,32}$"


def require_automation_secret(
    x_automation_secret: Optional[str] = Header(None),
    ctx: ServiceContext = Depends(get_context),
) -> None:
    expected = ctx.settings.automation_shared_secret
    if not expected or not x_automation_secret or not secrets.compare_digest(
        x_automation_secret.encode("utf-8"), expected.encode("utf-8")
    ):
        logger.warning("automation_secret_rejected")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid automation secret")


@router.post("/ingest/{platform}/{user_id}", response_model=MessageRead, dependencies=[Depends(require_automation_secret)])
async def ingest_message(
    payload: MessageIngest,
    platform: str = Path(..., pattern=PLATFORM_PATTERN),
    user_id: str = Path(...),
    session: AsyncSession = Depends(get_session_dep),
    ctx: ServiceContext = Depends(get_context),
):
    """Entry point for the automation engine's push deliveries."""
    svc = MessageService(session, clock=ctx.utcnow)
    try:
        return await svc.ingest(user_id, platform, payload)
    except UserNotFound as exc:
        raise HTTPException(status_code=404, detail={"error": exc.code, "message": exc.message})


@router.get("/threads", response_model=List[ThreadRead])
async def list_threads(
    platform: Optional[str] = Query(None, pattern=PLATFORM_PATTERN),
    limit: int = Query(50, ge=1, le=200),
    user_id: str = Depends(get_current_user),
    session: AsyncSession = Depends(get_session_dep),
):
    threads = await MessageService(session).list_threads(user_id, platform=platform, limit=limit)
    return [
        ThreadRead(
            thread_id=t["thread_id"],
            platform=t["platform"],
            last_message=MessageRead.model_validate(t["last_message"]),
            unread_count=t["unread_count"],
        )
        for t in threads
    ]


@router.get("/threads/{thread_id}", response_model=List[MessageRead])
async def thread_messages(
    thread_id: str,
    user_id: str = Depends(get_current_user),
    session: AsyncSession = Depends(get_session_dep),
):
    messages = await MessageService(session).thread_messages(user_id, thread_id)
    if not messages:
        raise HTTPException(status_code=404, detail="thread not found")
    return messages


@router.post("/threads/{thread_id}/read")
async def mark_thread_read(
    thread_id: str,
    user_id: str = Depends(get_current_user),
    session: AsyncSession = Depends(get_session_dep),
):
    updated = await MessageService(session).mark_thread_read(user_id, thread_id)
    return {"thread_id": thread_id, "updated": updated}


@router.get("/analytics", response_model=AnalyticsRead)
async def analytics(
    days: int = Query(30, ge=1, le=365),
    user_id: str = Depends(get_current_user),
    session: AsyncSession = Depends(get_session_dep),
    ctx: ServiceContext = Depends(get_context),
):
    return await MessageService(session, clock=ctx.utcnow).analytics(user_id, days=days)
