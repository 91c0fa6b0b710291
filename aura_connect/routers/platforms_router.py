# aura_connect/routers/platforms_router.py
from dataclasses import asdict
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import RedirectResponse
from sqlmodel.ext.asyncio.session import AsyncSession
import structlog

from aura_connect.context import ServiceContext
from aura_connect.dependencies.auth import get_current_user
from aura_connect.dependencies.db import get_context, get_session_dep
from aura_connect.schemas.platform_schema import AuthUrlRead, ConnectionRead, ConnectionStatusRead, WebhookRead
from aura_connect.services.connect_service import ConnectService
from aura_connect.services.errors import ConnectFlowError

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/platforms", tags=["platforms"])


def http_error(exc: ConnectFlowError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail={"error": exc.code, "message": exc.message})


@router.get("", response_model=List[ConnectionRead])
async def list_connections(
    user_id: str = Depends(get_current_user),
    session: AsyncSession = Depends(get_session_dep),
    ctx: ServiceContext = Depends(get_context),
):
    return await ConnectService(ctx, session).list_connections(user_id)


@router.get("/{platform}/connect/start", response_model=AuthUrlRead)
async def connect_start(
    platform: str,
    user_id: str = Depends(get_current_user),
    session: AsyncSession = Depends(get_session_dep),
    ctx: ServiceContext = Depends(get_context),
):
    svc = ConnectService(ctx, session)
    try:
        url = svc.authorization_url(platform, user_id)
    except ConnectFlowError as exc:
        raise http_error(exc)
    return {"auth_url": url, "platform": platform.lower()}


@router.get("/{platform}/connect")
async def connect_redirect(
    platform: str,
    user_id: str = Depends(get_current_user),
    session: AsyncSession = Depends(get_session_dep),
    ctx: ServiceContext = Depends(get_context),
):
    svc = ConnectService(ctx, session)
    try:
        url = svc.authorization_url(platform, user_id)
    except ConnectFlowError as exc:
        raise http_error(exc)
    return RedirectResponse(url, status_code=status.HTTP_302_FOUND, headers={"Cache-Control": "no-cache"})


@router.get("/{platform}/status", response_model=ConnectionStatusRead)
async def connection_status(
    platform: str,
    user_id: str = Depends(get_current_user),
    session: AsyncSession = Depends(get_session_dep),
    ctx: ServiceContext = Depends(get_context),
):
    try:
        result = await ConnectService(ctx, session).connection_status(user_id, platform)
    except ConnectFlowError as exc:
        raise http_error(exc)
    return asdict(result)


@router.delete("/{platform}")
async def disconnect(
    platform: str,
    user_id: str = Depends(get_current_user),
    session: AsyncSession = Depends(get_session_dep),
    ctx: ServiceContext = Depends(get_context),
):
    try:
        await ConnectService(ctx, session).disconnect(user_id, platform)
    except ConnectFlowError as exc:
        raise http_error(exc)
    return {"status": "disconnected", "platform": platform.lower()}


@router.post("/{platform}/refresh", response_model=ConnectionStatusRead)
async def refresh(
    platform: str,
    user_id: str = Depends(get_current_user),
    session: AsyncSession = Depends(get_session_dep),
    ctx: ServiceContext = Depends(get_context),
):
    try:
        result = await ConnectService(ctx, session).refresh(user_id, platform)
    except ConnectFlowError as exc:
        logger.warning("token_refresh_rejected", user_id=user_id, platform=platform, error=exc.code)
        raise http_error(exc)
    return asdict(result)


@router.get("/{platform}/webhook", response_model=WebhookRead)
async def get_webhook(
    platform: str,
    user_id: str = Depends(get_current_user),
    session: AsyncSession = Depends(get_session_dep),
    ctx: ServiceContext = Depends(get_context),
):
    svc = ConnectService(ctx, session)
    try:
        cfg = svc.platform(platform)
    except ConnectFlowError as exc:
        raise http_error(exc)
    hook = await svc.webhooks.get(user_id, cfg.name)
    if hook is None:
        raise HTTPException(status_code=404, detail={"error": "webhook_not_found", "message": "no webhook registered"})
    return {"platform": hook.platform, "url": hook.url, "active": hook.active}
