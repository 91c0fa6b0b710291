# aura_connect/routers/oauth_router.py
from typing import Optional
from urllib.parse import quote, urlencode

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse, RedirectResponse
from sqlmodel.ext.asyncio.session import AsyncSession
import structlog

from aura_connect.context import ServiceContext
from aura_connect.dependencies.db import get_context, get_session_dep
from aura_connect.schemas.platform_schema import CallbackBody
from aura_connect.services.connect_service import ConnectService
from aura_connect.services.errors import ConnectFlowError

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/auth", tags=["oauth"])


def _landing(ctx: ServiceContext, platform: str, outcome: str, params: dict) -> RedirectResponse:
    base = ctx.settings.app_base_url.rstrip("/")
    url = f"{base}/auth/{quote(platform.lower(), safe='')}/{outcome}?{urlencode(params)}"
    return RedirectResponse(url, status_code=status.HTTP_302_FOUND, headers={"Cache-Control": "no-store"})


def error_redirect(ctx: ServiceContext, platform: str, code: str, message: Optional[str] = None) -> RedirectResponse:
    params = {"code": code}
    if message:
        params["message"] = message
    return _landing(ctx, platform, "error", params)


@router.get("/{platform}/callback")
async def oauth_callback(
    platform: str,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    error_description: Optional[str] = None,
    session: AsyncSession = Depends(get_session_dep),
    ctx: ServiceContext = Depends(get_context),
):
    """Provider redirect target. Always answers with a redirect to the dashboard."""
    if error:
        # user denied consent or the provider aborted before issuing a code
        logger.info("oauth_provider_denied", platform=platform, error=error)
        return error_redirect(ctx, platform, "provider_error", error_description or error)

    svc = ConnectService(ctx, session)
    try:
        result = await svc.handle_callback(platform, code, state)
    except ConnectFlowError as exc:
        logger.warning("oauth_callback_failed", platform=platform, error=exc.code, reason=exc.message)
        return error_redirect(ctx, platform, exc.code, exc.message)

    params = {"userId": result.user_id}
    if result.provider_user_id:
        params[f"{result.platform}Id"] = result.provider_user_id
    if result.warning:
        params["warning"] = "profile_unavailable"
    return _landing(ctx, result.platform, "success", params)


@router.post("/{platform}/callback")
async def oauth_callback_json(
    platform: str,
    body: CallbackBody,
    session: AsyncSession = Depends(get_session_dep),
    ctx: ServiceContext = Depends(get_context),
):
    """Legacy variant for clients that post the code themselves; answers JSON."""
    svc = ConnectService(ctx, session)
    try:
        result = await svc.handle_callback(platform, body.code, body.state)
    except ConnectFlowError as exc:
        logger.warning("oauth_callback_failed", platform=platform, error=exc.code, reason=exc.message)
        return JSONResponse({"error": exc.code, "message": exc.message}, status_code=exc.status_code)

    return {
        "status": "connected",
        "userId": result.user_id,
        "platform": result.platform,
        "providerUserId": result.provider_user_id,
        "username": result.username,
        "warning": result.warning,
    }
