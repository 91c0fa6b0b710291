# aura_connect/routers/webhooks_router.py
import secrets
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import PlainTextResponse
import structlog

from aura_connect.context import ServiceContext
from aura_connect.dependencies.db import get_context

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.get("/instagram", response_class=PlainTextResponse)
async def instagram_subscription_handshake(
    mode: Optional[str] = Query(None, alias="hub.mode"),
    verify_token: Optional[str] = Query(None, alias="hub.verify_token"),
    challenge: Optional[str] = Query(None, alias="hub.challenge"),
    ctx: ServiceContext = Depends(get_context),
):
    expected = ctx.settings.instagram_verify_token
    # compare_digest rejects non-ASCII str, so compare bytes
    matches = bool(verify_token) and secrets.compare_digest(verify_token.encode("utf-8"), expected.encode("utf-8"))
    if mode == "subscribe" and expected and matches:
        logger.info("instagram_webhook_verified")
        return PlainTextResponse(challenge or "")
    logger.warning("instagram_webhook_verification_failed", mode=mode)
    return PlainTextResponse("verification failed", status_code=403)
