# aura_connect/main.py
import os
from typing import Optional

import structlog
import uvicorn
from fastapi import FastAPI

from aura_connect.config import load_settings
from aura_connect.context import ServiceContext
from aura_connect.middleware.logging import RequestIdMiddleware
from aura_connect.routers.messages_router import router as messages_router
from aura_connect.routers.oauth_router import router as oauth_router
from aura_connect.routers.platforms_router import router as platforms_router
from aura_connect.routers.user_router import router as user_router
from aura_connect.routers.webhooks_router import router as webhooks_router


def configure_structlog():
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
    )


configure_structlog()
logger = structlog.get_logger()


def create_app(context: Optional[ServiceContext] = None) -> FastAPI:
    """
    Build the application. Without an explicit context one is assembled from
    the environment when the app starts; either way startup runs
    ``context.init()`` and shutdown runs ``context.dispose()``.
    """
    app = FastAPI(title="Aura Connect")
    app.state.context = context

    app.add_middleware(RequestIdMiddleware)

    app.include_router(platforms_router)
    app.include_router(oauth_router)
    app.include_router(webhooks_router)
    app.include_router(user_router)
    app.include_router(messages_router)

    @app.on_event("startup")
    async def on_startup():
        if app.state.context is None:
            app.state.context = ServiceContext(load_settings())
        await app.state.context.init()
        logger.info("app_startup")

    @app.on_event("shutdown")
    async def on_shutdown():
        if app.state.context is not None:
            await app.state.context.dispose()
        logger.info("app_shutdown")

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run("aura_connect.main:app", host="0.0.0.0", port=int(os.getenv("PORT", 8000)), reload=True)
