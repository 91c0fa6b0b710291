from typing import AsyncGenerator

from fastapi import Depends, Request

from aura_connect.context import ServiceContext


def get_context(request: Request) -> ServiceContext:
    return request.app.state.context


async def get_session_dep(ctx: ServiceContext = Depends(get_context)) -> AsyncGenerator:
    async with ctx.session() as session:
        yield session
