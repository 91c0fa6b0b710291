# aura_connect/dependencies/auth.py
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from pydantic import ValidationError

from aura_connect.accounts.schemas import TokenPayload
from aura_connect.accounts.utils import decode_token
from aura_connect.context import ServiceContext
from aura_connect.dependencies.db import get_context

# tokens are issued by the external auth provider; this service only verifies them
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token", auto_error=False)


async def get_current_user(token: str = Depends(oauth2_scheme), ctx: ServiceContext = Depends(get_context)) -> str:
    """Return the uid of the signed-in dashboard user."""
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="not authenticated")
    try:
        payload = TokenPayload(**decode_token(token, ctx.settings.auth_jwt_secret, ctx.settings.auth_jwt_algorithm))
    except (JWTError, ValidationError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid token")
    return payload.sub
