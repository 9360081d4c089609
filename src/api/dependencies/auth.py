"""Authentication dependencies for FastAPI."""

from functools import lru_cache
from typing import Annotated

import structlog
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from core.exceptions import AuthenticationError, ErrorCode
from infrastructure.auth.jwt_provider import JWTAuthProvider
from infrastructure.auth.provider import IAuthProvider, TokenUser

bearer_scheme = HTTPBearer(auto_error=False, description="HS256 token issued by the task service")


@lru_cache
def get_auth_provider() -> JWTAuthProvider:
    """Process-wide token validator."""
    return JWTAuthProvider()


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    auth_provider: IAuthProvider = Depends(get_auth_provider),
) -> TokenUser:
    """
    Resolve the caller from the bearer token and tag the request log with it.

    Raises:
        AuthenticationError: If no token provided or token is invalid
    """
    if credentials is None:
        raise AuthenticationError("Authorization header required", ErrorCode.UNAUTHORIZED)

    user = await auth_provider.validate_token(credentials.credentials)
    if user is None:
        raise AuthenticationError("Invalid or expired token", ErrorCode.INVALID_TOKEN)

    structlog.contextvars.bind_contextvars(user_id=str(user.id))
    return user


CurrentUser = Annotated[TokenUser, Depends(get_current_user)]
