"""JWT authentication provider implementation.

Tokens are issued by the task service that owns the users and signed with
a shared HS256 secret. Only the subject is required:

    {
        "sub": "user-uuid",
        "email": "user@example.com",   # optional
        "role": "authenticated",       # optional
        "exp": 1234567890
    }
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from jose import JWTError, jwt

from core.config import settings
from infrastructure.auth.provider import TokenUser

logger = logging.getLogger(__name__)


class JWTAuthProvider:
    """JWT-based authentication provider (shared-secret HS256)."""

    def __init__(
        self,
        secret_key: str = settings.jwt_secret_key,
        algorithm: str = settings.jwt_algorithm,
        expire_minutes: int = settings.jwt_expire_minutes,
    ) -> None:
        self._secret_key = secret_key
        self._algorithm = algorithm
        self._expire_minutes = expire_minutes

    async def validate_token(self, token: str) -> Optional[TokenUser]:
        """
        Validate a JWT token and extract user info.

        Returns:
            TokenUser if valid, None if invalid, expired or without a UUID subject
        """
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self._algorithm],
                options={"verify_aud": False},
            )
        except JWTError:
            return None

        subject = payload.get("sub")
        if not subject:
            return None
        try:
            user_id = UUID(subject)
        except ValueError:
            logger.warning("JWT subject is not a UUID: %s", subject)
            return None

        return TokenUser(id=user_id, email=payload.get("email"), role=payload.get("role"))

    def create_token(self, user: TokenUser) -> str:
        """Create a signed token for a user (used by tests and local tooling)."""
        expire = datetime.now(timezone.utc) + timedelta(minutes=self._expire_minutes)

        payload: dict = {
            "sub": str(user.id),
            "role": user.role or "authenticated",
            "exp": expire,
        }
        if user.email:
            payload["email"] = user.email

        return jwt.encode(payload, self._secret_key, algorithm=self._algorithm)
