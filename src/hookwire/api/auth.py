"""Requester identity for the Hookwire API.

With authentication enabled, requests carry a Bearer token signed with
HMAC-SHA256:

    user_id:scopes:expires_at:signature

where ``scopes`` is a comma-separated list and the signature covers
everything before it. The ``admin`` scope grants access to every
endpoint and to the administrative routes.

With authentication disabled (development and tests), identity is taken
from the ``X-User-Id`` and ``X-User-Scopes`` headers.
"""

from __future__ import annotations

import hashlib
import hmac
import time
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, ConfigDict, Field

from hookwire.config import Settings
from hookwire.exceptions import AuthenticationError, ForbiddenError
from hookwire.logging import get_logger

logger = get_logger(__name__)

ADMIN_SCOPE = "admin"
USER_ID_HEADER = "X-User-Id"
USER_SCOPES_HEADER = "X-User-Scopes"

security = HTTPBearer(auto_error=False)


def _parse_scopes(raw: str | None) -> list[str]:
    return [s.strip() for s in (raw or "").split(",") if s.strip()]


class AuthenticatedUser(BaseModel):
    """The requester on whose behalf an API call runs.

    Attributes:
        user_id: Owner identity used for endpoint ownership.
        scopes: Permission scopes; ``admin`` unlocks everything.
    """

    model_config = ConfigDict(extra="forbid")

    user_id: str = Field(min_length=1, description="Requesting user")
    scopes: list[str] = Field(default_factory=list, description="Permission scopes")

    @property
    def is_admin(self) -> bool:
        return ADMIN_SCOPE in self.scopes


class TokenValidator:
    """Creates and validates HMAC-signed Bearer tokens."""

    def __init__(self, secret_key: str, expire_minutes: int = 60) -> None:
        self.secret_key = secret_key.encode()
        self.expire_minutes = expire_minutes

    def _sign(self, payload: str) -> str:
        return hmac.new(self.secret_key, payload.encode(), hashlib.sha256).hexdigest()

    def create_token(
        self,
        user_id: str,
        scopes: list[str] | None = None,
        expire_minutes: int | None = None,
    ) -> str:
        """Create a signed token.

        Args:
            user_id: User identifier. Must not contain ":".
            scopes: Permission scopes to embed.
            expire_minutes: Token validity in minutes. Defaults to the
                validator's ``expire_minutes``.
        """
        if ":" in user_id:
            raise ValueError("user_id must not contain ':'")
        if expire_minutes is None:
            expire_minutes = self.expire_minutes
        expires_at = int(time.time()) + expire_minutes * 60
        payload = f"{user_id}:{','.join(scopes or [])}:{expires_at}"
        return f"{payload}:{self._sign(payload)}"

    def validate_token(self, token: str) -> AuthenticatedUser:
        """Validate a token and return its user.

        Raises:
            AuthenticationError: If the token is malformed, forged, expired or
                outlives the validator's ``expire_minutes``.
        """
        parts = token.split(":")
        if len(parts) != 4:
            raise AuthenticationError("Invalid token format")

        user_id, scopes, expires_at_str, signature = parts
        expected = self._sign(f"{user_id}:{scopes}:{expires_at_str}")
        if not hmac.compare_digest(signature.encode(), expected.encode()):
            raise AuthenticationError("Invalid token signature")

        try:
            expires_at = int(expires_at_str)
        except ValueError as e:
            raise AuthenticationError(f"Invalid token: {e}") from e
        now = time.time()
        if now > expires_at:
            raise AuthenticationError("Token has expired")
        if expires_at > now + self.expire_minutes * 60:
            raise AuthenticationError("Token lifetime exceeds the configured maximum")
        if not user_id:
            raise AuthenticationError("Token has no user")

        return AuthenticatedUser(user_id=user_id, scopes=_parse_scopes(scopes))


@lru_cache(maxsize=4)
def get_token_validator(secret_key: str, expire_minutes: int = 60) -> TokenValidator:
    """Cached validator per signing key and token lifetime."""
    return TokenValidator(secret_key, expire_minutes)


def resolve_user(
    settings: Settings,
    request: Request,
    credentials: HTTPAuthorizationCredentials | None,
) -> AuthenticatedUser:
    """Identify the requester from a Bearer token or, without auth, headers.

    Raises:
        AuthenticationError: Missing or invalid credentials.
    """
    if settings.is_auth_enabled:
        if credentials is None:
            raise AuthenticationError("Missing authentication credentials")
        validator = get_token_validator(
            settings.effective_auth_secret_key, settings.auth_token_expire_minutes
        )
        user = validator.validate_token(credentials.credentials)
    else:
        user_id = request.headers.get(USER_ID_HEADER, "").strip()
        if not user_id:
            raise AuthenticationError(f"Missing {USER_ID_HEADER} header")
        user = AuthenticatedUser(
            user_id=user_id,
            scopes=_parse_scopes(request.headers.get(USER_SCOPES_HEADER)),
        )

    logger.debug("Request identified", user_id=user.user_id, admin=user.is_admin)
    return user


def ensure_admin(user: AuthenticatedUser) -> AuthenticatedUser:
    """Raises ForbiddenError unless the user has the admin scope."""
    if not user.is_admin:
        raise ForbiddenError("administrator scope required")
    return user


BearerCredentials = Annotated[HTTPAuthorizationCredentials | None, Depends(security)]


__all__ = [
    "ADMIN_SCOPE",
    "AuthenticatedUser",
    "BearerCredentials",
    "TokenValidator",
    "USER_ID_HEADER",
    "USER_SCOPES_HEADER",
    "ensure_admin",
    "get_token_validator",
    "resolve_user",
]
