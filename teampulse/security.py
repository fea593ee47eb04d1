"""Identity tokens and request authentication for the Team Pulse API."""
from __future__ import annotations

import base64
import hashlib
import json
import logging
from datetime import timedelta
from typing import Awaitable, Callable, Optional

from cryptography.fernet import Fernet, InvalidToken
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .database import Database
from .errors import AuthenticationFailure, AuthorizationFailure
from .models import User

logger = logging.getLogger("teampulse.security")


class TokenIssuer:
    """Issue and verify expiring identity tokens.

    Tokens are Fernet tokens, so they are encrypted, authenticated and carry
    their own issue time. The expiry check uses that embedded timestamp.
    """

    def __init__(self, secret: str, *, ttl: timedelta) -> None:
        if not secret:
            raise ValueError("A token secret must be provided")
        if ttl.total_seconds() <= 0:
            raise ValueError("Token lifetime must be positive")
        digest = hashlib.sha256(secret.encode("utf-8")).digest()
        self._fernet = Fernet(base64.urlsafe_b64encode(digest))
        self._ttl = ttl

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def issue(self, user: User, *, issued_at: Optional[int] = None) -> str:
        payload = json.dumps({"sub": user.id}).encode("utf-8")
        if issued_at is None:
            token = self._fernet.encrypt(payload)
        else:
            token = self._fernet.encrypt_at_time(payload, issued_at)
        return token.decode("ascii")

    def verify(self, token: str, *, now: Optional[int] = None) -> int:
        """Return the user id carried by ``token``."""

        ttl = int(self._ttl.total_seconds())
        try:
            if now is None:
                raw = self._fernet.decrypt(token.encode("ascii"), ttl=ttl)
            else:
                raw = self._fernet.decrypt_at_time(token.encode("ascii"), ttl=ttl, current_time=now)
        except (InvalidToken, UnicodeEncodeError) as exc:
            raise AuthenticationFailure("Token is not valid or has expired") from exc

        try:
            return int(json.loads(raw)["sub"])
        except (ValueError, KeyError, TypeError) as exc:
            raise AuthenticationFailure("Token is not valid or has expired") from exc


class BearerAuth:
    """FastAPI dependency resolving the bearer token to the calling user."""

    def __init__(self, database: Database, issuer: TokenIssuer) -> None:
        self._database = database
        self._issuer = issuer
        self._bearer = HTTPBearer(auto_error=False)

    async def __call__(self, request: Request) -> User:
        credentials: HTTPAuthorizationCredentials | None = await self._bearer(request)  # type: ignore[assignment]
        if credentials is None or credentials.scheme.lower() != "bearer":
            raise AuthenticationFailure("No token, authorization denied")

        user_id = self._issuer.verify(credentials.credentials)
        user = self._database.get_user(user_id)
        if user is None:
            raise AuthenticationFailure("Token is not valid or has expired")
        return user


def require_manager(auth: BearerAuth) -> Callable[..., Awaitable[User]]:
    """Wrap ``auth`` so that only managers get through."""

    async def dependency(user: User = Depends(auth)) -> User:
        if not user.is_manager:
            logger.info("User %s was refused manager-only access", user.id)
            raise AuthorizationFailure("Access denied. Manager role required.")
        return user

    return dependency


__all__ = ["BearerAuth", "TokenIssuer", "require_manager"]
