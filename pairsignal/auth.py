"""Bearer tokens for authenticated relay calls.

Tokens are HS256 JWTs carrying ``{"sub": identity, "exp": epoch_seconds}``.
Clients send them in the ``x-auth-token`` header.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

import jwt
from fastapi import Header, Request

from . import config
from .errors import Unauthenticated

logger = logging.getLogger(__name__)

TOKEN_HEADER = "x-auth-token"
ALGORITHM = "HS256"


class TokenIssuer:
    def __init__(
        self,
        secret: str = config.SECRET,
        ttl_s: int = config.TOKEN_TTL_S,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not secret:
            raise ValueError("secret must not be empty")
        self.secret = secret
        self.ttl_s = ttl_s
        self.clock = clock

    def issue(self, identity: str) -> str:
        claims = {"sub": identity, "exp": int(self.clock()) + self.ttl_s}
        return jwt.encode(claims, self.secret, algorithm=ALGORITHM)

    def verify(self, token: str) -> str:
        """Return the identity carried by *token* or raise :class:`Unauthenticated`."""

        try:
            # Expiry is checked against the injected clock below.
            claims = jwt.decode(
                token,
                self.secret,
                algorithms=[ALGORITHM],
                options={"verify_exp": False, "require": ["sub", "exp"]},
            )
        except jwt.InvalidTokenError as exc:
            logger.debug("Rejected token: %s", exc)
            raise Unauthenticated() from exc

        identity = claims["sub"]
        if not isinstance(identity, str) or not identity:
            raise Unauthenticated()
        try:
            expires_at = int(claims["exp"])
        except (TypeError, ValueError) as exc:
            raise Unauthenticated() from exc
        if expires_at <= self.clock():
            raise Unauthenticated()
        return identity


def current_identity(request: Request, x_auth_token: Optional[str] = Header(default=None)) -> str:
    """FastAPI dependency resolving the caller's identity from its token."""

    if not x_auth_token:
        raise Unauthenticated("No token, authorization denied")
    issuer: TokenIssuer = request.app.state.tokens
    return issuer.verify(x_auth_token)


__all__ = ["ALGORITHM", "TOKEN_HEADER", "TokenIssuer", "current_identity"]
