"""
Session orchestration over JWTService and RefreshTokenStore.

A refresh is accepted only when the JWT itself validates as a refresh token,
the store holds a live record for the exact string, and both agree on the
user. Store-side revocation therefore wins over an unexpired signature.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from services.errors import AccountError, ErrorKind
from services.stores import RefreshTokenStore
from utils.security import JWTClaims, JWTService, TokenType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int
    refresh_expires_at: datetime
    token_type: str = "bearer"

    def to_dict(self) -> dict:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "token_type": self.token_type,
            "expires_in": self.expires_in,
            "refresh_expires_at": self.refresh_expires_at.isoformat(),
        }


class SessionService:
    def __init__(self, jwt_service: JWTService, refresh_tokens: RefreshTokenStore):
        self.jwt = jwt_service
        self.refresh_tokens = refresh_tokens

    def start(self, user_id: str) -> TokenPair:
        """Issue an access/refresh pair and persist the refresh token."""
        access = self.jwt.issue_access(user_id)
        refresh = self.jwt.issue_refresh(user_id)
        expires_at = self.jwt.now() + self.jwt.refresh_token_ttl
        self.refresh_tokens.create(user_id, refresh, expires_at)
        return TokenPair(
            access_token=access,
            refresh_token=refresh,
            expires_in=int(self.jwt.access_token_ttl.total_seconds()),
            refresh_expires_at=expires_at,
        )

    def refresh(self, raw_token: str) -> TokenPair:
        """
        Single-use rotation: the presented token is revoked and a new pair
        issued. Other sessions of the same user stay valid.
        """
        claims = self.jwt.validate(raw_token, TokenType.REFRESH)
        now = self.jwt.now()
        record = self.refresh_tokens.validate(raw_token, now=now)
        if record.user_id != claims.user_id:
            logger.warning("Refresh token record owner does not match token subject")
            raise AccountError(ErrorKind.UNAUTHORIZED, "invalid token")

        # Concurrent refreshes with the same token race here; only one wins
        self.refresh_tokens.consume(raw_token, now=now)
        return self.start(claims.user_id)

    def logout(self, user_id: str) -> int:
        """Revoke every refresh token of the user (all devices)."""
        revoked = self.refresh_tokens.revoke_all(user_id)
        logger.info("Revoked %d refresh token(s) for user %s", revoked, user_id)
        return revoked

    def authenticate(self, access_token: str) -> JWTClaims:
        return self.jwt.validate(access_token, TokenType.ACCESS)
