"""
security helpers:
- Argon2 password hashing via argon2-cffi
- URL-safe opaque tokens for email links and OAuth state
- Typed JWT access/refresh tokens via PyJWT
- JTI generation for token identifiers
"""
from __future__ import annotations

import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional

import jwt
from argon2 import PasswordHasher
from argon2.exceptions import HashingError, InvalidHashError, VerificationError

from models.base_model import utcnow
from services.errors import AccountError, ErrorKind

# 32 random bytes -> 256 bits of entropy, 43 URL-safe characters
TOKEN_BYTES = 32

HMAC_ALGORITHMS = ("HS256", "HS384", "HS512")


class CredentialHasher:
    """
    Salted, adaptive one-way password hashing (Argon2id) with fixed parameters.

    verify() never raises: a wrong password, a corrupt hash and a missing hash
    all come back as False so callers cannot tell them apart.
    """

    def __init__(self, time_cost: Optional[int] = None, memory_cost: Optional[int] = None, parallelism: Optional[int] = None):
        kwargs = {}
        if time_cost is not None:
            kwargs["time_cost"] = time_cost
        if memory_cost is not None:
            kwargs["memory_cost"] = memory_cost
        if parallelism is not None:
            kwargs["parallelism"] = parallelism
        self._ph = PasswordHasher(**kwargs)

    def hash(self, password: str) -> str:
        """Hash a plaintext password using Argon2"""
        try:
            return self._ph.hash(password)
        except (HashingError, MemoryError) as exc:
            raise AccountError(ErrorKind.HASH_FAILURE) from exc

    def verify(self, password: str, password_hash: Optional[str]) -> bool:
        """Verify a plaintext password against a stored Argon2 hash"""
        if not password_hash:
            return False
        try:
            return self._ph.verify(password_hash, password)
        except (VerificationError, InvalidHashError):
            return False


def generate_token() -> str:
    """
    Opaque bearer token for verification/reset links and OAuth state.
    Randomness failures are fatal to the caller; nothing is retried.
    """
    try:
        return secrets.token_urlsafe(TOKEN_BYTES)
    except (OSError, NotImplementedError) as exc:
        raise AccountError(ErrorKind.TOKEN_GENERATION_FAILED) from exc


def generate_jti() -> str:
    """Generate a unique JTI (JWT ID).
    """
    return uuid.uuid4().hex


class TokenType(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


@dataclass(frozen=True)
class JWTClaims:
    user_id: str
    token_type: TokenType
    issued_at: datetime
    not_before: datetime
    expires_at: datetime
    jti: str


def _from_timestamp(value: Any) -> datetime:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise AccountError(ErrorKind.INVALID_TOKEN)
    try:
        return datetime.fromtimestamp(value, tz=timezone.utc)
    except (OverflowError, OSError, ValueError) as exc:
        raise AccountError(ErrorKind.INVALID_TOKEN) from exc


class JWTService:
    """
    Issues and validates signed, typed, expiring tokens.

    The token type lives in the signed payload, so an access token is never
    accepted where a refresh token is expected (and vice versa) whatever
    route it arrives on.
    """

    def __init__(
        self,
        secret: str,
        access_ttl: timedelta,
        refresh_ttl: timedelta,
        algorithm: str = "HS256",
        issuer: Optional[str] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        if not secret:
            raise ValueError("JWT secret must not be empty")
        if algorithm not in HMAC_ALGORITHMS:
            raise ValueError(f"Unsupported JWT algorithm {algorithm!r}; expected one of {HMAC_ALGORITHMS}")
        self._secret = secret
        self._access_ttl = access_ttl
        self._refresh_ttl = refresh_ttl
        self.algorithm = algorithm
        self.issuer = issuer
        self._clock = clock

    @property
    def access_token_ttl(self) -> timedelta:
        return self._access_ttl

    @property
    def refresh_token_ttl(self) -> timedelta:
        return self._refresh_ttl

    def now(self) -> datetime:
        return self._clock()

    def issue_access(self, user_id: str) -> str:
        return self._issue(user_id, TokenType.ACCESS, self._access_ttl)

    def issue_refresh(self, user_id: str) -> str:
        return self._issue(user_id, TokenType.REFRESH, self._refresh_ttl)

    def _issue(self, user_id: str, token_type: TokenType, ttl: timedelta) -> str:
        now = self.now()
        payload: Dict[str, Any] = {
            "sub": str(user_id),
            "type": token_type.value,
            "iat": int(now.timestamp()),
            "nbf": int(now.timestamp()),
            "exp": int((now + ttl).timestamp()),
            "jti": generate_jti(),
        }
        if self.issuer:
            payload["iss"] = self.issuer
        return jwt.encode(payload, self._secret, algorithm=self.algorithm)

    def validate(self, token: str, expected_type: TokenType) -> JWTClaims:
        """
        Decode and validate a JWT.
        Raises AccountError(INVALID_TOKEN) on bad signature/format/type/algorithm
        and AccountError(TOKEN_EXPIRED) when an otherwise valid token is past exp.
        """
        if not token or not isinstance(token, str):
            raise AccountError(ErrorKind.INVALID_TOKEN)
        try:
            header = jwt.get_unverified_header(token)
        except jwt.InvalidTokenError as exc:
            raise AccountError(ErrorKind.INVALID_TOKEN) from exc
        if header.get("alg") != self.algorithm:
            raise AccountError(ErrorKind.INVALID_TOKEN, "unexpected token algorithm")

        # exp/nbf/iat are checked below against our own clock, after the type
        # check, so a wrong-type expired token reports INVALID_TOKEN.
        options = {
            "verify_signature": True,
            "verify_exp": False,
            "verify_nbf": False,
            "verify_iat": False,
            "verify_iss": bool(self.issuer),
            "require": ["sub", "type", "iat", "nbf", "exp", "jti"],
        }
        try:
            decoded = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                options=options,
                issuer=self.issuer,
            )
        except jwt.InvalidTokenError as exc:
            raise AccountError(ErrorKind.INVALID_TOKEN) from exc

        if decoded.get("type") != expected_type.value:
            raise AccountError(ErrorKind.INVALID_TOKEN, "wrong token type")
        user_id = decoded.get("sub")
        if not isinstance(user_id, str) or not user_id:
            raise AccountError(ErrorKind.INVALID_TOKEN)

        issued_at = _from_timestamp(decoded.get("iat"))
        not_before = _from_timestamp(decoded.get("nbf"))
        expires_at = _from_timestamp(decoded.get("exp"))

        now = self.now()
        if now < not_before:
            raise AccountError(ErrorKind.INVALID_TOKEN, "token not yet valid")
        if now >= expires_at:
            raise AccountError(ErrorKind.TOKEN_EXPIRED)

        return JWTClaims(
            user_id=user_id,
            token_type=expected_type,
            issued_at=issued_at,
            not_before=not_before,
            expires_at=expires_at,
            jti=str(decoded.get("jti")),
        )
