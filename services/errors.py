from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    """Closed set of account/session failures: (code, message, http status)."""

    USER_NOT_FOUND = ("USER_NOT_FOUND", "user not found", 404)
    USER_ALREADY_EXISTS = ("USER_ALREADY_EXISTS", "user with this email already exists", 409)
    OAUTH_ACCOUNT_CONFLICT = (
        "OAUTH_ACCOUNT_CONFLICT",
        "this email is already linked to another external account",
        409,
    )
    INVALID_CREDENTIALS = ("INVALID_CREDENTIALS", "invalid email or password", 401)
    OAUTH_ACCOUNT = (
        "OAUTH_ACCOUNT",
        "this account uses OAuth login, please use Google login",
        400,
    )
    EMAIL_NOT_VERIFIED = (
        "EMAIL_NOT_VERIFIED",
        "email not verified, please check your email for verification link",
        403,
    )
    EMAIL_ALREADY_VERIFIED = ("EMAIL_ALREADY_VERIFIED", "email already verified", 400)
    INVALID_TOKEN = ("INVALID_TOKEN", "invalid token", 401)
    TOKEN_EXPIRED = ("TOKEN_EXPIRED", "token has expired", 401)
    TOKEN_REVOKED = ("TOKEN_REVOKED", "token has been revoked", 401)
    REFRESH_TOKEN_NOT_FOUND = ("REFRESH_TOKEN_NOT_FOUND", "refresh token not found", 401)
    UNAUTHORIZED = ("UNAUTHORIZED", "unauthorized access", 401)
    INVALID_VERIFICATION_TOKEN = ("INVALID_VERIFICATION_TOKEN", "invalid verification token", 400)
    VERIFICATION_TOKEN_EXPIRED = ("VERIFICATION_TOKEN_EXPIRED", "verification token has expired", 410)
    INVALID_RESET_TOKEN = ("INVALID_RESET_TOKEN", "invalid password reset token", 400)
    RESET_TOKEN_EXPIRED = ("RESET_TOKEN_EXPIRED", "password reset token has expired", 410)
    INVALID_OAUTH_STATE = ("INVALID_OAUTH_STATE", "invalid state token", 401)
    OAUTH_EXCHANGE_FAILED = ("OAUTH_EXCHANGE_FAILED", "failed to authenticate with Google", 502)
    EMAIL_DELIVERY_FAILED = ("EMAIL_DELIVERY_FAILED", "failed to send email", 502)
    AVATAR_UPLOAD_FAILED = ("AVATAR_UPLOAD_FAILED", "failed to upload avatar", 502)
    INVALID_AVATAR = ("INVALID_AVATAR", "invalid avatar image", 400)
    HASH_FAILURE = ("HASH_FAILURE", "failed to hash password", 500)
    TOKEN_GENERATION_FAILED = ("TOKEN_GENERATION_FAILED", "failed to generate token", 500)
    STORAGE_ERROR = ("STORAGE_ERROR", "storage operation failed", 500)

    def __init__(self, code: str, message: str, status: int):
        self.code = code
        self.default_message = message
        self.status = status


class AccountError(Exception):
    """
    Domain error raised by the account/session core.

    `kind` is the machine-readable classification; the original exception,
    when there is one, is chained with `raise ... from exc` and exposed as
    `cause`.
    """

    def __init__(self, kind: ErrorKind, message: Optional[str] = None, details: Optional[dict] = None):
        self.kind = kind
        self.message = message or kind.default_message
        self.details = details or {}
        super().__init__(self.message)

    @property
    def code(self) -> str:
        return self.kind.code

    @property
    def status(self) -> int:
        return self.kind.status

    @property
    def cause(self) -> Optional[BaseException]:
        return self.__cause__

    def __str__(self) -> str:
        if self.__cause__ is not None:
            return f"{self.message}: {self.__cause__}"
        return self.message

    def __repr__(self) -> str:
        return f"AccountError({self.kind.name}, {self.message!r})"
