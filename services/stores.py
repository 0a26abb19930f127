"""
Repository-shaped stores over DBStorage.

Lookups that miss raise AccountError(USER_NOT_FOUND / REFRESH_TOKEN_NOT_FOUND),
which callers can tell apart from STORAGE_ERROR (database unreachable, bad
SQL, ...). Every write commits immediately; a failed commit is rolled back.
"""
from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from models.avatar import Avatar
from models.base_model import utcnow
from models.refresh_token import RefreshToken
from models.user import User
from services.errors import AccountError, ErrorKind


# Matched against constraint names / column lists, never the offending value:
# Postgres echoes the duplicate key in DETAIL ("Key (email)=(oauth@x.com)").
_OAUTH_CONSTRAINT_MARKERS = ("unique_oauth_provider_id", "users.oauth_provider", "(oauth_provider, oauth_id)")
_EMAIL_CONSTRAINT_MARKERS = ("ix_users_email", "users_email_key", "users.email", "key (email)")


def _integrity_kind(exc: IntegrityError) -> ErrorKind:
    message = str(getattr(exc, "orig", exc)).lower()
    if any(marker in message for marker in _OAUTH_CONSTRAINT_MARKERS):
        return ErrorKind.OAUTH_ACCOUNT_CONFLICT
    if any(marker in message for marker in _EMAIL_CONSTRAINT_MARKERS):
        return ErrorKind.USER_ALREADY_EXISTS
    return ErrorKind.STORAGE_ERROR


class _Store:
    def __init__(self, storage):
        self._storage = storage

    @property
    def session(self):
        return self._storage.get_session()

    @contextmanager
    def _errors(self):
        try:
            yield
        except AccountError:
            raise
        except IntegrityError as exc:
            self._storage.rollback()
            raise AccountError(_integrity_kind(exc)) from exc
        except SQLAlchemyError as exc:
            self._storage.rollback()
            raise AccountError(ErrorKind.STORAGE_ERROR) from exc

    def _persist(self, obj):
        with self._errors():
            self._storage.new(obj)
            self._storage.save()
        return obj


class UserStore(_Store):
    """User persistence. Email and provider+oauth_id uniqueness are enforced by the table."""

    def create(self, user: User) -> User:
        return self._persist(user)

    def update(self, user: User) -> User:
        user.touch()
        return self._persist(user)

    def _one(self, *criteria) -> User:
        with self._errors():
            user = self.session.query(User).filter(*criteria).first()
        if user is None:
            raise AccountError(ErrorKind.USER_NOT_FOUND)
        return user

    def get_by_id(self, user_id: str) -> User:
        with self._errors():
            user = self._storage.get(User, user_id)
        if user is None:
            raise AccountError(ErrorKind.USER_NOT_FOUND)
        return user

    def get_by_email(self, email: str) -> User:
        return self._one(User.email == email)

    def find_by_email(self, email: str) -> Optional[User]:
        try:
            return self.get_by_email(email)
        except AccountError as exc:
            if exc.kind is ErrorKind.USER_NOT_FOUND:
                return None
            raise

    def get_by_oauth_id(self, provider: str, oauth_id: str) -> User:
        return self._one(User.oauth_provider == provider, User.oauth_id == oauth_id)

    def get_by_verification_token(self, token: str) -> User:
        if not token:
            raise AccountError(ErrorKind.USER_NOT_FOUND)
        return self._one(User.verification_token == token)

    def get_by_reset_token(self, token: str) -> User:
        if not token:
            raise AccountError(ErrorKind.USER_NOT_FOUND)
        return self._one(User.reset_password_token == token)

    def delete(self, user_id: str) -> None:
        user = self.get_by_id(user_id)
        with self._errors():
            self._storage.delete(user)
            self._storage.save()

    def list(self, limit: int, offset: int) -> List[User]:
        with self._errors():
            return (
                self.session.query(User)
                .order_by(User.created_at.asc(), User.id.asc())
                .offset(offset)
                .limit(limit)
                .all()
            )

    def count(self) -> int:
        with self._errors():
            return self._storage.count(User)


class RefreshTokenStore(_Store):
    """
    Blind index of issued refresh tokens plus validity bookkeeping.
    The token string is never decoded here.
    """

    def create(self, user_id: str, token: str, expires_at: datetime) -> RefreshToken:
        record = RefreshToken(user_id=user_id, token=token, expires_at=expires_at)
        return self._persist(record)

    def get_by_token(self, token: str) -> RefreshToken:
        with self._errors():
            record = self.session.query(RefreshToken).filter(RefreshToken.token == token).first()
        if record is None:
            raise AccountError(ErrorKind.REFRESH_TOKEN_NOT_FOUND)
        return record

    def validate(self, token: str, now: Optional[datetime] = None) -> RefreshToken:
        """Return the live record or raise REFRESH_TOKEN_NOT_FOUND / TOKEN_REVOKED / TOKEN_EXPIRED."""
        record = self.get_by_token(token)
        if record.is_revoked:
            raise AccountError(ErrorKind.TOKEN_REVOKED)
        if record.is_expired(now):
            raise AccountError(ErrorKind.TOKEN_EXPIRED)
        return record

    def consume(self, token: str, now: Optional[datetime] = None) -> None:
        """
        Revoke a live token in one conditional UPDATE. Exactly one caller can
        win; the others get TOKEN_REVOKED (or NOT_FOUND / TOKEN_EXPIRED).
        """
        now = now or utcnow()
        with self._errors():
            changed = (
                self.session.query(RefreshToken)
                .filter(
                    RefreshToken.token == token,
                    RefreshToken.revoked_at.is_(None),
                    RefreshToken.expires_at > now,
                )
                .update({RefreshToken.revoked_at: now}, synchronize_session="fetch")
            )
            self._storage.save()
        if changed != 1:
            self.validate(token, now=now)
            raise AccountError(ErrorKind.TOKEN_REVOKED)

    def revoke(self, token: str) -> None:
        """Idempotent: unknown or already revoked tokens are left as they are."""
        with self._errors():
            record = self.session.query(RefreshToken).filter(RefreshToken.token == token).first()
            if record is None or record.is_revoked:
                return
            record.revoke()
            self._storage.save()

    def revoke_all(self, user_id: str) -> int:
        """Revoke every live record of a user; returns how many were changed."""
        with self._errors():
            changed = (
                self.session.query(RefreshToken)
                .filter(RefreshToken.user_id == user_id, RefreshToken.revoked_at.is_(None))
                .update({RefreshToken.revoked_at: utcnow()}, synchronize_session="fetch")
            )
            self._storage.save()
        return changed

    def list_active(self, user_id: str, now: Optional[datetime] = None) -> List[RefreshToken]:
        now = now or utcnow()
        with self._errors():
            return (
                self.session.query(RefreshToken)
                .filter(
                    RefreshToken.user_id == user_id,
                    RefreshToken.revoked_at.is_(None),
                    RefreshToken.expires_at > now,
                )
                .order_by(RefreshToken.created_at.asc())
                .all()
            )

    def delete_expired(self, now: Optional[datetime] = None) -> int:
        """Maintenance sweep: drop records past their expiry, revoked or not."""
        now = now or utcnow()
        with self._errors():
            removed = (
                self.session.query(RefreshToken)
                .filter(RefreshToken.expires_at <= now)
                .delete(synchronize_session="fetch")
            )
            self._storage.save()
        return removed


class AvatarStore(_Store):
    def get_by_user_id(self, user_id: str) -> Optional[Avatar]:
        with self._errors():
            return self.session.query(Avatar).filter(Avatar.user_id == user_id).first()

    def save(self, avatar: Avatar) -> Avatar:
        avatar.touch()
        return self._persist(avatar)
