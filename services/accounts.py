"""
Account lifecycle: registration, login gating, email verification, password
reset and OAuth account resolution.

The service works on User entities through UserStore and never sees HTTP or
SQL. Email delivery for registration and password reset is dispatched in the
background; a delivery failure is logged and never undoes the operation.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from models.base_model import utcnow
from models.user import User
from services.email import EmailDeliveryError, NotificationSender, redact_email
from services.errors import AccountError, ErrorKind
from services.oauth import IdentityBridge, OAuthIdentity
from services.stores import UserStore
from utils.security import CredentialHasher, generate_token

logger = logging.getLogger(__name__)

VERIFICATION_TOKEN_TTL = timedelta(hours=24)
RESET_TOKEN_TTL = timedelta(hours=1)


def _expired(expires_at: Optional[datetime], now: datetime) -> bool:
    return expires_at is None or now > expires_at


class AccountService:
    def __init__(
        self,
        users: UserStore,
        hasher: CredentialHasher,
        notifier: NotificationSender,
        dispatcher,
        identity_bridge: Optional[IdentityBridge] = None,
        clock: Callable[[], datetime] = utcnow,
        verification_ttl: timedelta = VERIFICATION_TOKEN_TTL,
        reset_ttl: timedelta = RESET_TOKEN_TTL,
    ):
        self.users = users
        self.hasher = hasher
        self.notifier = notifier
        self.dispatcher = dispatcher
        self.identity_bridge = identity_bridge
        self._clock = clock
        self.verification_ttl = verification_ttl
        self.reset_ttl = reset_ttl
        self._dummy_hash: Optional[str] = None

    def now(self) -> datetime:
        return self._clock()

    # registration / login

    def register(self, email: str, password: str, name: str, phone: Optional[str] = None) -> User:
        """
        Create an unverified account and send the verification email.
        The existence check is only a pre-check; the unique index on email
        decides concurrent registrations.
        """
        if self.users.find_by_email(email) is not None:
            raise AccountError(ErrorKind.USER_ALREADY_EXISTS)

        user = User(
            email=email,
            password_hash=self.hasher.hash(password),
            name=name,
            phone=phone,
            email_verified=False,
        )
        token = generate_token()
        user.set_verification_token(token, self.now() + self.verification_ttl)
        self.users.create(user)
        logger.info("Registered user %s", user.id)

        self.dispatcher.submit(
            self.notifier.send_verification_email,
            user.email,
            user.name,
            token,
            description=f"verification email to {redact_email(user.email)}",
        )
        return user

    def _burn_verify(self, password: str) -> None:
        # Keeps unknown-email logins about as slow as wrong-password ones.
        if self._dummy_hash is None:
            self._dummy_hash = self.hasher.hash(generate_token())
        self.hasher.verify(password, self._dummy_hash)

    def login(self, email: str, password: str) -> User:
        user = self.users.find_by_email(email)
        if user is None:
            self._burn_verify(password)
            raise AccountError(ErrorKind.INVALID_CREDENTIALS)
        if not user.has_password:
            raise AccountError(ErrorKind.OAUTH_ACCOUNT)
        if not self.hasher.verify(password, user.password_hash):
            raise AccountError(ErrorKind.INVALID_CREDENTIALS)
        # Only checked once the password matched
        if not user.email_verified:
            raise AccountError(ErrorKind.EMAIL_NOT_VERIFIED)
        return user

    # email verification

    def verify_email(self, token: str) -> User:
        try:
            user = self.users.get_by_verification_token(token)
        except AccountError as exc:
            if exc.kind is ErrorKind.USER_NOT_FOUND:
                raise AccountError(ErrorKind.INVALID_VERIFICATION_TOKEN) from exc
            raise

        if _expired(user.verification_token_expires_at, self.now()):
            raise AccountError(ErrorKind.VERIFICATION_TOKEN_EXPIRED)
        if user.email_verified:
            return user

        user.email_verified = True
        user.clear_verification_token()
        self.users.update(user)
        logger.info("Verified email for user %s", user.id)
        return user

    def resend_verification_email(self, email: str) -> None:
        """Unlike forgot_password this reports unknown and verified accounts."""
        user = self.users.get_by_email(email)
        if user.email_verified:
            raise AccountError(ErrorKind.EMAIL_ALREADY_VERIFIED)

        token = generate_token()
        user.set_verification_token(token, self.now() + self.verification_ttl)
        self.users.update(user)

        try:
            self.notifier.send_verification_email(user.email, user.name, token)
        except EmailDeliveryError as exc:
            raise AccountError(ErrorKind.EMAIL_DELIVERY_FAILED, "failed to send verification email") from exc

    # password reset

    def forgot_password(self, email: str) -> None:
        """
        Always returns normally so the response never reveals whether the
        email is registered. Accounts without a password are skipped.
        """
        try:
            user = self.users.find_by_email(email)
            if user is None or not user.has_password:
                return

            token = generate_token()
            user.set_reset_token(token, self.now() + self.reset_ttl)
            self.users.update(user)
        except AccountError:
            logger.exception("Password reset request for %s could not be processed", redact_email(email))
            return

        self.dispatcher.submit(
            self.notifier.send_password_reset_email,
            user.email,
            user.name,
            token,
            description=f"password reset email to {redact_email(user.email)}",
        )

    def reset_password(self, token: str, new_password: str) -> User:
        try:
            user = self.users.get_by_reset_token(token)
        except AccountError as exc:
            if exc.kind is ErrorKind.USER_NOT_FOUND:
                raise AccountError(ErrorKind.INVALID_RESET_TOKEN) from exc
            raise

        if _expired(user.reset_password_token_expires_at, self.now()):
            raise AccountError(ErrorKind.RESET_TOKEN_EXPIRED)

        # New hash and cleared token go out in one commit
        user.password_hash = self.hasher.hash(new_password)
        user.clear_reset_token()
        self.users.update(user)
        logger.info("Password reset for user %s", user.id)
        return user

    # OAuth

    def oauth_authorization_url(self, state: str) -> str:
        return self._bridge().auth_url(state)

    def login_with_oauth(self, code: str) -> User:
        bridge = self._bridge()
        credential = bridge.exchange_code(code)
        identity = bridge.fetch_identity(credential)
        return self.handle_oauth_login(identity)

    def _bridge(self) -> IdentityBridge:
        if self.identity_bridge is None:
            raise AccountError(ErrorKind.OAUTH_EXCHANGE_FAILED, "OAuth login is not configured")
        return self.identity_bridge

    def handle_oauth_login(self, identity: OAuthIdentity) -> User:
        """
        Resolve an external identity to an account, by priority:
        1. provider + external id -> that user, unchanged
        2. same email, not yet linked -> link in place (avatar backfilled)
        3. otherwise -> new OAuth-only account, trusted as verified
        """
        try:
            return self.users.get_by_oauth_id(identity.provider, identity.external_id)
        except AccountError as exc:
            if exc.kind is not ErrorKind.USER_NOT_FOUND:
                raise

        existing = self.users.find_by_email(identity.email)
        if existing is not None:
            if existing.is_oauth_user:
                raise AccountError(ErrorKind.OAUTH_ACCOUNT_CONFLICT)
            existing.link_oauth(identity.provider, identity.external_id, identity.picture_url)
            self.users.update(existing)
            logger.info("Linked %s identity to user %s", identity.provider, existing.id)
            return existing

        user = User(
            email=identity.email,
            password_hash=None,
            name=identity.name,
            avatar_url=identity.picture_url,
            oauth_provider=identity.provider,
            oauth_id=identity.external_id,
            email_verified=True,
        )
        self.users.create(user)
        logger.info("Created %s account %s", identity.provider, user.id)
        return user
