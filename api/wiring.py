"""
Builds the service graph from Flask config and exposes it to the blueprints
through current_app.extensions.
"""
from __future__ import annotations

import atexit
import logging
from dataclasses import dataclass

from flask import current_app

from services.accounts import AccountService
from services.avatars import LocalAvatarStorage
from services.background import BackgroundDispatcher
from services.email import LoggingEmailSender, SMTPEmailSender
from services.oauth import GoogleOAuthBridge
from services.profiles import ProfileService
from services.sessions import SessionService
from services.stores import AvatarStore, RefreshTokenStore, UserStore
from utils.security import CredentialHasher, JWTService

logger = logging.getLogger(__name__)

EXTENSION_KEY = "user_accounts"


@dataclass
class Services:
    accounts: AccountService
    sessions: SessionService
    profiles: ProfileService
    refresh_tokens: RefreshTokenStore
    dispatcher: object


def build_services(config, storage, *, notifier=None, identity_bridge=None, dispatcher=None, avatar_storage=None) -> Services:
    """Keyword overrides replace the configured collaborator (tests use these)."""
    users = UserStore(storage)
    refresh_tokens = RefreshTokenStore(storage)
    avatars = AvatarStore(storage)

    if dispatcher is None:
        dispatcher = BackgroundDispatcher(max_workers=config["BACKGROUND_WORKERS"])
        atexit.register(dispatcher.shutdown)

    if notifier is None:
        if config.get("SMTP_HOST"):
            notifier = SMTPEmailSender(
                host=config["SMTP_HOST"],
                port=config["SMTP_PORT"],
                username=config.get("SMTP_USERNAME") or None,
                password=config.get("SMTP_PASSWORD") or None,
                use_tls=config["SMTP_USE_TLS"],
                from_email=config["EMAIL_FROM"],
                from_name=config["EMAIL_FROM_NAME"],
                frontend_url=config["FRONTEND_URL"],
                timeout=config["SMTP_TIMEOUT"],
            )
        else:
            logger.warning("SMTP_HOST not set; emails will only be logged")
            notifier = LoggingEmailSender(frontend_url=config["FRONTEND_URL"])

    if identity_bridge is None and config.get("GOOGLE_CLIENT_ID"):
        identity_bridge = GoogleOAuthBridge(
            client_id=config["GOOGLE_CLIENT_ID"],
            client_secret=config["GOOGLE_CLIENT_SECRET"],
            redirect_url=config["GOOGLE_REDIRECT_URL"],
            timeout=config["OAUTH_HTTP_TIMEOUT"],
        )

    if avatar_storage is None:
        avatar_storage = LocalAvatarStorage(
            base_dir=config["AVATAR_UPLOAD_DIR"],
            base_url=config["AVATAR_BASE_URL"],
            max_bytes=config["MAX_AVATAR_BYTES"],
        )

    hasher = CredentialHasher(
        time_cost=config.get("ARGON2_TIME_COST"),
        memory_cost=config.get("ARGON2_MEMORY_COST"),
        parallelism=config.get("ARGON2_PARALLELISM"),
    )
    jwt_service = JWTService(
        secret=config["JWT_SECRET"],
        access_ttl=config["JWT_ACCESS_TOKEN_EXPIRES"],
        refresh_ttl=config["JWT_REFRESH_TOKEN_EXPIRES"],
        algorithm=config["JWT_ALGORITHM"],
        issuer=config.get("JWT_ISSUER"),
    )

    return Services(
        accounts=AccountService(users, hasher, notifier, dispatcher, identity_bridge=identity_bridge),
        sessions=SessionService(jwt_service, refresh_tokens),
        profiles=ProfileService(users, avatars, avatar_storage, dispatcher),
        refresh_tokens=refresh_tokens,
        dispatcher=dispatcher,
    )


def get_services() -> Services:
    return current_app.extensions[EXTENSION_KEY]
