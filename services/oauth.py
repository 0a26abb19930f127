"""
Google OAuth bridge: authorization URL, code exchange and identity fetch.

Any transport or provider failure surfaces as OAUTH_EXCHANGE_FAILED with the
httpx exception chained.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol
from urllib.parse import urlencode

import httpx

from services.errors import AccountError, ErrorKind

logger = logging.getLogger(__name__)

GOOGLE_PROVIDER = "google"

GOOGLE_ENDPOINTS = {
    "auth_url": "https://accounts.google.com/o/oauth2/v2/auth",
    "token_url": "https://oauth2.googleapis.com/token",
    "userinfo_url": "https://www.googleapis.com/oauth2/v2/userinfo",
    "scope": "https://www.googleapis.com/auth/userinfo.email https://www.googleapis.com/auth/userinfo.profile",
}


@dataclass(frozen=True)
class OAuthIdentity:
    external_id: str
    email: str
    name: str
    picture_url: Optional[str] = None
    provider: str = GOOGLE_PROVIDER


class IdentityBridge(Protocol):
    provider: str

    def auth_url(self, state: str) -> str: ...

    def exchange_code(self, code: str) -> str: ...

    def fetch_identity(self, credential: str) -> OAuthIdentity: ...


class GoogleOAuthBridge:
    provider = GOOGLE_PROVIDER

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_url = redirect_url
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(timeout=self.timeout, follow_redirects=False, transport=self._transport)

    def auth_url(self, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_url,
            "response_type": "code",
            "scope": GOOGLE_ENDPOINTS["scope"],
            "state": state,
            "access_type": "offline",
        }
        return f"{GOOGLE_ENDPOINTS['auth_url']}?{urlencode(params)}"

    def exchange_code(self, code: str) -> str:
        """Trade an authorization code for a provider access token."""
        data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "code": code,
            "redirect_uri": self.redirect_url,
            "grant_type": "authorization_code",
        }
        try:
            with self._client() as client:
                response = client.post(GOOGLE_ENDPOINTS["token_url"], data=data, headers={"Accept": "application/json"})
                response.raise_for_status()
                payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("OAuth code exchange failed: %s", exc)
            raise AccountError(ErrorKind.OAUTH_EXCHANGE_FAILED, "failed to exchange code") from exc

        access_token = payload.get("access_token") if isinstance(payload, dict) else None
        if not access_token:
            logger.error("OAuth token response carried no access_token")
            raise AccountError(ErrorKind.OAUTH_EXCHANGE_FAILED, "failed to exchange code")
        return access_token

    def fetch_identity(self, credential: str) -> OAuthIdentity:
        try:
            with self._client() as client:
                response = client.get(
                    GOOGLE_ENDPOINTS["userinfo_url"],
                    headers={"Authorization": f"Bearer {credential}"},
                )
                response.raise_for_status()
                info = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("OAuth userinfo request failed: %s", exc)
            raise AccountError(ErrorKind.OAUTH_EXCHANGE_FAILED, "failed to get user info") from exc

        if not isinstance(info, dict) or not info.get("id") or not info.get("email"):
            logger.error("OAuth userinfo missing id or email")
            raise AccountError(ErrorKind.OAUTH_EXCHANGE_FAILED, "failed to get user info")

        # Accounts are linked by email, so an address the provider has not
        # verified must never be trusted.
        if info.get("verified_email", info.get("email_verified")) is not True:
            logger.warning("OAuth userinfo email is not verified by the provider")
            raise AccountError(ErrorKind.OAUTH_EXCHANGE_FAILED, "email not verified by provider")

        email = info["email"]
        return OAuthIdentity(
            external_id=str(info["id"]),
            email=email,
            name=info.get("name") or email.split("@")[0],
            picture_url=info.get("picture") or None,
        )
