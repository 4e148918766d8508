"""
Admin access gate.

Google sign-in (OAuth 2.0 authorization-code flow) establishes who the visitor
is; ``AccessGate`` decides whether that identity is the single allow-listed
administrator. Sessions are signed cookies managed by Starlette's
``SessionMiddleware``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol
from urllib.parse import urlencode

import httpx
from fastapi import Request

from birthdays.errors import AuthError

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"
LOGIN_SCOPES = "openid email profile"

SESSION_ADMIN_KEY = "admin"
SESSION_STATE_KEY = "oauth_state"


@dataclass
class IdentityProfile:
    email: str
    name: str = ""


class IdentityProvider(Protocol):
    def authorization_url(self, state: str) -> str:
        ...

    def fetch_profile(self, code: str) -> IdentityProfile:
        """Exchange an authorization code for the signed-in user's profile."""
        ...


def _json_object(response: httpx.Response) -> dict:
    try:
        payload = response.json()
    except ValueError as exc:
        raise AuthError("Google returned invalid JSON") from exc
    if not isinstance(payload, dict):
        raise AuthError("Google returned an unexpected payload")
    return payload


class GoogleIdentityProvider:
    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        http_client: Optional[httpx.Client] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self._http_client = http_client or httpx.Client(timeout=15.0)

    def authorization_url(self, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": LOGIN_SCOPES,
            "state": state,
            "prompt": "select_account",
        }
        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    def fetch_profile(self, code: str) -> IdentityProfile:
        try:
            token_response = self._http_client.post(
                GOOGLE_TOKEN_URL,
                data={
                    "code": code,
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "redirect_uri": self.redirect_uri,
                    "grant_type": "authorization_code",
                },
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as exc:
            raise AuthError(f"Token exchange request failed: {exc}") from exc
        if token_response.status_code != 200:
            raise AuthError(f"Token exchange failed ({token_response.status_code})")

        access_token = _json_object(token_response).get("access_token")
        if not access_token:
            raise AuthError("Token response is missing an access_token")

        try:
            profile_response = self._http_client.get(
                GOOGLE_USERINFO_URL,
                headers={"Authorization": f"Bearer {access_token}"},
            )
        except httpx.HTTPError as exc:
            raise AuthError(f"Userinfo request failed: {exc}") from exc
        if profile_response.status_code != 200:
            raise AuthError(f"Userinfo request failed ({profile_response.status_code})")

        payload = _json_object(profile_response)
        email = payload.get("email")
        if not email:
            raise AuthError("Google profile has no email address")
        if payload.get("email_verified") is False:
            raise AuthError("Google profile email is not verified")
        return IdentityProfile(email=email, name=payload.get("name") or "")


def _normalize_email(value: Optional[str]) -> str:
    return (value or "").strip().casefold()


class AccessGate:
    """Single-identity policy: only ``allowed_email`` may hold an admin session."""

    def __init__(self, allowed_email: Optional[str]):
        self.allowed_email = _normalize_email(allowed_email)
        if not self.allowed_email:
            logger.warning("ADMIN_EMAIL is not configured; admin sign-in is disabled")

    def permits(self, profile: IdentityProfile) -> bool:
        return bool(self.allowed_email) and (
            _normalize_email(profile.email) == self.allowed_email
        )

    def establish(self, request: Request, profile: IdentityProfile) -> None:
        request.session[SESSION_ADMIN_KEY] = {
            "email": profile.email,
            "name": profile.name,
        }

    def current_admin(self, request: Request) -> Optional[IdentityProfile]:
        data = request.session.get(SESSION_ADMIN_KEY)
        if not isinstance(data, dict):
            return None
        profile = IdentityProfile(email=data.get("email", ""), name=data.get("name", ""))
        if not self.permits(profile):
            return None
        return profile


class LoginRequired(Exception):
    """Raised by the admin dependency; answered with a redirect to /login."""
