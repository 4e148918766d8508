"""
Admin session lifecycle: Google sign-in, callback and logout.
"""

from __future__ import annotations

import logging
import secrets

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse

from birthdays.auth import (
    SESSION_STATE_KEY,
    AccessGate,
    IdentityProvider,
)
from birthdays.config import Settings
from birthdays.dependencies import get_access_gate, get_identity_provider, get_settings
from birthdays.errors import AuthError

logger = logging.getLogger(__name__)

router = APIRouter()

ACCESS_DENIED_PATH = "/access-denied"
LOGIN_PATH = "/login"


def _redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url, status_code=302)


@router.get(LOGIN_PATH)
def login(
    request: Request,
    provider: IdentityProvider = Depends(get_identity_provider),
):
    state = secrets.token_urlsafe(32)
    request.session[SESSION_STATE_KEY] = state
    return _redirect(provider.authorization_url(state))


@router.get("/auth/google/callback")
def google_callback(
    request: Request,
    code: str | None = Query(None),
    state: str | None = Query(None),
    error: str | None = Query(None),
    provider: IdentityProvider = Depends(get_identity_provider),
    gate: AccessGate = Depends(get_access_gate),
    settings: Settings = Depends(get_settings),
):
    expected_state = request.session.pop(SESSION_STATE_KEY, None)
    if error:
        logger.warning("Google sign-in returned an error: %s", error)
        return _redirect(ACCESS_DENIED_PATH)
    if not code or not state or not expected_state or not secrets.compare_digest(
        state, expected_state
    ):
        logger.warning("Rejected OAuth callback with a missing or mismatched state")
        return _redirect(ACCESS_DENIED_PATH)

    try:
        profile = provider.fetch_profile(code)
    except AuthError:
        logger.exception("Google sign-in failed")
        return _redirect(ACCESS_DENIED_PATH)

    if not gate.permits(profile):
        logger.warning("Denied admin sign-in for %s", profile.email)
        request.session.clear()
        return _redirect(ACCESS_DENIED_PATH)

    gate.establish(request, profile)
    logger.info("Admin signed in as %s", profile.email)
    return _redirect(settings.post_auth_redirect)


@router.get("/logout")
def logout(request: Request):
    request.session.clear()
    return _redirect(LOGIN_PATH)
