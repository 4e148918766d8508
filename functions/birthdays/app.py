"""
FastAPI application entry point for the birthday service.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from starlette.middleware.sessions import SessionMiddleware

from birthdays import auth_routes, pages, routes
from birthdays.auth import AccessGate, IdentityProvider, LoginRequired
from birthdays.calendar_client import CalendarClient
from birthdays.config import Settings, get_settings
from birthdays.db import BirthdayStore
from birthdays.dependencies import (
    build_calendar_client,
    build_identity_provider,
    build_store,
)
from birthdays.errors import BirthdayError
from birthdays.rendering import STATIC_DIR
from birthdays.routes import SUBMIT_PATH
from birthdays.workflow import MISSING_FIELDS_MESSAGE, BirthdayWorkflow

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    *,
    store: Optional[BirthdayStore] = None,
    calendar: Optional[CalendarClient] = None,
    identity_provider: Optional[IdentityProvider] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(title="Birthday Calendar", version="0.1.0")

    workflow_kwargs = {"clock": clock} if clock else {}
    app.state.settings = settings
    app.state.workflow = BirthdayWorkflow(
        store or build_store(settings),
        calendar or build_calendar_client(settings),
        **workflow_kwargs,
    )
    app.state.identity_provider = identity_provider or build_identity_provider(settings)
    app.state.access_gate = AccessGate(settings.admin_email)

    session_secret = settings.session_secret
    if not session_secret:
        logger.warning("SESSION_SECRET is not set; admin sessions end on restart")
        session_secret = secrets.token_urlsafe(32)
    app.add_middleware(SessionMiddleware, secret_key=session_secret)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(BirthdayError)
    async def birthday_error_handler(request: Request, exc: BirthdayError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=exc.status_code, content={"error": exc.client_message()}
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        # A submission body that is absent or not a JSON object of strings
        # lacks the required fields.
        if request.url.path == SUBMIT_PATH:
            logger.info("Rejected submission body: %s", exc.errors())
            return JSONResponse(
                status_code=400, content={"error": MISSING_FIELDS_MESSAGE}
            )
        return await request_validation_exception_handler(request, exc)

    @app.exception_handler(LoginRequired)
    async def login_required_handler(request: Request, exc: LoginRequired):
        return RedirectResponse(auth_routes.LOGIN_PATH, status_code=302)

    app.include_router(routes.router)
    app.include_router(pages.router)
    app.include_router(auth_routes.router)
    # Public submission form; mounted last so API routes take precedence.
    app.mount("/", StaticFiles(directory=str(STATIC_DIR), html=True), name="static")
    return app


app = create_app()
