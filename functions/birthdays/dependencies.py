"""
Dependency wiring for the FastAPI app.

Backends are built once per application by ``create_app`` and kept on
``app.state``; request handlers read them from there.
"""

from __future__ import annotations

import logging

import firebase_admin
from fastapi import Request
from firebase_admin import credentials, firestore

from birthdays.auth import AccessGate, GoogleIdentityProvider, IdentityProvider
from birthdays.calendar_client import (
    CalendarClient,
    GoogleCalendarClient,
    InMemoryCalendarClient,
)
from birthdays.config import Settings
from birthdays.db import (
    BirthdayStore,
    FirestoreBirthdayStore,
    InMemoryBirthdayStore,
    SqlBirthdayStore,
)
from birthdays.workflow import BirthdayWorkflow

logger = logging.getLogger(__name__)

FIREBASE_APP_NAME = "birthdays"


def _firestore_client(service_account_info: dict):
    try:
        app = firebase_admin.get_app(FIREBASE_APP_NAME)
    except ValueError:
        app = firebase_admin.initialize_app(
            credentials.Certificate(service_account_info), name=FIREBASE_APP_NAME
        )
    return firestore.client(app)


def build_store(settings: Settings) -> BirthdayStore:
    if settings.use_in_memory_backends:
        return InMemoryBirthdayStore()

    firebase_info = settings.firebase_credentials()
    if firebase_info:
        logger.info("Using Firestore collection %s", settings.birthdays_collection)
        return FirestoreBirthdayStore(
            _firestore_client(firebase_info), settings.birthdays_collection
        )
    if settings.database_url:
        logger.info("Using SQL birthday store")
        return SqlBirthdayStore(settings.database_url)

    logger.warning("No store configured; birthdays are kept in memory only")
    return InMemoryBirthdayStore()


def build_calendar_client(settings: Settings) -> CalendarClient:
    if settings.use_in_memory_backends:
        return InMemoryCalendarClient()

    calendar_info = settings.calendar_credentials()
    if calendar_info and settings.calendar_id:
        return GoogleCalendarClient.from_service_account_info(
            calendar_info, settings.calendar_id
        )

    logger.warning("Google Calendar is not configured; events are kept in memory only")
    return InMemoryCalendarClient()


def build_identity_provider(settings: Settings) -> IdentityProvider:
    if not settings.google_client_id or not settings.google_client_secret:
        logger.warning("Google OAuth client is not configured; admin sign-in will fail")
    return GoogleIdentityProvider(
        client_id=settings.google_client_id or "",
        client_secret=settings.google_client_secret or "",
        redirect_uri=settings.google_oauth_callback_url,
    )


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_workflow(request: Request) -> BirthdayWorkflow:
    return request.app.state.workflow


def get_identity_provider(request: Request) -> IdentityProvider:
    return request.app.state.identity_provider


def get_access_gate(request: Request) -> AccessGate:
    return request.app.state.access_gate
