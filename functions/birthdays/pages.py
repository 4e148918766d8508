"""
HTML pages: direct approve/decline links, the admin preview and the denial page.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse

from birthdays.auth import AccessGate, IdentityProfile, LoginRequired
from birthdays.dependencies import get_access_gate, get_workflow
from birthdays.errors import BirthdayError
from birthdays.rendering import render_template
from birthdays.workflow import BirthdayWorkflow

logger = logging.getLogger(__name__)

router = APIRouter()


def require_admin(
    request: Request, gate: AccessGate = Depends(get_access_gate)
) -> IdentityProfile:
    admin = gate.current_admin(request)
    if admin is None:
        raise LoginRequired()
    return admin


def _error_page(request: Request, exc: BirthdayError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return render_template(
        request,
        "error.html",
        {"message": exc.client_message()},
        status_code=exc.status_code,
    )


@router.get("/approve/{birthday_id}", response_class=HTMLResponse)
def approve_link(
    birthday_id: str,
    request: Request,
    workflow: BirthdayWorkflow = Depends(get_workflow),
):
    try:
        record = workflow.approve(birthday_id)
    except BirthdayError as exc:
        return _error_page(request, exc)
    return render_template(request, "approved.html", {"record": record})


@router.get("/decline/{birthday_id}", response_class=HTMLResponse)
def decline_link(
    birthday_id: str,
    request: Request,
    workflow: BirthdayWorkflow = Depends(get_workflow),
):
    try:
        record = workflow.decline(birthday_id)
    except BirthdayError as exc:
        return _error_page(request, exc)
    return render_template(request, "declined.html", {"record": record})


@router.get("/admin-preview", response_class=HTMLResponse)
def admin_preview(
    request: Request,
    admin: IdentityProfile = Depends(require_admin),
    workflow: BirthdayWorkflow = Depends(get_workflow),
):
    try:
        records = workflow.list_birthdays()
    except BirthdayError as exc:
        return _error_page(request, exc)
    return render_template(
        request, "admin_preview.html", {"records": records, "admin": admin}
    )


@router.get("/access-denied", response_class=HTMLResponse)
def access_denied(request: Request):
    return render_template(request, "access_denied.html", status_code=403)
