"""
HTTP routes for the public form and the JSON review API.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from birthdays.dependencies import get_workflow
from birthdays.rendering import render_template
from birthdays.schemas import (
    BirthdayResponse,
    ErrorResponse,
    MessageResponse,
    SubmissionPayload,
)
from birthdays.workflow import BirthdayWorkflow

SUBMIT_PATH = "/submit"

router = APIRouter()

_TRANSITION_ERRORS = {
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


@router.post(
    SUBMIT_PATH,
    status_code=201,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
def submit_birthday(
    payload: SubmissionPayload,
    request: Request,
    workflow: BirthdayWorkflow = Depends(get_workflow),
):
    """
    Public form intake. Answers with an HTML thank-you page.
    """
    record = workflow.submit(payload.name, payload.birthday, payload.relationship)
    return render_template(
        request, "submitted.html", {"record": record}, status_code=201
    )


@router.get(
    "/birthdays",
    response_model=list[BirthdayResponse],
    response_model_exclude_none=True,
    responses={500: {"model": ErrorResponse}},
)
def list_birthdays(workflow: BirthdayWorkflow = Depends(get_workflow)):
    return [BirthdayResponse.from_record(r) for r in workflow.list_birthdays()]


@router.post(
    "/approve/{birthday_id}",
    response_model=MessageResponse,
    responses=_TRANSITION_ERRORS,
)
def approve_birthday(
    birthday_id: str, workflow: BirthdayWorkflow = Depends(get_workflow)
):
    workflow.approve(birthday_id)
    return MessageResponse(message="🎉 Birthday approved and added to calendar")


@router.post(
    "/decline/{birthday_id}",
    response_model=MessageResponse,
    responses=_TRANSITION_ERRORS,
)
def decline_birthday(
    birthday_id: str, workflow: BirthdayWorkflow = Depends(get_workflow)
):
    workflow.decline(birthday_id)
    return MessageResponse(message="Birthday declined")
