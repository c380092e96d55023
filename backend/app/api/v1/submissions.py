from typing import Any, Optional

from fastapi import APIRouter, Body, Depends

from app.core.roles import get_current_profile, require_editor
from app.lib.api_client import get_workflow_client
from app.schemas.decision import CreateSubmissionRequest, DecisionBody, ResubmitRequest, WithdrawRequest
from app.services.editorial_service import EditorialService
from app.services.submission_service import SubmissionService
from app.services.workflow_common import coerce_row_id

router = APIRouter(prefix="/submissions", tags=["Submissions"])

_require_editor = require_editor()


@router.post("", status_code=201)
async def create_submission(
    body: CreateSubmissionRequest,
    profile: dict = Depends(get_current_profile),
    client: Any = Depends(get_workflow_client),
):
    created = SubmissionService(client).create_submission(
        submitter_id=str(profile["id"]),
        title=body.title,
        abstract=body.abstract,
        journal_id=body.journal_id,
    )
    return {"success": True, "data": created}


@router.get("/{submission_id}")
async def get_submission(
    submission_id: str,
    profile: dict = Depends(get_current_profile),
    client: Any = Depends(get_workflow_client),
):
    data = SubmissionService(client).get(coerce_row_id(submission_id, label="submission id"), profile=profile)
    return {"success": True, "data": data}


@router.post("/{submission_id}/withdraw")
async def withdraw_submission(
    submission_id: str,
    body: Optional[WithdrawRequest] = Body(default=None),
    profile: dict = Depends(get_current_profile),
    client: Any = Depends(get_workflow_client),
):
    """
    撤稿：作者本人或编辑/管理员；已拒稿/已发布的稿件不能撤回。
    """
    return SubmissionService(client).withdraw(
        coerce_row_id(submission_id, label="submission id"),
        profile=profile,
        reason=body.reason if body else None,
    )


@router.post("/{submission_id}/resubmit")
async def resubmit_submission(
    submission_id: str,
    body: Optional[ResubmitRequest] = Body(default=None),
    profile: dict = Depends(get_current_profile),
    client: Any = Depends(get_workflow_client),
):
    """
    作者提交修改稿：仅限投稿人，且编辑已要求修改；开启下一轮审稿。
    """
    return SubmissionService(client).resubmit(
        coerce_row_id(submission_id, label="submission id"),
        profile=profile,
        comments=body.comments if body else None,
    )


@router.post("/{submission_id}/decision")
async def submission_decision(
    submission_id: str,
    body: DecisionBody,
    profile: dict = Depends(_require_editor),
    client: Any = Depends(get_workflow_client),
):
    return EditorialService(client).apply_decision(
        coerce_row_id(submission_id, label="submission id"),
        body.decision,
        editor_id=profile.get("id"),
        comments=body.comments,
    )
