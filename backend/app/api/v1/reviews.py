from typing import Any

from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import JSONResponse

from app.core.roles import get_current_profile, require_editor
from app.lib.api_client import get_workflow_client
from app.schemas.review import (
    AssignReviewerRequest,
    CreateReviewRoundRequest,
    ReviewerResponseRequest,
    SubmitReviewRequest,
)
from app.services.review_assignment_service import ReviewAssignmentService
from app.services.review_round_service import ReviewRoundService
from app.services.workflow_common import coerce_row_id

router = APIRouter(prefix="/reviews", tags=["Reviews"])

_require_editor = require_editor()


@router.post("/rounds", status_code=201)
async def create_review_round(
    body: CreateReviewRoundRequest,
    profile: dict = Depends(_require_editor),
    client: Any = Depends(get_workflow_client),
):
    """
    送审 / 创建审稿轮次（幂等）。

    中文注释:
    - 新建轮次返回 201；已有进行中的轮次返回 200 + existing=true。
    """
    submission_id = coerce_row_id(body.submission_id, label="submissionId")
    result = ReviewRoundService(client).send_to_review(
        submission_id,
        editor_id=profile.get("id"),
        round=body.round,
        comments=body.comments,
    )
    if result.get("existing"):
        return JSONResponse(status_code=200, content=result)
    return result


@router.get("/rounds")
async def list_review_rounds(
    submission_id: str = Query(..., alias="submissionId"),
    profile: dict = Depends(get_current_profile),
    client: Any = Depends(get_workflow_client),
):
    sid = coerce_row_id(submission_id, label="submissionId")
    rounds = ReviewRoundService(client).list_rounds(sid, profile=profile)
    return {"success": True, "data": rounds}


@router.post("/assign", status_code=201)
async def assign_reviewer(
    body: AssignReviewerRequest,
    profile: dict = Depends(_require_editor),
    client: Any = Depends(get_workflow_client),
):
    return ReviewAssignmentService(client).assign(
        coerce_row_id(body.submission_id, label="submissionId"),
        body.reviewer_id,
        editor_id=profile.get("id"),
        response_due_days=body.response_due_days,
        review_due_days=body.review_due_days,
    )


@router.patch("/{assignment_id}/respond")
async def respond_to_review(
    assignment_id: str,
    body: ReviewerResponseRequest = Body(...),
    profile: dict = Depends(get_current_profile),
    client: Any = Depends(get_workflow_client),
):
    """
    审稿人接受/拒绝邀请（只能回复一次，编辑可代为回复）。
    """
    updated = ReviewAssignmentService(client).respond(
        coerce_row_id(assignment_id, label="assignment id"),
        profile=profile,
        declined=body.declined,
        comments=body.comments,
    )
    return {"success": True, "data": updated}


@router.post("/{assignment_id}/submit")
async def submit_review(
    assignment_id: str,
    body: SubmitReviewRequest,
    profile: dict = Depends(get_current_profile),
    client: Any = Depends(get_workflow_client),
):
    return ReviewAssignmentService(client).submit_review(
        coerce_row_id(assignment_id, label="assignment id"),
        profile=profile,
        recommendation=body.recommendation,
        comments=body.comments,
        comments_for_editor=body.comments_for_editor,
        quality=body.quality,
    )
