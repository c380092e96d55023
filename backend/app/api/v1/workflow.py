from typing import Any, Optional

from fastapi import APIRouter, Depends, Query

from app.core.roles import require_editor
from app.lib.api_client import get_workflow_client
from app.models.workflow import workflow_catalog
from app.schemas.decision import EditorialDecisionRequest
from app.services.editorial_service import EditorialService
from app.services.workflow_common import coerce_row_id

router = APIRouter(prefix="/workflow", tags=["Workflow"])

_require_editor = require_editor()


@router.get("/stages")
async def list_stages():
    """阶段 / 状态 / 决策码表（公开）。"""
    return {"success": True, "data": workflow_catalog()}


@router.post("/decision")
async def make_decision(
    body: EditorialDecisionRequest,
    profile: dict = Depends(_require_editor),
    client: Any = Depends(get_workflow_client),
):
    """
    编辑决定统一入口。

    中文注释:
    - 送审（8 / send_to_review）是幂等的：已在审稿中时返回 existing=true。
    - 校验失败返回 400 + errorCode（INVALID_STAGE / SUBMISSION_DECLINED / ...）。
    """
    return EditorialService(client).apply_decision(
        coerce_row_id(body.submission_id, label="submissionId"),
        body.decision,
        editor_id=profile.get("id"),
        comments=body.comments,
    )


@router.get("/decisions")
async def list_decisions(
    submission_id: Optional[str] = Query(None, alias="submissionId"),
    profile: dict = Depends(_require_editor),
    client: Any = Depends(get_workflow_client),
):
    sid = coerce_row_id(submission_id, label="submissionId") if submission_id else None
    return {"success": True, "data": EditorialService(client).list_decisions(sid)}
