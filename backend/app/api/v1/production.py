from typing import Any

from fastapi import APIRouter, Depends

from app.core.roles import require_editor
from app.lib.api_client import get_workflow_client
from app.schemas.decision import ScheduleRequest
from app.services.publishing_service import PublishingService
from app.services.workflow_common import coerce_row_id

router = APIRouter(prefix="/production", tags=["Production"])

_require_editor = require_editor()


@router.post("/{submission_id}/publish")
async def publish_submission(
    submission_id: str,
    profile: dict = Depends(_require_editor),
    client: Any = Depends(get_workflow_client),
):
    return PublishingService(client).publish(
        coerce_row_id(submission_id, label="submission id"),
        editor_id=profile.get("id"),
    )


@router.post("/{submission_id}/schedule")
async def schedule_submission(
    submission_id: str,
    body: ScheduleRequest,
    profile: dict = Depends(_require_editor),
    client: Any = Depends(get_workflow_client),
):
    return PublishingService(client).schedule(
        coerce_row_id(submission_id, label="submission id"),
        editor_id=profile.get("id"),
        scheduled_date=body.scheduled_date,
    )
