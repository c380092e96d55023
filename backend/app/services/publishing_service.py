from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

from fastapi import HTTPException

from app.core.middleware import WorkflowError
from app.lib.api_client import supabase_admin
from app.models.submission import transform_from_db
from app.models.workflow import SubmissionStatus, WorkflowStage, normalize_stage, normalize_status
from app.services.audit_service import AuditService
from app.services.notification_service import NotificationService
from app.services.schema_capabilities import get_schema_capabilities
from app.services.workflow_common import first_row, load_submission, now_iso
from app.services.workflow_validators import INVALID_STAGE, SUBMISSION_DECLINED, SUBMISSION_PUBLISHED


class PublishingService:
    """
    排期与发布（稿件的最终门控）。

    中文注释:
    1. 发布前显性校验：已拒稿 -> 400，已发布 -> 409。
    2. 云端存在 publication_schedule 表时写排期表，否则 upsert publications。
    3. status 按探测到的编码写入（整数或 legacy 字符串）。
    """

    def __init__(
        self,
        client: Any = None,
        *,
        notifications: Optional[NotificationService] = None,
        audit: Optional[AuditService] = None,
    ) -> None:
        self.client = client if client is not None else supabase_admin
        self.notifications = notifications or NotificationService(self.client)
        self.audit = audit or AuditService(self.client)
        self.logger = logging.getLogger("journalflow.publishing")

    def _upsert_schedule(self, submission_id: Any, **fields: Any) -> None:
        row = {"submission_id": submission_id, "updated_at": now_iso(), **fields}
        self.client.table("publication_schedule").upsert(row, on_conflict="submission_id").execute()

    def _upsert_publication(self, submission_id: Any, **fields: Any) -> None:
        row = {"submission_id": submission_id, "updated_at": now_iso(), "is_current": True, **fields}
        self.client.table("publications").upsert(row, on_conflict="submission_id").execute()

    def publish(self, submission_id: Any, *, editor_id: Optional[str]) -> dict[str, Any]:
        submission = load_submission(self.client, submission_id)
        status = normalize_status(submission.get("status"))
        if status == SubmissionStatus.DECLINED:
            raise WorkflowError(400, "Cannot publish a declined submission", error_code=SUBMISSION_DECLINED)
        if status == SubmissionStatus.PUBLISHED:
            raise WorkflowError(409, "Submission is already published", error_code=SUBMISSION_PUBLISHED)

        caps = get_schema_capabilities(self.client)
        published_date = now_iso()
        status_value = caps.encode_status(SubmissionStatus.PUBLISHED)
        try:
            if caps.has_publication_schedule:
                self._upsert_schedule(submission.get("id"), published_date=published_date)
            else:
                self._upsert_publication(
                    submission.get("id"),
                    status=status_value,
                    date_published=published_date,
                )
        except Exception as e:
            self.logger.error("[Publishing] publication write failed: %s", e)
            raise HTTPException(status_code=500, detail="Failed to publish submission") from e

        payload = {
            "status": status_value,
            "date_status_modified": published_date,
            "date_last_activity": published_date,
            "updated_at": published_date,
        }
        try:
            resp = self.client.table("submissions").update(payload).eq("id", submission.get("id")).execute()
        except Exception as e:
            self.logger.error("[Publishing] submission status update failed: %s", e)
            raise HTTPException(status_code=500, detail="Failed to publish submission") from e
        updated = first_row(resp) or {**submission, **payload}

        self.audit.log_action(
            submission_id=submission.get("id"),
            user_id=editor_id,
            action="publish",
            old_value=int(status),
            new_value=int(SubmissionStatus.PUBLISHED),
            metadata={"publishedDate": published_date},
        )
        if submission.get("submitter_id"):
            self.notifications.create_notification(
                user_id=str(submission.get("submitter_id")),
                submission_id=submission.get("id"),
                type="published",
                title="Submission published",
                content=f"\"{submission.get('title') or ''}\" has been published.",
            )
        return {
            "success": True,
            "publishedDate": published_date,
            "submission": transform_from_db(updated),
        }

    def schedule(self, submission_id: Any, *, editor_id: Optional[str], scheduled_date: datetime) -> dict[str, Any]:
        submission = load_submission(self.client, submission_id)
        if normalize_stage(submission.get("stage_id")) != WorkflowStage.PRODUCTION:
            raise WorkflowError(400, "Must be in Production stage to schedule publication", error_code=INVALID_STAGE)
        status = normalize_status(submission.get("status"))
        if status == SubmissionStatus.DECLINED:
            raise WorkflowError(400, "Cannot schedule a declined submission", error_code=SUBMISSION_DECLINED)
        if status == SubmissionStatus.PUBLISHED:
            raise WorkflowError(400, "Submission is already published", error_code=SUBMISSION_PUBLISHED)
        if status != SubmissionStatus.QUEUED:
            raise HTTPException(status_code=400, detail="Only queued submissions can be scheduled")

        caps = get_schema_capabilities(self.client)
        scheduled_iso = scheduled_date.isoformat()
        status_value = caps.encode_status(SubmissionStatus.SCHEDULED)
        try:
            if caps.has_publication_schedule:
                self._upsert_schedule(submission.get("id"), scheduled_date=scheduled_iso)
            else:
                self._upsert_publication(submission.get("id"), status=status_value)
        except Exception as e:
            self.logger.error("[Publishing] schedule write failed: %s", e)
            raise HTTPException(status_code=500, detail="Failed to schedule publication") from e

        now = now_iso()
        payload = {
            "status": status_value,
            "date_status_modified": now,
            "date_last_activity": now,
            "updated_at": now,
        }
        try:
            resp = self.client.table("submissions").update(payload).eq("id", submission.get("id")).execute()
        except Exception as e:
            self.logger.error("[Publishing] submission status update failed: %s", e)
            raise HTTPException(status_code=500, detail="Failed to schedule publication") from e
        updated = first_row(resp) or {**submission, **payload}

        self.audit.log_action(
            submission_id=submission.get("id"),
            user_id=editor_id,
            action="schedule",
            old_value=int(status),
            new_value=int(SubmissionStatus.SCHEDULED),
            metadata={"scheduledDate": scheduled_iso},
        )
        return {
            "success": True,
            "scheduledDate": scheduled_iso,
            "submission": transform_from_db(updated),
        }
