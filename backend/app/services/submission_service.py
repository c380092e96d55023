from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import HTTPException

from app.core.middleware import WorkflowError
from app.core.roles import is_editor, is_privileged
from app.lib.api_client import supabase_admin
from app.models.decision import RESUBMITTED_DECISION, WITHDRAWN_DECISION
from app.models.submission import Submission, transform_from_db
from app.models.workflow import (
    SubmissionStatus,
    WorkflowStage,
    normalize_stage,
    normalize_status,
    stage_display_label,
)
from app.services.audit_service import AuditService
from app.services.notification_service import NotificationService
from app.services.review_round_service import ReviewRoundService
from app.services.schema_capabilities import get_schema_capabilities
from app.services.workflow_common import first_row, load_submission, now_iso, revisions_requested
from app.services.workflow_validators import SUBMISSION_DECLINED, SUBMISSION_PUBLISHED

logger = logging.getLogger("journalflow.submissions")

REVISIONS_NOT_REQUESTED = "REVISIONS_NOT_REQUESTED"


class SubmissionService:
    """
    稿件生命周期：作者投稿、查看、撤稿、提交修改稿。

    中文注释:
    - 投稿后 status=Queued、stage=Submission；稿件从不物理删除。
    - 撤稿 = status 置为 Declined，并写一条 decision="withdrawn" 的编辑决定记录。
    - 编辑要求修改后，作者提交修改稿会开启下一轮审稿，并写一条 decision="resubmitted" 的记录。
    """

    def __init__(
        self,
        client: Any = None,
        *,
        notifications: Optional[NotificationService] = None,
        audit: Optional[AuditService] = None,
        rounds: Optional[ReviewRoundService] = None,
    ) -> None:
        self.client = client if client is not None else supabase_admin
        self.notifications = notifications or NotificationService(self.client)
        self.audit = audit or AuditService(self.client)
        self.rounds = rounds or ReviewRoundService(
            self.client, notifications=self.notifications, audit=self.audit
        )

    def create_submission(
        self,
        *,
        submitter_id: str,
        title: str,
        abstract: Optional[str] = None,
        journal_id: Any = None,
    ) -> dict[str, Any]:
        caps = get_schema_capabilities(self.client)
        now = now_iso()
        row: dict[str, Any] = {
            "submitter_id": submitter_id,
            "title": title.strip(),
            "abstract": abstract,
            "stage_id": int(WorkflowStage.SUBMISSION),
            "status": caps.encode_status(SubmissionStatus.QUEUED, WorkflowStage.SUBMISSION),
            "date_submitted": now,
            "date_last_activity": now,
            "date_status_modified": now,
            "updated_at": now,
        }
        if journal_id is not None:
            row["journal_id"] = journal_id
        try:
            created = first_row(self.client.table("submissions").insert(row).execute())
        except Exception as e:
            logger.error("[Submissions] insert failed: %s", e)
            raise HTTPException(status_code=500, detail="Failed to create submission") from e
        if not created:
            raise HTTPException(status_code=500, detail="Failed to create submission")

        # 初始版本（version 1，current），失败不阻断投稿
        try:
            self.client.table("publications").insert(
                {
                    "submission_id": created.get("id"),
                    "version": 1,
                    "status": caps.encode_status(SubmissionStatus.QUEUED, WorkflowStage.SUBMISSION),
                    "is_current": True,
                    "updated_at": now,
                }
            ).execute()
        except Exception as e:
            logger.warning("[Submissions] initial publication insert failed (ignored): %s", e)

        self.audit.log_action(
            submission_id=created.get("id"),
            user_id=submitter_id,
            action="submission_created",
            new_value=int(SubmissionStatus.QUEUED),
        )
        self.notifications.notify_editors(
            submission_id=created.get("id"),
            type="submission",
            title="New submission",
            content=f"A new submission \"{created.get('title') or title}\" is waiting for review.",
            exclude=submitter_id,
        )
        return transform_from_db(created)

    def get(self, submission_id: Any, *, profile: dict[str, Any]) -> dict[str, Any]:
        submission = load_submission(self.client, submission_id)
        user_id = str(profile.get("id") or "")
        if str(submission.get("submitter_id") or "") != user_id and not is_editor(profile):
            raise HTTPException(status_code=403, detail="Forbidden")
        model = Submission.from_row(submission)
        out = dict(submission)
        # 中文注释: 出口处统一为整数状态（兼容 legacy 字符串存量数据）
        out["status"] = int(model.status)
        out["stage_id"] = int(model.stage_id)
        out["status_label"] = stage_display_label(model.status, model.stage_id)
        out["revisions_required"] = revisions_requested(self.client, submission)
        return transform_from_db(out)

    def withdraw(
        self,
        submission_id: Any,
        *,
        profile: Optional[dict[str, Any]],
        reason: Optional[str] = None,
    ) -> dict[str, Any]:
        if not profile or not profile.get("id"):
            raise HTTPException(status_code=401, detail="Authentication required")
        user_id = str(profile.get("id"))

        submission = load_submission(self.client, submission_id)
        if str(submission.get("submitter_id") or "") != user_id and not is_privileged(profile):
            raise HTTPException(status_code=403, detail="Only the submitter or an editor can withdraw")

        status = normalize_status(submission.get("status"))
        if status == SubmissionStatus.DECLINED:
            raise WorkflowError(400, "Submission is already declined or withdrawn", error_code=SUBMISSION_DECLINED)
        if status == SubmissionStatus.PUBLISHED:
            raise WorkflowError(400, "Cannot withdraw a published submission", error_code=SUBMISSION_PUBLISHED)

        caps = get_schema_capabilities(self.client)
        now = now_iso()
        payload = {
            "status": caps.encode_status(SubmissionStatus.DECLINED, submission.get("stage_id")),
            "date_status_modified": now,
            "date_last_activity": now,
            "updated_at": now,
        }
        try:
            resp = self.client.table("submissions").update(payload).eq("id", submission.get("id")).execute()
        except Exception as e:
            logger.error("[Submissions] withdraw update failed: %s", e)
            raise HTTPException(status_code=500, detail="Failed to withdraw submission") from e
        updated = first_row(resp) or {**submission, **payload}

        self.audit.record_decision(
            submission_id=submission.get("id"),
            editor_id=user_id,
            decision=WITHDRAWN_DECISION,
            stage_id=normalize_stage(submission.get("stage_id")),
            comments=reason,
        )
        self.audit.log_action(
            submission_id=submission.get("id"),
            user_id=user_id,
            action="withdraw",
            old_value=int(status),
            new_value=int(SubmissionStatus.DECLINED),
            metadata={"reason": reason},
        )
        self.notifications.notify_editors(
            submission_id=submission.get("id"),
            type="submission_withdrawn",
            title="Submission withdrawn",
            content=f"\"{submission.get('title') or ''}\" was withdrawn."
            + (f" Reason: {reason}" if reason else ""),
            exclude=user_id,
        )
        return {"success": True, "submission": transform_from_db(updated)}

    def resubmit(
        self,
        submission_id: Any,
        *,
        profile: Optional[dict[str, Any]],
        comments: Optional[str] = None,
    ) -> dict[str, Any]:
        if not profile or not profile.get("id"):
            raise HTTPException(status_code=401, detail="Authentication required")
        user_id = str(profile.get("id"))

        submission = load_submission(self.client, submission_id)
        if str(submission.get("submitter_id") or "") != user_id:
            raise HTTPException(status_code=403, detail="Only the submitter can resubmit revisions")

        status = normalize_status(submission.get("status"))
        if status == SubmissionStatus.DECLINED:
            raise WorkflowError(400, "Cannot resubmit a declined submission", error_code=SUBMISSION_DECLINED)
        if status == SubmissionStatus.PUBLISHED:
            raise WorkflowError(400, "Cannot resubmit a published submission", error_code=SUBMISSION_PUBLISHED)
        if not revisions_requested(self.client, submission):
            raise WorkflowError(
                400,
                "Revisions have not been requested for this submission",
                error_code=REVISIONS_NOT_REQUESTED,
            )

        round_row = self.rounds.open_resubmission_round(submission.get("id"))
        round_no = round_row.get("round")

        self.audit.record_decision(
            submission_id=submission.get("id"),
            editor_id=user_id,
            decision=RESUBMITTED_DECISION,
            stage_id=WorkflowStage.EXTERNAL_REVIEW,
            review_round_id=round_row.get("id"),
            round=round_no,
            comments=comments,
        )
        self.audit.log_action(
            submission_id=submission.get("id"),
            user_id=user_id,
            action="resubmit",
            old_value=submission.get("status"),
            new_value=int(SubmissionStatus.QUEUED),
            metadata={"round": round_no, "reviewRoundId": round_row.get("id")},
        )
        self.notifications.notify_editors(
            submission_id=submission.get("id"),
            type="submission_status",
            title="Revisions resubmitted",
            content=f"\"{submission.get('title') or ''}\" was resubmitted and entered review round {round_no}."
            + (f"\n\n{comments}" if comments else ""),
            exclude=user_id,
        )

        updated = load_submission(self.client, submission.get("id"))
        return {
            "success": True,
            "submission": transform_from_db(updated),
            "reviewRound": transform_from_db(round_row),
        }
