from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from fastapi import HTTPException

from app.core.middleware import WorkflowError
from app.lib.api_client import supabase_admin
from app.models.decision import EditorialDecisionRecord
from app.models.submission import transform_from_db
from app.models.workflow import (
    DECISION_LABELS,
    EditorDecision,
    SubmissionStatus,
    WorkflowStage,
    normalize_stage,
    normalize_status,
    parse_decision,
)
from app.services.audit_service import AuditService
from app.services.notification_service import NotificationService
from app.services.review_round_service import ReviewRoundService
from app.services.schema_capabilities import SchemaCapabilities, get_schema_capabilities
from app.services.workflow_common import first_row, load_latest_round, load_submission, now_iso, rows_of
from app.services.workflow_validators import (
    UNKNOWN_DECISION,
    validate_editorial_decision,
    validate_review_round_required,
)

logger = logging.getLogger("journalflow.editorial")

# 审稿阶段做这些决定时必须已有审稿轮次
_ROUND_REQUIRED = {
    EditorDecision.ACCEPT,
    EditorDecision.DECLINE,
    EditorDecision.INITIAL_DECLINE,
    EditorDecision.PENDING_REVISIONS,
}


@dataclass(frozen=True)
class StageTransition:
    stage_id: WorkflowStage
    status: SubmissionStatus
    revisions_required: bool = False


class EditorialService:
    """
    编辑决定执行器：校验通过后写库（稿件 -> 决定记录 -> 审计 -> 通知）。

    中文注释:
    - 校验全部委托给 workflow_validators，本类只负责"怎么写"。
    - 送审 / 新一轮审稿 涉及 review_rounds，交给 ReviewRoundService。
    - 决定记录、审计、通知都是 best-effort，失败不影响稿件状态。
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

    @staticmethod
    def _transition_for(decision: EditorDecision, current_stage: WorkflowStage | None) -> StageTransition:
        stage = current_stage or WorkflowStage.SUBMISSION
        if decision == EditorDecision.ACCEPT:
            return StageTransition(WorkflowStage.EDITING, SubmissionStatus.QUEUED)
        if decision == EditorDecision.SEND_TO_PRODUCTION:
            return StageTransition(WorkflowStage.PRODUCTION, SubmissionStatus.QUEUED)
        if decision == EditorDecision.PENDING_REVISIONS:
            return StageTransition(stage, SubmissionStatus.QUEUED, revisions_required=True)
        # DECLINE / INITIAL_DECLINE：阶段不变
        return StageTransition(stage, SubmissionStatus.DECLINED)

    def _build_update(self, transition: StageTransition, caps: SchemaCapabilities, now: str) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "stage_id": int(transition.stage_id),
            "status": caps.encode_status(
                transition.status,
                transition.stage_id,
                revisions_required=transition.revisions_required,
            ),
            "date_last_activity": now,
            "updated_at": now,
        }
        if transition.status == SubmissionStatus.DECLINED:
            payload["date_status_modified"] = now
        return payload

    def apply_decision(
        self,
        submission_id: Any,
        decision: Any,
        *,
        editor_id: Optional[str],
        comments: Optional[str] = None,
    ) -> dict[str, Any]:
        code = parse_decision(decision)
        if code is None:
            raise WorkflowError(400, f"Unknown decision: {decision}", error_code=UNKNOWN_DECISION)
        if code == EditorDecision.EXTERNAL_REVIEW:
            return self.rounds.send_to_review(submission_id, editor_id=editor_id, comments=comments)
        if code == EditorDecision.NEW_ROUND:
            return self.rounds.start_new_round(submission_id, editor_id=editor_id, comments=comments)

        submission = load_submission(self.client, submission_id)
        stage = normalize_stage(submission.get("stage_id"))
        status = normalize_status(submission.get("status"))

        result = validate_editorial_decision(code, stage, status)
        if not result.valid:
            raise WorkflowError(400, result.error or "Invalid decision", error_code=result.error_code)

        latest_round: Optional[dict[str, Any]] = None
        if code in _ROUND_REQUIRED:
            latest_round = load_latest_round(self.client, submission_id)
            check = validate_review_round_required(stage, latest_round is not None)
            if not check.valid:
                raise WorkflowError(400, check.error or "Missing review round", error_code=check.error_code)

        transition = self._transition_for(code, stage)
        now = now_iso()
        payload = self._build_update(transition, get_schema_capabilities(self.client), now)
        try:
            resp = self.client.table("submissions").update(payload).eq("id", submission_id).execute()
        except Exception as e:
            logger.error("[Editorial] submission update failed: %s", e)
            raise HTTPException(status_code=500, detail="Failed to apply decision") from e
        updated = first_row(resp) or {**submission, **payload}

        self.audit.record_decision(
            submission_id=submission.get("id"),
            editor_id=editor_id,
            decision=int(code),
            stage_id=stage,
            review_round_id=(latest_round or {}).get("id"),
            round=(latest_round or {}).get("round"),
            comments=comments,
        )
        self.audit.log_action(
            submission_id=submission.get("id"),
            user_id=editor_id,
            action=f"decision_{code.name.lower()}",
            old_value=f"{int(stage) if stage else None}/{int(status)}",
            new_value=f"{int(transition.stage_id)}/{int(transition.status)}",
            metadata={"decision": int(code), "comments": comments},
        )
        self._notify_submitter(submission, code, comments)

        out: dict[str, Any] = {
            "success": True,
            "decision": int(code),
            "submission": transform_from_db(updated),
        }
        if transition.revisions_required:
            out["revisionsRequired"] = True
        return out

    def _notify_submitter(self, submission: dict[str, Any], code: EditorDecision, comments: Optional[str]) -> None:
        submitter_id = submission.get("submitter_id")
        if not submitter_id:
            return
        label = DECISION_LABELS.get(code, code.name.title())
        content = f"Editorial decision on \"{submission.get('title') or ''}\": {label}."
        if comments:
            content = f"{content}\n\n{comments}"
        self.notifications.create_notification(
            user_id=str(submitter_id),
            submission_id=submission.get("id"),
            type="decision",
            title=f"Editorial decision: {label}",
            content=content,
        )

    def list_decisions(self, submission_id: Any = None) -> list[dict[str, Any]]:
        """编辑决定历史（date_decided 倒序）；可按稿件过滤。"""
        query = self.client.table("editorial_decisions").select("*")
        if submission_id is not None:
            load_submission(self.client, submission_id)
            query = query.eq("submission_id", submission_id)
        try:
            resp = query.order("date_decided", desc=True).order("id", desc=True).execute()
        except Exception as e:
            logger.error("[Editorial] list decisions failed: %s", e)
            raise HTTPException(status_code=500, detail="Failed to load editorial decisions") from e
        return [EditorialDecisionRecord.model_validate(row).to_api() for row in rows_of(resp)]
