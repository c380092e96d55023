from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import HTTPException

from app.core.config import WorkflowConfig
from app.core.middleware import WorkflowError
from app.core.roles import is_editor
from app.lib.api_client import supabase_admin
from app.models.review import ReviewRound
from app.models.submission import transform_from_db
from app.models.workflow import (
    EditorDecision,
    ReviewRoundStatus,
    SubmissionStatus,
    WorkflowStage,
    is_round_open,
    is_terminal_status,
    normalize_stage,
    normalize_status,
)
from app.services.audit_service import AuditService
from app.services.notification_service import NotificationService
from app.services.schema_capabilities import get_schema_capabilities
from app.services.workflow_common import (
    first_row,
    load_latest_round,
    load_submission,
    now_iso,
    rows_of,
)
from app.services.workflow_validators import (
    MISSING_REVIEW_ROUND,
    validate_new_round,
    validate_send_to_review,
)

logger = logging.getLogger("journalflow.review_rounds")

REVIEW_ROUND_OPEN = "REVIEW_ROUND_OPEN"

# 作者视角下隐藏的审稿字段（双盲）
_AUTHOR_HIDDEN_FIELDS = ("reviewer_id", "comments_for_editor", "quality")


class ReviewRoundService:
    """
    审稿轮次：送审（幂等）、开启新一轮、按权限列出轮次。

    中文注释:
    - 同一稿件同一时刻最多一个未完成轮次；已存在时直接复用，绝不重复创建。
    - review_rounds 只增不删。
    - WORKFLOW_OPEN_ROUND_RPC 配置后，"新建轮次 + 更新稿件阶段" 在一个 Postgres 函数内原子完成。
    """

    def __init__(
        self,
        client: Any = None,
        *,
        notifications: Optional[NotificationService] = None,
        audit: Optional[AuditService] = None,
        config: Optional[WorkflowConfig] = None,
    ) -> None:
        self.client = client if client is not None else supabase_admin
        self.notifications = notifications or NotificationService(self.client)
        self.audit = audit or AuditService(self.client)
        self.config = config or WorkflowConfig.from_env()

    def send_to_review(
        self,
        submission_id: Any,
        *,
        editor_id: Optional[str],
        round: Optional[int] = None,
        comments: Optional[str] = None,
    ) -> dict[str, Any]:
        submission = load_submission(self.client, submission_id)
        stage = submission.get("stage_id")
        status = normalize_status(submission.get("status"))
        latest = load_latest_round(self.client, submission_id)

        # 幂等：已在审稿阶段且有进行中的轮次时直接返回，不做任何写入
        if (
            latest is not None
            and is_round_open(latest)
            and normalize_stage(stage) == WorkflowStage.EXTERNAL_REVIEW
            and not is_terminal_status(status)
        ):
            return {"success": True, "existing": True, "reviewRound": transform_from_db(latest)}

        result = validate_send_to_review(stage, status)
        if not result.valid:
            raise WorkflowError(400, result.error or "Invalid decision", error_code=result.error_code)

        if latest is not None and is_round_open(latest):
            # 阶段被回退过但轮次仍开着：复用该轮次，只把稿件推进到审稿阶段
            round_row = latest
            self._move_submission_to_review(submission_id, int(latest.get("round") or 1))
        else:
            last_no = int(latest.get("round") or 0) if latest else 0
            next_no = last_no + 1
            if round is not None and int(round) > last_no:
                next_no = int(round)
            round_row = self._open_round(submission_id, next_no)

        self._after_round_opened(
            submission,
            round_row,
            decision=EditorDecision.EXTERNAL_REVIEW,
            editor_id=editor_id,
            comments=comments,
        )
        return {"success": True, "existing": False, "reviewRound": transform_from_db(round_row)}

    def start_new_round(
        self,
        submission_id: Any,
        *,
        editor_id: Optional[str],
        comments: Optional[str] = None,
    ) -> dict[str, Any]:
        """上一轮审稿完成后开启第 N+1 轮。"""
        submission = load_submission(self.client, submission_id)
        result = validate_new_round(submission.get("stage_id"), submission.get("status"))
        if not result.valid:
            raise WorkflowError(400, result.error or "Invalid decision", error_code=result.error_code)

        latest = load_latest_round(self.client, submission_id)
        if latest is None:
            raise WorkflowError(
                400,
                "Submission in review stage must have a review round",
                error_code=MISSING_REVIEW_ROUND,
            )
        if is_round_open(latest):
            raise WorkflowError(
                400,
                f"Review round {latest.get('round')} is not completed yet",
                error_code=REVIEW_ROUND_OPEN,
            )

        round_row = self._open_round(submission_id, int(latest.get("round") or 0) + 1)
        self._after_round_opened(
            submission,
            round_row,
            decision=EditorDecision.NEW_ROUND,
            editor_id=editor_id,
            comments=comments,
        )
        return {"success": True, "existing": False, "reviewRound": transform_from_db(round_row)}

    def open_resubmission_round(self, submission_id: Any) -> dict[str, Any]:
        """
        作者提交修改稿后开启下一轮审稿，稿件回到审稿阶段。

        中文注释: 上一轮若仍未完成（编辑在轮次中途要求修改），先把它关掉，保证同时最多一个进行中的轮次。
        """
        latest = load_latest_round(self.client, submission_id)
        if latest is not None and is_round_open(latest):
            self._close_round(latest.get("id"))
        last_no = int(latest.get("round") or 0) if latest else 0
        return self._open_round(submission_id, last_no + 1)

    def _close_round(self, review_round_id: Any) -> None:
        try:
            (
                self.client.table("review_rounds")
                .update({"status": int(ReviewRoundStatus.REVIEWS_COMPLETED), "date_modified": now_iso()})
                .eq("id", review_round_id)
                .execute()
            )
        except Exception as e:
            logger.error("[ReviewRounds] close review round failed: %s", e)
            raise HTTPException(status_code=500, detail="Failed to close review round") from e

    def _open_round(self, submission_id: Any, round_no: int) -> dict[str, Any]:
        caps = get_schema_capabilities(self.client)
        status_value = caps.encode_status(SubmissionStatus.QUEUED, WorkflowStage.EXTERNAL_REVIEW)

        if self.config.open_round_rpc:
            try:
                resp = self.client.rpc(
                    self.config.open_round_rpc,
                    {
                        "p_submission_id": submission_id,
                        "p_round": round_no,
                        "p_stage_id": int(WorkflowStage.EXTERNAL_REVIEW),
                        "p_round_status": int(ReviewRoundStatus.PENDING_REVIEWERS),
                        "p_submission_status": status_value,
                        "p_set_current_round": caps.has_current_round,
                    },
                ).execute()
            except Exception as e:
                logger.error("[ReviewRounds] open round rpc failed: %s", e)
                raise HTTPException(status_code=500, detail="Failed to create review round") from e
            row = first_row(resp)
            if not row:
                raise HTTPException(status_code=500, detail="Failed to create review round")
            return row

        now = now_iso()
        try:
            resp = (
                self.client.table("review_rounds")
                .insert(
                    {
                        "submission_id": submission_id,
                        "stage_id": int(WorkflowStage.EXTERNAL_REVIEW),
                        "round": round_no,
                        "status": int(ReviewRoundStatus.PENDING_REVIEWERS),
                        "date_created": now,
                        "date_modified": now,
                    }
                )
                .execute()
            )
        except Exception as e:
            logger.error("[ReviewRounds] insert review round failed: %s", e)
            raise HTTPException(status_code=500, detail="Failed to create review round") from e
        row = first_row(resp)
        if not row:
            raise HTTPException(status_code=500, detail="Failed to create review round")

        self._move_submission_to_review(submission_id, round_no)
        return row

    def _move_submission_to_review(self, submission_id: Any, round_no: int) -> None:
        caps = get_schema_capabilities(self.client)
        now = now_iso()
        payload: dict[str, Any] = {
            "stage_id": int(WorkflowStage.EXTERNAL_REVIEW),
            "status": caps.encode_status(SubmissionStatus.QUEUED, WorkflowStage.EXTERNAL_REVIEW),
            "date_last_activity": now,
            "updated_at": now,
        }
        if caps.has_current_round:
            payload["current_round"] = round_no
        try:
            self.client.table("submissions").update(payload).eq("id", submission_id).execute()
        except Exception as e:
            # 中文注释: 轮次已写入但稿件更新失败；轮次不回滚，下次送审会复用该轮次
            logger.error("[ReviewRounds] submission stage update failed: %s", e)
            raise HTTPException(status_code=500, detail="Failed to update submission") from e

    def _after_round_opened(
        self,
        submission: dict[str, Any],
        round_row: dict[str, Any],
        *,
        decision: EditorDecision,
        editor_id: Optional[str],
        comments: Optional[str],
    ) -> None:
        submission_id = submission.get("id")
        round_no = round_row.get("round")
        self.audit.record_decision(
            submission_id=submission_id,
            editor_id=editor_id,
            decision=int(decision),
            stage_id=normalize_stage(submission.get("stage_id")),
            review_round_id=round_row.get("id"),
            round=round_no,
            comments=comments,
        )
        self.audit.log_action(
            submission_id=submission_id,
            user_id=editor_id,
            action="send_to_review" if decision == EditorDecision.EXTERNAL_REVIEW else "new_review_round",
            old_value=submission.get("stage_id"),
            new_value=int(WorkflowStage.EXTERNAL_REVIEW),
            metadata={"round": round_no, "reviewRoundId": round_row.get("id")},
        )
        submitter_id = submission.get("submitter_id")
        if submitter_id:
            self.notifications.create_notification(
                user_id=str(submitter_id),
                submission_id=submission_id,
                type="submission_status",
                title="Submission sent to review",
                content=f"Your submission \"{submission.get('title') or ''}\" entered review round {round_no}.",
            )

    def list_rounds(self, submission_id: Any, *, profile: dict[str, Any]) -> list[dict[str, Any]]:
        """
        列出稿件全部审稿轮次（round 倒序），每轮附带审稿邀请。

        可见性:
        - 编辑/管理员：全部字段
        - 审稿人：只看到自己的邀请
        - 作者：看到邀请但隐藏审稿人身份与给编辑的保密意见
        """
        submission = load_submission(self.client, submission_id)
        user_id = str(profile.get("id") or "")
        editor = is_editor(profile)
        is_submitter = bool(user_id) and str(submission.get("submitter_id") or "") == user_id

        assignments = rows_of(
            self.client.table("review_assignments")
            .select("*")
            .eq("submission_id", submission_id)
            .execute()
        )
        is_reviewer = any(str(a.get("reviewer_id") or "") == user_id for a in assignments)

        if not (editor or is_submitter or is_reviewer):
            raise HTTPException(status_code=403, detail="Forbidden")

        rounds = rows_of(
            self.client.table("review_rounds")
            .select("*")
            .eq("submission_id", submission_id)
            .order("round", desc=True)
            .execute()
        )

        by_round: dict[str, list[dict[str, Any]]] = {}
        for a in assignments:
            if not editor:
                if is_reviewer and not is_submitter and str(a.get("reviewer_id") or "") != user_id:
                    continue
                if is_submitter:
                    a = {k: v for k, v in a.items() if k not in _AUTHOR_HIDDEN_FIELDS}
            by_round.setdefault(str(a.get("review_round_id")), []).append(a)

        return [
            ReviewRound.from_row(r, by_round.get(str(r.get("id")), [])).to_api()
            for r in rounds
        ]
