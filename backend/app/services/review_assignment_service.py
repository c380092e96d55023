from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from fastapi import HTTPException

from app.core.config import WorkflowConfig
from app.core.middleware import WorkflowError
from app.core.roles import is_editor, parse_roles
from app.lib.api_client import supabase_admin
from app.models.submission import transform_from_db
from app.models.workflow import (
    ReviewAssignmentStatus,
    ReviewRecommendation,
    ReviewRoundStatus,
    SubmissionStatus,
    WorkflowStage,
    is_round_open,
    normalize_stage,
    normalize_status,
)
from app.services.audit_service import AuditService
from app.services.notification_service import NotificationService
from app.services.review_round_service import ReviewRoundService
from app.services.workflow_common import (
    first_row,
    load_latest_round,
    load_submission,
    now_iso,
    rows_of,
)
from app.services.workflow_validators import (
    MISSING_REVIEW_ROUND,
    SUBMISSION_DECLINED,
    SUBMISSION_PUBLISHED,
)

logger = logging.getLogger("journalflow.review_assignments")


def _is_live(assignment: dict[str, Any]) -> bool:
    """未取消且未拒绝的审稿邀请才参与"本轮是否完成"的判断。"""
    if assignment.get("cancelled") or assignment.get("declined"):
        return False
    return assignment.get("status") not in {
        int(ReviewAssignmentStatus.CANCELLED),
        int(ReviewAssignmentStatus.DECLINED),
    }


def _is_complete(assignment: dict[str, Any]) -> bool:
    return bool(assignment.get("date_completed")) or assignment.get("status") == int(
        ReviewAssignmentStatus.COMPLETE
    )


class ReviewAssignmentService:
    """
    审稿邀请：编辑指派、审稿人接受/拒绝、提交审稿意见。

    中文注释:
    - 同一轮次同一审稿人最多一条未取消的邀请（插入前查重，重复返回 409）。
    - 审稿人只能回复一次（date_confirmed 或 declined 已设置即视为已回复）。
    - 本轮所有有效邀请都完成后，轮次自动进入 Reviews Completed。
    """

    def __init__(
        self,
        client: Any = None,
        *,
        notifications: Optional[NotificationService] = None,
        audit: Optional[AuditService] = None,
        rounds: Optional[ReviewRoundService] = None,
        config: Optional[WorkflowConfig] = None,
    ) -> None:
        self.client = client if client is not None else supabase_admin
        self.notifications = notifications or NotificationService(self.client)
        self.audit = audit or AuditService(self.client)
        self.config = config or WorkflowConfig.from_env()
        self.rounds = rounds or ReviewRoundService(
            self.client, notifications=self.notifications, audit=self.audit, config=self.config
        )

    # ---------- loaders ----------

    def _load_assignment(self, assignment_id: Any) -> dict[str, Any]:
        try:
            resp = (
                self.client.table("review_assignments")
                .select("*")
                .eq("id", assignment_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            raise HTTPException(status_code=404, detail="Review assignment not found") from e
        row = first_row(resp)
        if not row:
            raise HTTPException(status_code=404, detail="Review assignment not found")
        return row

    def _load_reviewer_profile(self, reviewer_id: str) -> dict[str, Any]:
        resp = (
            self.client.table("user_profiles")
            .select("id, email, roles")
            .eq("id", reviewer_id)
            .limit(1)
            .execute()
        )
        row = first_row(resp)
        if not row:
            raise HTTPException(status_code=404, detail="Reviewer not found")
        return row

    def _update_assignment(self, assignment_id: Any, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            resp = (
                self.client.table("review_assignments")
                .update(payload)
                .eq("id", assignment_id)
                .execute()
            )
        except Exception as e:
            logger.error("[ReviewAssignments] update failed: %s", e)
            raise HTTPException(status_code=500, detail="Failed to update review assignment") from e
        row = first_row(resp)
        if not row:
            raise HTTPException(status_code=404, detail="Review assignment not found")
        return row

    def _set_round_status(self, review_round_id: Any, status: ReviewRoundStatus) -> None:
        if review_round_id is None:
            return
        try:
            (
                self.client.table("review_rounds")
                .update({"status": int(status), "date_modified": now_iso()})
                .eq("id", review_round_id)
                .execute()
            )
        except Exception as e:
            logger.warning("[ReviewAssignments] review round status update failed (ignored): %s", e)

    def _round_assignments(self, review_round_id: Any) -> list[dict[str, Any]]:
        return rows_of(
            self.client.table("review_assignments")
            .select("*")
            .eq("review_round_id", review_round_id)
            .execute()
        )

    def _complete_round_if_resolved(self, review_round_id: Any, changed: dict[str, Any]) -> bool:
        """
        本轮所有有效邀请都已完成时，把轮次推进到 Reviews Completed。

        中文注释:
        - 提交审稿意见、拒绝邀请都会调用；拒绝也算"已处理"。
        - 没有任何有效邀请（全部拒绝/取消）时轮次保持打开，等待编辑补充指派。
        """
        if review_round_id is None:
            return False
        live = [
            changed if str(a.get("id")) == str(changed.get("id")) else a
            for a in self._round_assignments(review_round_id)
        ]
        live = [a for a in live if _is_live(a)]
        if not live or not all(_is_complete(a) for a in live):
            return False
        self._set_round_status(review_round_id, ReviewRoundStatus.REVIEWS_COMPLETED)
        logger.info("[ReviewAssignments] review round %s completed", review_round_id)
        return True

    # ---------- operations ----------

    def _resolve_round(self, submission: dict[str, Any], editor_id: Optional[str]) -> dict[str, Any]:
        submission_id = submission.get("id")
        latest = load_latest_round(self.client, submission_id)
        if latest is not None and is_round_open(latest):
            return latest
        if normalize_stage(submission.get("stage_id")) == WorkflowStage.EXTERNAL_REVIEW:
            raise WorkflowError(
                400,
                "No open review round; start a new round before assigning reviewers",
                error_code=MISSING_REVIEW_ROUND,
            )
        # 仍在投稿阶段：先送审（创建第一轮），其他阶段会被送审校验拒绝
        opened = self.rounds.send_to_review(submission_id, editor_id=editor_id)
        round_row = load_latest_round(self.client, submission_id)
        if round_row is None:
            raise HTTPException(status_code=500, detail="Failed to create review round")
        logger.info(
            "[ReviewAssignments] opened review round %s for submission %s",
            (opened.get("reviewRound") or {}).get("round"),
            submission_id,
        )
        return round_row

    def assign(
        self,
        submission_id: Any,
        reviewer_id: str,
        *,
        editor_id: Optional[str],
        response_due_days: Optional[int] = None,
        review_due_days: Optional[int] = None,
    ) -> dict[str, Any]:
        submission = load_submission(self.client, submission_id)
        status = normalize_status(submission.get("status"))
        if status == SubmissionStatus.DECLINED:
            raise WorkflowError(400, "Cannot assign reviewers to a declined submission", error_code=SUBMISSION_DECLINED)
        if status == SubmissionStatus.PUBLISHED:
            raise WorkflowError(400, "Cannot assign reviewers to a published submission", error_code=SUBMISSION_PUBLISHED)

        reviewer = self._load_reviewer_profile(reviewer_id)
        if "reviewer" not in parse_roles(reviewer):
            raise HTTPException(status_code=400, detail="User does not have the reviewer role")
        if str(submission.get("submitter_id") or "") == str(reviewer_id):
            raise HTTPException(status_code=400, detail="Authors cannot review their own submission")

        round_row = self._resolve_round(submission, editor_id)
        round_id = round_row.get("id")

        existing = rows_of(
            self.client.table("review_assignments")
            .select("id, status, cancelled, declined")
            .eq("review_round_id", round_id)
            .eq("reviewer_id", reviewer_id)
            .execute()
        )
        if any(not a.get("cancelled") and a.get("status") != int(ReviewAssignmentStatus.CANCELLED) for a in existing):
            raise HTTPException(status_code=409, detail="Reviewer is already assigned to this review round")

        now = datetime.now(timezone.utc)
        response_days = response_due_days or self.config.response_due_days
        review_days = review_due_days or self.config.review_due_days
        row = {
            "submission_id": submission.get("id"),
            "reviewer_id": reviewer_id,
            "review_round_id": round_id,
            "stage_id": int(WorkflowStage.EXTERNAL_REVIEW),
            "status": int(ReviewAssignmentStatus.AWAITING_RESPONSE),
            "declined": False,
            "cancelled": False,
            "date_assigned": now.isoformat(),
            "date_notified": now.isoformat(),
            "date_response_due": (now + timedelta(days=response_days)).isoformat(),
            "date_due": (now + timedelta(days=review_days)).isoformat(),
            "last_modified": now.isoformat(),
        }
        try:
            created = first_row(self.client.table("review_assignments").insert(row).execute())
        except Exception as e:
            logger.error("[ReviewAssignments] insert failed: %s", e)
            raise HTTPException(status_code=500, detail="Failed to assign reviewer") from e
        if not created:
            raise HTTPException(status_code=500, detail="Failed to assign reviewer")

        self._set_round_status(round_id, ReviewRoundStatus.PENDING_REVIEWS)

        self.notifications.create_notification(
            user_id=str(reviewer_id),
            submission_id=submission.get("id"),
            type="review_invitation",
            title="Review invitation",
            content=f"You have been invited to review \"{submission.get('title') or ''}\". "
            f"Please respond within {response_days} days.",
        )
        self.audit.log_action(
            submission_id=submission.get("id"),
            user_id=editor_id,
            action="assign_reviewer",
            new_value=reviewer_id,
            metadata={"reviewRoundId": round_id, "round": round_row.get("round"), "assignmentId": created.get("id")},
        )
        return {"success": True, "assignment": transform_from_db(created)}

    def respond(
        self,
        assignment_id: Any,
        *,
        profile: Optional[dict[str, Any]],
        declined: bool,
        comments: Optional[str] = None,
    ) -> dict[str, Any]:
        if not profile or not profile.get("id"):
            raise HTTPException(status_code=401, detail="Authentication required")
        user_id = str(profile.get("id"))

        assignment = self._load_assignment(assignment_id)
        if str(assignment.get("reviewer_id") or "") != user_id and not is_editor(profile):
            raise HTTPException(status_code=403, detail="Not the assigned reviewer")
        if assignment.get("date_confirmed") or assignment.get("declined"):
            raise HTTPException(status_code=409, detail="Review invitation has already been answered")
        if assignment.get("cancelled"):
            raise HTTPException(status_code=400, detail="Review invitation was cancelled")

        now = now_iso()
        payload: dict[str, Any] = {
            "declined": bool(declined),
            "date_confirmed": now,
            "status": int(ReviewAssignmentStatus.DECLINED if declined else ReviewAssignmentStatus.ACCEPTED),
            "last_modified": now,
        }
        if comments:
            payload["comments_for_editor"] = comments
        updated = self._update_assignment(assignment.get("id"), payload)

        round_id = assignment.get("review_round_id")
        round_completed = False
        if declined:
            round_completed = self._complete_round_if_resolved(round_id, updated)
        else:
            self._set_round_status(round_id, ReviewRoundStatus.PENDING_REVIEWS)

        verb = "declined" if declined else "accepted"
        self.notifications.notify_editors(
            submission_id=assignment.get("submission_id"),
            type="review_response",
            title=f"Reviewer {verb} invitation",
            content=f"A reviewer {verb} the review invitation."
            + (" All reviews for the current round are complete." if round_completed else "")
            + (f"\n\n{comments}" if comments else ""),
            exclude=user_id,
        )
        self.audit.log_action(
            submission_id=assignment.get("submission_id"),
            user_id=user_id,
            action=f"review_{verb}",
            old_value=assignment.get("status"),
            new_value=payload["status"],
            metadata={"assignmentId": assignment.get("id"), "roundCompleted": round_completed},
        )
        return transform_from_db(updated)

    def submit_review(
        self,
        assignment_id: Any,
        *,
        profile: Optional[dict[str, Any]],
        recommendation: int,
        comments: Optional[str] = None,
        comments_for_editor: Optional[str] = None,
        quality: Optional[int] = None,
    ) -> dict[str, Any]:
        if not profile or not profile.get("id"):
            raise HTTPException(status_code=401, detail="Authentication required")
        user_id = str(profile.get("id"))

        assignment = self._load_assignment(assignment_id)
        if str(assignment.get("reviewer_id") or "") != user_id:
            raise HTTPException(status_code=403, detail="Not the assigned reviewer")
        if _is_complete(assignment):
            raise HTTPException(status_code=409, detail="Review has already been submitted")
        if assignment.get("declined") or assignment.get("cancelled"):
            raise HTTPException(status_code=400, detail="Review invitation is no longer active")
        if not assignment.get("date_confirmed"):
            raise HTTPException(status_code=400, detail="Review invitation must be accepted first")

        try:
            rec = ReviewRecommendation(int(recommendation))
        except (TypeError, ValueError):
            raise HTTPException(status_code=400, detail="Invalid recommendation")
        if quality is not None and not 1 <= int(quality) <= 5:
            raise HTTPException(status_code=400, detail="Invalid quality rating")

        now = now_iso()
        payload: dict[str, Any] = {
            "status": int(ReviewAssignmentStatus.COMPLETE),
            "recommendation": int(rec),
            "comments": comments,
            "date_completed": now,
            "last_modified": now,
        }
        if comments_for_editor is not None:
            payload["comments_for_editor"] = comments_for_editor
        if quality is not None:
            payload["quality"] = int(quality)
        updated = self._update_assignment(assignment.get("id"), payload)

        round_completed = self._complete_round_if_resolved(assignment.get("review_round_id"), updated)

        self.notifications.notify_editors(
            submission_id=assignment.get("submission_id"),
            type="review_submitted",
            title="Review submitted",
            content="A reviewer submitted a review."
            + (" All reviews for the current round are complete." if round_completed else ""),
            exclude=user_id,
        )
        self.audit.log_action(
            submission_id=assignment.get("submission_id"),
            user_id=user_id,
            action="review_submitted",
            new_value=int(rec),
            metadata={"assignmentId": assignment.get("id"), "roundCompleted": round_completed},
        )
        return {
            "success": True,
            "assignment": transform_from_db(updated),
            "roundCompleted": round_completed,
        }
