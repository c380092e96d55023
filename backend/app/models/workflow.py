from __future__ import annotations

import logging
from enum import IntEnum
from typing import Any, Final

logger = logging.getLogger("journalflow.workflow")


class WorkflowStage(IntEnum):
    """
    OJS 3.3 workflow stage ids（WORKFLOW_STAGE_ID_*）。

    中文注释:
    - 业务上只使用 Submission / External Review / Editing / Production 四个阶段；
    - INTERNAL_REVIEW 仅为与 OJS 整数编码保持一致而保留，不参与任何决策。
    """

    SUBMISSION = 1
    INTERNAL_REVIEW = 2
    EXTERNAL_REVIEW = 3
    EDITING = 4
    PRODUCTION = 5


class SubmissionStatus(IntEnum):
    """OJS submission status（STATUS_*）。"""

    QUEUED = 1
    PUBLISHED = 3
    DECLINED = 4
    SCHEDULED = 5


class EditorDecision(IntEnum):
    """OJS SUBMISSION_EDITOR_DECISION_* codes."""

    ACCEPT = 1
    PENDING_REVISIONS = 2
    RESUBMIT = 3
    DECLINE = 4
    SEND_TO_PRODUCTION = 7
    EXTERNAL_REVIEW = 8
    INITIAL_DECLINE = 9
    NEW_ROUND = 16


class ReviewRoundStatus(IntEnum):
    PENDING_REVIEWERS = 6
    PENDING_REVIEWS = 8
    REVIEWS_COMPLETED = 11


class ReviewAssignmentStatus(IntEnum):
    AWAITING_RESPONSE = 0
    DECLINED = 1
    ACCEPTED = 2
    COMPLETE = 3
    CANCELLED = 4


class ReviewRecommendation(IntEnum):
    ACCEPT = 1
    MINOR_REVISIONS = 2
    MAJOR_REVISIONS = 3
    REJECT = 4
    SEE_COMMENTS = 5


STAGE_NAMES: Final[dict[int, str]] = {
    WorkflowStage.SUBMISSION: "Submission",
    WorkflowStage.INTERNAL_REVIEW: "Internal Review",
    WorkflowStage.EXTERNAL_REVIEW: "Review",
    WorkflowStage.EDITING: "Copyediting",
    WorkflowStage.PRODUCTION: "Production",
}

STATUS_LABELS: Final[dict[int, str]] = {
    SubmissionStatus.QUEUED: "Queued",
    SubmissionStatus.PUBLISHED: "Published",
    SubmissionStatus.DECLINED: "Declined",
    SubmissionStatus.SCHEDULED: "Scheduled",
}

DECISION_LABELS: Final[dict[int, str]] = {
    EditorDecision.ACCEPT: "Accept",
    EditorDecision.PENDING_REVISIONS: "Request Revisions",
    EditorDecision.RESUBMIT: "Resubmit for Review",
    EditorDecision.DECLINE: "Decline",
    EditorDecision.SEND_TO_PRODUCTION: "Send to Production",
    EditorDecision.EXTERNAL_REVIEW: "Send to Review",
    EditorDecision.INITIAL_DECLINE: "Decline Submission",
    EditorDecision.NEW_ROUND: "New Review Round",
}

ROUND_STATUS_LABELS: Final[dict[int, str]] = {
    ReviewRoundStatus.PENDING_REVIEWERS: "Pending Reviewers",
    ReviewRoundStatus.PENDING_REVIEWS: "Pending Reviews",
    ReviewRoundStatus.REVIEWS_COMPLETED: "Reviews Completed",
}

ASSIGNMENT_STATUS_LABELS: Final[dict[int, str]] = {
    ReviewAssignmentStatus.AWAITING_RESPONSE: "Awaiting Response",
    ReviewAssignmentStatus.DECLINED: "Declined",
    ReviewAssignmentStatus.ACCEPTED: "Accepted",
    ReviewAssignmentStatus.COMPLETE: "Complete",
    ReviewAssignmentStatus.CANCELLED: "Cancelled",
}

# 兼容旧字符串状态（迁移前的历史数据 / 旧前端）
LEGACY_STATUS_MAP: Final[dict[str, SubmissionStatus]] = {
    "incomplete": SubmissionStatus.QUEUED,
    "submitted": SubmissionStatus.QUEUED,
    "under_review": SubmissionStatus.QUEUED,
    "revision_required": SubmissionStatus.QUEUED,
    "copyediting": SubmissionStatus.QUEUED,
    "proofreading": SubmissionStatus.QUEUED,
    "production": SubmissionStatus.QUEUED,
    "accepted": SubmissionStatus.QUEUED,
    "scheduled": SubmissionStatus.SCHEDULED,
    "declined": SubmissionStatus.DECLINED,
    "published": SubmissionStatus.PUBLISHED,
}

_LEGACY_FROM_STATUS: Final[dict[SubmissionStatus, str]] = {
    SubmissionStatus.QUEUED: "submitted",
    SubmissionStatus.PUBLISHED: "published",
    SubmissionStatus.DECLINED: "declined",
    SubmissionStatus.SCHEDULED: "scheduled",
}

# legacy 状态字符串写回时，按 stage 给出更具体的值（旧 UI 依赖这些字符串）
_LEGACY_QUEUED_BY_STAGE: Final[dict[WorkflowStage, str]] = {
    WorkflowStage.SUBMISSION: "submitted",
    WorkflowStage.INTERNAL_REVIEW: "under_review",
    WorkflowStage.EXTERNAL_REVIEW: "under_review",
    WorkflowStage.EDITING: "copyediting",
    WorkflowStage.PRODUCTION: "production",
}

LEGACY_DECISION_MAP: Final[dict[str, EditorDecision]] = {
    "send_to_review": EditorDecision.EXTERNAL_REVIEW,
    "external_review": EditorDecision.EXTERNAL_REVIEW,
    "accept": EditorDecision.ACCEPT,
    "decline": EditorDecision.DECLINE,
    "reject": EditorDecision.DECLINE,
    "initial_decline": EditorDecision.INITIAL_DECLINE,
    "request_revisions": EditorDecision.PENDING_REVISIONS,
    "revisions": EditorDecision.PENDING_REVISIONS,
    "send_to_production": EditorDecision.SEND_TO_PRODUCTION,
    "new_round": EditorDecision.NEW_ROUND,
}


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return int(value)
    if isinstance(value, str):
        raw = value.strip()
        if raw.lstrip("-").isdigit():
            return int(raw)
    return None


def stage_name(stage_id: Any) -> str:
    """
    阶段显示名；未知/越界/None 一律返回 "Unknown"，不抛异常。
    """
    sid = _as_int(stage_id)
    if sid is None:
        return "Unknown"
    return STAGE_NAMES.get(sid, "Unknown")


def status_label(status: Any) -> str:
    return STATUS_LABELS[normalize_status(status)]


def stage_display_label(status: Any, stage_id: Any = None) -> str:
    """
    Queued 状态下显示 "<Stage> - Queued"，其他状态只显示状态名。
    """
    st = normalize_status(status)
    label = status_label(st)
    if st == SubmissionStatus.QUEUED and _as_int(stage_id) in STAGE_NAMES:
        return f"{stage_name(stage_id)} - {label}"
    return label


def map_legacy_status(value: str) -> SubmissionStatus:
    """
    legacy 字符串状态 -> OJS 整数状态（全函数）。

    中文注释: 未识别的字符串默认 QUEUED，并打 warning 便于发现脏数据。
    """
    key = str(value or "").strip().lower()
    mapped = LEGACY_STATUS_MAP.get(key)
    if mapped is None:
        logger.warning("[Workflow] unrecognized legacy status %r, defaulting to Queued", value)
        return SubmissionStatus.QUEUED
    return mapped


def status_to_legacy(status: Any, stage_id: Any = None) -> str:
    st = normalize_status(status)
    if st == SubmissionStatus.QUEUED and stage_id is not None:
        stage = normalize_stage(stage_id)
        if stage is not None:
            return _LEGACY_QUEUED_BY_STAGE[stage]
    return _LEGACY_FROM_STATUS[st]


def normalize_status(value: Any) -> SubmissionStatus:
    """
    唯一的状态入口：int / 数字字符串 / legacy 字符串 / enum 都在这里收敛为 SubmissionStatus。
    """
    if isinstance(value, SubmissionStatus):
        return value
    as_int = _as_int(value)
    if as_int is not None:
        try:
            return SubmissionStatus(as_int)
        except ValueError:
            logger.warning("[Workflow] unknown status code %r, defaulting to Queued", value)
            return SubmissionStatus.QUEUED
    if value is None:
        return SubmissionStatus.QUEUED
    return map_legacy_status(str(value))


def normalize_stage(value: Any) -> WorkflowStage | None:
    if isinstance(value, WorkflowStage):
        return value
    as_int = _as_int(value)
    if as_int is None:
        return None
    try:
        return WorkflowStage(as_int)
    except ValueError:
        return None


def parse_decision(value: Any) -> EditorDecision | None:
    if isinstance(value, EditorDecision):
        return value
    as_int = _as_int(value)
    if as_int is not None:
        try:
            return EditorDecision(as_int)
        except ValueError:
            return None
    if isinstance(value, str):
        return LEGACY_DECISION_MAP.get(value.strip().lower())
    return None


def is_terminal_status(status: Any) -> bool:
    return normalize_status(status) in {SubmissionStatus.DECLINED, SubmissionStatus.PUBLISHED}


def is_in_workflow(status: Any) -> bool:
    return normalize_status(status) in {SubmissionStatus.QUEUED, SubmissionStatus.SCHEDULED}


def is_round_open(round_row: dict[str, Any] | None) -> bool:
    """
    review_rounds.status 未到 Reviews Completed 即视为进行中。
    """
    if not round_row:
        return False
    raw = round_row.get("status")
    code = _as_int(raw)
    if code is None:
        # 旧数据可能写的是字符串（"pending" / "completed"）
        return str(raw or "").strip().lower() not in {"completed", "reviews_completed", "complete"}
    return code != ReviewRoundStatus.REVIEWS_COMPLETED


def workflow_catalog() -> dict[str, list[dict[str, Any]]]:
    """给前端展示用的阶段/状态/决策码表。"""
    return {
        "stages": [
            {"id": int(stage), "name": STAGE_NAMES[stage]}
            for stage in WorkflowStage
            if stage != WorkflowStage.INTERNAL_REVIEW
        ],
        "statuses": [{"id": int(st), "label": status_label(st)} for st in SubmissionStatus],
        "decisions": [{"id": int(d), "label": DECISION_LABELS[d]} for d in EditorDecision],
        "reviewRoundStatuses": [
            {"id": int(st), "label": ROUND_STATUS_LABELS[st]} for st in ReviewRoundStatus
        ],
    }
