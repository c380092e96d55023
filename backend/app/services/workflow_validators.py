from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional

from app.models.workflow import (
    EditorDecision,
    SubmissionStatus,
    WorkflowStage,
    normalize_stage,
    normalize_status,
    parse_decision,
    stage_name,
)

INVALID_STAGE = "INVALID_STAGE"
SUBMISSION_DECLINED = "SUBMISSION_DECLINED"
SUBMISSION_PUBLISHED = "SUBMISSION_PUBLISHED"
ALREADY_DECLINED = "ALREADY_DECLINED"
MISSING_REVIEW_ROUND = "MISSING_REVIEW_ROUND"
UNKNOWN_DECISION = "UNKNOWN_DECISION"


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    error: Optional[str] = None
    error_code: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"valid": self.valid}
        if self.error is not None:
            out["error"] = self.error
        if self.error_code is not None:
            out["errorCode"] = self.error_code
        return out


OK = ValidationResult(valid=True)


def _reject(error: str, code: str) -> ValidationResult:
    return ValidationResult(valid=False, error=error, error_code=code)


def _stage_label(stage: Any) -> str:
    sid = normalize_stage(stage)
    return f"{int(sid)} ({stage_name(sid)})" if sid is not None else f"{stage!r}"


def _check_terminal(status: Any, action: str) -> ValidationResult:
    st = normalize_status(status)
    if st == SubmissionStatus.DECLINED:
        return _reject(f"Cannot {action} a declined submission", SUBMISSION_DECLINED)
    if st == SubmissionStatus.PUBLISHED:
        return _reject(f"Cannot {action} a published submission", SUBMISSION_PUBLISHED)
    return OK


def validate_send_to_review(current_stage: Any, current_status: Any) -> ValidationResult:
    if normalize_stage(current_stage) != WorkflowStage.SUBMISSION:
        return _reject(
            f"Cannot send to review from stage {_stage_label(current_stage)}. Must be in Submission stage.",
            INVALID_STAGE,
        )
    return _check_terminal(current_status, "send to review")


def validate_accept(current_stage: Any, current_status: Any) -> ValidationResult:
    if normalize_stage(current_stage) not in {WorkflowStage.SUBMISSION, WorkflowStage.EXTERNAL_REVIEW}:
        return _reject(
            f"Cannot accept from stage {_stage_label(current_stage)}. Must be in Submission or Review stage.",
            INVALID_STAGE,
        )
    return _check_terminal(current_status, "accept")


def validate_decline(current_stage: Any, current_status: Any) -> ValidationResult:
    if normalize_stage(current_stage) not in {WorkflowStage.SUBMISSION, WorkflowStage.EXTERNAL_REVIEW}:
        return _reject(
            f"Cannot decline from stage {_stage_label(current_stage)}. Must be in Submission or Review stage.",
            INVALID_STAGE,
        )
    st = normalize_status(current_status)
    if st == SubmissionStatus.DECLINED:
        return _reject("Submission is already declined", ALREADY_DECLINED)
    if st == SubmissionStatus.PUBLISHED:
        return _reject("Cannot decline a published submission", SUBMISSION_PUBLISHED)
    return OK


def validate_request_revisions(current_stage: Any, current_status: Any) -> ValidationResult:
    if normalize_stage(current_stage) != WorkflowStage.EXTERNAL_REVIEW:
        return _reject(
            f"Cannot request revisions from stage {_stage_label(current_stage)}. Must be in Review stage.",
            INVALID_STAGE,
        )
    return _check_terminal(current_status, "request revisions for")


def validate_send_to_production(current_stage: Any, current_status: Any) -> ValidationResult:
    if normalize_stage(current_stage) != WorkflowStage.EDITING:
        return _reject("Must be in Copyediting stage to send to production", INVALID_STAGE)
    return _check_terminal(current_status, "send to production")


def validate_new_round(current_stage: Any, current_status: Any) -> ValidationResult:
    if normalize_stage(current_stage) != WorkflowStage.EXTERNAL_REVIEW:
        return _reject(
            f"Cannot open a new review round from stage {_stage_label(current_stage)}. Must be in Review stage.",
            INVALID_STAGE,
        )
    return _check_terminal(current_status, "open a new review round for")


_VALIDATORS: dict[EditorDecision, Callable[[Any, Any], ValidationResult]] = {
    EditorDecision.EXTERNAL_REVIEW: validate_send_to_review,
    EditorDecision.ACCEPT: validate_accept,
    EditorDecision.DECLINE: validate_decline,
    EditorDecision.INITIAL_DECLINE: validate_decline,
    EditorDecision.PENDING_REVISIONS: validate_request_revisions,
    EditorDecision.SEND_TO_PRODUCTION: validate_send_to_production,
    EditorDecision.NEW_ROUND: validate_new_round,
}


def validate_editorial_decision(decision: Any, current_stage: Any, current_status: Any) -> ValidationResult:
    """
    校验某个编辑决定在当前 (stage, status) 下是否合法；不做任何写入。
    """
    code = parse_decision(decision)
    validator = _VALIDATORS.get(code) if code is not None else None
    if validator is None:
        return _reject(f"Unknown decision: {decision}", UNKNOWN_DECISION)
    return validator(current_stage, current_status)


def can_receive_editorial_decision(current_status: Any) -> ValidationResult:
    if normalize_status(current_status) == SubmissionStatus.DECLINED:
        return _reject("Cannot make decisions on declined submissions", SUBMISSION_DECLINED)
    return OK


def validate_review_round_required(current_stage: Any, has_review_round: bool) -> ValidationResult:
    if normalize_stage(current_stage) == WorkflowStage.EXTERNAL_REVIEW and not has_review_round:
        return _reject("Submission in review stage must have a review round", MISSING_REVIEW_ROUND)
    return OK
