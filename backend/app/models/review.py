from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Union

from pydantic import BaseModel, field_validator
from pydantic.config import ConfigDict

from app.models.submission import transform_from_db
from app.models.workflow import (
    ReviewAssignmentStatus,
    ReviewRecommendation,
    ReviewRoundStatus,
    is_round_open,
)

RowId = Union[int, str]


def _enum_or_none(enum_cls: Any, value: Any) -> Any:
    try:
        return enum_cls(int(value))
    except (TypeError, ValueError):
        return None


class ReviewAssignment(BaseModel):
    """
    审稿邀请（读出口）。

    中文注释:
    - 只序列化行里实际出现的字段（exclude_unset），作者视角剔除的字段不会以 null 形式回来。
    """

    id: RowId
    submission_id: Optional[RowId] = None
    review_round_id: Optional[RowId] = None
    reviewer_id: Optional[str] = None
    stage_id: Optional[int] = None
    status: ReviewAssignmentStatus = ReviewAssignmentStatus.AWAITING_RESPONSE
    recommendation: Optional[ReviewRecommendation] = None
    quality: Optional[int] = None
    declined: bool = False
    cancelled: bool = False
    comments: Optional[str] = None
    comments_for_editor: Optional[str] = None
    date_assigned: Optional[datetime] = None
    date_notified: Optional[datetime] = None
    date_response_due: Optional[datetime] = None
    date_due: Optional[datetime] = None
    date_confirmed: Optional[datetime] = None
    date_completed: Optional[datetime] = None
    last_modified: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True, extra="ignore")

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: Any) -> ReviewAssignmentStatus:
        code = _enum_or_none(ReviewAssignmentStatus, value)
        return ReviewAssignmentStatus.AWAITING_RESPONSE if code is None else code

    @field_validator("recommendation", mode="before")
    @classmethod
    def _normalize_recommendation(cls, value: Any) -> Optional[ReviewRecommendation]:
        return _enum_or_none(ReviewRecommendation, value)

    @field_validator("declined", "cancelled", mode="before")
    @classmethod
    def _flag(cls, value: Any) -> bool:
        return bool(value)

    def to_api(self) -> dict[str, Any]:
        return transform_from_db(self.model_dump(mode="json", exclude_unset=True))


class ReviewRound(BaseModel):
    """审稿轮次 + 本轮邀请。status 兼容旧 schema 的字符串值。"""

    id: RowId
    submission_id: Optional[RowId] = None
    stage_id: Optional[int] = None
    round: int = 1
    status: ReviewRoundStatus = ReviewRoundStatus.PENDING_REVIEWERS
    date_created: Optional[datetime] = None
    date_modified: Optional[datetime] = None
    assignments: list[ReviewAssignment] = []

    model_config = ConfigDict(from_attributes=True, extra="ignore")

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: Any) -> ReviewRoundStatus:
        code = _enum_or_none(ReviewRoundStatus, value)
        if code is not None:
            return code
        if is_round_open({"status": value}):
            return ReviewRoundStatus.PENDING_REVIEWERS
        return ReviewRoundStatus.REVIEWS_COMPLETED

    @classmethod
    def from_row(cls, row: dict[str, Any], assignments: Optional[list[dict[str, Any]]] = None) -> "ReviewRound":
        data = dict(row or {})
        if assignments is not None:
            data["assignments"] = [ReviewAssignment.model_validate(a) for a in assignments]
        return cls.model_validate(data)

    def to_api(self) -> dict[str, Any]:
        return transform_from_db(self.model_dump(mode="json", exclude_unset=True))
