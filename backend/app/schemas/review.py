from __future__ import annotations

from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

RowId = Union[int, str]


class CreateReviewRoundRequest(BaseModel):
    """POST /reviews/rounds 请求体（camelCase 与前端一致）。"""

    model_config = ConfigDict(populate_by_name=True)

    submission_id: RowId = Field(alias="submissionId")
    round: Optional[int] = Field(default=None, ge=1)
    comments: Optional[str] = Field(default=None, max_length=20000)


class AssignReviewerRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    submission_id: RowId = Field(alias="submissionId")
    reviewer_id: str = Field(alias="reviewerId", min_length=1)
    # 中文注释: 不传则使用 WorkflowConfig 默认（3 天回复 / 14 天完成）
    response_due_days: Optional[int] = Field(default=None, alias="responseDueDays", ge=1, le=90)
    review_due_days: Optional[int] = Field(default=None, alias="reviewDueDays", ge=1, le=180)


class ReviewerResponseRequest(BaseModel):
    declined: bool
    comments: Optional[str] = Field(default=None, max_length=20000)


class SubmitReviewRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    recommendation: int = Field(ge=1, le=5)
    comments: str = Field(default="", max_length=20000)
    comments_for_editor: Optional[str] = Field(default=None, alias="commentsForEditor", max_length=20000)
    quality: Optional[int] = Field(default=None, ge=1, le=5)
