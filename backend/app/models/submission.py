from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Union

from pydantic import BaseModel, field_validator
from pydantic.config import ConfigDict

from app.models.workflow import (
    SubmissionStatus,
    WorkflowStage,
    normalize_stage,
    normalize_status,
)

RowId = Union[int, str]


class Submission(BaseModel):
    """
    稿件（聚合根）。

    中文注释:
    - status 在读入时统一 normalize（兼容 legacy 字符串），之后业务层只见到整数枚举。
    """

    id: RowId
    journal_id: Optional[RowId] = None
    submitter_id: Optional[str] = None
    title: Optional[str] = None
    abstract: Optional[str] = None
    stage_id: WorkflowStage = WorkflowStage.SUBMISSION
    status: SubmissionStatus = SubmissionStatus.QUEUED
    current_round: Optional[int] = None
    date_submitted: Optional[datetime] = None
    date_last_activity: Optional[datetime] = None
    date_status_modified: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True, extra="ignore")

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: Any) -> SubmissionStatus:
        return normalize_status(value)

    @field_validator("stage_id", mode="before")
    @classmethod
    def _normalize_stage(cls, value: Any) -> WorkflowStage:
        return normalize_stage(value) or WorkflowStage.SUBMISSION

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Submission":
        data = dict(row or {})
        # 旧 schema 用 stage 而不是 stage_id
        if data.get("stage_id") is None and data.get("stage") is not None:
            data["stage_id"] = data.get("stage")
        return cls.model_validate(data)


def _camel(key: str) -> str:
    head, *rest = key.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def transform_from_db(row: Any) -> Any:
    """
    snake_case 行 -> camelCase JSON（与前端约定一致，递归处理嵌套结构）。
    """
    if isinstance(row, dict):
        return {_camel(str(k)): transform_from_db(v) for k, v in row.items()}
    if isinstance(row, list):
        return [transform_from_db(v) for v in row]
    return row
