from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Union

from pydantic import BaseModel, computed_field, field_validator
from pydantic.config import ConfigDict

from app.models.submission import transform_from_db
from app.models.workflow import DECISION_LABELS, parse_decision

RowId = Union[int, str]

# 非编辑决定的流水记录（作者撤稿 / 作者提交修改稿）
WITHDRAWN_DECISION = "withdrawn"
RESUBMITTED_DECISION = "resubmitted"

_ACTION_LABELS = {
    WITHDRAWN_DECISION: "Withdrawn",
    RESUBMITTED_DECISION: "Revisions Resubmitted",
}


class EditorialDecisionRecord(BaseModel):
    """
    editorial_decisions 表的一行（只增不改）。

    中文注释:
    - decision 通常是 OJS 整数码；撤稿/修改稿提交写的是字符串动作名。
    """

    id: RowId
    submission_id: Optional[RowId] = None
    editor_id: Optional[str] = None
    decision: Union[int, str]
    stage_id: Optional[int] = None
    review_round_id: Optional[RowId] = None
    round: Optional[int] = None
    decision_comments: Optional[str] = None
    date_decided: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True, extra="ignore")

    @field_validator("decision", mode="before")
    @classmethod
    def _normalize_decision(cls, value: Any) -> Union[int, str]:
        code = parse_decision(value)
        if code is not None:
            return int(code)
        return str(value or "").strip().lower()

    @computed_field  # type: ignore[prop-decorator]
    @property
    def decision_label(self) -> str:
        if isinstance(self.decision, int):
            return DECISION_LABELS.get(self.decision, "Unknown")
        return _ACTION_LABELS.get(self.decision, self.decision.replace("_", " ").title())

    def to_api(self) -> dict[str, Any]:
        return transform_from_db(self.model_dump(mode="json"))
