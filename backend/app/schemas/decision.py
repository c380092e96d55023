from __future__ import annotations

from datetime import datetime
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

RowId = Union[int, str]


class DecisionBody(BaseModel):
    # 中文注释: decision 既接受 OJS 整数码（1/4/8...），也接受 legacy 字符串（accept/decline/...）
    decision: Union[int, str]
    comments: Optional[str] = Field(default=None, max_length=20000)


class EditorialDecisionRequest(DecisionBody):
    model_config = ConfigDict(populate_by_name=True)

    submission_id: RowId = Field(alias="submissionId")


class WithdrawRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=5000)


class ResubmitRequest(BaseModel):
    comments: Optional[str] = Field(default=None, max_length=20000)


class ScheduleRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    scheduled_date: datetime = Field(alias="scheduledDate")


class CreateSubmissionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(min_length=1, max_length=500)
    abstract: Optional[str] = Field(default=None, max_length=20000)
    journal_id: Optional[RowId] = Field(default=None, alias="journalId")
