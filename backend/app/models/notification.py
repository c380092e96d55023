from datetime import datetime
from typing import Literal, Optional, Union

from pydantic import BaseModel, Field
from pydantic.config import ConfigDict


NotificationType = Literal[
    "submission",
    "submission_status",
    "submission_withdrawn",
    "decision",
    "review_invitation",
    "review_response",
    "review_submitted",
    "published",
    "system",
]


class Notification(BaseModel):
    """
    通知实体（用于 API 返回）

    中文注释:
    - notifications 表由 Supabase 存储；此模型用于后端显式校验输出结构。
    - 未知 type（旧数据）不阻断列表接口，见 from_rows。
    """

    id: Union[int, str]
    user_id: str
    submission_id: Optional[Union[int, str]] = None
    type: NotificationType
    title: str = Field(..., max_length=255)
    content: str = ""
    action_url: Optional[str] = None
    is_read: bool = False
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True, extra="ignore")

    @classmethod
    def from_rows(cls, rows: list[dict]) -> list["Notification"]:
        out: list[Notification] = []
        for row in rows:
            data = dict(row)
            if data.get("type") not in NotificationType.__args__:
                data["type"] = "system"
            out.append(cls.model_validate(data))
        return out
