from __future__ import annotations

import logging
import re
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import HTTPException
from postgrest.exceptions import APIError

from app.models.workflow import (
    EditorDecision,
    SubmissionStatus,
    WorkflowStage,
    normalize_stage,
    normalize_status,
    parse_decision,
)

logger = logging.getLogger("journalflow.workflow_common")

_NUMERIC_ID = re.compile(r"^[1-9][0-9]*$")


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def rows_of(resp: Any) -> list[dict[str, Any]]:
    data = getattr(resp, "data", None)
    if data is None:
        return []
    if isinstance(data, dict):
        return [data]
    return list(data)


def first_row(resp: Any) -> Optional[dict[str, Any]]:
    rows = rows_of(resp)
    return rows[0] if rows else None


def coerce_row_id(raw: Any, *, label: str = "id") -> int | str:
    """
    行 id 兼容两种 schema：自增整数 或 UUID。

    中文注释: 其他任何形态（空串、负数、随机字符串）都直接 400，避免把脏值发到 PostgREST。
    """
    if isinstance(raw, bool):
        raise HTTPException(status_code=400, detail=f"Invalid {label}")
    if isinstance(raw, int):
        if raw <= 0:
            raise HTTPException(status_code=400, detail=f"Invalid {label}")
        return raw
    text = str(raw or "").strip()
    if _NUMERIC_ID.match(text):
        return int(text)
    try:
        return str(uuid.UUID(text))
    except (ValueError, AttributeError, TypeError):
        raise HTTPException(status_code=400, detail=f"Invalid {label}")


def error_text(err: Exception) -> str:
    parts = [str(err)]
    for attr in ("code", "message", "details", "hint"):
        value = getattr(err, attr, None)
        if value:
            parts.append(str(value))
    return " ".join(parts).lower()


def is_missing_relation_error(err: Exception, *, relation: str) -> bool:
    """判断是否为缺表/Schema cache 未更新错误。"""
    text = error_text(err)
    if not isinstance(err, APIError) and "does not exist" not in text:
        return False
    return (
        "42p01" in text
        or "pgrst205" in text
        or (relation.lower() in text and ("does not exist" in text or "schema cache" in text))
    )


def is_missing_column_error(err: Exception, *, column: str) -> bool:
    text = error_text(err)
    return column.lower() in text and (
        "42703" in text
        or "pgrst204" in text
        or "does not exist" in text
        or "schema cache" in text
        or "could not find" in text
    )


def load_submission(client: Any, submission_id: Any, *, columns: str = "*") -> dict[str, Any]:
    """
    读取稿件；不存在或查询失败统一转为 404。
    """
    try:
        resp = client.table("submissions").select(columns).eq("id", submission_id).limit(1).execute()
    except Exception as e:
        raise HTTPException(status_code=404, detail="Submission not found") from e
    row = first_row(resp)
    if not row:
        raise HTTPException(status_code=404, detail="Submission not found")
    return row


def load_latest_round(client: Any, submission_id: Any) -> Optional[dict[str, Any]]:
    resp = (
        client.table("review_rounds")
        .select("*")
        .eq("submission_id", submission_id)
        .order("round", desc=True)
        .limit(1)
        .execute()
    )
    return first_row(resp)


def load_latest_decision(client: Any, submission_id: Any) -> Optional[dict[str, Any]]:
    resp = (
        client.table("editorial_decisions")
        .select("*")
        .eq("submission_id", submission_id)
        .order("date_decided", desc=True)
        .order("id", desc=True)
        .limit(1)
        .execute()
    )
    return first_row(resp)


def revisions_requested(client: Any, submission: dict[str, Any]) -> bool:
    """
    稿件是否在等作者提交修改稿。

    中文注释:
    - 旧 schema 直接写 status="revision_required"。
    - 整数 schema 下 status 仍是 Queued，以最近一条 editorial_decisions 为准
      （Request Revisions / Resubmit for Review，且之后没有其他决定或修改稿提交）。
    """
    raw = submission.get("status")
    if isinstance(raw, str) and raw.strip().lower() == "revision_required":
        return True
    if normalize_status(raw) != SubmissionStatus.QUEUED:
        return False
    if normalize_stage(submission.get("stage_id")) != WorkflowStage.EXTERNAL_REVIEW:
        return False
    try:
        latest = load_latest_decision(client, submission.get("id"))
    except Exception as e:
        logger.warning("[Workflow] latest decision lookup failed (ignored): %s", e)
        return False
    if latest is None:
        return False
    return parse_decision(latest.get("decision")) in {
        EditorDecision.PENDING_REVISIONS,
        EditorDecision.RESUBMIT,
    }
