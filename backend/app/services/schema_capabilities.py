from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Literal, Optional

from app.models.workflow import SubmissionStatus, status_to_legacy
from app.services.workflow_common import (
    first_row,
    is_missing_column_error,
    is_missing_relation_error,
)

logger = logging.getLogger("journalflow.schema")

StatusEncoding = Literal["integer", "legacy"]


@dataclass(frozen=True)
class SchemaCapabilities:
    """
    云端 schema 的可选能力（启动时探测一次并缓存）。

    中文注释:
    - 历史上不同环境的迁移进度不一致（current_round 列、publication_schedule 表、
      status 是整数还是旧字符串）。
    - 这里集中探测一次，写入时按能力决定 payload，而不是“写失败 -> 删字段 -> 重试”。
    """

    has_current_round: bool
    has_publication_schedule: bool
    status_encoding: StatusEncoding

    def encode_status(
        self,
        status: SubmissionStatus,
        stage_id: Any = None,
        *,
        revisions_required: bool = False,
    ) -> int | str:
        """submissions.status 的写入值（整数 schema 写 OJS 码，旧 schema 写 legacy 字符串）。"""
        if self.status_encoding == "integer":
            return int(status)
        if revisions_required and status == SubmissionStatus.QUEUED:
            return "revision_required"
        return status_to_legacy(status, stage_id)

    @staticmethod
    def defaults() -> "SchemaCapabilities":
        return SchemaCapabilities(
            has_current_round=False,
            has_publication_schedule=False,
            status_encoding="integer",
        )


def _probe_current_round(client: Any) -> Optional[bool]:
    try:
        client.table("submissions").select("id, current_round").limit(1).execute()
        return True
    except Exception as e:
        if is_missing_column_error(e, column="current_round"):
            return False
        logger.warning("[Schema] submissions.current_round probe failed: %s", e)
        return None


def _probe_publication_schedule(client: Any) -> Optional[bool]:
    try:
        client.table("publication_schedule").select("submission_id").limit(1).execute()
        return True
    except Exception as e:
        if is_missing_relation_error(e, relation="publication_schedule"):
            return False
        logger.warning("[Schema] publication_schedule probe failed: %s", e)
        return None


def _probe_status_encoding(client: Any) -> Optional[StatusEncoding]:
    try:
        resp = client.table("submissions").select("status").limit(1).execute()
    except Exception as e:
        logger.warning("[Schema] submissions.status probe failed: %s", e)
        return None
    row = first_row(resp)
    if not row or row.get("status") is None:
        return "integer"
    raw = row.get("status")
    if isinstance(raw, str) and not raw.strip().isdigit():
        return "legacy"
    return "integer"


def probe_schema(client: Any) -> tuple[SchemaCapabilities, bool]:
    """
    返回 (capabilities, complete)。complete=False 表示有探测因网络等原因失败，不应缓存。
    """
    defaults = SchemaCapabilities.defaults()
    current_round = _probe_current_round(client)
    schedule = _probe_publication_schedule(client)
    encoding = _probe_status_encoding(client)
    caps = SchemaCapabilities(
        has_current_round=defaults.has_current_round if current_round is None else current_round,
        has_publication_schedule=defaults.has_publication_schedule if schedule is None else schedule,
        status_encoding=defaults.status_encoding if encoding is None else encoding,
    )
    complete = current_round is not None and schedule is not None and encoding is not None
    return caps, complete


_cached: Optional[SchemaCapabilities] = None


def get_schema_capabilities(client: Any) -> SchemaCapabilities:
    global _cached
    if _cached is not None:
        return _cached
    caps, complete = probe_schema(client)
    if complete:
        _cached = caps
        logger.info("[Schema] capabilities: %s", caps)
    return caps


def set_schema_capabilities(caps: Optional[SchemaCapabilities]) -> None:
    global _cached
    _cached = caps
