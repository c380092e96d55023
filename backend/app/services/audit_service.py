from __future__ import annotations

import logging
from typing import Any, Optional

from app.lib.api_client import supabase_admin
from app.services.workflow_common import first_row, now_iso

logger = logging.getLogger("journalflow.audit")


class AuditService:
    """
    审计写入：editorial_decisions（编辑决定）与 workflow_audit_log（动作流水）。

    中文注释:
    - 两张表都是 append-only，只插入不更新。
    - 写入失败只记 warning（fire-and-forget），不影响主流程，也不重试。
    """

    def __init__(self, client: Any = None) -> None:
        self.client = client if client is not None else supabase_admin

    def record_decision(
        self,
        *,
        submission_id: Any,
        editor_id: Optional[str],
        decision: int | str,
        stage_id: Optional[int] = None,
        review_round_id: Optional[Any] = None,
        round: Optional[int] = None,
        comments: Optional[str] = None,
    ) -> Optional[dict[str, Any]]:
        row: dict[str, Any] = {
            "submission_id": submission_id,
            "editor_id": editor_id,
            "decision": decision,
            "decision_comments": comments,
            "date_decided": now_iso(),
        }
        if stage_id is not None:
            row["stage_id"] = int(stage_id)
        if review_round_id is not None:
            row["review_round_id"] = review_round_id
        if round is not None:
            row["round"] = int(round)
        try:
            return first_row(self.client.table("editorial_decisions").insert(row).execute())
        except Exception as e:
            logger.warning("[Audit] editorial decision insert failed (ignored): %s", e)
            return None

    def log_action(
        self,
        *,
        submission_id: Any,
        user_id: Optional[str],
        action: str,
        old_value: Any = None,
        new_value: Any = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> Optional[dict[str, Any]]:
        row = {
            "submission_id": submission_id,
            "user_id": user_id,
            "action": action,
            "old_value": None if old_value is None else str(old_value),
            "new_value": None if new_value is None else str(new_value),
            "metadata": metadata or {},
            "created_at": now_iso(),
        }
        try:
            return first_row(self.client.table("workflow_audit_log").insert(row).execute())
        except Exception as e:
            logger.warning("[Audit] workflow_audit_log insert failed (ignored): %s", e)
            return None
