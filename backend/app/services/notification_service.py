from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import urlparse

from app.core.config import WorkflowConfig
from app.lib.api_client import create_user_supabase_client, supabase_admin
from app.services.workflow_common import first_row, rows_of
from postgrest.exceptions import APIError

logger = logging.getLogger("journalflow.notifications")


class NotificationService:
    """
    通知服务：封装 notifications 表的读写

    中文注释:
    1) 写入使用 service_role client，避免 RLS 导致写入失败。
    2) 用户读取/更新使用“用户态 client”（注入 JWT），确保 RLS 生效，防止越权。
    3) 所有写入都是 best-effort：失败只记日志，绝不影响主流程。
    """

    def __init__(self, client: Any = None) -> None:
        self.client = client if client is not None else supabase_admin

    @staticmethod
    def _normalize_action_url(action_url: Optional[str]) -> Optional[str]:
        raw = str(action_url or "").strip()
        if not raw:
            return None
        if raw.startswith("/"):
            return raw
        try:
            parsed = urlparse(raw)
        except Exception:
            return None
        if parsed.scheme not in {"http", "https"}:
            return None
        path = parsed.path or "/"
        query = f"?{parsed.query}" if parsed.query else ""
        return f"{path}{query}"

    def create_notification(
        self,
        *,
        user_id: str,
        submission_id: Optional[Any],
        type: str,
        title: str,
        content: str,
        action_url: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        if not str(user_id or "").strip():
            return None
        if not action_url:
            if type.startswith("review"):
                action_url = "/dashboard?tab=reviewer"
            elif submission_id is not None:
                action_url = f"/submissions/{submission_id}"
            else:
                action_url = "/dashboard/notifications"

        payload = {
            "user_id": str(user_id),
            "submission_id": submission_id,
            "action_url": self._normalize_action_url(action_url) or "/dashboard/notifications",
            "type": type,
            "title": title,
            "content": content,
            "is_read": False,
        }
        try:
            res = self.client.table("notifications").insert(payload).execute()
            return first_row(res)
        except APIError as e:
            # 中文注释: mock user_profiles（不对应 auth.users）会触发外键 23503，静默忽略避免刷屏
            text = str(e).lower()
            code = str(getattr(e, "code", "") or "").lower()
            if ("23503" in code or "23503" in text) and "foreign key" in text:
                return None
            logger.warning("[Notifications] create failed (ignored): %s", e)
            return None
        except Exception as e:
            logger.warning("[Notifications] create failed (ignored): %s", e)
            return None

    def notify_users(
        self,
        user_ids: Iterable[Any],
        *,
        submission_id: Optional[Any],
        type: str,
        title: str,
        content: str,
        action_url: Optional[str] = None,
    ) -> int:
        sent = 0
        for uid in dict.fromkeys(str(u) for u in user_ids if str(u or "").strip()):
            row = self.create_notification(
                user_id=uid,
                submission_id=submission_id,
                type=type,
                title=title,
                content=content,
                action_url=action_url,
            )
            if row is not None:
                sent += 1
        return sent

    def list_editor_ids(self, *, exclude: Optional[str] = None, limit: int = 50) -> List[str]:
        roles = list(WorkflowConfig.from_env().editor_roles)
        try:
            res = (
                self.client.table("user_profiles")
                .select("id, roles")
                .ov("roles", roles)
                .limit(limit)
                .execute()
            )
        except Exception as e:
            logger.warning("[Notifications] load editors failed (ignored): %s", e)
            return []
        ids = [str(r.get("id")) for r in rows_of(res) if r.get("id")]
        return [i for i in ids if i != str(exclude or "")]

    def notify_editors(
        self,
        *,
        submission_id: Optional[Any],
        type: str,
        title: str,
        content: str,
        exclude: Optional[str] = None,
    ) -> int:
        return self.notify_users(
            self.list_editor_ids(exclude=exclude),
            submission_id=submission_id,
            type=type,
            title=title,
            content=content,
        )

    def list_for_current_user(self, *, access_token: str, limit: int = 20) -> List[Dict[str, Any]]:
        client = create_user_supabase_client(access_token)
        res = (
            client.table("notifications")
            .select("*")
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return rows_of(res)

    def mark_read(self, *, access_token: str, notification_id: str) -> Optional[Dict[str, Any]]:
        client = create_user_supabase_client(access_token)
        res = (
            client.table("notifications")
            .update({"is_read": True})
            .eq("id", notification_id)
            .execute()
        )
        return first_row(res)
