import logging
from typing import Callable, Iterable, Optional

from fastapi import Depends, HTTPException

from app.core.auth_utils import get_current_user
from app.core.config import WorkflowConfig, get_admin_emails
from app.lib.api_client import supabase_admin

logger = logging.getLogger("journalflow.roles")


def _is_admin_email(email: Optional[str]) -> bool:
    if not email:
        return False
    return email.strip().lower() in get_admin_emails()


def parse_roles(profile: dict | None) -> set[str]:
    raw = (profile or {}).get("roles") or []
    return {str(r).strip().lower() for r in raw if str(r).strip()}


def is_editor(profile: dict | None) -> bool:
    return bool(parse_roles(profile).intersection(WorkflowConfig.from_env().editor_roles))


def is_privileged(profile: dict | None) -> bool:
    return bool(parse_roles(profile).intersection(WorkflowConfig.from_env().privileged_roles))


async def get_current_profile(current_user: dict = Depends(get_current_user)) -> dict:
    """
    获取当前用户的 profile（含 roles）。

    中文注释:
    1) 角色在应用层管理（user_profiles.roles）。
    2) 首次访问时自动创建 user_profiles 记录，默认 roles=['author']。
    3) 若 email 在 ADMIN_EMAILS 中，则自动补齐 admin/editor/reviewer 权限，便于本地/演示测试。
    """
    user_id = current_user["id"]
    email = current_user.get("email")

    roles = ["author"]
    if _is_admin_email(email):
        roles = ["admin", "editor", "reviewer", "author"]

    try:
        resp = supabase_admin.table("user_profiles").select("*").eq("id", user_id).execute()
        existing = (resp.data or [None])[0]
        if existing:
            existing_roles = existing.get("roles") or []
            if _is_admin_email(email):
                merged = list(dict.fromkeys([*roles, *existing_roles]))
                if merged != existing_roles:
                    supabase_admin.table("user_profiles").update({"roles": merged}).eq("id", user_id).execute()
                    existing["roles"] = merged
            return existing

        inserted = (
            supabase_admin.table("user_profiles")
            .insert({"id": user_id, "email": email, "roles": roles})
            .execute()
        )
        return (inserted.data or [{"id": user_id, "email": email, "roles": roles}])[0]
    except Exception as e:
        logger.warning("Failed to fetch/create user profile (degraded): %s", e)
        # 最小化降级：至少把用户身份返回给上层
        return {"id": user_id, "email": email, "roles": roles}


def require_any_role(required: Iterable[str]) -> Callable[[dict], dict]:
    required_set = {r for r in required}

    async def _dep(profile: dict = Depends(get_current_profile)) -> dict:
        roles = parse_roles(profile)
        if not roles.intersection(required_set):
            raise HTTPException(status_code=403, detail="Insufficient role")
        return profile

    return _dep


def require_editor() -> Callable[[dict], dict]:
    return require_any_role(WorkflowConfig.from_env().editor_roles)
