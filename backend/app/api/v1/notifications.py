from fastapi import APIRouter, Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from app.core.auth_utils import get_current_user, security
from app.models.notification import Notification
from app.services.notification_service import NotificationService

router = APIRouter(tags=["Notifications"])


def get_notification_service() -> NotificationService:
    return NotificationService()


@router.get("/notifications")
async def list_notifications(
    limit: int = 20,
    _current_user: dict = Depends(get_current_user),
    credentials: HTTPAuthorizationCredentials = Depends(security),
    service: NotificationService = Depends(get_notification_service),
):
    """
    获取当前用户的通知列表（RLS 生效）
    """
    rows = service.list_for_current_user(access_token=credentials.credentials, limit=limit)
    data = [n.model_dump(mode="json") for n in Notification.from_rows(rows)]
    return {"success": True, "data": data}


@router.patch("/notifications/{id}/read")
async def mark_notification_read(
    id: str,
    _current_user: dict = Depends(get_current_user),
    credentials: HTTPAuthorizationCredentials = Depends(security),
    service: NotificationService = Depends(get_notification_service),
):
    """
    将通知标记为已读（仅允许更新自己的记录）
    """
    updated = service.mark_read(access_token=credentials.credentials, notification_id=id)
    if updated is None:
        # 中文注释: 可能是不存在或不属于当前用户（RLS 拦截导致 data 为空）
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"success": True, "data": updated}
