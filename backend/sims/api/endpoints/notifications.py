"""
Notification bell endpoints, mounted under every role prefix.

Every operation is scoped to the signed-in user's own notifications.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from sims.api.deps import ensure_success
from sims.core.database import get_db
from sims.modules.auth.dependencies import get_current_session
from sims.modules.auth.session import SessionContext
from sims.services.notification_service import NotificationService

router = APIRouter(tags=["Notifications"])

BELL_LIMIT = 20


@router.get("")
async def list_notifications(
    limit: int = Query(BELL_LIMIT, ge=1, le=100),
    context: SessionContext = Depends(get_current_session),
    db: AsyncSession = Depends(get_db)
):
    service = NotificationService(db)
    return {
        "notifications": await service.get_user_notifications(context.user.id, limit=limit),
        "unread_count": await service.get_unread_count(context.user.id),
    }


@router.get("/unread-count")
async def unread_count(
    context: SessionContext = Depends(get_current_session),
    db: AsyncSession = Depends(get_db)
):
    return {"unread_count": await NotificationService(db).get_unread_count(context.user.id)}


@router.post("/{notification_id}/read")
async def mark_read(
    notification_id: str,
    context: SessionContext = Depends(get_current_session),
    db: AsyncSession = Depends(get_db)
):
    result = await NotificationService(db).mark_as_read(notification_id, user_id=context.user.id)
    return ensure_success(result)


@router.post("/read-all")
async def mark_all_read(
    context: SessionContext = Depends(get_current_session),
    db: AsyncSession = Depends(get_db)
):
    result = await NotificationService(db).mark_all_as_read(context.user.id)
    return ensure_success(result)


@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: str,
    context: SessionContext = Depends(get_current_session),
    db: AsyncSession = Depends(get_db)
):
    result = await NotificationService(db).delete_notification(notification_id, user_id=context.user.id)
    return ensure_success(result)
