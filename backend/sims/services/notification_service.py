"""
Notification Service
Per-user notification inbox plus the fan-out calls that create
notifications for uploads, review status changes and announcements.
"""

from typing import List, Optional, Dict, Any
from sqlalchemy import select, update, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from sims.core.logging_config import logger
from sims.db.procedures import call_procedure
from sims.models.communication import Notification, NotificationType
from sims.utils.serialization import to_dict


class NotificationService:
    """Service for notification operations"""

    def __init__(self, db: AsyncSession):
        self.db = db

    # =====================================================
    # INBOX
    # =====================================================

    async def get_user_notifications(self, user_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        """Newest first"""
        try:
            result = await self.db.execute(
                select(Notification)
                .where(Notification.user_id == user_id)
                .order_by(Notification.created_at.desc())
                .limit(limit)
            )
            return [to_dict(n) for n in result.scalars().all()]
        except Exception as e:
            logger.log_error_with_context(e, context="get_user_notifications", user_id=user_id)
            return []

    async def get_unread_count(self, user_id: str) -> int:
        try:
            result = await self.db.execute(
                select(func.count(Notification.id))
                .where(Notification.user_id == user_id, Notification.is_read == False)
            )
            return result.scalar() or 0
        except Exception as e:
            logger.log_error_with_context(e, context="get_unread_count", user_id=user_id)
            return 0

    async def mark_as_read(self, notification_id: str, user_id: Optional[str] = None) -> Dict[str, Any]:
        """Mark one notification read; ``user_id`` restricts it to the owner's rows"""
        try:
            query = update(Notification).where(Notification.id == notification_id)
            if user_id is not None:
                query = query.where(Notification.user_id == user_id)
            result = await self.db.execute(
                query.values(is_read=True).execution_options(synchronize_session="fetch")
            )
            if result.rowcount == 0:
                await self.db.rollback()
                return {"success": False, "error": "Notification not found"}
            await self.db.commit()
            return {"success": True}
        except Exception as e:
            await self.db.rollback()
            logger.log_error_with_context(e, context="mark_as_read", notification_id=notification_id)
            return {"success": False, "error": str(e)}

    async def mark_all_as_read(self, user_id: str) -> Dict[str, Any]:
        """Only the given user's unread rows change"""
        try:
            result = await self.db.execute(
                update(Notification)
                .where(Notification.user_id == user_id, Notification.is_read == False)
                .values(is_read=True)
                .execution_options(synchronize_session="fetch")
            )
            await self.db.commit()
            return {"success": True, "data": {"updated": result.rowcount}}
        except Exception as e:
            await self.db.rollback()
            logger.log_error_with_context(e, context="mark_all_as_read", user_id=user_id)
            return {"success": False, "error": str(e)}

    async def create_notification(
        self,
        user_id: str,
        title: str,
        message: str,
        type: str = NotificationType.GENERAL.value,
        related_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        try:
            notification = Notification(
                user_id=user_id,
                title=title,
                message=message,
                type=NotificationType(type),
                related_id=related_id,
            )
            self.db.add(notification)
            await self.db.commit()
            return {"success": True, "data": to_dict(notification)}
        except Exception as e:
            await self.db.rollback()
            logger.log_error_with_context(e, context="create_notification", user_id=user_id)
            return {"success": False, "error": str(e)}

    async def delete_notification(self, notification_id: str, user_id: Optional[str] = None) -> Dict[str, Any]:
        try:
            query = delete(Notification).where(Notification.id == notification_id)
            if user_id is not None:
                query = query.where(Notification.user_id == user_id)
            result = await self.db.execute(query.execution_options(synchronize_session="fetch"))
            if result.rowcount == 0:
                await self.db.rollback()
                return {"success": False, "error": "Notification not found"}
            await self.db.commit()
            return {"success": True}
        except Exception as e:
            await self.db.rollback()
            logger.log_error_with_context(e, context="delete_notification", notification_id=notification_id)
            return {"success": False, "error": str(e)}

    # =====================================================
    # FAN-OUT (stored procedures)
    # =====================================================

    async def _fan_out(self, procedure: str, **params) -> Dict[str, Any]:
        try:
            created = await call_procedure(self.db, procedure, params)
            return {"success": True, "data": {"notified": created}}
        except Exception as e:
            logger.log_error_with_context(e, context=procedure)
            return {"success": False, "error": str(e)}

    async def create_document_upload_notification(
        self, document_id: str, uploader_name: str, document_title: str
    ) -> Dict[str, Any]:
        return await self._fan_out(
            "notify_faculty_document_upload",
            p_document_id=document_id,
            p_uploader_name=uploader_name,
            p_document_title=document_title,
        )

    async def create_status_change_notification(
        self, user_id: str, document_title: str, old_status: str, new_status: str
    ) -> Dict[str, Any]:
        return await self._fan_out(
            "notify_student_status_change",
            p_student_user_id=user_id,
            p_document_title=document_title,
            p_old_status=old_status,
            p_new_status=new_status,
        )

    async def create_announcement_notification(
        self, announcement_id: str, title: str, content: str, target_audience: str
    ) -> Dict[str, Any]:
        return await self._fan_out(
            "notify_users_announcement",
            p_announcement_id=announcement_id,
            p_title=title,
            p_content=content,
            p_target_audience=target_audience,
        )
