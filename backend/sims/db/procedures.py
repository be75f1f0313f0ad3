"""
Stored procedures of the data store.

Each procedure runs as one atomic call: it either commits every row it
writes or none of them. Callers go through ``call_procedure`` by name and
get back the number of rows written; any failure propagates as an
exception for the caller to turn into an error string.
"""

from typing import Any, Awaitable, Callable, Dict, List, Optional

from sqlalchemy import select, insert
from sqlalchemy.ext.asyncio import AsyncSession

from sims.core.logging_config import logger
from sims.core.roles import Role
from sims.models.academics import CourseSection, Enrollment, SEAT_HOLDING_STATUSES
from sims.models.communication import Announcement, Notification, NotificationType, TargetAudience
from sims.models.document import DocumentUpload
from sims.models.user import User, Student, Faculty


Procedure = Callable[..., Awaitable[int]]


def _status_label(status: str) -> str:
    return status.replace("_", " ")


async def _insert_notifications(
    db: AsyncSession,
    user_ids: List[str],
    title: str,
    message: str,
    notification_type: NotificationType,
    related_id: Optional[str],
) -> int:
    unique_ids = list(dict.fromkeys(user_ids))
    if not unique_ids:
        return 0
    await db.execute(
        insert(Notification),
        [
            {
                "user_id": user_id,
                "title": title,
                "message": message,
                "type": notification_type,
                "related_id": related_id,
                "is_read": False,
            }
            for user_id in unique_ids
        ],
    )
    return len(unique_ids)


async def notify_users_announcement(
    db: AsyncSession,
    p_announcement_id: str,
    p_title: str,
    p_content: str,
    p_target_audience: str,
) -> int:
    """One notification per member of the announcement's audience, author excluded"""
    announcement = (await db.execute(
        select(Announcement).where(Announcement.id == p_announcement_id)
    )).scalar_one_or_none()
    if announcement is None:
        raise LookupError(f"Announcement {p_announcement_id} does not exist")

    audience = TargetAudience(p_target_audience)
    if audience is TargetAudience.ALL:
        query = select(User.id)
    elif audience is TargetAudience.STUDENTS:
        query = select(User.id).where(User.role == Role.STUDENT)
    elif audience is TargetAudience.FACULTY:
        query = select(User.id).where(User.role == Role.FACULTY)
    else:
        query = (
            select(Student.user_id)
            .join(Enrollment, Enrollment.student_id == Student.id)
            .where(
                Enrollment.section_id == announcement.target_id,
                Enrollment.status.in_(SEAT_HOLDING_STATUSES),
            )
        )

    recipients = [
        user_id for user_id in (await db.execute(query)).scalars().all()
        if user_id != announcement.author_id
    ]
    return await _insert_notifications(
        db,
        recipients,
        title=f"New announcement: {p_title}",
        message=p_content[:500],
        notification_type=NotificationType.ANNOUNCEMENT,
        related_id=p_announcement_id,
    )


async def notify_faculty_document_upload(
    db: AsyncSession,
    p_document_id: str,
    p_uploader_name: str,
    p_document_title: str,
) -> int:
    """Notify the section instructor, or every faculty member for unattached uploads"""
    document = (await db.execute(
        select(DocumentUpload).where(DocumentUpload.id == p_document_id)
    )).scalar_one_or_none()
    if document is None:
        raise LookupError(f"Document {p_document_id} does not exist")

    recipients: List[str] = []
    if document.course_section_id:
        instructor = (await db.execute(
            select(Faculty.user_id)
            .join(CourseSection, CourseSection.faculty_id == Faculty.id)
            .where(CourseSection.id == document.course_section_id)
        )).scalar_one_or_none()
        if instructor:
            recipients.append(instructor)

    if not recipients:
        recipients = list((await db.execute(select(Faculty.user_id))).scalars().all())

    return await _insert_notifications(
        db,
        recipients,
        title="New document submitted",
        message=f"{p_uploader_name} uploaded \"{p_document_title}\" for review",
        notification_type=NotificationType.DOCUMENT_UPLOAD,
        related_id=p_document_id,
    )


async def notify_student_status_change(
    db: AsyncSession,
    p_student_user_id: str,
    p_document_title: str,
    p_old_status: str,
    p_new_status: str,
) -> int:
    """Tell a student their document moved to a new review status"""
    return await _insert_notifications(
        db,
        [p_student_user_id],
        title="Document status updated",
        message=(
            f"\"{p_document_title}\" changed from {_status_label(p_old_status)} "
            f"to {_status_label(p_new_status)}"
        ),
        notification_type=NotificationType.STATUS_CHANGE,
        related_id=None,
    )


PROCEDURES: Dict[str, Procedure] = {
    "notify_users_announcement": notify_users_announcement,
    "notify_faculty_document_upload": notify_faculty_document_upload,
    "notify_student_status_change": notify_student_status_change,
}


async def call_procedure(db: AsyncSession, name: str, params: Dict[str, Any]) -> int:
    """Run a procedure atomically; commits on success, rolls back and re-raises on failure"""
    procedure = PROCEDURES.get(name)
    if procedure is None:
        raise LookupError(f"Unknown procedure: {name}")

    try:
        written = await procedure(db, **params)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.debug(f"Procedure {name} wrote {written} rows")
    return written
