"""
Unit Tests for NotificationService and the notification procedures
"""
import pytest
from sqlalchemy import select

from sims.core.roles import Role
from sims.db.procedures import call_procedure
from sims.models.communication import Notification, NotificationType
from sims.models.document import DocumentUpload
from sims.services.notification_service import NotificationService

from conftest import make_section, sign_up


async def _seed(service: NotificationService, user_id: str, count: int):
    for i in range(count):
        await service.create_notification(user_id, f"Note {i}", "body")


async def _upload(db_session, student, section=None) -> DocumentUpload:
    upload = DocumentUpload(
        student_id=student.id,
        course_section_id=section.id if section else None,
        title="Essay",
        original_filename="essay.pdf",
        file_size=10,
        mime_type="application/pdf",
        cloudinary_public_id="student-documents/essay",
        cloudinary_url="http://res.cloudinary.com/demo/raw/upload/student-documents/essay",
        cloudinary_secure_url="https://res.cloudinary.com/demo/raw/upload/student-documents/essay",
    )
    db_session.add(upload)
    await db_session.commit()
    return upload


class TestInbox:
    """Test per-user inbox operations"""

    async def test_unread_count_and_listing(self, db_session, student_session):
        """Test new notifications are unread and listed newest first"""
        service = NotificationService(db_session)
        await _seed(service, student_session.user.id, 3)

        notes = await service.get_user_notifications(student_session.user.id)

        assert await service.get_unread_count(student_session.user.id) == 3
        assert [n["title"] for n in notes][0] == "Note 2"
        assert all(n["type"] == "general" for n in notes)

    async def test_listing_limit(self, db_session, student_session):
        """Test the limit argument caps the result"""
        service = NotificationService(db_session)
        await _seed(service, student_session.user.id, 4)

        assert len(await service.get_user_notifications(student_session.user.id, limit=2)) == 2

    async def test_mark_all_only_touches_owner(self, db_session, student_session, faculty_session):
        """Test mark-all leaves other users' unread notifications alone"""
        service = NotificationService(db_session)
        await _seed(service, student_session.user.id, 2)
        await _seed(service, faculty_session.user.id, 3)

        result = await service.mark_all_as_read(student_session.user.id)

        assert result["data"]["updated"] == 2
        assert await service.get_unread_count(student_session.user.id) == 0
        assert await service.get_unread_count(faculty_session.user.id) == 3

    async def test_mark_one_as_read(self, db_session, student_session):
        """Test a single notification is marked read by its owner"""
        service = NotificationService(db_session)
        created = await service.create_notification(student_session.user.id, "Hi", "there")

        result = await service.mark_as_read(created["data"]["id"], user_id=student_session.user.id)

        assert result == {"success": True}
        assert await service.get_unread_count(student_session.user.id) == 0

    async def test_mark_other_users_notification(self, db_session, student_session, faculty_session):
        """Test owners are enforced when user_id is given"""
        service = NotificationService(db_session)
        created = await service.create_notification(student_session.user.id, "Hi", "there")

        result = await service.mark_as_read(created["data"]["id"], user_id=faculty_session.user.id)

        assert result == {"success": False, "error": "Notification not found"}
        assert await service.get_unread_count(student_session.user.id) == 1

    async def test_delete(self, db_session, student_session, faculty_session):
        """Test owners can delete, others cannot"""
        service = NotificationService(db_session)
        created = await service.create_notification(student_session.user.id, "Hi", "there")

        denied = await service.delete_notification(created["data"]["id"], user_id=faculty_session.user.id)
        allowed = await service.delete_notification(created["data"]["id"], user_id=student_session.user.id)

        assert denied["success"] is False
        assert allowed == {"success": True}
        assert await service.get_user_notifications(student_session.user.id) == []

    async def test_unknown_type(self, db_session, student_session):
        """Test invalid notification types come back as an error"""
        result = await NotificationService(db_session).create_notification(
            student_session.user.id, "Hi", "there", type="carrier_pigeon"
        )

        assert result["success"] is False


class TestUploadFanOut:
    """Test who hears about a new upload"""

    async def test_section_instructor_notified(self, db_session, provider, student, faculty, section):
        """Test an upload for a section notifies only its instructor"""
        bystander = await sign_up(provider, Role.FACULTY)
        upload = await _upload(db_session, student, section)

        result = await NotificationService(db_session).create_document_upload_notification(
            upload.id, "Ada Lovelace", "Essay"
        )

        notes = (await db_session.execute(
            select(Notification).where(Notification.type == NotificationType.DOCUMENT_UPLOAD)
        )).scalars().all()
        assert result["data"]["notified"] == 1
        assert [n.user_id for n in notes] == [faculty.user_id]
        assert notes[0].message == 'Ada Lovelace uploaded "Essay" for review'
        assert notes[0].related_id == upload.id
        assert bystander.user.id not in [n.user_id for n in notes]

    async def test_unattached_upload_notifies_all_faculty(self, db_session, provider, student, faculty):
        """Test uploads without a section go to every faculty member"""
        other = await sign_up(provider, Role.FACULTY)
        upload = await _upload(db_session, student)

        result = await NotificationService(db_session).create_document_upload_notification(
            upload.id, "Ada", "Essay"
        )

        assert result["data"]["notified"] == 2
        unread = NotificationService(db_session)
        assert await unread.get_unread_count(faculty.user_id) == 1
        assert await unread.get_unread_count(other.user.id) == 1

    async def test_untaught_section_falls_back_to_all_faculty(self, db_session, student, faculty, department):
        """Test a section without an instructor behaves like an unattached upload"""
        section = await make_section(db_session, department)
        upload = await _upload(db_session, student, section)

        result = await NotificationService(db_session).create_document_upload_notification(
            upload.id, "Ada", "Essay"
        )

        assert result["data"]["notified"] == 1

    async def test_unknown_document(self, db_session):
        """Test the procedure failure is an error result"""
        result = await NotificationService(db_session).create_document_upload_notification(
            "missing", "Ada", "Essay"
        )

        assert result["success"] is False
        assert "does not exist" in result["error"]


class TestProcedures:
    """Test the procedure dispatcher"""

    async def test_unknown_procedure(self, db_session):
        """Test unknown names raise LookupError"""
        with pytest.raises(LookupError):
            await call_procedure(db_session, "drop_everything", {})

    async def test_status_change_message(self, db_session, student_session):
        """Test status labels are humanized"""
        written = await call_procedure(db_session, "notify_student_status_change", {
            "p_student_user_id": student_session.user.id,
            "p_document_title": "Thesis",
            "p_old_status": "pending_review",
            "p_new_status": "approved",
        })

        note = (await db_session.execute(select(Notification))).scalar_one()
        assert written == 1
        assert note.title == "Document status updated"
        assert note.message == '"Thesis" changed from pending review to approved'

    async def test_missing_announcement(self, db_session):
        """Test announcements must exist before fan-out"""
        with pytest.raises(LookupError):
            await call_procedure(db_session, "notify_users_announcement", {
                "p_announcement_id": "missing",
                "p_title": "t",
                "p_content": "c",
                "p_target_audience": "all",
            })
