"""
Unit Tests for DocumentService

Review workflow, version history and deletion. Rows are written
directly; the hosted-file side is covered by the upload flow tests.
"""
import pytest
from sqlalchemy import select

from sims.models.communication import Notification, NotificationType
from sims.models.document import DocumentStatus, DocumentUpload, DocumentVersion
from sims.services.document_service import DocumentService

from conftest import fake


def file_fields(public_id: str = None) -> dict:
    public_id = public_id or f"student-documents/{fake.uuid4()}"
    return {
        "original_filename": "report.pdf",
        "file_size": 2048,
        "mime_type": "application/pdf",
        "cloudinary_public_id": public_id,
        "cloudinary_url": f"http://res.cloudinary.com/demo/raw/upload/{public_id}",
        "cloudinary_secure_url": f"https://res.cloudinary.com/demo/raw/upload/{public_id}",
    }


@pytest.fixture
async def document(db_session, student, section) -> dict:
    result = await DocumentService(db_session).upload_document(
        student.id, section.id, None, {"title": "Lab report", "document_type": "lab_report", **file_fields()}
    )
    assert result["success"], result
    return result["data"]


class TestUploadMetadata:
    """Test storing and listing upload rows"""

    async def test_upload_starts_pending_review(self, document, student):
        """Test new uploads are pending with student and section loaded"""
        assert document["status"] == "pending_review"
        assert document["document_type"] == "lab_report"
        assert document["student"]["id"] == student.id
        assert document["course_section"]["course"]["course_code"]
        assert document["submitted_at"]

    async def test_missing_title_is_an_error(self, db_session, student):
        """Test incomplete metadata comes back as an error result"""
        result = await DocumentService(db_session).upload_document(student.id, None, None, file_fields())

        assert result["success"] is False

    async def test_student_uploads_newest_first(self, db_session, student, document):
        """Test a student's own uploads are listed"""
        second = await DocumentService(db_session).upload_document(
            student.id, None, None, {"title": "CV", "document_type": "bio_data", **file_fields()}
        )

        uploads = await DocumentService(db_session).get_student_uploads(student.id)

        assert [u["id"] for u in uploads] == [second["data"]["id"], document["id"]]

    async def test_faculty_sees_every_upload(self, db_session, faculty, document):
        """Test the faculty list is not narrowed by section"""
        uploads = await DocumentService(db_session).get_faculty_uploads(faculty.id)

        assert [u["id"] for u in uploads] == [document["id"]]
        assert uploads[0]["student"]["user"]["email"]


class TestReview:
    """Test review outcomes"""

    async def test_approve_with_notes_reads_back(self, db_session, faculty, document):
        """Test approved status and notes are visible on the next read"""
        service = DocumentService(db_session)

        result = await service.update_document_status(document["id"], "approved", "Looks good", faculty.id)
        uploads = await service.get_student_uploads(document["student_id"])

        assert result["success"] is True
        assert uploads[0]["status"] == "approved"
        assert uploads[0]["faculty_review_notes"] == "Looks good"
        assert uploads[0]["reviewed_by"] == faculty.id
        assert uploads[0]["reviewed_at"] is not None

    async def test_review_notifies_student(self, db_session, student, document):
        """Test the student gets a status change notification"""
        await DocumentService(db_session).update_document_status(document["id"], "revision_required")

        notes = (await db_session.execute(
            select(Notification).where(Notification.user_id == student.user_id)
        )).scalars().all()

        assert len(notes) == 1
        assert notes[0].type == NotificationType.STATUS_CHANGE
        assert notes[0].message == '"Lab report" changed from pending review to revision required'

    async def test_rereview_allowed(self, db_session, document):
        """Test a reviewed document can receive another outcome"""
        service = DocumentService(db_session)
        await service.update_document_status(document["id"], "rejected")

        result = await service.update_document_status(document["id"], "approved")

        assert result["data"]["status"] == "approved"

    @pytest.mark.parametrize("status", ["pending_review", "archived", ""])
    async def test_invalid_status_rejected(self, db_session, document, status):
        """Test only review outcomes are accepted"""
        result = await DocumentService(db_session).update_document_status(document["id"], status)

        upload = await db_session.get(DocumentUpload, document["id"], populate_existing=True)
        assert result["success"] is False
        assert result["error"].startswith("Invalid review status")
        assert upload.status == DocumentStatus.PENDING_REVIEW

    async def test_missing_document(self, db_session):
        """Test reviewing an unknown document"""
        result = await DocumentService(db_session).update_document_status("missing", "approved")

        assert result == {"success": False, "error": "Document not found"}


class TestVersions:
    """Test re-submission history"""

    async def test_versions_start_at_one_newest_first(self, db_session, document):
        """Test allocated numbers and listing order"""
        service = DocumentService(db_session)

        first = await service.create_document_version(document["id"], {"change_description": "typo", **file_fields()})
        second = await service.create_document_version(document["id"], file_fields())
        versions = await service.get_document_versions(document["id"])

        assert first["data"]["version_number"] == 1
        assert second["data"]["version_number"] == 2
        assert [v["version_number"] for v in versions] == [2, 1]

    async def test_duplicate_version_number(self, db_session, document):
        """Test an explicit number cannot be reused"""
        service = DocumentService(db_session)
        await service.create_document_version(document["id"], {"version_number": 3, **file_fields()})

        result = await service.create_document_version(document["id"], {"version_number": 3, **file_fields()})

        assert result == {"success": False, "error": "Version number already exists for this document"}

    async def test_next_version_number_follows_highest(self, db_session, document):
        """Test the next number continues after explicit ones"""
        service = DocumentService(db_session)
        assert await service.next_version_number(document["id"]) == 1

        await service.create_document_version(document["id"], {"version_number": 4, **file_fields()})

        assert await service.next_version_number(document["id"]) == 5


class TestDelete:
    """Test deletion"""

    async def test_delete_returns_hosted_ids(self, db_session, document):
        """Test the row and its versions go, and their public ids are returned"""
        service = DocumentService(db_session)
        version = await service.create_document_version(document["id"], file_fields())

        result = await service.delete_document(document["id"])

        remaining = (await db_session.execute(select(DocumentVersion))).scalars().all()
        assert result["success"] is True
        assert result["data"]["public_ids"] == [
            document["cloudinary_public_id"], version["data"]["cloudinary_public_id"]
        ]
        assert remaining == []
        assert await service.get_student_uploads(document["student_id"]) == []

    async def test_delete_missing(self, db_session):
        """Test deleting an unknown document"""
        assert await DocumentService(db_session).delete_document("missing") == {
            "success": False, "error": "Document not found"
        }
