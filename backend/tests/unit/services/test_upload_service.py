"""
Unit Tests for the upload flow and the Cloudinary client

The client talks to a FakeCloudinary handler through httpx.MockTransport.
"""
import hashlib
import logging

import httpx
import pytest
from sqlalchemy import select, func

from sims.core.exceptions import FileHostNotConfiguredError, FileTooLargeError, FileUploadError, InvalidFileTypeError
from sims.models.communication import Notification, NotificationType
from sims.models.document import DocumentType, DocumentUpload
from sims.services.file_host import CloudinaryClient, sign_params
from sims.services.upload_service import UploadService, UploadedFile, validate_file


PDF = UploadedFile(filename="essay.pdf", content=b"%PDF-1.4 essay", mime_type="application/pdf")


async def _document_count(db_session) -> int:
    return (await db_session.execute(select(func.count(DocumentUpload.id)))).scalar()


class TestValidateFile:
    """Test local validation before any remote call"""

    def test_accepts_allowed_type(self):
        """Test a small PDF passes"""
        validate_file(1024, "application/pdf")

    def test_too_large(self):
        """Test the size limit"""
        with pytest.raises(FileTooLargeError) as exc:
            validate_file(11 * 1024 * 1024, "application/pdf")

        assert exc.value.message == "File size must be less than 10MB"

    def test_exactly_at_limit(self):
        """Test the limit itself is allowed"""
        validate_file(10 * 1024 * 1024, "application/pdf")

    def test_unsupported_type(self):
        """Test executables are refused"""
        with pytest.raises(InvalidFileTypeError):
            validate_file(10, "application/x-msdownload")


class TestCloudinaryClient:
    """Test the file host client"""

    def test_signature(self):
        """Test sorted key=value pairs with the secret appended, empty values skipped"""
        expected = hashlib.sha1(b"public_id=abc&timestamp=1700000000secret").hexdigest()

        assert sign_params({"timestamp": 1700000000, "public_id": "abc", "folder": ""}, "secret") == expected

    async def test_upload_posts_preset_and_folder(self, file_host, cloudinary):
        """Test the unsigned upload request"""
        result = await file_host.upload_file(b"data", "a.txt", "text/plain", folder="student-documents/STU1")

        request = cloudinary.uploads[0]
        assert request.url.path == "/v1_1/demo/auto/upload"
        assert b"sims-unsigned" in request.content
        assert b"student-documents/STU1" in request.content
        assert result["secure_url"].startswith("https://")

    async def test_upload_rejected(self, file_host, cloudinary):
        """Test host errors carry the host's message"""
        cloudinary.fail_uploads = True

        with pytest.raises(FileUploadError) as exc:
            await file_host.upload_file(b"data", "a.txt", "text/plain")

        assert exc.value.message == "Upload failed: Upload preset not found"

    async def test_network_error(self):
        """Test transport failures become FileUploadError"""
        def broken(request):
            raise httpx.ConnectError("offline", request=request)

        client = CloudinaryClient("demo", "preset", transport=httpx.MockTransport(broken))

        with pytest.raises(FileUploadError):
            await client.upload_file(b"data", "a.txt", "text/plain")

    async def test_not_configured(self):
        """Test uploads need a cloud name and preset"""
        client = CloudinaryClient(cloud_name="", upload_preset="")

        with pytest.raises(FileHostNotConfiguredError):
            await client.upload_file(b"data", "a.txt", "text/plain")

    async def test_delete_is_signed(self, file_host, cloudinary):
        """Test destroy sends api key and signature"""
        assert await file_host.delete_file("student-documents/x") is True

        assert cloudinary.destroyed == ["student-documents/x"]

    async def test_delete_needs_keys(self):
        """Test destroy without the key pair"""
        client = CloudinaryClient("demo", "preset", api_key="", api_secret="")

        with pytest.raises(FileHostNotConfiguredError):
            await client.delete_file("x")

    def test_download_url(self, file_host):
        """Test delivery URL transformations"""
        url = file_host.get_download_url("docs/cv", format="pdf", flags="attachment", resource_type="raw")

        assert url == "https://res.cloudinary.com/demo/raw/upload/fl_attachment/docs/cv.pdf"


class TestUploadDocument:
    """Test the full upload flow"""

    async def test_upload_stores_metadata_and_notifies_instructor(self, db_session, file_host, cloudinary,
                                                                  student, faculty, section):
        """Test a successful upload lands pending review and notifies the section instructor"""
        result = await UploadService(db_session, file_host).upload_document(
            student.id, PDF, "Essay", DocumentType.ASSIGNMENT, course_section_id=section.id
        )

        notes = (await db_session.execute(
            select(Notification).where(Notification.type == NotificationType.DOCUMENT_UPLOAD)
        )).scalars().all()
        assert result["success"] is True
        assert result["data"]["status"] == "pending_review"
        assert result["data"]["file_size"] == len(PDF.content)
        assert result["data"]["cloudinary_secure_url"].startswith("https://res.cloudinary.com/demo/")
        assert len(cloudinary.uploads) == 1
        assert [n.user_id for n in notes] == [faculty.user_id]

    async def test_files_go_to_student_folder(self, db_session, file_host, cloudinary, student):
        """Test hosted files are grouped by institution number"""
        await UploadService(db_session, file_host).upload_document(student.id, PDF, "CV", DocumentType.BIO_DATA)

        assert f"student-documents/{student.student_id}".encode() in cloudinary.uploads[0].content

    async def test_validation_happens_before_hosting(self, db_session, file_host, cloudinary, student):
        """Test invalid files never reach the host"""
        bad = UploadedFile(filename="run.exe", content=b"MZ", mime_type="application/x-msdownload")

        with pytest.raises(InvalidFileTypeError):
            await UploadService(db_session, file_host).upload_document(student.id, bad, "Nope")

        assert cloudinary.uploads == []

    async def test_host_failure_stores_nothing(self, db_session, file_host, cloudinary, student):
        """Test a rejected upload leaves no metadata row"""
        cloudinary.fail_uploads = True

        result = await UploadService(db_session, file_host).upload_document(student.id, PDF, "Essay")

        assert result == {"success": False, "error": "Upload failed: Upload preset not found",
                          "error_code": "FILE_HOST_FAILED"}
        assert await _document_count(db_session) == 0

    async def test_metadata_failure_destroys_hosted_file(self, db_session, file_host, cloudinary, student,
                                                         monkeypatch):
        """Test the compensating delete when the metadata row cannot be written"""
        service = UploadService(db_session, file_host)

        async def failing_insert(*args, **kwargs):
            return {"success": False, "error": "database unavailable"}

        monkeypatch.setattr(service.documents, "upload_document", failing_insert)

        result = await service.upload_document(student.id, PDF, "Essay")

        assert result == {"success": False, "error": "database unavailable"}
        assert len(cloudinary.destroyed) == 1
        assert cloudinary.destroyed[0].startswith("student-documents/")

    async def test_orphan_logged_without_signing_keys(self, db_session, cloudinary, student, monkeypatch):
        """Test the flow still returns the error when the file cannot be destroyed"""
        unsigned = CloudinaryClient("demo", "sims-unsigned", api_key="", api_secret="",
                                    transport=httpx.MockTransport(cloudinary))
        service = UploadService(db_session, unsigned)

        async def failing_insert(*args, **kwargs):
            return {"success": False, "error": "database unavailable"}

        monkeypatch.setattr(service.documents, "upload_document", failing_insert)

        result = await service.upload_document(student.id, PDF, "Essay")

        assert result["success"] is False
        assert cloudinary.destroyed == []

    async def test_unconfirmed_destroy_is_logged(self, db_session, file_host, cloudinary, student, monkeypatch,
                                                 caplog):
        """Test a destroy the host does not confirm is logged as an orphan"""
        cloudinary.destroy_result = "error"
        service = UploadService(db_session, file_host)

        async def failing_insert(*args, **kwargs):
            return {"success": False, "error": "database unavailable"}

        monkeypatch.setattr(service.documents, "upload_document", failing_insert)

        with caplog.at_level(logging.ERROR, logger="sims"):
            await service.upload_document(student.id, PDF, "Essay")

        orphans = [r for r in caplog.records if getattr(r, "file_action", None) == "orphaned"]
        assert len(cloudinary.destroyed) == 1
        assert len(orphans) == 1
        assert orphans[0].public_id == cloudinary.destroyed[0]
        assert orphans[0].reason == "file host did not confirm deletion"

    async def test_unknown_student(self, db_session, file_host, cloudinary):
        """Test missing student profiles fail before hosting"""
        result = await UploadService(db_session, file_host).upload_document("missing", PDF, "Essay")

        assert result == {"success": False, "error": "Student profile not found"}
        assert cloudinary.uploads == []


class TestUploadVersion:
    """Test re-submissions"""

    async def test_new_version(self, db_session, file_host, student, section):
        """Test a re-submission becomes version 1 of the document"""
        service = UploadService(db_session, file_host)
        uploaded = await service.upload_document(student.id, PDF, "Essay", course_section_id=section.id)

        result = await service.upload_document_version(
            student.id, uploaded["data"]["id"], PDF, change_description="Fixed references"
        )

        assert result["success"] is True
        assert result["data"]["version_number"] == 1
        assert result["data"]["change_description"] == "Fixed references"

    async def test_other_students_document(self, db_session, file_host, cloudinary, student):
        """Test versions can only be added to the student's own documents"""
        service = UploadService(db_session, file_host)
        uploaded = await service.upload_document(student.id, PDF, "Essay")

        result = await service.upload_document_version("someone-else", uploaded["data"]["id"], PDF)

        assert result == {"success": False, "error": "Document not found"}
        assert len(cloudinary.uploads) == 1


class TestDeleteDocument:
    """Test students removing their documents"""

    async def test_delete_destroys_every_version(self, db_session, file_host, cloudinary, student):
        service = UploadService(db_session, file_host)
        uploaded = await service.upload_document(student.id, PDF, "Essay")
        await service.upload_document_version(student.id, uploaded["data"]["id"], PDF)

        result = await service.delete_document(student.id, uploaded["data"]["id"])

        assert result["success"] is True
        assert len(result["data"]["public_ids"]) == 2
        assert result["data"]["destroyed"] == result["data"]["public_ids"]
        assert sorted(cloudinary.destroyed) == sorted(result["data"]["public_ids"])
        assert await _document_count(db_session) == 0

    async def test_other_students_document(self, db_session, file_host, cloudinary, student):
        service = UploadService(db_session, file_host)
        uploaded = await service.upload_document(student.id, PDF, "Essay")

        result = await service.delete_document("someone-else", uploaded["data"]["id"])

        assert result == {"success": False, "error": "Document not found"}
        assert cloudinary.destroyed == []
        assert await _document_count(db_session) == 1

    async def test_rows_deleted_when_files_cannot_be_destroyed(self, db_session, cloudinary, student):
        """Test missing signing keys leave the files logged but the document gone"""
        unsigned = CloudinaryClient("demo", "sims-unsigned", api_key="", api_secret="",
                                    transport=httpx.MockTransport(cloudinary))
        service = UploadService(db_session, unsigned)
        uploaded = await service.upload_document(student.id, PDF, "Essay")

        result = await service.delete_document(student.id, uploaded["data"]["id"])

        assert result["success"] is True
        assert result["data"]["destroyed"] == []
        assert await _document_count(db_session) == 0

    def test_download_urls_follow_resource_type(self, file_host):
        uploads = [
            {"cloudinary_public_id": "docs/essay", "mime_type": "application/pdf"},
            {"cloudinary_public_id": "docs/notes", "mime_type": "text/plain"},
        ]

        UploadService(None, file_host).with_download_urls(uploads)

        assert uploads[0]["download_url"] == "https://res.cloudinary.com/demo/image/upload/fl_attachment/docs/essay"
        assert uploads[1]["download_url"] == "https://res.cloudinary.com/demo/raw/upload/fl_attachment/docs/notes"
