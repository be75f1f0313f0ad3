"""
Upload flow: validate -> file host -> metadata row -> faculty notification.

Validation happens before any remote call and raises. Once the file is on
the host, every later failure is returned as ``{"success": False, ...}``
and the hosted file is destroyed again so no unreferenced asset is left
behind (or logged when signed deletion is not configured).
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from sims.core.config import settings
from sims.core.exceptions import FileHostError, FileTooLargeError, InvalidFileTypeError
from sims.core.logging_config import logger
from sims.models.document import DocumentUpload, DocumentType
from sims.models.user import Student
from sims.services.document_service import DocumentService
from sims.services.file_host import CloudinaryClient, resource_type_for
from sims.services.notification_service import NotificationService

# error_code on results that failed at the file host
FILE_HOST_FAILED = "FILE_HOST_FAILED"


@dataclass
class UploadedFile:
    filename: str
    content: bytes
    mime_type: str

    @property
    def size(self) -> int:
        return len(self.content)


def validate_file(size: int, mime_type: str,
                  max_size: Optional[int] = None,
                  allowed_types: Optional[List[str]] = None) -> None:
    """Raise when the file is too large or of a type we do not accept"""
    max_size = max_size or settings.MAX_UPLOAD_SIZE
    allowed_types = allowed_types or settings.ALLOWED_MIME_TYPES
    if size > max_size:
        raise FileTooLargeError(size, max_size)
    if mime_type not in allowed_types:
        raise InvalidFileTypeError(mime_type, allowed_types)


def _file_fields(file: UploadedFile, hosted: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "original_filename": file.filename,
        "file_size": file.size,
        "mime_type": file.mime_type,
        "cloudinary_public_id": hosted["public_id"],
        "cloudinary_url": hosted.get("url") or hosted["secure_url"],
        "cloudinary_secure_url": hosted["secure_url"],
    }


class UploadService:
    """Student document submission"""

    def __init__(self, db: AsyncSession, file_host: CloudinaryClient):
        self.db = db
        self.file_host = file_host
        self.documents = DocumentService(db)
        self.notifications = NotificationService(db)

    async def _host(self, student: Student, file: UploadedFile) -> Dict[str, Any]:
        return await self.file_host.upload_file(
            file.content,
            file.filename,
            file.mime_type,
            folder=f"{settings.UPLOAD_FOLDER}/{student.student_id}",
        )

    async def _destroy(self, public_id: str, resource_type: str) -> bool:
        """Signed delete of one hosted file; anything left on the host is logged"""
        if not self.file_host.can_sign:
            logger.log_file_event("orphaned", public_id, ok=False, reason="signed deletion not configured")
            return False
        try:
            gone = await self.file_host.delete_file(public_id, resource_type=resource_type)
        except FileHostError as e:
            logger.log_file_event("orphaned", public_id, ok=False, reason=e.message)
            return False
        if not gone:
            logger.log_file_event("orphaned", public_id, ok=False, reason="file host did not confirm deletion")
        return gone

    async def _discard(self, hosted: Dict[str, Any]) -> None:
        """Compensating delete for a file whose metadata could not be stored"""
        await self._destroy(hosted.get("public_id"), hosted.get("resource_type", "raw"))

    async def _notify_faculty(self, student: Student, document_id: str, title: str) -> None:
        uploader = student.user.full_name if student.user and student.user.full_name else student.student_id
        notified = await self.notifications.create_document_upload_notification(document_id, uploader, title)
        if not notified["success"]:
            logger.warning(f"Upload notification failed for {document_id}: {notified['error']}")

    async def upload_document(
        self,
        student_id: str,
        file: UploadedFile,
        title: str,
        document_type: DocumentType = DocumentType.OTHER,
        description: Optional[str] = None,
        course_section_id: Optional[str] = None,
        assignment_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        validate_file(file.size, file.mime_type)

        student = await self.db.get(
            Student, student_id, options=[selectinload(Student.user)], populate_existing=True
        )
        if student is None:
            return {"success": False, "error": "Student profile not found"}

        try:
            hosted = await self._host(student, file)
        except FileHostError as e:
            return {"success": False, "error": e.message, "error_code": FILE_HOST_FAILED}

        saved = await self.documents.upload_document(
            student.id,
            course_section_id,
            assignment_id,
            {
                "document_type": document_type,
                "title": title,
                "description": description,
                **_file_fields(file, hosted),
            },
        )
        if not saved["success"]:
            await self._discard(hosted)
            return saved

        await self._notify_faculty(student, saved["data"]["id"], title)
        return saved

    async def upload_document_version(
        self,
        student_id: str,
        document_id: str,
        file: UploadedFile,
        change_description: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Re-submit a file for one of the student's own documents"""
        validate_file(file.size, file.mime_type)

        student = await self.db.get(
            Student, student_id, options=[selectinload(Student.user)], populate_existing=True
        )
        document = await self.db.get(DocumentUpload, document_id)
        if student is None or document is None or document.student_id != student.id:
            return {"success": False, "error": "Document not found"}

        try:
            hosted = await self._host(student, file)
        except FileHostError as e:
            return {"success": False, "error": e.message, "error_code": FILE_HOST_FAILED}

        saved = await self.documents.create_document_version(
            document_id,
            {"change_description": change_description, **_file_fields(file, hosted)},
        )
        if not saved["success"]:
            await self._discard(hosted)
            return saved

        await self._notify_faculty(student, document_id, document.title)
        return saved

    async def delete_document(self, student_id: str, document_id: str) -> Dict[str, Any]:
        """
        Remove one of the student's documents with all its versions.

        The rows go first; hosted files that cannot be destroyed afterwards
        are logged and do not fail the request.
        """
        document = await self.db.get(DocumentUpload, document_id)
        if document is None or document.student_id != student_id:
            return {"success": False, "error": "Document not found"}

        deleted = await self.documents.delete_document(document_id)
        if not deleted["success"]:
            return deleted

        public_ids = deleted["data"]["public_ids"]
        mime_types = deleted["data"]["mime_types"]
        destroyed = [p for p in public_ids if await self._destroy(p, resource_type_for(mime_types.get(p)))]
        logger.log_academic_event("deleted", "document", document_id, actor_id=student_id,
                                  files=len(public_ids), files_destroyed=len(destroyed))
        return {"success": True, "data": {"public_ids": public_ids, "destroyed": destroyed}}

    def with_download_urls(self, uploads: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Add an attachment delivery URL to each serialized upload"""
        for upload in uploads:
            upload["download_url"] = self.file_host.get_download_url(
                upload["cloudinary_public_id"],
                flags="attachment",
                resource_type=resource_type_for(upload.get("mime_type")),
            )
        return uploads
