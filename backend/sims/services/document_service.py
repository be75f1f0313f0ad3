"""
Document Service
Metadata of student-submitted documents, their review workflow and
re-submission history. File bytes live on the file host; see
``sims.services.upload_service`` for the upload flow.
"""

from typing import List, Optional, Dict, Any
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from sims.core.logging_config import logger
from sims.core.types import utcnow
from sims.models.academics import CourseSection
from sims.models.document import (
    DocumentUpload, DocumentVersion, DocumentType, DocumentStatus, REVIEW_OUTCOMES
)
from sims.models.user import Student, Faculty
from sims.services.notification_service import NotificationService
from sims.utils.serialization import to_dict


FILE_FIELDS = (
    "original_filename",
    "file_size",
    "mime_type",
    "cloudinary_public_id",
    "cloudinary_url",
    "cloudinary_secure_url",
)


def _parse_status(value) -> Optional[DocumentStatus]:
    try:
        return DocumentStatus(value)
    except ValueError:
        return None


class DocumentService:
    """Service for document uploads and reviews"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _load_upload(self, document_id: str) -> Optional[DocumentUpload]:
        result = await self.db.execute(
            select(DocumentUpload)
            .options(
                selectinload(DocumentUpload.student).selectinload(Student.user),
                selectinload(DocumentUpload.course_section).selectinload(CourseSection.course),
                selectinload(DocumentUpload.course_section)
                .selectinload(CourseSection.faculty)
                .selectinload(Faculty.user),
                selectinload(DocumentUpload.assignment),
            )
            .where(DocumentUpload.id == document_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    # =====================================================
    # UPLOADS
    # =====================================================

    async def upload_document(
        self,
        student_id: str,
        course_section_id: Optional[str],
        assignment_id: Optional[str],
        data: Dict[str, Any],
    ) -> Dict[str, Any]:
        """Store upload metadata; returns the row with student, section and assignment"""
        try:
            upload = DocumentUpload(
                student_id=student_id,
                course_section_id=course_section_id,
                assignment_id=assignment_id,
                document_type=DocumentType(data.get("document_type", DocumentType.OTHER)),
                title=data["title"],
                description=data.get("description"),
                status=DocumentStatus.PENDING_REVIEW,
                submitted_at=utcnow(),
                **{k: data[k] for k in FILE_FIELDS},
            )
            self.db.add(upload)
            await self.db.commit()

            stored = await self._load_upload(upload.id)
            return {"success": True, "data": to_dict(stored)}
        except IntegrityError as e:
            await self.db.rollback()
            logger.warning(f"upload_document rejected: {e.orig}")
            return {"success": False, "error": "Course section or assignment does not exist"}
        except Exception as e:
            await self.db.rollback()
            logger.log_error_with_context(e, context="upload_document", student_id=student_id)
            return {"success": False, "error": str(e)}

    async def get_student_uploads(self, student_id: str) -> List[Dict[str, Any]]:
        """A student's uploads, newest first, with reviewer details"""
        try:
            result = await self.db.execute(
                select(DocumentUpload)
                .options(
                    selectinload(DocumentUpload.course_section).selectinload(CourseSection.course),
                    selectinload(DocumentUpload.assignment),
                    selectinload(DocumentUpload.reviewed_by_faculty).selectinload(Faculty.user),
                )
                .where(DocumentUpload.student_id == student_id)
                .order_by(DocumentUpload.submitted_at.desc())
            )
            return [to_dict(d) for d in result.scalars().all()]
        except Exception as e:
            logger.log_error_with_context(e, context="get_student_uploads", student_id=student_id)
            return []

    async def get_faculty_uploads(self, faculty_id: str) -> List[Dict[str, Any]]:
        """
        Every upload in the system, newest first. Faculty review across
        sections, so ``faculty_id`` does not narrow the list.
        """
        try:
            result = await self.db.execute(
                select(DocumentUpload)
                .options(
                    selectinload(DocumentUpload.student).selectinload(Student.user),
                    selectinload(DocumentUpload.course_section).selectinload(CourseSection.course),
                    selectinload(DocumentUpload.assignment),
                )
                .order_by(DocumentUpload.submitted_at.desc())
            )
            return [to_dict(d) for d in result.scalars().all()]
        except Exception as e:
            logger.log_error_with_context(e, context="get_faculty_uploads", faculty_id=faculty_id)
            return []

    async def update_document_status(
        self,
        document_id: str,
        status: str,
        review_notes: Optional[str] = None,
        faculty_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Record a review outcome and notify the student.

        Only approved, rejected and revision_required are accepted; a
        reviewed document may be re-reviewed but never returned to
        pending_review.
        """
        new_status = _parse_status(status)
        if new_status not in REVIEW_OUTCOMES:
            return {"success": False, "error": f"Invalid review status: {status}"}

        try:
            upload = await self._load_upload(document_id)
            if upload is None:
                return {"success": False, "error": "Document not found"}

            old_status = upload.status
            upload.status = new_status
            upload.faculty_review_notes = review_notes
            upload.reviewed_at = utcnow()
            if faculty_id:
                upload.reviewed_by = faculty_id
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.log_error_with_context(e, context="update_document_status", document_id=document_id)
            return {"success": False, "error": str(e)}

        logger.log_academic_event("reviewed", "document", document_id, actor_id=faculty_id,
                                  old_status=old_status.value, new_status=new_status.value)
        if upload.student is not None:
            notified = await NotificationService(self.db).create_status_change_notification(
                upload.student.user_id, upload.title, old_status.value, new_status.value
            )
            if not notified["success"]:
                logger.warning(f"Status change notification failed for {document_id}: {notified['error']}")

        return {"success": True, "data": to_dict(upload)}

    async def delete_document(self, document_id: str) -> Dict[str, Any]:
        """Delete the metadata row and its versions; returns the file-host ids it referenced"""
        try:
            upload = await self.db.get(
                DocumentUpload, document_id,
                options=[selectinload(DocumentUpload.versions)],
                populate_existing=True,
            )
            if upload is None:
                return {"success": False, "error": "Document not found"}
            files = [upload] + list(upload.versions)
            public_ids = [f.cloudinary_public_id for f in files]
            mime_types = {f.cloudinary_public_id: f.mime_type for f in files}
            await self.db.delete(upload)
            await self.db.commit()
            return {"success": True, "data": {"public_ids": public_ids, "mime_types": mime_types}}
        except Exception as e:
            await self.db.rollback()
            logger.log_error_with_context(e, context="delete_document", document_id=document_id)
            return {"success": False, "error": str(e)}

    # =====================================================
    # VERSIONS
    # =====================================================

    async def next_version_number(self, document_id: str) -> int:
        result = await self.db.execute(
            select(func.max(DocumentVersion.version_number))
            .where(DocumentVersion.document_upload_id == document_id)
        )
        return (result.scalar() or 0) + 1

    async def create_document_version(self, document_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """Append a version; numbers are allocated from the current maximum when not given"""
        try:
            version_number = data.get("version_number") or await self.next_version_number(document_id)
            version = DocumentVersion(
                document_upload_id=document_id,
                version_number=version_number,
                change_description=data.get("change_description"),
                **{k: data[k] for k in FILE_FIELDS},
            )
            self.db.add(version)
            await self.db.commit()
            return {"success": True, "data": to_dict(version)}
        except IntegrityError:
            await self.db.rollback()
            return {"success": False, "error": "Version number already exists for this document"}
        except Exception as e:
            await self.db.rollback()
            logger.log_error_with_context(e, context="create_document_version", document_id=document_id)
            return {"success": False, "error": str(e)}

    async def get_document_versions(self, document_id: str) -> List[Dict[str, Any]]:
        """Newest version first"""
        try:
            result = await self.db.execute(
                select(DocumentVersion)
                .where(DocumentVersion.document_upload_id == document_id)
                .order_by(DocumentVersion.version_number.desc())
            )
            return [to_dict(v) for v in result.scalars().all()]
        except Exception as e:
            logger.log_error_with_context(e, context="get_document_versions", document_id=document_id)
            return []
