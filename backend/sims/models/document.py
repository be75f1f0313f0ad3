from sqlalchemy import Column, String, DateTime, Integer, ForeignKey, Text, UniqueConstraint
from sqlalchemy.orm import relationship
import enum

from sims.core.database import Base
from sims.core.types import GUID, TimestampMixin, enum_column_type, generate_uuid, utcnow


class DocumentType(str, enum.Enum):
    """Document types a student can submit"""
    ASSIGNMENT = "assignment"
    PROJECT = "project"
    EXAM = "exam"
    LAB_REPORT = "lab_report"
    PRESENTATION = "presentation"
    BIO_DATA = "bio_data"  # Bio data / CV
    CERTIFICATE = "certificate"
    TRANSCRIPT = "transcript"
    RECOMMENDATION = "recommendation"
    OTHER = "other"


class DocumentStatus(str, enum.Enum):
    """Review workflow states"""
    PENDING_REVIEW = "pending_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    REVISION_REQUIRED = "revision_required"


# Statuses a reviewer may set
REVIEW_OUTCOMES = frozenset({
    DocumentStatus.APPROVED,
    DocumentStatus.REJECTED,
    DocumentStatus.REVISION_REQUIRED,
})


class DocumentUpload(TimestampMixin, Base):
    """Metadata of a student-submitted file; the bytes live on the file host"""
    __tablename__ = "document_uploads"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    student_id = Column(GUID, ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    course_section_id = Column(GUID, ForeignKey("course_sections.id", ondelete="SET NULL"), nullable=True)
    assignment_id = Column(GUID, ForeignKey("assignments.id", ondelete="SET NULL"), nullable=True)

    document_type = Column(enum_column_type(DocumentType), default=DocumentType.OTHER, nullable=False)
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)

    # File details
    original_filename = Column(String(500), nullable=False)
    file_size = Column(Integer, nullable=False)  # in bytes
    mime_type = Column(String(100), nullable=False)
    cloudinary_public_id = Column(String(500), nullable=False)
    cloudinary_url = Column(Text, nullable=False)
    cloudinary_secure_url = Column(Text, nullable=False)

    # Review
    status = Column(enum_column_type(DocumentStatus), default=DocumentStatus.PENDING_REVIEW, nullable=False)
    faculty_review_notes = Column(Text, nullable=True)
    reviewed_by = Column(GUID, ForeignKey("faculty.id", ondelete="SET NULL"), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    submitted_at = Column(DateTime, default=utcnow, nullable=False)

    student = relationship("Student")
    course_section = relationship("CourseSection")
    assignment = relationship("Assignment")
    reviewed_by_faculty = relationship("Faculty")
    versions = relationship(
        "DocumentVersion",
        back_populates="document",
        cascade="all, delete-orphan",
        order_by="DocumentVersion.version_number.desc()",
    )

    def __repr__(self):
        return f"<DocumentUpload {self.title} ({self.status})>"


class DocumentVersion(Base):
    """Append-only re-submission history of a document"""
    __tablename__ = "document_versions"
    __table_args__ = (
        UniqueConstraint("document_upload_id", "version_number", name="uq_document_versions_number"),
    )

    id = Column(GUID, primary_key=True, default=generate_uuid)
    document_upload_id = Column(
        GUID, ForeignKey("document_uploads.id", ondelete="CASCADE"), nullable=False, index=True
    )
    version_number = Column(Integer, nullable=False)
    change_description = Column(Text, nullable=True)

    original_filename = Column(String(500), nullable=False)
    file_size = Column(Integer, nullable=False)
    mime_type = Column(String(100), nullable=False)
    cloudinary_public_id = Column(String(500), nullable=False)
    cloudinary_url = Column(Text, nullable=False)
    cloudinary_secure_url = Column(Text, nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    document = relationship("DocumentUpload", back_populates="versions")

    def __repr__(self):
        return f"<DocumentVersion {self.document_upload_id} v{self.version_number}>"
