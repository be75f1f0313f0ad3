# Re-export all models for convenient imports
from sims.models.user import User, Student, Faculty
from sims.models.academics import (
    Department,
    Course,
    CourseSection,
    Enrollment,
    EnrollmentStatus,
    Assignment,
    Grade,
    GradeStatus,
    Attendance,
    AttendanceStatus,
)
from sims.models.document import (
    DocumentUpload,
    DocumentVersion,
    DocumentStatus,
    DocumentType,
    REVIEW_OUTCOMES,
)
from sims.models.communication import (
    Announcement,
    AnnouncementPriority,
    Notification,
    NotificationType,
    TargetAudience,
)
from sims.models.auth import AuthIdentity, AuthSessionRecord, AuthCode, AuthCodePurpose

__all__ = [
    # People
    "User",
    "Student",
    "Faculty",
    # Academics
    "Department",
    "Course",
    "CourseSection",
    "Enrollment",
    "EnrollmentStatus",
    "Assignment",
    "Grade",
    "GradeStatus",
    "Attendance",
    "AttendanceStatus",
    # Documents
    "DocumentUpload",
    "DocumentVersion",
    "DocumentStatus",
    "DocumentType",
    "REVIEW_OUTCOMES",
    # Communication
    "Announcement",
    "AnnouncementPriority",
    "Notification",
    "NotificationType",
    "TargetAudience",
    # Auth provider
    "AuthIdentity",
    "AuthSessionRecord",
    "AuthCode",
    "AuthCodePurpose",
]
