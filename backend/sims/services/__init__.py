from sims.services.student_service import StudentService
from sims.services.faculty_service import FacultyService
from sims.services.admin_service import AdminService
from sims.services.document_service import DocumentService
from sims.services.notification_service import NotificationService
from sims.services.file_host import CloudinaryClient
from sims.services.upload_service import UploadService, UploadedFile

__all__ = [
    # Role-scoped access services
    "StudentService",
    "FacultyService",
    "AdminService",
    "DocumentService",
    "NotificationService",
    # Upload flow
    "CloudinaryClient",
    "UploadService",
    "UploadedFile",
]
