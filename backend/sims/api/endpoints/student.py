"""
Student Portal API Endpoints

Provides endpoints for:
- Dashboard and academic summary
- Course catalog, enrollment and drop
- Grades, attendance and academic records
- Announcements
- Document uploads and re-submissions
"""

from typing import Optional
from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from sims.api.deps import ensure_success, get_file_host
from sims.core.database import get_db
from sims.core.exceptions import ValidationError
from sims.models.document import DocumentType, DocumentUpload
from sims.models.user import Student
from sims.core.roles import Capability
from sims.modules.auth.dependencies import get_current_student, require_capability
from sims.services.document_service import DocumentService
from sims.services.file_host import CloudinaryClient
from sims.services.notification_service import NotificationService
from sims.services.student_service import ALREADY_ENROLLED, SECTION_FULL, StudentService
from sims.services.upload_service import FILE_HOST_FAILED, UploadedFile, UploadService
from sims.schemas.academics import EnrollmentCreate, StudentProfileUpdate

router = APIRouter(tags=["Student Portal"])

ENROLLMENT_CONFLICTS = {ALREADY_ENROLLED: status.HTTP_409_CONFLICT, SECTION_FULL: status.HTTP_409_CONFLICT}
HOST_FAILURES = {FILE_HOST_FAILED: status.HTTP_502_BAD_GATEWAY}


async def _read_upload(file: UploadFile) -> UploadedFile:
    content = await file.read()
    return UploadedFile(
        filename=file.filename or "upload",
        content=content,
        mime_type=file.content_type or "application/octet-stream",
    )


async def _own_document(db: AsyncSession, student: Student, document_id: str) -> DocumentUpload:
    document = await db.get(DocumentUpload, document_id)
    if document is None or document.student_id != student.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")
    return document


# ==================== Dashboard ====================

@router.get("/dashboard")
async def dashboard(
    student: Student = Depends(get_current_student),
    db: AsyncSession = Depends(get_db)
):
    """Profile, credit summary, current courses and recent announcements"""
    service = StudentService(db)
    return {
        "profile": await service.get_student_profile(student.user_id),
        "summary": await service.get_academic_summary(student.id),
        "enrollments": await service.get_student_enrollments(student.id),
        "announcements": await service.get_student_announcements(student.id),
        "unread_notifications": await NotificationService(db).get_unread_count(student.user_id),
    }


@router.patch("/profile")
async def update_profile(
    body: StudentProfileUpdate,
    student: Student = Depends(get_current_student),
    db: AsyncSession = Depends(get_db)
):
    result = await StudentService(db).update_profile(student.id, body.model_dump(exclude_unset=True))
    return ensure_success(result)


# ==================== Courses ====================

@router.get("/courses")
async def my_courses(
    student: Student = Depends(get_current_student),
    db: AsyncSession = Depends(get_db)
):
    return {"enrollments": await StudentService(db).get_student_enrollments(student.id)}


@router.get("/courses/available")
async def available_courses(
    student: Student = Depends(get_current_student),
    db: AsyncSession = Depends(get_db)
):
    return {"sections": await StudentService(db).get_available_courses()}


@router.post("/courses/enroll", status_code=status.HTTP_201_CREATED,
             dependencies=[Depends(require_capability(Capability.ENROLL))])
async def enroll(
    body: EnrollmentCreate,
    student: Student = Depends(get_current_student),
    db: AsyncSession = Depends(get_db)
):
    result = await StudentService(db).enroll_in_course(student.id, body.section_id)
    return ensure_success(result, error_statuses=ENROLLMENT_CONFLICTS)


@router.post("/enrollments/{enrollment_id}/drop")
async def drop(
    enrollment_id: str,
    student: Student = Depends(get_current_student),
    db: AsyncSession = Depends(get_db)
):
    result = await StudentService(db).drop_course(enrollment_id, student_id=student.id)
    return ensure_success(result)


@router.get("/courses/{section_id}/assignments")
async def course_assignments(
    section_id: str,
    student: Student = Depends(get_current_student),
    db: AsyncSession = Depends(get_db)
):
    return {"assignments": await StudentService(db).get_course_assignments(section_id)}


# ==================== Records ====================

@router.get("/grades", dependencies=[Depends(require_capability(Capability.VIEW_OWN_GRADES))])
async def grades(
    student: Student = Depends(get_current_student),
    db: AsyncSession = Depends(get_db)
):
    service = StudentService(db)
    return {
        "grades": await service.get_student_grades(student.id),
        "summary": await service.get_academic_summary(student.id),
    }


@router.get("/attendance")
async def attendance(
    student: Student = Depends(get_current_student),
    db: AsyncSession = Depends(get_db)
):
    return {"attendance": await StudentService(db).get_student_attendance(student.id)}


@router.get("/records")
async def records(
    student: Student = Depends(get_current_student),
    db: AsyncSession = Depends(get_db)
):
    """Full academic record: enrollments, grades, attendance and totals"""
    service = StudentService(db)
    return {
        "profile": await service.get_student_profile(student.user_id),
        "enrollments": await service.get_student_enrollments(student.id),
        "grades": await service.get_student_grades(student.id),
        "attendance": await service.get_student_attendance(student.id),
        "summary": await service.get_academic_summary(student.id),
    }


@router.get("/announcements")
async def announcements(
    student: Student = Depends(get_current_student),
    db: AsyncSession = Depends(get_db)
):
    return {"announcements": await StudentService(db).get_student_announcements(student.id)}


# ==================== Uploads ====================

@router.get("/uploads")
async def my_uploads(
    student: Student = Depends(get_current_student),
    db: AsyncSession = Depends(get_db),
    file_host: CloudinaryClient = Depends(get_file_host)
):
    uploads = await DocumentService(db).get_student_uploads(student.id)
    return {"uploads": UploadService(db, file_host).with_download_urls(uploads)}


@router.post("/uploads", status_code=status.HTTP_201_CREATED,
             dependencies=[Depends(require_capability(Capability.UPLOAD_DOCUMENTS))])
async def upload(
    file: UploadFile = File(...),
    title: str = Form(..., min_length=1, max_length=255),
    document_type: DocumentType = Form(DocumentType.OTHER),
    description: Optional[str] = Form(None),
    course_section_id: Optional[str] = Form(None),
    assignment_id: Optional[str] = Form(None),
    student: Student = Depends(get_current_student),
    db: AsyncSession = Depends(get_db),
    file_host: CloudinaryClient = Depends(get_file_host)
):
    """Validate, host and record a document, then notify faculty"""
    uploaded = await _read_upload(file)
    try:
        result = await UploadService(db, file_host).upload_document(
            student.id,
            uploaded,
            title=title,
            document_type=document_type,
            description=description,
            course_section_id=course_section_id or None,
            assignment_id=assignment_id or None,
        )
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    return ensure_success(result, error_statuses=HOST_FAILURES)


@router.get("/uploads/{document_id}/versions")
async def document_versions(
    document_id: str,
    student: Student = Depends(get_current_student),
    db: AsyncSession = Depends(get_db)
):
    await _own_document(db, student, document_id)
    return {"versions": await DocumentService(db).get_document_versions(document_id)}


@router.post("/uploads/{document_id}/versions", status_code=status.HTTP_201_CREATED,
             dependencies=[Depends(require_capability(Capability.UPLOAD_DOCUMENTS))])
async def upload_version(
    document_id: str,
    file: UploadFile = File(...),
    change_description: Optional[str] = Form(None),
    student: Student = Depends(get_current_student),
    db: AsyncSession = Depends(get_db),
    file_host: CloudinaryClient = Depends(get_file_host)
):
    """Re-submit a file for one of the student's documents"""
    uploaded = await _read_upload(file)
    try:
        result = await UploadService(db, file_host).upload_document_version(
            student.id, document_id, uploaded, change_description=change_description
        )
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    return ensure_success(result, error_statuses=HOST_FAILURES)


@router.delete("/uploads/{document_id}", dependencies=[Depends(require_capability(Capability.UPLOAD_DOCUMENTS))])
async def delete_upload(
    document_id: str,
    student: Student = Depends(get_current_student),
    db: AsyncSession = Depends(get_db),
    file_host: CloudinaryClient = Depends(get_file_host)
):
    """Delete one of the student's documents, its versions and the hosted files"""
    result = await UploadService(db, file_host).delete_document(student.id, document_id)
    return ensure_success(result)
