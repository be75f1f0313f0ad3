"""
Faculty Portal API Endpoints

Provides endpoints for:
- Dashboard and profile
- Course registration and section rosters
- Assignment management (CRUD)
- Gradebook
- Document review
- Announcements
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from sims.api.deps import ensure_success, get_file_host
from sims.core.database import get_db
from sims.models.academics import Assignment, CourseSection, Grade
from sims.models.user import Faculty
from sims.core.roles import Capability
from sims.modules.auth.dependencies import get_current_faculty, require_capability
from sims.schemas.academics import (
    AssignmentCreate,
    AssignmentUpdate,
    CourseRegistration,
    FacultyProfileUpdate,
    GradeSave,
    GradeSubmit,
)
from sims.schemas.communication import AnnouncementCreate, DocumentReview
from sims.services.document_service import DocumentService
from sims.services.faculty_service import DUPLICATE_COURSE_CODE, FacultyService
from sims.services.file_host import CloudinaryClient
from sims.services.notification_service import NotificationService
from sims.services.upload_service import UploadService

router = APIRouter(tags=["Faculty Portal"])


async def _own_section(db: AsyncSession, faculty: Faculty, section_id: str) -> CourseSection:
    section = await db.get(CourseSection, section_id)
    if section is None or section.faculty_id != faculty.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Course section not found")
    return section


async def _own_assignment(db: AsyncSession, faculty: Faculty, assignment_id: str) -> Assignment:
    assignment = await db.get(Assignment, assignment_id)
    if assignment is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Assignment not found")
    await _own_section(db, faculty, assignment.section_id)
    return assignment


async def _own_grade(db: AsyncSession, faculty: Faculty, grade_id: str) -> Grade:
    grade = await db.get(Grade, grade_id)
    if grade is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Grade not found")
    await _own_assignment(db, faculty, grade.assignment_id)
    return grade


# ==================== Dashboard ====================

@router.get("/dashboard")
async def dashboard(
    faculty: Faculty = Depends(get_current_faculty),
    db: AsyncSession = Depends(get_db)
):
    """Teaching load, pending grading and the review queue"""
    service = FacultyService(db)
    courses = await service.get_faculty_courses(faculty.id)
    pending = await service.get_pending_grades(faculty.id)
    uploads = await DocumentService(db).get_faculty_uploads(faculty.id)
    return {
        "profile": await service.get_faculty_profile(faculty.user_id),
        "courses": courses,
        "stats": {
            "total_courses": len(courses),
            "total_students": sum(c["enrollment_count"] for c in courses),
            "pending_grades": len(pending),
            "pending_reviews": sum(1 for u in uploads if u["status"] == "pending_review"),
        },
        "unread_notifications": await NotificationService(db).get_unread_count(faculty.user_id),
    }


@router.patch("/profile")
async def update_profile(
    body: FacultyProfileUpdate,
    faculty: Faculty = Depends(get_current_faculty),
    db: AsyncSession = Depends(get_db)
):
    result = await FacultyService(db).update_profile(faculty.id, body.model_dump(exclude_unset=True))
    return ensure_success(result)


# ==================== Courses ====================

@router.get("/courses")
async def my_courses(
    faculty: Faculty = Depends(get_current_faculty),
    db: AsyncSession = Depends(get_db)
):
    return {"courses": await FacultyService(db).get_faculty_courses(faculty.id)}


@router.get("/courses/all")
async def all_courses(
    faculty: Faculty = Depends(get_current_faculty),
    db: AsyncSession = Depends(get_db)
):
    return {"courses": await FacultyService(db).get_all_courses()}


@router.get("/departments")
async def departments(
    faculty: Faculty = Depends(get_current_faculty),
    db: AsyncSession = Depends(get_db)
):
    return {"departments": await FacultyService(db).get_departments()}


@router.post("/courses", status_code=status.HTTP_201_CREATED,
             dependencies=[Depends(require_capability(Capability.REGISTER_COURSES))])
async def register_course(
    body: CourseRegistration,
    faculty: Faculty = Depends(get_current_faculty),
    db: AsyncSession = Depends(get_db)
):
    """Create a course and its first section taught by the caller"""
    result = await FacultyService(db).register_course(faculty.id, body.course_data(), body.section_data())
    return ensure_success(result, error_statuses={DUPLICATE_COURSE_CODE: status.HTTP_409_CONFLICT})


@router.get("/courses/{section_id}")
async def course_detail(
    section_id: str,
    faculty: Faculty = Depends(get_current_faculty),
    db: AsyncSession = Depends(get_db)
):
    """Roster, assignments and grades of one of the caller's sections"""
    await _own_section(db, faculty, section_id)
    service = FacultyService(db)
    return {
        "enrollments": await service.get_course_enrollments(section_id),
        "assignments": await service.get_course_assignments(section_id),
        "grades": await service.get_grades_for_course(section_id),
    }


# ==================== Assignments ====================

@router.post("/assignments", status_code=status.HTTP_201_CREATED,
             dependencies=[Depends(require_capability(Capability.MANAGE_ASSIGNMENTS))])
async def create_assignment(
    body: AssignmentCreate,
    faculty: Faculty = Depends(get_current_faculty),
    db: AsyncSession = Depends(get_db)
):
    await _own_section(db, faculty, body.section_id)
    result = await FacultyService(db).create_assignment(body.model_dump())
    return ensure_success(result)


@router.patch("/assignments/{assignment_id}", dependencies=[Depends(require_capability(Capability.MANAGE_ASSIGNMENTS))])
async def update_assignment(
    assignment_id: str,
    body: AssignmentUpdate,
    faculty: Faculty = Depends(get_current_faculty),
    db: AsyncSession = Depends(get_db)
):
    await _own_assignment(db, faculty, assignment_id)
    result = await FacultyService(db).update_assignment(assignment_id, body.model_dump(exclude_unset=True))
    return ensure_success(result)


@router.delete("/assignments/{assignment_id}",
               dependencies=[Depends(require_capability(Capability.MANAGE_ASSIGNMENTS))])
async def delete_assignment(
    assignment_id: str,
    faculty: Faculty = Depends(get_current_faculty),
    db: AsyncSession = Depends(get_db)
):
    await _own_assignment(db, faculty, assignment_id)
    result = await FacultyService(db).delete_assignment(assignment_id)
    return ensure_success(result)


# ==================== Gradebook ====================

@router.get("/grades/pending")
async def pending_grades(
    faculty: Faculty = Depends(get_current_faculty),
    db: AsyncSession = Depends(get_db)
):
    return {"grades": await FacultyService(db).get_pending_grades(faculty.id)}


@router.put("/grades", dependencies=[Depends(require_capability(Capability.GRADE))])
async def save_grade(
    body: GradeSave,
    faculty: Faculty = Depends(get_current_faculty),
    db: AsyncSession = Depends(get_db)
):
    """Create or replace the grade of one student on one assignment"""
    await _own_assignment(db, faculty, body.assignment_id)
    result = await FacultyService(db).save_grade(
        body.student_id,
        body.assignment_id,
        body.points_earned,
        feedback=body.feedback,
        status=body.status,
    )
    return ensure_success(result)


@router.post("/grades/{grade_id}/submit", dependencies=[Depends(require_capability(Capability.GRADE))])
async def submit_grade(
    grade_id: str,
    body: GradeSubmit,
    faculty: Faculty = Depends(get_current_faculty),
    db: AsyncSession = Depends(get_db)
):
    await _own_grade(db, faculty, grade_id)
    result = await FacultyService(db).submit_grade(grade_id, body.points_earned, body.feedback)
    return ensure_success(result)


# ==================== Document Review ====================

@router.get("/uploads")
async def uploads(
    faculty: Faculty = Depends(get_current_faculty),
    db: AsyncSession = Depends(get_db),
    file_host: CloudinaryClient = Depends(get_file_host)
):
    uploads = await DocumentService(db).get_faculty_uploads(faculty.id)
    return {"uploads": UploadService(db, file_host).with_download_urls(uploads)}


@router.patch("/uploads/{document_id}/status", dependencies=[Depends(require_capability(Capability.REVIEW_DOCUMENTS))])
async def review_upload(
    document_id: str,
    body: DocumentReview,
    faculty: Faculty = Depends(get_current_faculty),
    db: AsyncSession = Depends(get_db)
):
    """Approve, reject or request revision; the student is notified"""
    result = await DocumentService(db).update_document_status(
        document_id, body.status.value, body.review_notes, faculty_id=faculty.id
    )
    return ensure_success(result)


@router.get("/uploads/{document_id}/versions")
async def upload_versions(
    document_id: str,
    faculty: Faculty = Depends(get_current_faculty),
    db: AsyncSession = Depends(get_db)
):
    return {"versions": await DocumentService(db).get_document_versions(document_id)}


# ==================== Announcements ====================

@router.get("/announcements")
async def my_announcements(
    faculty: Faculty = Depends(get_current_faculty),
    db: AsyncSession = Depends(get_db)
):
    return {"announcements": await FacultyService(db).get_faculty_announcements(faculty.user_id)}


@router.post("/announcements", status_code=status.HTTP_201_CREATED,
             dependencies=[Depends(require_capability(Capability.PUBLISH_ANNOUNCEMENTS))])
async def create_announcement(
    body: AnnouncementCreate,
    faculty: Faculty = Depends(get_current_faculty),
    db: AsyncSession = Depends(get_db)
):
    if body.target_id:
        await _own_section(db, faculty, body.target_id)
    result = await FacultyService(db).create_announcement(body.model_dump(), faculty.user_id)
    return ensure_success(result)


@router.delete("/announcements/{announcement_id}",
               dependencies=[Depends(require_capability(Capability.PUBLISH_ANNOUNCEMENTS))])
async def delete_announcement(
    announcement_id: str,
    faculty: Faculty = Depends(get_current_faculty),
    db: AsyncSession = Depends(get_db)
):
    result = await FacultyService(db).delete_announcement(announcement_id, author_id=faculty.user_id)
    return ensure_success(result)
