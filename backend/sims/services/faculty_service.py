"""
Faculty Service Layer
Provides business logic for faculty operations with database integration
"""

from typing import List, Optional, Dict, Any
from sqlalchemy import select, func, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from sims.core.logging_config import logger
from sims.core.types import utcnow
from sims.models.academics import (
    Assignment, Course, CourseSection, Department, Enrollment, Grade, GradeStatus,
    SEAT_HOLDING_STATUSES
)
from sims.models.communication import Announcement, AnnouncementPriority, TargetAudience
from sims.models.user import Student, Faculty
from sims.services.notification_service import NotificationService
from sims.utils.serialization import to_dict


FACULTY_EDITABLE_FIELDS = ("department", "position", "office_location", "office_hours")
ASSIGNMENT_FIELDS = ("title", "description", "type", "total_points", "due_date")
GRADE_FIELDS = ("points_earned", "status", "feedback", "submitted_at")
COURSE_FIELDS = ("course_code", "title", "description", "credits", "department_id", "prerequisites")
SECTION_FIELDS = ("section_number", "semester", "year", "max_enrollment", "schedule")

# error_code on a course registration that reused an existing code
DUPLICATE_COURSE_CODE = "DUPLICATE_COURSE_CODE"


def _pick(data: Dict[str, Any], fields) -> Dict[str, Any]:
    return {k: v for k, v in data.items() if k in fields}


class FacultyService:
    """Service for faculty-related operations"""

    def __init__(self, db: AsyncSession):
        self.db = db

    # =====================================================
    # PROFILE MANAGEMENT
    # =====================================================

    async def get_faculty_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Faculty row with its user"""
        try:
            result = await self.db.execute(
                select(Faculty)
                .options(selectinload(Faculty.user))
                .where(Faculty.user_id == user_id)
            )
            return to_dict(result.scalar_one_or_none())
        except Exception as e:
            logger.log_error_with_context(e, context="get_faculty_profile", target_user=user_id)
            return None

    async def update_profile(self, faculty_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        changes = _pick(updates, FACULTY_EDITABLE_FIELDS)
        if not changes:
            return {"success": False, "error": "No editable fields supplied"}
        try:
            faculty = await self.db.get(Faculty, faculty_id)
            if not faculty:
                return {"success": False, "error": "Faculty not found"}
            for key, value in changes.items():
                setattr(faculty, key, value)
            await self.db.commit()
            return {"success": True, "data": to_dict(faculty)}
        except Exception as e:
            await self.db.rollback()
            logger.log_error_with_context(e, context="faculty update_profile", faculty_id=faculty_id)
            return {"success": False, "error": str(e)}

    # =====================================================
    # COURSES
    # =====================================================

    async def get_faculty_courses(self, faculty_id: str) -> List[Dict[str, Any]]:
        """Sections taught by this faculty member, newest first, with enrollment counts"""
        try:
            result = await self.db.execute(
                select(CourseSection)
                .options(selectinload(CourseSection.course))
                .where(CourseSection.faculty_id == faculty_id)
                .order_by(CourseSection.created_at.desc())
            )
            sections = result.scalars().all()
            if not sections:
                return []

            counts_result = await self.db.execute(
                select(Enrollment.section_id, func.count(Enrollment.id))
                .where(
                    Enrollment.section_id.in_([s.id for s in sections]),
                    Enrollment.status.in_(SEAT_HOLDING_STATUSES),
                )
                .group_by(Enrollment.section_id)
            )
            counts = dict(counts_result.all())

            courses = []
            for section in sections:
                data = to_dict(section)
                data["enrollment_count"] = counts.get(section.id, 0)
                courses.append(data)
            return courses
        except Exception as e:
            logger.log_error_with_context(e, context="get_faculty_courses", faculty_id=faculty_id)
            return []

    async def get_course_enrollments(self, section_id: str) -> List[Dict[str, Any]]:
        """Enrollments of a section with the student and their user"""
        try:
            result = await self.db.execute(
                select(Enrollment)
                .options(selectinload(Enrollment.student).selectinload(Student.user))
                .where(Enrollment.section_id == section_id)
                .order_by(Enrollment.created_at.desc())
            )
            return [to_dict(e) for e in result.scalars().all()]
        except Exception as e:
            logger.log_error_with_context(e, context="get_course_enrollments", section_id=section_id)
            return []

    async def get_course_assignments(self, section_id: str) -> List[Dict[str, Any]]:
        try:
            result = await self.db.execute(
                select(Assignment)
                .where(Assignment.section_id == section_id)
                .order_by(Assignment.due_date.is_(None), Assignment.due_date.asc())
            )
            return [to_dict(a) for a in result.scalars().all()]
        except Exception as e:
            logger.log_error_with_context(e, context="get_course_assignments", section_id=section_id)
            return []

    async def get_all_courses(self) -> List[Dict[str, Any]]:
        try:
            result = await self.db.execute(
                select(Course)
                .options(selectinload(Course.department))
                .order_by(Course.course_code)
            )
            return [to_dict(c) for c in result.scalars().all()]
        except Exception as e:
            logger.log_error_with_context(e, context="get_all_courses")
            return []

    async def get_total_student_count(self) -> int:
        try:
            result = await self.db.execute(select(func.count(Student.id)))
            return result.scalar() or 0
        except Exception as e:
            logger.log_error_with_context(e, context="get_total_student_count")
            return 0

    async def get_departments(self) -> List[Dict[str, Any]]:
        try:
            result = await self.db.execute(select(Department).order_by(Department.name))
            return [to_dict(d) for d in result.scalars().all()]
        except Exception as e:
            logger.log_error_with_context(e, context="get_departments")
            return []

    async def register_course(
        self,
        faculty_id: str,
        course_data: Dict[str, Any],
        section_data: Dict[str, Any],
    ) -> Dict[str, Any]:
        """
        Create a catalog course and its first section taught by ``faculty_id``.

        Both rows are written in one transaction; a failing section insert
        leaves no course behind.
        """
        try:
            course = Course(**_pick(course_data, COURSE_FIELDS))
            self.db.add(course)
            await self.db.flush()

            section = CourseSection(
                course_id=course.id,
                faculty_id=faculty_id,
                current_enrollment=0,
                **_pick(section_data, SECTION_FIELDS),
            )
            self.db.add(section)
            await self.db.commit()

            logger.log_academic_event("course_registered", "section", section.id, actor_id=faculty_id,
                                      course_code=course.course_code, section_number=section.section_number)
            return {"success": True, "data": {"course": to_dict(course), "section": to_dict(section)}}
        except IntegrityError as e:
            await self.db.rollback()
            logger.warning(f"register_course rejected: {e.orig}")
            code = course_data.get("course_code")
            taken = await self.db.execute(select(Course.id).where(Course.course_code == code))
            if code and taken.scalar_one_or_none():
                return {"success": False, "error": f"Course code {code} already exists",
                        "error_code": DUPLICATE_COURSE_CODE}
            return {"success": False, "error": "Invalid department or incomplete course details"}
        except Exception as e:
            await self.db.rollback()
            logger.log_error_with_context(e, context="register_course", faculty_id=faculty_id)
            return {"success": False, "error": str(e)}

    # =====================================================
    # ASSIGNMENTS
    # =====================================================

    async def create_assignment(self, data: Dict[str, Any]) -> Dict[str, Any]:
        try:
            assignment = Assignment(section_id=data.get("section_id"), **_pick(data, ASSIGNMENT_FIELDS))
            self.db.add(assignment)
            await self.db.commit()
            return {"success": True, "data": to_dict(assignment)}
        except Exception as e:
            await self.db.rollback()
            logger.log_error_with_context(e, context="create_assignment")
            return {"success": False, "error": str(e)}

    async def update_assignment(self, assignment_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        try:
            assignment = await self.db.get(Assignment, assignment_id)
            if not assignment:
                return {"success": False, "error": "Assignment not found"}
            for key, value in _pick(updates, ASSIGNMENT_FIELDS).items():
                setattr(assignment, key, value)
            await self.db.commit()
            return {"success": True, "data": to_dict(assignment)}
        except Exception as e:
            await self.db.rollback()
            logger.log_error_with_context(e, context="update_assignment", assignment_id=assignment_id)
            return {"success": False, "error": str(e)}

    async def delete_assignment(self, assignment_id: str) -> Dict[str, Any]:
        try:
            assignment = await self.db.get(Assignment, assignment_id)
            if not assignment:
                return {"success": False, "error": "Assignment not found"}
            await self.db.delete(assignment)
            await self.db.commit()
            return {"success": True}
        except Exception as e:
            await self.db.rollback()
            logger.log_error_with_context(e, context="delete_assignment", assignment_id=assignment_id)
            return {"success": False, "error": str(e)}

    # =====================================================
    # GRADEBOOK
    # =====================================================

    async def get_pending_grades(self, faculty_id: str) -> List[Dict[str, Any]]:
        """
        Pending grades in this faculty member's sections.

        Resolves the faculty's section ids first, then filters grades by
        assignment section, so rows from other instructors never appear.
        """
        try:
            sections = await self.db.execute(
                select(CourseSection.id).where(CourseSection.faculty_id == faculty_id)
            )
            section_ids = list(sections.scalars().all())
            if not section_ids:
                return []

            result = await self.db.execute(
                select(Grade)
                .join(Assignment, Grade.assignment_id == Assignment.id)
                .options(
                    selectinload(Grade.student).selectinload(Student.user),
                    selectinload(Grade.assignment)
                    .selectinload(Assignment.section)
                    .selectinload(CourseSection.course),
                )
                .where(
                    Assignment.section_id.in_(section_ids),
                    Grade.status == GradeStatus.PENDING,
                )
                .order_by(Grade.created_at.desc())
            )
            return [to_dict(g) for g in result.scalars().all()]
        except Exception as e:
            logger.log_error_with_context(e, context="get_pending_grades", faculty_id=faculty_id)
            return []

    async def get_grades_for_course(self, section_id: str) -> List[Dict[str, Any]]:
        try:
            result = await self.db.execute(
                select(Grade)
                .join(Assignment, Grade.assignment_id == Assignment.id)
                .options(
                    selectinload(Grade.student).selectinload(Student.user),
                    selectinload(Grade.assignment),
                )
                .where(Assignment.section_id == section_id)
                .order_by(Grade.created_at.desc())
            )
            return [to_dict(g) for g in result.scalars().all()]
        except Exception as e:
            logger.log_error_with_context(e, context="get_grades_for_course", section_id=section_id)
            return []

    async def submit_grade(self, grade_id: str, points_earned: float, feedback: Optional[str] = None) -> Dict[str, Any]:
        try:
            grade = await self.db.get(Grade, grade_id)
            if not grade:
                return {"success": False, "error": "Grade not found"}
            grade.points_earned = points_earned
            grade.feedback = feedback
            grade.status = GradeStatus.SUBMITTED
            grade.graded_at = utcnow()
            await self.db.commit()
            return {"success": True, "data": to_dict(grade)}
        except Exception as e:
            await self.db.rollback()
            logger.log_error_with_context(e, context="submit_grade", grade_id=grade_id)
            return {"success": False, "error": str(e)}

    async def create_grade(self, data: Dict[str, Any]) -> Dict[str, Any]:
        try:
            grade = Grade(
                student_id=data.get("student_id"),
                assignment_id=data.get("assignment_id"),
                **_pick(data, GRADE_FIELDS),
            )
            if grade.points_earned is not None and "status" not in data:
                grade.status = GradeStatus.SUBMITTED
                grade.graded_at = utcnow()
            self.db.add(grade)
            await self.db.commit()
            return {"success": True, "data": to_dict(grade)}
        except IntegrityError:
            await self.db.rollback()
            return {"success": False, "error": "A grade already exists for this student and assignment"}
        except Exception as e:
            await self.db.rollback()
            logger.log_error_with_context(e, context="create_grade")
            return {"success": False, "error": str(e)}

    async def update_grade(self, grade_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        try:
            grade = await self.db.get(Grade, grade_id)
            if not grade:
                return {"success": False, "error": "Grade not found"}
            for key, value in _pick(updates, GRADE_FIELDS).items():
                setattr(grade, key, value)
            if "points_earned" in updates:
                grade.graded_at = utcnow()
            await self.db.commit()
            return {"success": True, "data": to_dict(grade)}
        except Exception as e:
            await self.db.rollback()
            logger.log_error_with_context(e, context="update_grade", grade_id=grade_id)
            return {"success": False, "error": str(e)}

    async def save_grade(
        self,
        student_id: str,
        assignment_id: str,
        points_earned: Optional[float],
        feedback: Optional[str] = None,
        status: GradeStatus = GradeStatus.SUBMITTED,
    ) -> Dict[str, Any]:
        """Insert or update the single grade row for (student, assignment)"""
        values = {"points_earned": points_earned, "feedback": feedback, "status": status}

        async def existing_grade() -> Optional[Grade]:
            result = await self.db.execute(
                select(Grade).where(Grade.student_id == student_id, Grade.assignment_id == assignment_id)
            )
            return result.scalar_one_or_none()

        try:
            grade = await existing_grade()
            if grade is None:
                grade = Grade(student_id=student_id, assignment_id=assignment_id, graded_at=utcnow(), **values)
                self.db.add(grade)
                try:
                    await self.db.commit()
                    return {"success": True, "data": to_dict(grade)}
                except IntegrityError:
                    # Lost a race with another writer; fall through to update its row
                    await self.db.rollback()
                    grade = await existing_grade()
                    if grade is None:
                        raise

            for key, value in values.items():
                setattr(grade, key, value)
            grade.graded_at = utcnow()
            await self.db.commit()
            return {"success": True, "data": to_dict(grade)}
        except Exception as e:
            await self.db.rollback()
            logger.log_error_with_context(e, context="save_grade", student_id=student_id)
            return {"success": False, "error": str(e)}

    # =====================================================
    # ANNOUNCEMENTS
    # =====================================================

    async def create_announcement(self, data: Dict[str, Any], author_id: str) -> Dict[str, Any]:
        """Create an announcement and fan it out to its audience"""
        try:
            audience = TargetAudience(data.get("target_audience", TargetAudience.ALL))
            if audience is TargetAudience.SPECIFIC_COURSE and not data.get("target_id"):
                return {"success": False, "error": "A course section is required for course announcements"}

            announcement = Announcement(
                title=data["title"],
                content=data["content"],
                author_id=author_id,
                target_audience=audience,
                target_id=data.get("target_id"),
                priority=AnnouncementPriority(data.get("priority", AnnouncementPriority.NORMAL)),
                expires_at=data.get("expires_at"),
            )
            self.db.add(announcement)
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.log_error_with_context(e, context="create_announcement", author_id=author_id)
            return {"success": False, "error": str(e)}

        fan_out = await NotificationService(self.db).create_announcement_notification(
            announcement.id, announcement.title, announcement.content, audience.value
        )
        if not fan_out["success"]:
            logger.warning(f"Announcement {announcement.id} saved but notifications failed: {fan_out['error']}")

        return {"success": True, "data": to_dict(announcement)}

    async def get_faculty_announcements(self, author_id: str) -> List[Dict[str, Any]]:
        try:
            result = await self.db.execute(
                select(Announcement)
                .where(Announcement.author_id == author_id)
                .order_by(Announcement.created_at.desc())
            )
            return [to_dict(a) for a in result.scalars().all()]
        except Exception as e:
            logger.log_error_with_context(e, context="get_faculty_announcements", author_id=author_id)
            return []

    async def delete_announcement(self, announcement_id: str, author_id: Optional[str] = None) -> Dict[str, Any]:
        try:
            query = delete(Announcement).where(Announcement.id == announcement_id)
            if author_id is not None:
                query = query.where(Announcement.author_id == author_id)
            result = await self.db.execute(query.execution_options(synchronize_session="fetch"))
            if result.rowcount == 0:
                await self.db.rollback()
                return {"success": False, "error": "Announcement not found"}
            await self.db.commit()
            return {"success": True}
        except Exception as e:
            await self.db.rollback()
            logger.log_error_with_context(e, context="delete_announcement", announcement_id=announcement_id)
            return {"success": False, "error": str(e)}
