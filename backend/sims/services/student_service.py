"""
Student Service Layer
Enrollment, grades, attendance and announcements as seen by a student.

Reads return an empty result on failure; writes return a
``{"success": ..., "error": ...}`` dict. Neither raises.
"""

from typing import List, Optional, Dict, Any
from datetime import date
from sqlalchemy import select, update, and_, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from sims.core.logging_config import logger
from sims.core.types import utcnow
from sims.models.academics import (
    Assignment, Attendance, Course, CourseSection, Enrollment, EnrollmentStatus,
    Grade, SEAT_HOLDING_STATUSES
)
from sims.models.communication import Announcement, TargetAudience
from sims.models.user import Student, Faculty
from sims.utils.grading import letter_grade, overall_percentage
from sims.utils.serialization import to_dict


# Student columns a student may change on their own record
STUDENT_EDITABLE_FIELDS = ("program", "year_of_study", "graduation_date")

ANNOUNCEMENT_LIMIT = 10

# error_code values on failed enrollment results
ALREADY_ENROLLED = "ALREADY_ENROLLED"
SECTION_FULL = "SECTION_FULL"


def _section_with_course_and_faculty(path):
    """Loader options for CourseSection -> Course / Faculty -> User under ``path``"""
    return (
        path.selectinload(CourseSection.course),
        path.selectinload(CourseSection.faculty).selectinload(Faculty.user),
    )


class StudentService:
    """Service for student-related operations"""

    def __init__(self, db: AsyncSession):
        self.db = db

    # =====================================================
    # PROFILE
    # =====================================================

    async def get_student_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Student row with its user"""
        try:
            result = await self.db.execute(
                select(Student)
                .options(selectinload(Student.user))
                .where(Student.user_id == user_id)
            )
            return to_dict(result.scalar_one_or_none())
        except Exception as e:
            logger.log_error_with_context(e, context="get_student_profile", target_user=user_id)
            return None

    async def update_profile(self, student_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        changes = {k: v for k, v in updates.items() if k in STUDENT_EDITABLE_FIELDS}
        if not changes:
            return {"success": False, "error": "No editable fields supplied"}
        try:
            student = await self.db.get(Student, student_id)
            if not student:
                return {"success": False, "error": "Student not found"}
            for key, value in changes.items():
                setattr(student, key, value)
            await self.db.commit()
            return {"success": True, "data": to_dict(student)}
        except Exception as e:
            await self.db.rollback()
            logger.log_error_with_context(e, context="student update_profile", student_id=student_id)
            return {"success": False, "error": str(e)}

    # =====================================================
    # COURSES
    # =====================================================

    async def get_student_enrollments(self, student_id: str) -> List[Dict[str, Any]]:
        """All enrollments with section, course and instructor, newest first"""
        try:
            result = await self.db.execute(
                select(Enrollment)
                .options(*_section_with_course_and_faculty(selectinload(Enrollment.section)))
                .where(Enrollment.student_id == student_id)
                .order_by(Enrollment.created_at.desc())
            )
            return [to_dict(e) for e in result.scalars().all()]
        except Exception as e:
            logger.log_error_with_context(e, context="get_student_enrollments", student_id=student_id)
            return []

    async def get_available_courses(self) -> List[Dict[str, Any]]:
        """Sections with free seats, newest first"""
        try:
            result = await self.db.execute(
                select(CourseSection)
                .options(
                    selectinload(CourseSection.course).selectinload(Course.department),
                    selectinload(CourseSection.faculty).selectinload(Faculty.user),
                )
                .where(CourseSection.current_enrollment < CourseSection.max_enrollment)
                .order_by(CourseSection.created_at.desc())
            )
            return [to_dict(s) for s in result.scalars().all()]
        except Exception as e:
            logger.log_error_with_context(e, context="get_available_courses")
            return []

    async def get_course_assignments(self, section_id: str) -> List[Dict[str, Any]]:
        """Assignments by due date, undated ones last"""
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

    async def enroll_in_course(self, student_id: str, section_id: str) -> Dict[str, Any]:
        """
        Enroll a student in a section.

        The seat is taken with a conditional UPDATE on the section
        (``current_enrollment < max_enrollment``) in the same transaction
        as the enrollment write, so concurrent requests cannot overfill
        a section. There is one enrollment row per student and section:
        a dropped row is re-activated rather than duplicated, and the
        unique constraint turns a racing second insert into "already
        enrolled".
        """
        try:
            existing = (await self.db.execute(
                select(Enrollment).where(
                    Enrollment.student_id == student_id,
                    Enrollment.section_id == section_id,
                )
            )).scalar_one_or_none()
            if existing is not None and existing.status in SEAT_HOLDING_STATUSES:
                return {"success": False, "error": "Already enrolled in this course", "error_code": ALREADY_ENROLLED}
            if existing is not None and existing.status == EnrollmentStatus.COMPLETED:
                return {"success": False, "error": "Course already completed", "error_code": ALREADY_ENROLLED}

            seat = await self.db.execute(
                update(CourseSection)
                .where(
                    CourseSection.id == section_id,
                    CourseSection.current_enrollment < CourseSection.max_enrollment,
                )
                .values(current_enrollment=CourseSection.current_enrollment + 1)
                .execution_options(synchronize_session="fetch")
            )
            if seat.rowcount != 1:
                await self.db.rollback()
                section = await self.db.get(CourseSection, section_id)
                if section is None:
                    return {"success": False, "error": "Course section not found"}
                return {"success": False, "error": "Course section is full", "error_code": SECTION_FULL}

            if existing is not None:
                enrollment = existing
                enrollment.status = EnrollmentStatus.ENROLLED
                enrollment.enrollment_date = date.today()
                action = "re-enrolled"
            else:
                enrollment = Enrollment(
                    student_id=student_id,
                    section_id=section_id,
                    status=EnrollmentStatus.ENROLLED,
                    enrollment_date=date.today(),
                )
                self.db.add(enrollment)
                action = "enrolled"
            await self.db.commit()

            logger.log_academic_event(action, "enrollment", enrollment.id,
                                      actor_id=student_id, section_id=section_id)
            return {"success": True, "data": to_dict(enrollment)}
        except IntegrityError as e:
            await self.db.rollback()
            logger.warning(f"enroll_in_course rejected: {e.orig}")
            if await self._has_enrollment(student_id, section_id):
                return {"success": False, "error": "Already enrolled in this course", "error_code": ALREADY_ENROLLED}
            return {"success": False, "error": "Student profile is invalid"}
        except Exception as e:
            await self.db.rollback()
            logger.log_error_with_context(e, context="enroll_in_course", student_id=student_id)
            return {"success": False, "error": str(e)}

    async def _has_enrollment(self, student_id: str, section_id: str) -> bool:
        result = await self.db.execute(
            select(Enrollment.id).where(
                Enrollment.student_id == student_id,
                Enrollment.section_id == section_id,
            )
        )
        return result.scalar_one_or_none() is not None

    async def drop_course(self, enrollment_id: str, student_id: Optional[str] = None) -> Dict[str, Any]:
        """Mark an enrollment dropped and release its seat"""
        try:
            enrollment = await self.db.get(Enrollment, enrollment_id)
            if enrollment is None or (student_id is not None and enrollment.student_id != student_id):
                return {"success": False, "error": "Enrollment not found"}
            if enrollment.status not in SEAT_HOLDING_STATUSES:
                return {"success": False, "error": f"Cannot drop an enrollment that is {enrollment.status.value}"}

            enrollment.status = EnrollmentStatus.DROPPED
            await self.db.execute(
                update(CourseSection)
                .where(CourseSection.id == enrollment.section_id, CourseSection.current_enrollment > 0)
                .values(current_enrollment=CourseSection.current_enrollment - 1)
                .execution_options(synchronize_session="fetch")
            )
            await self.db.commit()
            return {"success": True, "data": to_dict(enrollment)}
        except Exception as e:
            await self.db.rollback()
            logger.log_error_with_context(e, context="drop_course", enrollment_id=enrollment_id)
            return {"success": False, "error": str(e)}

    # =====================================================
    # RECORDS
    # =====================================================

    async def get_student_grades(self, student_id: str) -> List[Dict[str, Any]]:
        """Grades with assignment, section and course, newest first"""
        try:
            result = await self.db.execute(
                select(Grade)
                .options(
                    selectinload(Grade.assignment)
                    .selectinload(Assignment.section)
                    .selectinload(CourseSection.course)
                )
                .where(Grade.student_id == student_id)
                .order_by(Grade.created_at.desc())
            )
            return [to_dict(g) for g in result.scalars().all()]
        except Exception as e:
            logger.log_error_with_context(e, context="get_student_grades", student_id=student_id)
            return []

    async def get_student_attendance(self, student_id: str) -> List[Dict[str, Any]]:
        try:
            result = await self.db.execute(
                select(Attendance)
                .options(selectinload(Attendance.section).selectinload(CourseSection.course))
                .where(Attendance.student_id == student_id)
                .order_by(Attendance.date.desc())
            )
            return [to_dict(a) for a in result.scalars().all()]
        except Exception as e:
            logger.log_error_with_context(e, context="get_student_attendance", student_id=student_id)
            return []

    async def get_academic_summary(self, student_id: str) -> Dict[str, Any]:
        """Credit totals and overall grade across all assignments"""
        summary: Dict[str, Any] = {
            "credits_in_progress": 0,
            "credits_completed": 0,
            "active_courses": 0,
            "overall_percentage": None,
            "letter_grade": None,
        }
        try:
            rows = await self.db.execute(
                select(Enrollment.status, Course.credits)
                .join(CourseSection, Enrollment.section_id == CourseSection.id)
                .join(Course, CourseSection.course_id == Course.id)
                .where(Enrollment.student_id == student_id)
            )
            for status, credits in rows.all():
                if status == EnrollmentStatus.ENROLLED:
                    summary["credits_in_progress"] += credits
                    summary["active_courses"] += 1
                elif status == EnrollmentStatus.COMPLETED:
                    summary["credits_completed"] += credits

            scores = await self.db.execute(
                select(Grade.points_earned, Assignment.total_points)
                .join(Assignment, Grade.assignment_id == Assignment.id)
                .where(Grade.student_id == student_id)
            )
            percentage = overall_percentage(scores.all())
            if percentage is not None:
                summary["overall_percentage"] = percentage
                summary["letter_grade"] = letter_grade(percentage)
        except Exception as e:
            logger.log_error_with_context(e, context="get_academic_summary", student_id=student_id)
        return summary

    # =====================================================
    # ANNOUNCEMENTS
    # =====================================================

    async def get_student_announcements(self, student_id: str) -> List[Dict[str, Any]]:
        """
        Announcements for everyone, for students, or for one of the
        student's current sections. Newest ten, expired ones left out.
        """
        try:
            section_ids = select(Enrollment.section_id).where(
                Enrollment.student_id == student_id,
                Enrollment.status.in_(SEAT_HOLDING_STATUSES),
            )
            result = await self.db.execute(
                select(Announcement)
                .options(selectinload(Announcement.author))
                .where(
                    or_(
                        Announcement.target_audience.in_([TargetAudience.ALL, TargetAudience.STUDENTS]),
                        and_(
                            Announcement.target_audience == TargetAudience.SPECIFIC_COURSE,
                            Announcement.target_id.in_(section_ids),
                        ),
                    ),
                    or_(Announcement.expires_at.is_(None), Announcement.expires_at > utcnow()),
                )
                .order_by(Announcement.created_at.desc())
                .limit(ANNOUNCEMENT_LIMIT)
            )
            return [to_dict(a) for a in result.scalars().all()]
        except Exception as e:
            logger.log_error_with_context(e, context="get_student_announcements", student_id=student_id)
            return []
