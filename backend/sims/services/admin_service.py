"""
Admin Service
System-wide statistics, user directory and role management.
"""

from typing import List, Dict, Any
from datetime import date
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from sims.core.logging_config import logger
from sims.core.roles import Role, parse_role
from sims.db.triggers import institution_number
from sims.models.academics import Course, CourseSection, Department, Enrollment, SEAT_HOLDING_STATUSES
from sims.models.user import User, Student, Faculty
from sims.utils.serialization import to_dict


class AdminService:
    """Service for admin operations"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_system_stats(self) -> Dict[str, Any]:
        """Headline counts; active semesters are distinct (semester, year) pairs with sections"""
        stats = {
            "total_students": 0,
            "total_faculty": 0,
            "total_courses": 0,
            "active_semesters": 0,
        }
        try:
            stats["total_students"] = (await self.db.execute(select(func.count(Student.id)))).scalar() or 0
            stats["total_faculty"] = (await self.db.execute(select(func.count(Faculty.id)))).scalar() or 0
            stats["total_courses"] = (await self.db.execute(select(func.count(CourseSection.id)))).scalar() or 0

            semesters = select(CourseSection.semester, CourseSection.year).distinct().subquery()
            stats["active_semesters"] = (
                await self.db.execute(select(func.count()).select_from(semesters))
            ).scalar() or 0
        except Exception as e:
            logger.log_error_with_context(e, context="get_system_stats")
        return stats

    async def get_department_stats(self) -> List[Dict[str, Any]]:
        """Per department: catalog courses, sections and seat-holding enrollments"""
        try:
            departments = (await self.db.execute(
                select(Department).order_by(Department.name)
            )).scalars().all()

            course_counts = dict((await self.db.execute(
                select(Course.department_id, func.count(Course.id)).group_by(Course.department_id)
            )).all())
            section_counts = dict((await self.db.execute(
                select(Course.department_id, func.count(CourseSection.id))
                .join(CourseSection, CourseSection.course_id == Course.id)
                .group_by(Course.department_id)
            )).all())
            enrollment_counts = dict((await self.db.execute(
                select(Course.department_id, func.count(Enrollment.id))
                .join(CourseSection, CourseSection.course_id == Course.id)
                .join(Enrollment, Enrollment.section_id == CourseSection.id)
                .where(Enrollment.status.in_(SEAT_HOLDING_STATUSES))
                .group_by(Course.department_id)
            )).all())

            return [
                {
                    "department_id": d.id,
                    "name": d.name,
                    "code": d.code,
                    "courses": course_counts.get(d.id, 0),
                    "sections": section_counts.get(d.id, 0),
                    "active_enrollments": enrollment_counts.get(d.id, 0),
                }
                for d in departments
            ]
        except Exception as e:
            logger.log_error_with_context(e, context="get_department_stats")
            return []

    async def get_all_users(self) -> List[Dict[str, Any]]:
        """Every user with their role profile, newest first"""
        try:
            result = await self.db.execute(
                select(User)
                .options(selectinload(User.student), selectinload(User.faculty))
                .order_by(User.created_at.desc())
            )
            return [to_dict(u) for u in result.scalars().all()]
        except Exception as e:
            logger.log_error_with_context(e, context="get_all_users")
            return []

    async def get_all_courses(self) -> List[Dict[str, Any]]:
        """Catalog with department and sections"""
        try:
            result = await self.db.execute(
                select(Course)
                .options(selectinload(Course.department), selectinload(Course.sections))
                .order_by(Course.course_code)
            )
            return [to_dict(c) for c in result.scalars().all()]
        except Exception as e:
            logger.log_error_with_context(e, context="get_all_courses")
            return []

    async def update_user_role(self, user_id: str, role: str) -> Dict[str, Any]:
        """
        Change a user's role. A missing student/faculty profile row for the
        new role is created so the role's views have something to show.
        The route guard reads the role fresh on every request.
        """
        new_role = parse_role(role)
        if new_role is None:
            return {"success": False, "error": f"Unknown role: {role}"}
        try:
            user = (await self.db.execute(
                select(User)
                .options(selectinload(User.student), selectinload(User.faculty))
                .where(User.id == user_id)
                .execution_options(populate_existing=True)
            )).scalar_one_or_none()
            if not user:
                return {"success": False, "error": "User not found"}

            old_role = user.role
            user.role = new_role
            if new_role is Role.STUDENT and user.student is None:
                self.db.add(Student(
                    user_id=user.id,
                    student_id=institution_number("STU"),
                    enrollment_date=date.today(),
                ))
            elif new_role is Role.FACULTY and user.faculty is None:
                self.db.add(Faculty(
                    user_id=user.id,
                    employee_id=institution_number("EMP"),
                    hire_date=date.today(),
                ))
            await self.db.commit()

            logger.log_academic_event("role_changed", "profile", user.id,
                                      old_role=old_role.value, new_role=new_role.value)
            return {"success": True, "data": {"id": user.id, "email": user.email, "role": new_role.value}}
        except Exception as e:
            await self.db.rollback()
            logger.log_error_with_context(e, context="update_user_role", target_user=user_id)
            return {"success": False, "error": str(e)}
