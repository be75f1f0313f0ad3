"""
Unit Tests for AdminService
"""
from sqlalchemy import select

from sims.core.roles import Role
from sims.models.academics import EnrollmentStatus
from sims.models.user import Faculty, Student, User
from sims.services.admin_service import AdminService

from conftest import enroll, make_section


class TestStats:
    """Test system and department statistics"""

    async def test_system_stats_from_data(self, db_session, student, faculty, admin_session, department):
        """Test headline counts reflect stored rows"""
        await make_section(db_session, department, faculty)
        await make_section(db_session, department, faculty)

        stats = await AdminService(db_session).get_system_stats()

        assert stats == {
            "total_students": 1,
            "total_faculty": 1,
            "total_courses": 2,
            "active_semesters": 1,
        }

    async def test_empty_system(self, db_session):
        """Test an empty database gives zeros"""
        stats = await AdminService(db_session).get_system_stats()

        assert set(stats.values()) == {0}

    async def test_department_stats(self, db_session, student, section, department):
        """Test per-department counts only include seat-holding enrollments"""
        other = await make_section(db_session, department)
        await enroll(db_session, student, section)
        await enroll(db_session, student, other, status=EnrollmentStatus.DROPPED)

        stats = await AdminService(db_session).get_department_stats()

        assert stats == [{
            "department_id": department.id,
            "name": department.name,
            "code": department.code,
            "courses": 2,
            "sections": 2,
            "active_enrollments": 1,
        }]


class TestDirectory:
    """Test user and course listings"""

    async def test_all_users_with_profiles(self, db_session, student_session, faculty_session, admin_session):
        """Test every user is listed with their role profile"""
        users = await AdminService(db_session).get_all_users()

        by_role = {u["role"]: u for u in users}
        assert set(by_role) == {"student", "faculty", "admin"}
        assert by_role["student"]["student"]["student_id"].startswith("STU")
        assert by_role["faculty"]["faculty"]["employee_id"].startswith("EMP")
        assert by_role["admin"]["student"] is None

    async def test_all_courses(self, db_session, section):
        """Test courses carry department and sections"""
        courses = await AdminService(db_session).get_all_courses()

        assert len(courses) == 1
        assert courses[0]["department"]["name"] == "Computer Science"
        assert [s["id"] for s in courses[0]["sections"]] == [section.id]


class TestRoleChange:
    """Test promoting and demoting users"""

    async def test_promote_student_to_faculty_creates_profile(self, db_session, student_session):
        """Test a faculty row appears for a promoted student"""
        result = await AdminService(db_session).update_user_role(student_session.user.id, "faculty")

        user = await db_session.get(User, student_session.user.id, populate_existing=True)
        faculty = (await db_session.execute(
            select(Faculty).where(Faculty.user_id == student_session.user.id)
        )).scalar_one()
        assert result["data"]["role"] == "faculty"
        assert user.role is Role.FACULTY
        assert faculty.employee_id.startswith("EMP")

    async def test_existing_profile_is_kept(self, db_session, student_session):
        """Test moving back to student does not duplicate the students row"""
        service = AdminService(db_session)
        await service.update_user_role(student_session.user.id, "faculty")

        await service.update_user_role(student_session.user.id, "student")

        students = (await db_session.execute(
            select(Student).where(Student.user_id == student_session.user.id)
        )).scalars().all()
        assert len(students) == 1

    async def test_promote_to_admin(self, db_session, faculty_session):
        """Test admins need no profile row"""
        result = await AdminService(db_session).update_user_role(faculty_session.user.id, "admin")

        assert result["success"] is True
        assert result["data"]["role"] == "admin"

    async def test_unknown_role(self, db_session, student_session):
        """Test unknown roles are refused"""
        result = await AdminService(db_session).update_user_role(student_session.user.id, "dean")

        assert result == {"success": False, "error": "Unknown role: dean"}

    async def test_unknown_user(self, db_session):
        """Test missing users are reported"""
        result = await AdminService(db_session).update_user_role("missing", "admin")

        assert result == {"success": False, "error": "User not found"}
