"""
SIMS - Test Configuration and Fixtures
"""
import os
from datetime import date
from typing import AsyncGenerator, List
import pytest
import httpx
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from faker import Faker

# Set testing environment
os.environ['ENVIRONMENT'] = 'test'
os.environ['DATABASE_URL'] = 'sqlite+aiosqlite:///./test.db'
os.environ['SECRET_KEY'] = 'test-secret-key-for-testing-only'
os.environ['JWT_SECRET_KEY'] = 'test-jwt-secret-key-for-testing'
os.environ['BCRYPT_ROUNDS'] = '4'
os.environ['RATE_LIMIT_ENABLED'] = 'false'
os.environ['REQUIRE_EMAIL_CONFIRMATION'] = 'false'
os.environ['DEV_BYPASS_AUTH'] = 'false'

from sims.main import app
from sims.core.database import create_engine_for_url, make_session_factory, init_db
from sims.core.roles import Role
from sims.models.academics import Course, CourseSection, Department, Enrollment, EnrollmentStatus
from sims.models.user import Student, Faculty
from sims.modules.auth.provider import AuthProvider, AuthSession
from sims.services.file_host import CloudinaryClient

fake = Faker()

DEFAULT_PASSWORD = 'Password123'


class CodeOutbox:
    """Delivery callable that keeps every issued auth code"""

    def __init__(self):
        self.sent = []

    async def __call__(self, email, purpose, code, redirect_to):
        self.sent.append({'email': email, 'purpose': purpose, 'code': code, 'redirect_to': redirect_to})

    def last_code(self, email: str) -> str:
        for message in reversed(self.sent):
            if message['email'] == email.lower():
                return message['code']
        raise AssertionError(f'No code delivered to {email}')


class FakeCloudinary:
    """httpx handler standing in for the Cloudinary upload API"""

    def __init__(self):
        self.uploads: List[httpx.Request] = []
        self.destroyed: List[str] = []
        self.fail_uploads = False
        self.destroy_result = 'ok'

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path.endswith('/upload'):
            self.uploads.append(request)
            if self.fail_uploads:
                return httpx.Response(400, json={'error': {'message': 'Upload preset not found'}})
            public_id = f'student-documents/{fake.uuid4()}'
            return httpx.Response(200, json={
                'public_id': public_id,
                'url': f'http://res.cloudinary.com/demo/raw/upload/{public_id}',
                'secure_url': f'https://res.cloudinary.com/demo/raw/upload/{public_id}',
                'resource_type': 'raw',
                'bytes': len(request.content),
            })
        if path.endswith('/destroy'):
            body = dict(httpx.QueryParams(request.content.decode()))
            self.destroyed.append(body.get('public_id'))
            return httpx.Response(200, json={'result': self.destroy_result})
        return httpx.Response(404, json={'error': {'message': 'Not found'}})


@pytest.fixture
async def engine(tmp_path):
    """Fresh SQLite database per test"""
    eng = create_engine_for_url(f"sqlite+aiosqlite:///{tmp_path / 'sims.db'}")
    await init_db(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Database session for arranging data and calling services"""
    async with session_factory() as session:
        yield session


@pytest.fixture
def outbox() -> CodeOutbox:
    return CodeOutbox()


@pytest.fixture
def provider(session_factory, outbox) -> AuthProvider:
    return AuthProvider(session_factory, deliver_code=outbox)


@pytest.fixture
def cloudinary() -> FakeCloudinary:
    return FakeCloudinary()


@pytest.fixture
def file_host(cloudinary) -> CloudinaryClient:
    return CloudinaryClient(
        cloud_name='demo',
        upload_preset='sims-unsigned',
        api_key='123456',
        api_secret='shh',
        transport=httpx.MockTransport(cloudinary),
    )


@pytest.fixture
async def client(session_factory, provider, file_host) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app wired to the test database"""
    app.state.session_factory = session_factory
    app.state.auth_provider = provider
    app.state.file_host = file_host

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url='http://test') as ac:
        yield ac

    app.dependency_overrides.clear()


# ==================== Data factories ====================

async def sign_up(provider: AuthProvider, role: Role = Role.STUDENT, email: str = None,
                  password: str = DEFAULT_PASSWORD) -> AuthSession:
    """Registered and signed-in user of ``role``"""
    result = await provider.sign_up(
        email or fake.unique.email(),
        password,
        metadata={'full_name': fake.name(), 'role': role.value},
    )
    assert result.session is not None
    return result.session


def bearer(session: AuthSession) -> dict:
    return {'Authorization': f'Bearer {session.access_token}'}


@pytest.fixture
async def student_session(provider) -> AuthSession:
    return await sign_up(provider, Role.STUDENT)


@pytest.fixture
async def faculty_session(provider) -> AuthSession:
    return await sign_up(provider, Role.FACULTY)


@pytest.fixture
async def admin_session(provider) -> AuthSession:
    return await sign_up(provider, Role.ADMIN)


@pytest.fixture
async def student(db_session, student_session) -> Student:
    result = await db_session.execute(select(Student).where(Student.user_id == student_session.user.id))
    return result.scalar_one()


@pytest.fixture
async def faculty(db_session, faculty_session) -> Faculty:
    result = await db_session.execute(select(Faculty).where(Faculty.user_id == faculty_session.user.id))
    return result.scalar_one()


@pytest.fixture
async def department(db_session) -> Department:
    dept = Department(name='Computer Science', code=fake.bothify('CS###'))
    db_session.add(dept)
    await db_session.commit()
    return dept


async def make_section(db_session: AsyncSession, department: Department, faculty: Faculty = None,
                       max_enrollment: int = 30, credits: int = 3) -> CourseSection:
    course = Course(
        course_code=fake.bothify(f'{department.code}-####'),
        title=fake.catch_phrase(),
        credits=credits,
        department_id=department.id,
        prerequisites=[],
    )
    db_session.add(course)
    await db_session.flush()

    section = CourseSection(
        course_id=course.id,
        section_number='001',
        semester='Fall',
        year=2024,
        faculty_id=faculty.id if faculty else None,
        max_enrollment=max_enrollment,
        current_enrollment=0,
    )
    db_session.add(section)
    await db_session.commit()
    return section


@pytest.fixture
async def section(db_session, department, faculty) -> CourseSection:
    """Section taught by the ``faculty`` fixture"""
    return await make_section(db_session, department, faculty)


async def enroll(db_session: AsyncSession, student: Student, section: CourseSection,
                 status: EnrollmentStatus = EnrollmentStatus.ENROLLED) -> Enrollment:
    enrollment = Enrollment(
        student_id=student.id,
        section_id=section.id,
        status=status,
        enrollment_date=date.today(),
    )
    db_session.add(enrollment)
    await db_session.commit()
    return enrollment
