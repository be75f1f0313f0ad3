from sqlalchemy import Column, String, Date, Integer, Float, Text, ForeignKey
from sqlalchemy.orm import relationship

from sims.core.database import Base
from sims.core.roles import Role
from sims.core.types import GUID, TimestampMixin, enum_column_type, generate_uuid


class User(TimestampMixin, Base):
    """Identity record; id matches the auth identity that owns it"""
    __tablename__ = "users"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=False, default="")
    role = Column(enum_column_type(Role), default=Role.STUDENT, nullable=False)

    # Profile fields
    avatar_url = Column(Text, nullable=True)
    phone = Column(String(20), nullable=True)
    address = Column(Text, nullable=True)
    date_of_birth = Column(Date, nullable=True)

    student = relationship("Student", back_populates="user", uselist=False)
    faculty = relationship("Faculty", back_populates="user", uselist=False)

    def __repr__(self):
        return f"<User {self.email}>"


class Student(TimestampMixin, Base):
    """Student profile extending a User"""
    __tablename__ = "students"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    user_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    student_id = Column(String(50), unique=True, nullable=False)  # institution number, e.g. STU2024123
    program = Column(String(255), nullable=False, default="Undeclared")
    year_of_study = Column(Integer, nullable=False, default=1)
    gpa = Column(Float, nullable=False, default=0.0)
    enrollment_date = Column(Date, nullable=True)
    graduation_date = Column(Date, nullable=True)
    status = Column(String(50), nullable=False, default="active")

    user = relationship("User", back_populates="student")
    enrollments = relationship("Enrollment", back_populates="student", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Student {self.student_id}>"


class Faculty(TimestampMixin, Base):
    """Faculty profile extending a User"""
    __tablename__ = "faculty"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    user_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    employee_id = Column(String(50), unique=True, nullable=False)
    department = Column(String(255), nullable=False, default="General")
    position = Column(String(100), nullable=False, default="Lecturer")
    hire_date = Column(Date, nullable=True)
    office_location = Column(String(255), nullable=True)
    office_hours = Column(String(255), nullable=True)

    user = relationship("User", back_populates="faculty")
    sections = relationship("CourseSection", back_populates="faculty")

    def __repr__(self):
        return f"<Faculty {self.employee_id}>"
