"""
Academic catalog and records
- Department, Course, CourseSection
- Enrollment, Assignment, Grade, Attendance
"""

from sqlalchemy import (
    Column, String, Integer, Float, Text, Date, DateTime, ForeignKey, JSON, UniqueConstraint
)
from sqlalchemy.orm import relationship
import enum

from sims.core.database import Base
from sims.core.types import GUID, TimestampMixin, enum_column_type, generate_uuid


class EnrollmentStatus(str, enum.Enum):
    ENROLLED = "enrolled"
    COMPLETED = "completed"
    DROPPED = "dropped"
    PENDING = "pending"


class GradeStatus(str, enum.Enum):
    PENDING = "pending"
    SUBMITTED = "submitted"
    FINAL = "final"


class AttendanceStatus(str, enum.Enum):
    PRESENT = "present"
    ABSENT = "absent"
    LATE = "late"
    EXCUSED = "excused"


# Enrollment states that hold a seat in the section
SEAT_HOLDING_STATUSES = (EnrollmentStatus.ENROLLED, EnrollmentStatus.PENDING)


class Department(TimestampMixin, Base):
    """Department model"""
    __tablename__ = "departments"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    code = Column(String(20), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    head_faculty_id = Column(GUID, ForeignKey("faculty.id", ondelete="SET NULL"), nullable=True)

    courses = relationship("Course", back_populates="department")

    def __repr__(self):
        return f"<Department {self.code}>"


class Course(TimestampMixin, Base):
    """Catalog course"""
    __tablename__ = "courses"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    course_code = Column(String(20), unique=True, nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    credits = Column(Integer, nullable=False, default=3)
    department_id = Column(GUID, ForeignKey("departments.id"), nullable=False)
    prerequisites = Column(JSON, nullable=False, default=list)  # course codes, not cross-checked

    department = relationship("Department", back_populates="courses")
    sections = relationship("CourseSection", back_populates="course", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Course {self.course_code}>"


class CourseSection(TimestampMixin, Base):
    """One offering of a course in a semester"""
    __tablename__ = "course_sections"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    course_id = Column(GUID, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    section_number = Column(String(20), nullable=False)
    semester = Column(String(20), nullable=False)  # Fall, Spring, Summer
    year = Column(Integer, nullable=False)
    faculty_id = Column(GUID, ForeignKey("faculty.id", ondelete="SET NULL"), nullable=True, index=True)
    max_enrollment = Column(Integer, nullable=False, default=30)
    current_enrollment = Column(Integer, nullable=False, default=0)
    schedule = Column(JSON, nullable=True)  # {"days": [...], "time": "...", "room": "..."}

    course = relationship("Course", back_populates="sections")
    faculty = relationship("Faculty", back_populates="sections")
    enrollments = relationship("Enrollment", back_populates="section", cascade="all, delete-orphan")
    assignments = relationship("Assignment", back_populates="section", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<CourseSection {self.section_number} {self.semester} {self.year}>"


class Enrollment(TimestampMixin, Base):
    """A student's membership in a section"""
    __tablename__ = "enrollments"
    __table_args__ = (
        UniqueConstraint("student_id", "section_id", name="uq_enrollments_student_section"),
    )

    id = Column(GUID, primary_key=True, default=generate_uuid)
    student_id = Column(GUID, ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    section_id = Column(GUID, ForeignKey("course_sections.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(enum_column_type(EnrollmentStatus), default=EnrollmentStatus.ENROLLED, nullable=False)
    enrollment_date = Column(Date, nullable=True)
    completion_date = Column(Date, nullable=True)
    final_grade = Column(String(5), nullable=True)
    grade_points = Column(Float, nullable=True)

    student = relationship("Student", back_populates="enrollments")
    section = relationship("CourseSection", back_populates="enrollments")

    def __repr__(self):
        return f"<Enrollment {self.student_id} -> {self.section_id} ({self.status})>"


class Assignment(TimestampMixin, Base):
    """Graded work item in a section"""
    __tablename__ = "assignments"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    section_id = Column(GUID, ForeignKey("course_sections.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    type = Column(String(50), nullable=False, default="homework")
    total_points = Column(Float, nullable=False, default=100)
    due_date = Column(DateTime, nullable=True)

    section = relationship("CourseSection", back_populates="assignments")
    grades = relationship("Grade", back_populates="assignment", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Assignment {self.title}>"


class Grade(TimestampMixin, Base):
    """Score of one student on one assignment"""
    __tablename__ = "grades"
    __table_args__ = (
        UniqueConstraint("student_id", "assignment_id", name="uq_grades_student_assignment"),
    )

    id = Column(GUID, primary_key=True, default=generate_uuid)
    student_id = Column(GUID, ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    assignment_id = Column(GUID, ForeignKey("assignments.id", ondelete="CASCADE"), nullable=False, index=True)
    points_earned = Column(Float, nullable=True)
    status = Column(enum_column_type(GradeStatus), default=GradeStatus.PENDING, nullable=False)
    feedback = Column(Text, nullable=True)
    submitted_at = Column(DateTime, nullable=True)
    graded_at = Column(DateTime, nullable=True)

    student = relationship("Student")
    assignment = relationship("Assignment", back_populates="grades")

    def __repr__(self):
        return f"<Grade {self.student_id}/{self.assignment_id} {self.points_earned}>"


class Attendance(TimestampMixin, Base):
    """Per-day attendance mark"""
    __tablename__ = "attendance"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    student_id = Column(GUID, ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    section_id = Column(GUID, ForeignKey("course_sections.id", ondelete="CASCADE"), nullable=False)
    date = Column(Date, nullable=False)
    status = Column(enum_column_type(AttendanceStatus), nullable=False)
    notes = Column(Text, nullable=True)

    student = relationship("Student")
    section = relationship("CourseSection")
