from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from datetime import date, datetime

from sims.models.academics import GradeStatus


class EnrollmentCreate(BaseModel):
    section_id: str


class StudentProfileUpdate(BaseModel):
    program: Optional[str] = Field(None, max_length=255)
    year_of_study: Optional[int] = Field(None, ge=1, le=10)
    graduation_date: Optional[date] = None


class FacultyProfileUpdate(BaseModel):
    department: Optional[str] = Field(None, max_length=255)
    position: Optional[str] = Field(None, max_length=100)
    office_location: Optional[str] = Field(None, max_length=255)
    office_hours: Optional[str] = Field(None, max_length=255)


class AssignmentCreate(BaseModel):
    section_id: str
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    type: str = "homework"
    total_points: float = Field(100, gt=0)
    due_date: Optional[datetime] = None


class AssignmentUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    type: Optional[str] = None
    total_points: Optional[float] = Field(None, gt=0)
    due_date: Optional[datetime] = None


class GradeSave(BaseModel):
    """Upsert of the grade for one student on one assignment"""
    student_id: str
    assignment_id: str
    points_earned: Optional[float] = Field(None, ge=0)
    feedback: Optional[str] = None
    status: GradeStatus = GradeStatus.SUBMITTED


class GradeSubmit(BaseModel):
    points_earned: float = Field(..., ge=0)
    feedback: Optional[str] = None


class CourseRegistration(BaseModel):
    """New catalog course together with its first section"""
    course_code: str = Field(..., min_length=1, max_length=20)
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    credits: int = Field(3, ge=0, le=12)
    department_id: str
    prerequisites: List[str] = []

    section_number: str = Field("001", min_length=1, max_length=20)
    semester: str = Field(..., min_length=1, max_length=20)
    year: int = Field(..., ge=2000, le=2100)
    max_enrollment: int = Field(30, ge=1)
    schedule: Optional[Dict[str, Any]] = None

    def course_data(self) -> Dict[str, Any]:
        return self.model_dump(include={
            "course_code", "title", "description", "credits", "department_id", "prerequisites"
        })

    def section_data(self) -> Dict[str, Any]:
        return self.model_dump(include={
            "section_number", "semester", "year", "max_enrollment", "schedule"
        })


class RoleUpdate(BaseModel):
    role: str
