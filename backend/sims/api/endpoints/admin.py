"""
Admin Console API Endpoints

System statistics, user directory, role management, catalog overview
and announcements.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from sims.api.deps import ensure_success
from sims.core.database import get_db
from sims.core.roles import Capability
from sims.modules.auth.dependencies import get_current_admin, require_capability
from sims.modules.auth.session import SessionContext
from sims.schemas.academics import RoleUpdate
from sims.schemas.communication import AnnouncementCreate
from sims.services.admin_service import AdminService
from sims.services.faculty_service import FacultyService

router = APIRouter(tags=["Admin Console"])


@router.get("/dashboard", dependencies=[Depends(require_capability(Capability.VIEW_REPORTS))])
async def dashboard(
    context: SessionContext = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    return {
        "profile": context.profile,
        "stats": await AdminService(db).get_system_stats(),
    }


@router.get("/users")
async def users(
    context: SessionContext = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    return {"users": await AdminService(db).get_all_users()}


@router.patch("/users/{user_id}/role", dependencies=[Depends(require_capability(Capability.MANAGE_USERS))])
async def change_role(
    user_id: str,
    body: RoleUpdate,
    context: SessionContext = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    """Promote or demote a user; takes effect on their next request"""
    result = await AdminService(db).update_user_role(user_id, body.role)
    return ensure_success(result)


@router.get("/courses")
async def courses(
    context: SessionContext = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    return {"courses": await AdminService(db).get_all_courses()}


@router.get("/reports")
async def reports(
    context: SessionContext = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    """System totals with a per-department breakdown"""
    service = AdminService(db)
    return {
        "stats": await service.get_system_stats(),
        "departments": await service.get_department_stats(),
    }


@router.get("/announcements")
async def announcements(
    context: SessionContext = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    return {"announcements": await FacultyService(db).get_faculty_announcements(context.user.id)}


@router.post("/announcements", status_code=status.HTTP_201_CREATED,
             dependencies=[Depends(require_capability(Capability.PUBLISH_ANNOUNCEMENTS))])
async def create_announcement(
    body: AnnouncementCreate,
    context: SessionContext = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    result = await FacultyService(db).create_announcement(body.model_dump(), context.user.id)
    return ensure_success(result)
