"""
Roles and their capabilities.

``Role`` is closed over student, faculty and admin. Everything that used
to branch on a role string (dashboard redirects, the route guard, view
permissions) goes through ``ROLE_PROFILES``, which is checked at import
time to cover every member of the enum.
"""

from dataclasses import dataclass
from typing import Dict, FrozenSet, Optional
import enum


class Role(str, enum.Enum):
    """User roles"""
    STUDENT = "student"
    FACULTY = "faculty"
    ADMIN = "admin"


class Capability(str, enum.Enum):
    """Operations a role may perform"""
    ENROLL = "enroll"
    UPLOAD_DOCUMENTS = "upload_documents"
    VIEW_OWN_GRADES = "view_own_grades"
    MANAGE_ASSIGNMENTS = "manage_assignments"
    GRADE = "grade"
    REVIEW_DOCUMENTS = "review_documents"
    REGISTER_COURSES = "register_courses"
    PUBLISH_ANNOUNCEMENTS = "publish_announcements"
    MANAGE_USERS = "manage_users"
    VIEW_REPORTS = "view_reports"


@dataclass(frozen=True)
class RoleProfile:
    role: Role
    route_prefix: str
    capabilities: FrozenSet[Capability]

    @property
    def dashboard_path(self) -> str:
        return f"{self.route_prefix}/dashboard"

    def can(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def owns_path(self, path: str) -> bool:
        """True when ``path`` sits under this role's prefix (segment boundary)"""
        return path == self.route_prefix or path.startswith(self.route_prefix + "/")


ROLE_PROFILES: Dict[Role, RoleProfile] = {
    Role.STUDENT: RoleProfile(
        role=Role.STUDENT,
        route_prefix="/student",
        capabilities=frozenset({
            Capability.ENROLL,
            Capability.UPLOAD_DOCUMENTS,
            Capability.VIEW_OWN_GRADES,
        }),
    ),
    Role.FACULTY: RoleProfile(
        role=Role.FACULTY,
        route_prefix="/faculty",
        capabilities=frozenset({
            Capability.MANAGE_ASSIGNMENTS,
            Capability.GRADE,
            Capability.REVIEW_DOCUMENTS,
            Capability.REGISTER_COURSES,
            Capability.PUBLISH_ANNOUNCEMENTS,
        }),
    ),
    Role.ADMIN: RoleProfile(
        role=Role.ADMIN,
        route_prefix="/admin",
        capabilities=frozenset({
            Capability.PUBLISH_ANNOUNCEMENTS,
            Capability.MANAGE_USERS,
            Capability.VIEW_REPORTS,
        }),
    ),
}

_missing = set(Role) - set(ROLE_PROFILES)
if _missing:
    raise RuntimeError(f"Roles without a profile: {sorted(r.value for r in _missing)}")


def parse_role(value) -> Optional[Role]:
    """Role from a stored value; None for anything outside the closed set"""
    if isinstance(value, Role):
        return value
    try:
        return Role(value)
    except ValueError:
        return None


def profile_for(role: Role) -> RoleProfile:
    return ROLE_PROFILES[role]


def dashboard_for(role: Optional[Role]) -> str:
    """Landing page for a role, root for no/unknown role"""
    if role is None:
        return "/"
    return ROLE_PROFILES[role].dashboard_path


def role_for_path(path: str) -> Optional[Role]:
    """Role whose prefix guards ``path``; None for unguarded paths"""
    for profile in ROLE_PROFILES.values():
        if profile.owns_path(path):
            return profile.role
    return None
