# Authentication module

from sims.modules.auth.provider import AuthProvider, AuthEvent, AuthSession, AuthUser
from sims.modules.auth.session import AuthResult, SessionContext
from sims.modules.auth.dependencies import (
    get_session_context,
    get_current_session,
    get_current_student,
    get_current_faculty,
    get_current_admin,
    require_role,
    require_capability,
)

__all__ = [
    "AuthProvider",
    "AuthEvent",
    "AuthSession",
    "AuthUser",
    "AuthResult",
    "SessionContext",
    "get_session_context",
    "get_current_session",
    "get_current_student",
    "get_current_faculty",
    "get_current_admin",
    "require_role",
    "require_capability",
]
