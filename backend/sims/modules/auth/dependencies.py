from fastapi import Depends, HTTPException, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import AsyncGenerator, Callable, Optional

from sims.core.config import settings
from sims.core.database import get_db
from sims.core.exceptions import ProfileNotFoundError
from sims.core.roles import Capability, Role, profile_for
from sims.models.user import Student, Faculty
from sims.modules.auth.provider import AuthProvider, AuthSession
from sims.modules.auth.session import SessionContext


def extract_access_token(request: Request) -> Optional[str]:
    """Token refreshed earlier in this request, then the Bearer header, then the session cookie"""
    refreshed = getattr(request.state, "access_token", None)
    if refreshed:
        return refreshed
    authorization = request.headers.get("Authorization", "")
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials.strip()
    return request.cookies.get(settings.SESSION_COOKIE_NAME)


def set_session_cookies(response: Response, session: AuthSession) -> None:
    response.set_cookie(
        settings.SESSION_COOKIE_NAME,
        session.access_token,
        max_age=session.expires_in,
        httponly=True,
        secure=settings.SESSION_COOKIE_SECURE,
        samesite="lax",
    )
    response.set_cookie(
        settings.REFRESH_COOKIE_NAME,
        session.refresh_token,
        max_age=settings.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 3600,
        httponly=True,
        secure=settings.SESSION_COOKIE_SECURE,
        samesite="lax",
    )


def clear_session_cookies(response: Response) -> None:
    response.delete_cookie(settings.SESSION_COOKIE_NAME)
    response.delete_cookie(settings.REFRESH_COOKIE_NAME)


def get_auth_provider(request: Request) -> AuthProvider:
    return request.app.state.auth_provider


async def get_session_context(
    request: Request,
    response: Response,
) -> AsyncGenerator[SessionContext, None]:
    """Session context for the calling client, restored from its token"""
    context = SessionContext(request.app.state.auth_provider, request.app.state.session_factory)
    async with context:
        token = extract_access_token(request)
        if token:
            await context.restore(token, request.cookies.get(settings.REFRESH_COOKIE_NAME))
            if context.refreshed and context.session:
                set_session_cookies(response, context.session)
        yield context


async def get_current_session(
    context: SessionContext = Depends(get_session_context)
) -> SessionContext:
    """Session context that must be signed in"""
    if not context.is_authenticated:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated"
        )
    return context


def require_role(*roles: Role) -> Callable:
    """Dependency factory: signed in with one of ``roles``"""

    async def checker(
        context: SessionContext = Depends(get_current_session)
    ) -> SessionContext:
        if context.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"{' or '.join(r.value.capitalize() for r in roles)} access required"
            )
        return context

    return checker


def require_capability(*capabilities: Capability) -> Callable:
    """Dependency factory: the signed-in role may perform every one of ``capabilities``"""

    async def checker(
        context: SessionContext = Depends(get_current_session)
    ) -> SessionContext:
        role = context.role
        missing = [c for c in capabilities if role is None or not profile_for(role).can(c)]
        if missing:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Not permitted: {', '.join(c.value for c in missing)}"
            )
        return context

    return checker


async def get_current_student(
    context: SessionContext = Depends(require_role(Role.STUDENT)),
    db: AsyncSession = Depends(get_db)
) -> Student:
    """Student profile of the signed-in user"""
    result = await db.execute(
        select(Student).where(Student.user_id == context.user.id)
    )
    student = result.scalar_one_or_none()
    if not student:
        raise ProfileNotFoundError("student", context.user.id)
    return student


async def get_current_faculty(
    context: SessionContext = Depends(require_role(Role.FACULTY)),
    db: AsyncSession = Depends(get_db)
) -> Faculty:
    """Faculty profile of the signed-in user"""
    result = await db.execute(
        select(Faculty).where(Faculty.user_id == context.user.id)
    )
    faculty = result.scalar_one_or_none()
    if not faculty:
        raise ProfileNotFoundError("faculty", context.user.id)
    return faculty


get_current_admin = require_role(Role.ADMIN)
