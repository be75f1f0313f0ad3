"""
Role route guard.

Every request under ``/student``, ``/faculty`` or ``/admin`` needs a live
session whose ``users`` row carries the matching role:

- no session (or no profile row) -> redirect to ``/``
- wrong role -> redirect to that role's dashboard

The role is read from the data store on each request, so a role change
takes effect immediately. Paths outside the role prefixes pass through.
A stale access token is refreshed from the refresh cookie when possible.
"""

from typing import Callable, Optional

from sqlalchemy import select
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import RedirectResponse, Response

from sims.core.config import settings
from sims.core.exceptions import SIMSError
from sims.core.logging_config import logger, set_user_id
from sims.core.roles import Role, dashboard_for, parse_role, role_for_path
from sims.models.user import User
from sims.modules.auth.dependencies import extract_access_token, set_session_cookies
from sims.modules.auth.provider import AuthSession, AuthUser


class RoleRouteGuardMiddleware(BaseHTTPMiddleware):
    """Redirects requests for role-prefixed paths the caller may not see"""

    def _redirect(self, path: str, target: str, reason: str) -> Response:
        logger.log_access_denied(path, reason=reason, redirect_to=target)
        return RedirectResponse(url=target, status_code=307)

    async def _resolve_user(self, request: Request):
        """(user, refreshed session or None); user is None without a live session"""
        provider = request.app.state.auth_provider
        token = extract_access_token(request)
        if token:
            try:
                return await provider.get_user(token), None
            except SIMSError:
                pass

        refresh_token = request.cookies.get(settings.REFRESH_COOKIE_NAME)
        if refresh_token:
            try:
                session: AuthSession = await provider.refresh_session(refresh_token)
                return session.user, session
            except SIMSError:
                pass
        return None, None

    async def _current_role(self, request: Request, user: AuthUser) -> Optional[Role]:
        async with request.app.state.session_factory() as db:
            result = await db.execute(select(User.role).where(User.id == user.id))
            return parse_role(result.scalar_one_or_none())

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        required_role = role_for_path(path)
        if required_role is None or settings.auth_bypass_active():
            return await call_next(request)

        user, refreshed = await self._resolve_user(request)
        if user is None:
            return self._redirect(path, "/", "no session")

        role = await self._current_role(request, user)
        if role is None:
            return self._redirect(path, "/", "no profile")
        if role is not required_role:
            return self._redirect(path, dashboard_for(role), f"role {role.value}")

        request.state.user_id = user.id
        if refreshed is not None:
            request.state.access_token = refreshed.access_token
        set_user_id(user.id)

        response = await call_next(request)
        if refreshed is not None:
            set_session_cookies(response, refreshed)
        return response
