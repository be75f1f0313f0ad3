from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from fastapi.responses import RedirectResponse
from typing import Optional
from urllib.parse import urlsplit

from sims.core.config import settings
from sims.core.exceptions import SIMSError
from sims.core.logging_config import logger
from sims.core.rate_limiter import auth_rate_limit, strict_rate_limit
from sims.core.roles import Role, dashboard_for
from sims.modules.auth.dependencies import (
    clear_session_cookies,
    get_auth_provider,
    get_current_session,
    get_session_context,
    set_session_cookies,
)
from sims.modules.auth.provider import AuthProvider
from sims.modules.auth.session import SessionContext
from sims.schemas.auth import (
    PasswordReset,
    PasswordResetRequest,
    ProfileUpdate,
    SessionResponse,
    UserLogin,
    UserRegister,
)

router = APIRouter()

AUTH_CODE_ERROR_PATH = "/auth/auth-code-error"
RESET_PASSWORD_PATH = "/auth/reset-password"


def _safe_next(next_path: Optional[str]) -> Optional[str]:
    """Only same-site absolute paths are followed after a code exchange"""
    if not next_path or next_path == "/" or not next_path.startswith("/"):
        return None
    # Browsers read a backslash as a slash, so "/\host" is "//host"
    if "\\" in next_path or any(ord(ch) < 32 for ch in next_path):
        return None
    parts = urlsplit(next_path)
    if parts.scheme or parts.netloc or next_path.startswith("//"):
        return None
    return next_path


@router.post("/register", status_code=status.HTTP_201_CREATED)
@strict_rate_limit()
async def register(
    request: Request,
    response: Response,
    user_data: UserRegister,
    context: SessionContext = Depends(get_session_context)
):
    """Register a student account (rate limited: 3/min)"""
    result = await context.sign_up(
        user_data.email,
        user_data.password,
        full_name=user_data.full_name,
        role=Role.STUDENT,
        redirect_to="/auth/callback",
    )
    if not result.ok:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result.error)

    if context.session is not None:
        set_session_cookies(response, context.session)
        return {
            "message": "Account created",
            "requires_confirmation": False,
            "redirect_to": dashboard_for(context.role),
        }
    return {
        "message": "Check your email to confirm your account",
        "requires_confirmation": True,
    }


@router.post("/login", response_model=SessionResponse)
@auth_rate_limit()
async def login(
    request: Request,
    response: Response,
    credentials: UserLogin,
    context: SessionContext = Depends(get_session_context)
):
    """Sign in with email and password (rate limited: 5/min)"""
    result = await context.sign_in(credentials.email, credentials.password)
    if not result.ok:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=result.error)

    set_session_cookies(response, context.session)
    return SessionResponse(
        access_token=context.session.access_token,
        refresh_token=context.session.refresh_token,
        expires_in=context.session.expires_in,
        redirect_to=dashboard_for(context.role),
    )


@router.post("/refresh", response_model=SessionResponse)
async def refresh(
    request: Request,
    response: Response,
    provider: AuthProvider = Depends(get_auth_provider),
    context: SessionContext = Depends(get_session_context)
):
    """Rotate the token pair using the refresh cookie"""
    refresh_token = request.cookies.get(settings.REFRESH_COOKIE_NAME)
    if not refresh_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="No refresh token")
    try:
        session = await provider.refresh_session(refresh_token)
    except SIMSError as e:
        clear_session_cookies(response)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=e.message)

    set_session_cookies(response, session)
    return SessionResponse(
        access_token=session.access_token,
        refresh_token=session.refresh_token,
        expires_in=session.expires_in,
        redirect_to=dashboard_for(context.role),
    )


@router.post("/logout")
async def logout(
    response: Response,
    context: SessionContext = Depends(get_session_context)
):
    """Revoke the current session and clear cookies"""
    result = await context.sign_out()
    clear_session_cookies(response)
    if not result.ok:
        logger.warning(f"Logout could not revoke session: {result.error}")
    return {"message": "Signed out"}


@router.get("/callback")
async def auth_callback(
    code: Optional[str] = Query(None),
    next: Optional[str] = Query(None),
    context: SessionContext = Depends(get_session_context)
):
    """
    Exchange a confirmation/recovery code for a session.

    Redirects to ``next`` when it is a local path, otherwise to the
    dashboard of the user's role. Failures land on the auth-code error page.
    """
    if code:
        result = await context.exchange_code(code)
        if result.ok and context.session is not None:
            target = _safe_next(next) or dashboard_for(context.role)
            redirect = RedirectResponse(url=target, status_code=status.HTTP_307_TEMPORARY_REDIRECT)
            set_session_cookies(redirect, context.session)
            return redirect

    return RedirectResponse(url=AUTH_CODE_ERROR_PATH, status_code=status.HTTP_307_TEMPORARY_REDIRECT)


@router.post("/reset-password/request")
@strict_rate_limit()
async def request_password_reset(
    request: Request,
    body: PasswordResetRequest,
    context: SessionContext = Depends(get_session_context)
):
    """Send a recovery link; the response does not reveal whether the email exists"""
    await context.request_password_reset(
        body.email, redirect_to=f"/auth/callback?next={RESET_PASSWORD_PATH}"
    )
    return {"message": "If an account exists for this email, a reset link has been sent"}


@router.post("/reset-password")
async def reset_password(
    body: PasswordReset,
    context: SessionContext = Depends(get_current_session)
):
    """Set a new password for the signed-in (recovery) session"""
    result = await context.update_password(body.password)
    if not result.ok:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result.error)
    return {"message": "Password updated", "redirect_to": dashboard_for(context.role)}


@router.get("/me")
async def get_me(context: SessionContext = Depends(get_current_session)):
    """Signed-in user, profile row and role"""
    return {
        "user": {"id": context.user.id, "email": context.user.email},
        "profile": context.profile,
        "role": context.role.value if context.role else None,
        "dashboard": dashboard_for(context.role),
    }


@router.patch("/me")
async def update_me(
    body: ProfileUpdate,
    context: SessionContext = Depends(get_current_session)
):
    """Edit the signed-in user's own profile"""
    result = await context.update_profile(body.model_dump(exclude_unset=True))
    if not result.ok:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result.error)
    return {"profile": context.profile}
