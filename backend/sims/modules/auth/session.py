"""
Per-client session state.

``SessionContext`` tracks who is signed in and the ``users`` row that
carries their role. It is created per request (see
``sims.modules.auth.dependencies``) and passed down explicitly; nothing
about the signed-in user lives in module globals.

Public methods never raise. Failures come back as ``AuthResult.error``
and leave the context without a profile.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sims.core.exceptions import NotAuthenticatedError, SIMSError
from sims.core.logging_config import logger, set_user_id
from sims.core.roles import Role, parse_role
from sims.core.security import decode_token
from sims.models.user import User
from sims.modules.auth.provider import (
    AuthEvent,
    AuthProvider,
    AuthSession,
    AuthSubscription,
    AuthUser,
)
from sims.utils.serialization import to_dict


GENERIC_ERROR = "Something went wrong. Please try again."

# users columns a signed-in user may edit on their own profile
EDITABLE_PROFILE_FIELDS = ("full_name", "avatar_url", "phone", "address", "date_of_birth")

# Events after which the cached profile is re-read
_REFRESH_EVENTS = (AuthEvent.SIGNED_IN, AuthEvent.TOKEN_REFRESHED, AuthEvent.USER_UPDATED)


@dataclass
class AuthResult:
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class SessionContext:
    """Signed-in user, their session and their profile row"""

    def __init__(
        self,
        provider: AuthProvider,
        session_factory: async_sessionmaker[AsyncSession],
    ):
        self.provider = provider
        self._session_factory = session_factory
        self._subscription: Optional[AuthSubscription] = None

        self.user: Optional[AuthUser] = None
        self.session: Optional[AuthSession] = None
        self.profile: Optional[Dict[str, Any]] = None
        self.access_token: Optional[str] = None
        self.session_id: Optional[str] = None
        # Set when restore() had to rotate the token pair
        self.refreshed = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> "SessionContext":
        if self._subscription is None:
            self._subscription = self.provider.on_auth_state_change(self._on_auth_event)
        return self

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        self._clear()

    async def __aenter__(self) -> "SessionContext":
        return self.start()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    @property
    def role(self) -> Optional[Role]:
        if not self.profile:
            return None
        return parse_role(self.profile.get("role"))

    def _clear(self) -> None:
        self.user = None
        self.session = None
        self.profile = None
        self.access_token = None
        self.session_id = None

    def _adopt(self, session: AuthSession) -> None:
        self.session = session
        self.user = session.user
        self.access_token = session.access_token
        self.session_id = session.session_id
        set_user_id(session.user.id)

    async def _load_profile(self) -> None:
        """Read the users row for the current identity (None if missing)"""
        if self.user is None:
            self.profile = None
            return
        async with self._session_factory() as db:
            row = (await db.execute(
                select(User).where(User.id == self.user.id)
            )).scalar_one_or_none()
            self.profile = to_dict(row)

    async def _on_auth_event(self, event: AuthEvent, user: Optional[AuthUser],
                             session_id: Optional[str]) -> None:
        if self.user is None or user is None or user.id != self.user.id:
            return
        if event == AuthEvent.SIGNED_OUT:
            if session_id == self.session_id:
                self._clear()
            return
        if event in _REFRESH_EVENTS:
            self.user = user
            await self._load_profile()

    def _failure(self, error: Exception, operation: str) -> AuthResult:
        self.profile = None
        if isinstance(error, SIMSError):
            logger.log_auth_event(operation, success=False, reason=error.message)
            return AuthResult(error=error.message)
        logger.log_error_with_context(error, context=f"session {operation}")
        return AuthResult(error=GENERIC_ERROR)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def restore(self, access_token: str, refresh_token: Optional[str] = None) -> AuthResult:
        """Re-hydrate from a stored token, rotating the pair if the access token is stale"""
        try:
            try:
                self.user = await self.provider.get_user(access_token)
                self.access_token = access_token
                self.session_id = decode_token(access_token).get("sid")
                set_user_id(self.user.id)
            except SIMSError:
                if not refresh_token:
                    raise
                self._adopt(await self.provider.refresh_session(refresh_token))
                self.refreshed = True
            await self._load_profile()
            return AuthResult()
        except Exception as e:
            self._clear()
            return self._failure(e, "restore")

    async def sign_in(self, email: str, password: str) -> AuthResult:
        try:
            self._adopt(await self.provider.sign_in_with_password(email, password))
            await self._load_profile()
            logger.log_auth_event("login", success=True, user_email=email)
            return AuthResult()
        except Exception as e:
            self._clear()
            return self._failure(e, "login")

    async def sign_up(
        self,
        email: str,
        password: str,
        full_name: str,
        role: Role,
        redirect_to: Optional[str] = None,
    ) -> AuthResult:
        """
        Register a credential with ``full_name`` and ``role`` as metadata.

        The profile row comes from the signup trigger. When the provider
        does not require email confirmation the context is signed in
        immediately.
        """
        try:
            result = await self.provider.sign_up(
                email,
                password,
                metadata={"full_name": full_name, "role": role.value},
                redirect_to=redirect_to,
            )
            if result.session is not None:
                self._adopt(result.session)
                await self._load_profile()
            logger.log_auth_event("register", success=True, user_email=email, role=role.value)
            return AuthResult()
        except Exception as e:
            return self._failure(e, "register")

    async def sign_out(self) -> AuthResult:
        token = self.access_token
        email = self.user.email if self.user else None
        self._clear()
        if not token:
            return AuthResult()
        try:
            await self.provider.sign_out(token)
            logger.log_auth_event("logout", success=True, user_email=email)
            return AuthResult()
        except Exception as e:
            return self._failure(e, "logout")

    async def exchange_code(self, code: str) -> AuthResult:
        """Trade a confirmation/recovery code for a session"""
        try:
            self._adopt(await self.provider.exchange_code_for_session(code))
            await self._load_profile()
            return AuthResult()
        except Exception as e:
            self._clear()
            return self._failure(e, "code_exchange")

    async def request_password_reset(self, email: str, redirect_to: Optional[str] = None) -> AuthResult:
        try:
            await self.provider.reset_password_for_email(email, redirect_to=redirect_to)
            return AuthResult()
        except Exception as e:
            return self._failure(e, "password_reset_request")

    async def update_password(self, new_password: str) -> AuthResult:
        if not self.access_token:
            return AuthResult(error=NotAuthenticatedError().message)
        try:
            await self.provider.update_user(self.access_token, password=new_password)
            logger.log_auth_event("password_reset", success=True, user_email=self.user.email)
            return AuthResult()
        except Exception as e:
            return self._failure(e, "password_reset")

    async def update_profile(self, fields: Dict[str, Any]) -> AuthResult:
        """Write editable fields to the users row; the cache changes only on success"""
        if self.user is None:
            return AuthResult(error=NotAuthenticatedError().message)

        updates = {k: v for k, v in fields.items() if k in EDITABLE_PROFILE_FIELDS}
        if not updates:
            return AuthResult()

        try:
            async with self._session_factory() as db:
                row = (await db.execute(
                    select(User).where(User.id == self.user.id)
                )).scalar_one_or_none()
                if row is None:
                    return AuthResult(error="Profile not found")
                for key, value in updates.items():
                    setattr(row, key, value)
                await db.commit()
                fresh = to_dict(row)
        except Exception as e:
            logger.log_error_with_context(e, context="session update_profile")
            return AuthResult(error=GENERIC_ERROR)

        self.profile = {**(self.profile or {}), **fresh}
        return AuthResult()
