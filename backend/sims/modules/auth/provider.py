"""
Auth provider.

Owns credentials, sessions and one-time codes. Issues JWT access/refresh
token pairs bound to a revocable ``auth_sessions`` row, and notifies
subscribers whenever a session changes.

Codes (signup confirmation, password recovery) are handed to a delivery
callable instead of being returned to HTTP callers; the default one only
logs that a code was issued.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional
import enum

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sims.core.config import settings
from sims.core.exceptions import (
    EmailAlreadyRegisteredError,
    EmailNotConfirmedError,
    InvalidAuthCodeError,
    InvalidCredentialsError,
    InvalidTokenError,
)
from sims.core.logging_config import logger
from sims.core.security import (
    create_access_token,
    create_refresh_token,
    decode_token,
    generate_auth_code,
    get_password_hash,
    hash_secret,
    secrets_match,
    verify_password,
)
from sims.core.types import utcnow
from sims.models.auth import AuthCode, AuthCodePurpose, AuthIdentity, AuthSessionRecord


class AuthEvent(str, enum.Enum):
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"
    PASSWORD_RECOVERY = "PASSWORD_RECOVERY"


@dataclass
class AuthUser:
    id: str
    email: str
    email_confirmed_at: Optional[datetime] = None
    last_sign_in_at: Optional[datetime] = None
    user_metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_identity(cls, identity: AuthIdentity) -> "AuthUser":
        return cls(
            id=identity.id,
            email=identity.email,
            email_confirmed_at=identity.email_confirmed_at,
            last_sign_in_at=identity.last_sign_in_at,
            user_metadata=dict(identity.user_metadata or {}),
        )


@dataclass
class AuthSession:
    access_token: str
    refresh_token: str
    expires_in: int
    session_id: str
    user: AuthUser
    token_type: str = "bearer"


@dataclass
class SignUpResult:
    user: AuthUser
    # None while the signup confirmation code is outstanding
    session: Optional[AuthSession] = None


# (event, user, session id)
AuthListener = Callable[[AuthEvent, Optional[AuthUser], Optional[str]], Awaitable[None]]
CodeDelivery = Callable[[str, AuthCodePurpose, str, Optional[str]], Awaitable[None]]


async def log_code_delivery(email: str, purpose: AuthCodePurpose, code: str,
                            redirect_to: Optional[str]) -> None:
    logger.info(f"Issued {purpose.value} code for {email}")


class AuthSubscription:
    """Handle returned by ``on_auth_state_change``"""

    def __init__(self, provider: "AuthProvider", listener: AuthListener):
        self._provider = provider
        self.listener = listener
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self._provider._listeners.remove(self)
            self.active = False


def _normalize_email(email: str) -> str:
    return email.strip().lower()


class AuthProvider:
    """Credential store and session issuer"""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        deliver_code: Optional[CodeDelivery] = None,
    ):
        self._session_factory = session_factory
        self._deliver_code = deliver_code or log_code_delivery
        self._listeners: List[AuthSubscription] = []

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def on_auth_state_change(self, listener: AuthListener) -> AuthSubscription:
        subscription = AuthSubscription(self, listener)
        self._listeners.append(subscription)
        return subscription

    async def _emit(self, event: AuthEvent, user: Optional[AuthUser], session_id: Optional[str]) -> None:
        for subscription in list(self._listeners):
            try:
                await subscription.listener(event, user, session_id)
            except Exception as e:
                logger.log_error_with_context(e, context=f"auth listener ({event.value})")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _open_session(self, db: AsyncSession, identity: AuthIdentity) -> AuthSession:
        record = AuthSessionRecord(identity_id=identity.id)
        db.add(record)
        await db.flush()

        claims = {"sub": identity.id, "email": identity.email, "sid": record.id}
        access_token = create_access_token(claims)
        refresh_token = create_refresh_token(claims)
        record.refresh_token_hash = hash_secret(refresh_token)

        return AuthSession(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
            session_id=record.id,
            user=AuthUser.from_identity(identity),
        )

    async def _issue_code(
        self,
        db: AsyncSession,
        identity: AuthIdentity,
        purpose: AuthCodePurpose,
        redirect_to: Optional[str],
    ) -> str:
        code = generate_auth_code()
        db.add(AuthCode(
            identity_id=identity.id,
            code_hash=hash_secret(code),
            purpose=purpose,
            redirect_to=redirect_to,
            expires_at=utcnow() + timedelta(minutes=settings.AUTH_CODE_EXPIRE_MINUTES),
        ))
        return code

    async def _live_session(self, db: AsyncSession, access_token: str):
        payload = decode_token(access_token, expected_type="access")
        if not payload.get("sid") or not payload.get("sub"):
            raise InvalidTokenError("Invalid token payload")
        record = await db.get(AuthSessionRecord, payload["sid"])
        if record is None or record.revoked_at is not None:
            raise InvalidTokenError("Session has been revoked")
        identity = await db.get(AuthIdentity, payload["sub"])
        if identity is None:
            raise InvalidTokenError("User not found")
        return record, identity

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def sign_up(
        self,
        email: str,
        password: str,
        metadata: Optional[Dict[str, Any]] = None,
        redirect_to: Optional[str] = None,
    ) -> SignUpResult:
        """
        Register a credential.

        The signup trigger creates the ``users`` row from ``metadata``
        (``full_name``, ``role``) in the same transaction. Without email
        confirmation the caller gets a session right away; otherwise a
        confirmation code goes to the delivery callable.
        """
        email = _normalize_email(email)
        code = None
        async with self._session_factory() as db:
            existing = (await db.execute(
                select(AuthIdentity.id).where(AuthIdentity.email == email)
            )).scalar_one_or_none()
            if existing:
                raise EmailAlreadyRegisteredError()

            identity = AuthIdentity(
                email=email,
                hashed_password=get_password_hash(password),
                user_metadata=dict(metadata or {}),
            )
            if not settings.REQUIRE_EMAIL_CONFIRMATION:
                identity.email_confirmed_at = utcnow()
            db.add(identity)
            await db.flush()

            session = None
            if settings.REQUIRE_EMAIL_CONFIRMATION:
                code = await self._issue_code(db, identity, AuthCodePurpose.SIGNUP, redirect_to)
            else:
                identity.last_sign_in_at = utcnow()
                session = await self._open_session(db, identity)

            await db.commit()
            user = AuthUser.from_identity(identity)

        if code:
            await self._deliver_code(email, AuthCodePurpose.SIGNUP, code, redirect_to)
        if session:
            await self._emit(AuthEvent.SIGNED_IN, user, session.session_id)
        return SignUpResult(user=user, session=session)

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        email = _normalize_email(email)
        async with self._session_factory() as db:
            identity = (await db.execute(
                select(AuthIdentity).where(AuthIdentity.email == email)
            )).scalar_one_or_none()
            if identity is None or not verify_password(password, identity.hashed_password):
                raise InvalidCredentialsError()
            if identity.email_confirmed_at is None:
                raise EmailNotConfirmedError()

            identity.last_sign_in_at = utcnow()
            session = await self._open_session(db, identity)
            await db.commit()

        await self._emit(AuthEvent.SIGNED_IN, session.user, session.session_id)
        return session

    async def exchange_code_for_session(self, code: str) -> AuthSession:
        """Consume a one-time code; confirms the email for signup codes"""
        async with self._session_factory() as db:
            record = (await db.execute(
                select(AuthCode).where(AuthCode.code_hash == hash_secret(code))
            )).scalar_one_or_none()
            if record is None or record.consumed_at is not None or record.expires_at < utcnow():
                raise InvalidAuthCodeError()

            consumed = await db.execute(
                update(AuthCode)
                .where(AuthCode.id == record.id, AuthCode.consumed_at.is_(None))
                .values(consumed_at=utcnow())
            )
            if consumed.rowcount != 1:
                raise InvalidAuthCodeError()

            identity = await db.get(AuthIdentity, record.identity_id)
            if identity is None:
                raise InvalidAuthCodeError()
            if identity.email_confirmed_at is None:
                identity.email_confirmed_at = utcnow()
            identity.last_sign_in_at = utcnow()
            purpose = record.purpose

            session = await self._open_session(db, identity)
            await db.commit()

        event = AuthEvent.PASSWORD_RECOVERY if purpose == AuthCodePurpose.RECOVERY else AuthEvent.SIGNED_IN
        await self._emit(event, session.user, session.session_id)
        return session

    async def get_user(self, access_token: str) -> AuthUser:
        """Identity behind a live access token"""
        async with self._session_factory() as db:
            _, identity = await self._live_session(db, access_token)
            return AuthUser.from_identity(identity)

    async def refresh_session(self, refresh_token: str) -> AuthSession:
        """Rotate the token pair of a live session"""
        payload = decode_token(refresh_token, expected_type="refresh")
        if not payload.get("sid"):
            raise InvalidTokenError("Invalid token payload")
        async with self._session_factory() as db:
            record = await db.get(AuthSessionRecord, payload["sid"])
            if (
                record is None
                or record.revoked_at is not None
                or not record.refresh_token_hash
                or not secrets_match(refresh_token, record.refresh_token_hash)
            ):
                raise InvalidTokenError("Refresh token is no longer valid")
            identity = await db.get(AuthIdentity, record.identity_id)
            if identity is None:
                raise InvalidTokenError("User not found")

            claims = {"sub": identity.id, "email": identity.email, "sid": record.id}
            access_token = create_access_token(claims)
            new_refresh = create_refresh_token(claims)
            record.refresh_token_hash = hash_secret(new_refresh)
            record.refreshed_at = utcnow()
            await db.commit()

            session = AuthSession(
                access_token=access_token,
                refresh_token=new_refresh,
                expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
                session_id=record.id,
                user=AuthUser.from_identity(identity),
            )

        await self._emit(AuthEvent.TOKEN_REFRESHED, session.user, session.session_id)
        return session

    async def sign_out(self, access_token: str) -> None:
        """Revoke the session behind an access token"""
        async with self._session_factory() as db:
            record, identity = await self._live_session(db, access_token)
            record.revoked_at = utcnow()
            await db.commit()
            user = AuthUser.from_identity(identity)
            session_id = record.id

        await self._emit(AuthEvent.SIGNED_OUT, user, session_id)

    async def reset_password_for_email(self, email: str, redirect_to: Optional[str] = None) -> None:
        """Issue a recovery code; unknown addresses are ignored silently"""
        email = _normalize_email(email)
        async with self._session_factory() as db:
            identity = (await db.execute(
                select(AuthIdentity).where(AuthIdentity.email == email)
            )).scalar_one_or_none()
            if identity is None:
                logger.info(f"Password recovery requested for unknown email {email}")
                return
            code = await self._issue_code(db, identity, AuthCodePurpose.RECOVERY, redirect_to)
            await db.commit()

        await self._deliver_code(email, AuthCodePurpose.RECOVERY, code, redirect_to)

    async def update_user(
        self,
        access_token: str,
        password: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AuthUser:
        """Change the password and/or merge signup metadata"""
        async with self._session_factory() as db:
            record, identity = await self._live_session(db, access_token)
            if password is not None:
                identity.hashed_password = get_password_hash(password)
            if metadata:
                identity.user_metadata = {**(identity.user_metadata or {}), **metadata}
            await db.commit()
            user = AuthUser.from_identity(identity)
            session_id = record.id

        await self._emit(AuthEvent.USER_UPDATED, user, session_id)
        return user
