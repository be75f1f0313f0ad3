"""
Tables owned by the auth provider.

Nothing outside ``sims.modules.auth.provider`` and the signup trigger
reads or writes these; the rest of the application only sees the
``users`` row keyed by the identity id.
"""

from sqlalchemy import Column, String, DateTime, ForeignKey, JSON
import enum

from sims.core.database import Base
from sims.core.types import GUID, TimestampMixin, enum_column_type, generate_uuid, utcnow


class AuthCodePurpose(str, enum.Enum):
    SIGNUP = "signup"
    RECOVERY = "recovery"


class AuthIdentity(TimestampMixin, Base):
    """Credential record"""
    __tablename__ = "auth_identities"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    email_confirmed_at = Column(DateTime, nullable=True)
    user_metadata = Column(JSON, nullable=False, default=dict)  # full_name, role from signup
    last_sign_in_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<AuthIdentity {self.email}>"


class AuthSessionRecord(Base):
    """One signed-in session; revoking it invalidates its access tokens"""
    __tablename__ = "auth_sessions"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    identity_id = Column(GUID, ForeignKey("auth_identities.id", ondelete="CASCADE"), nullable=False, index=True)
    refresh_token_hash = Column(String(64), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    refreshed_at = Column(DateTime, nullable=True)
    revoked_at = Column(DateTime, nullable=True)


class AuthCode(Base):
    """One-time code exchanged for a session (signup confirmation, recovery)"""
    __tablename__ = "auth_codes"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    identity_id = Column(GUID, ForeignKey("auth_identities.id", ondelete="CASCADE"), nullable=False, index=True)
    code_hash = Column(String(64), unique=True, nullable=False)
    purpose = Column(enum_column_type(AuthCodePurpose), nullable=False)
    redirect_to = Column(String(500), nullable=True)
    expires_at = Column(DateTime, nullable=False)
    consumed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
