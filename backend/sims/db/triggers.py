"""
Data-store triggers.

``handle_new_user`` creates the ``users`` profile row (and the role
profile row) when the auth provider inserts a credential. The session
layer never creates profiles itself; it only reads them back.
"""

from datetime import datetime
import secrets

from sqlalchemy import event, insert

from sims.core.roles import Role, parse_role
from sims.core.types import utcnow
from sims.models.auth import AuthIdentity
from sims.models.user import User, Student, Faculty


def institution_number(prefix: str) -> str:
    """Generated student/employee number, e.g. STU2024A1B2C3"""
    return f"{prefix}{datetime.utcnow().year}{secrets.token_hex(3).upper()}"


@event.listens_for(AuthIdentity, "after_insert")
def handle_new_user(mapper, connection, target: AuthIdentity) -> None:
    metadata = target.user_metadata or {}
    full_name = metadata.get("full_name") or metadata.get("display_name") or ""
    role = parse_role(metadata.get("role")) or Role.STUDENT
    now = utcnow()

    connection.execute(
        insert(User.__table__).values(
            id=target.id,
            email=target.email,
            full_name=full_name,
            role=role,
            created_at=now,
            updated_at=now,
        )
    )

    if role is Role.STUDENT:
        connection.execute(
            insert(Student.__table__).values(
                user_id=target.id,
                student_id=institution_number("STU"),
                enrollment_date=now.date(),
                created_at=now,
                updated_at=now,
            )
        )
    elif role is Role.FACULTY:
        connection.execute(
            insert(Faculty.__table__).values(
                user_id=target.id,
                employee_id=institution_number("EMP"),
                hire_date=now.date(),
                created_at=now,
                updated_at=now,
            )
        )
