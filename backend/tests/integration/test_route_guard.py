"""
Integration Tests for the role route guard
Tests redirects for signed-out callers, wrong roles, role changes and
token refresh from the refresh cookie
"""
import pytest
from httpx import AsyncClient

from sims.core.config import settings
from sims.core.roles import Role

from conftest import bearer, sign_up


def _set_cookie_names(response) -> list:
    return [header.split("=", 1)[0] for header in response.headers.get_list("set-cookie")]


class TestSignedOut:
    """Requests without a live session"""

    @pytest.mark.parametrize("path", [
        "/student/dashboard",
        "/faculty/courses",
        "/admin/users",
        "/student",
        "/admin/notifications",
    ])
    async def test_redirects_to_root(self, client: AsyncClient, path):
        """Test every role-prefixed path sends signed-out callers to /"""
        response = await client.get(path)

        assert response.status_code == 307
        assert response.headers["location"] == "/"

    async def test_invalid_token_redirects_to_root(self, client: AsyncClient):
        """Test a garbage bearer token counts as signed out"""
        response = await client.get("/student/dashboard", headers={"Authorization": "Bearer garbage"})

        assert response.status_code == 307
        assert response.headers["location"] == "/"

    async def test_revoked_session_redirects_to_root(self, client: AsyncClient, provider, student_session):
        """Test a signed-out session no longer passes"""
        await provider.sign_out(student_session.access_token)

        response = await client.get("/student/dashboard", headers=bearer(student_session))

        assert response.headers["location"] == "/"

    @pytest.mark.parametrize("path", ["/students", "/facultyx/dashboard", "/administrator"])
    async def test_prefix_matching_is_segment_based(self, client: AsyncClient, path):
        """Test look-alike paths are not guarded"""
        response = await client.get(path)

        assert response.status_code == 404

    async def test_public_paths_pass(self, client: AsyncClient):
        """Test unguarded pages need no session"""
        assert (await client.get("/")).status_code == 200
        assert (await client.get("/health")).status_code == 200


class TestWrongRole:
    """Signed in, but not for this prefix"""

    @pytest.mark.parametrize("role,path,target", [
        (Role.STUDENT, "/faculty/dashboard", "/student/dashboard"),
        (Role.STUDENT, "/admin/users", "/student/dashboard"),
        (Role.FACULTY, "/student/grades", "/faculty/dashboard"),
        (Role.FACULTY, "/admin/reports", "/faculty/dashboard"),
        (Role.ADMIN, "/student/dashboard", "/admin/dashboard"),
        (Role.ADMIN, "/faculty/uploads", "/admin/dashboard"),
    ])
    async def test_redirects_to_own_dashboard(self, client: AsyncClient, provider, role, path, target):
        """Test the caller lands on their own role's dashboard"""
        session = await sign_up(provider, role)

        response = await client.get(path, headers=bearer(session))

        assert response.status_code == 307
        assert response.headers["location"] == target

    @pytest.mark.parametrize("role", list(Role))
    async def test_own_dashboard_is_served(self, client: AsyncClient, provider, role):
        """Test matching roles pass the guard"""
        session = await sign_up(provider, role)

        response = await client.get(f"/{role.value}/dashboard", headers=bearer(session))

        assert response.status_code == 200

    async def test_notifications_follow_the_prefix(self, client: AsyncClient, faculty_session):
        """Test the bell under another role's prefix is guarded too"""
        response = await client.get("/student/notifications", headers=bearer(faculty_session))

        assert response.headers["location"] == "/faculty/dashboard"


class TestRoleChange:
    """Role is read on every request"""

    async def test_promotion_applies_to_the_next_request(self, client: AsyncClient, student_session,
                                                         admin_session):
        """Test a student promoted to faculty is redirected without signing in again"""
        assert (await client.get("/student/dashboard", headers=bearer(student_session))).status_code == 200

        changed = await client.patch(
            f"/admin/users/{student_session.user.id}/role",
            json={"role": "faculty"},
            headers=bearer(admin_session),
        )
        old_portal = await client.get("/student/dashboard", headers=bearer(student_session))
        new_portal = await client.get("/faculty/dashboard", headers=bearer(student_session))

        assert changed.status_code == 200
        assert old_portal.status_code == 307
        assert old_portal.headers["location"] == "/faculty/dashboard"
        assert new_portal.status_code == 200


class TestRefresh:
    """Stale access token with a live refresh cookie"""

    async def test_refresh_cookie_renews_session(self, client: AsyncClient, student_session):
        """Test the guard refreshes and the endpoint sees the new token"""
        cookies = (
            f"{settings.SESSION_COOKIE_NAME}=expired; "
            f"{settings.REFRESH_COOKIE_NAME}={student_session.refresh_token}"
        )

        response = await client.get("/student/dashboard", headers={"Cookie": cookies})

        assert response.status_code == 200
        assert response.json()["profile"]["user_id"] == student_session.user.id
        assert settings.SESSION_COOKIE_NAME in _set_cookie_names(response)
        assert settings.REFRESH_COOKIE_NAME in _set_cookie_names(response)

    async def test_used_refresh_token_redirects(self, client: AsyncClient, provider, student_session):
        """Test a rotated-out refresh token cannot be replayed"""
        await provider.refresh_session(student_session.refresh_token)

        response = await client.get(
            "/student/dashboard",
            headers={"Cookie": f"{settings.REFRESH_COOKIE_NAME}={student_session.refresh_token}"},
        )

        assert response.status_code == 307
        assert response.headers["location"] == "/"


class TestDevBypass:
    """The development bypass flag"""

    async def test_bypass_skips_guard_in_development(self, client: AsyncClient, monkeypatch):
        """Test the guard steps aside but endpoints still require a session"""
        monkeypatch.setattr(settings, "DEV_BYPASS_AUTH", True)
        monkeypatch.setattr(settings, "ENVIRONMENT", "development")

        response = await client.get("/student/dashboard")

        assert response.status_code == 401

    async def test_bypass_ignored_outside_development(self, client: AsyncClient, monkeypatch):
        """Test the flag has no effect in other environments"""
        monkeypatch.setattr(settings, "DEV_BYPASS_AUTH", True)
        monkeypatch.setattr(settings, "ENVIRONMENT", "production")

        response = await client.get("/student/dashboard")

        assert response.status_code == 307
