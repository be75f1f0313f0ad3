"""
Unit Tests for the role model
"""
import pytest

from sims.core.roles import (
    Capability,
    ROLE_PROFILES,
    Role,
    dashboard_for,
    parse_role,
    profile_for,
    role_for_path,
)


class TestRoleProfiles:
    """Test the closed role set and its capabilities"""

    def test_every_role_has_a_profile(self):
        """Test no role is missing from the profile table"""
        assert set(ROLE_PROFILES) == set(Role)

    @pytest.mark.parametrize("role,dashboard", [
        (Role.STUDENT, "/student/dashboard"),
        (Role.FACULTY, "/faculty/dashboard"),
        (Role.ADMIN, "/admin/dashboard"),
    ])
    def test_dashboards(self, role, dashboard):
        """Test each role lands on its own dashboard"""
        assert dashboard_for(role) == dashboard

    def test_no_role_lands_on_root(self):
        """Test unknown role redirects to root"""
        assert dashboard_for(None) == "/"

    def test_capabilities(self):
        """Test capabilities are attached to the right roles"""
        assert profile_for(Role.STUDENT).can(Capability.ENROLL)
        assert not profile_for(Role.STUDENT).can(Capability.GRADE)
        assert profile_for(Role.FACULTY).can(Capability.REVIEW_DOCUMENTS)
        assert profile_for(Role.ADMIN).can(Capability.MANAGE_USERS)
        assert not profile_for(Role.ADMIN).can(Capability.ENROLL)


class TestParseRole:
    """Test parsing stored role values"""

    def test_parses_values(self):
        """Test string values map onto the enum"""
        assert parse_role("faculty") is Role.FACULTY
        assert parse_role(Role.ADMIN) is Role.ADMIN

    @pytest.mark.parametrize("value", ["superuser", "", None, "Student"])
    def test_unknown_values(self, value):
        """Test anything outside the closed set is None"""
        assert parse_role(value) is None


class TestRoleForPath:
    """Test path prefix matching"""

    @pytest.mark.parametrize("path,role", [
        ("/student", Role.STUDENT),
        ("/student/dashboard", Role.STUDENT),
        ("/faculty/courses/abc", Role.FACULTY),
        ("/admin/users", Role.ADMIN),
    ])
    def test_guarded_paths(self, path, role):
        """Test role prefixes are recognized"""
        assert role_for_path(path) is role

    @pytest.mark.parametrize("path", ["/", "/auth/login", "/students", "/administrator", "/health"])
    def test_unguarded_paths(self, path):
        """Test matching stops at segment boundaries"""
        assert role_for_path(path) is None
