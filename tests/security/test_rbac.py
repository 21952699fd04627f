"""
Tests for the RBAC (Role-Based Access Control) module.
"""
import pytest
from unittest.mock import MagicMock
from fastapi import HTTPException

from app.security.rbac import (
    Role, Permission, ROLE_PERMISSIONS,
    get_user_role, get_user_permissions, has_permission,
    can_access_complaint, require_permission,
)


def _user(role="AGENT", user_id=1):
    user = MagicMock()
    user.id = user_id
    user.role = role
    return user


class TestRolePermissions:
    """Test role-to-permissions mapping."""

    def test_role_values(self):
        assert Role.ADMIN == "ADMIN"
        assert Role.AGENT == "AGENT"

    def test_agent_permissions(self):
        agent_perms = ROLE_PERMISSIONS[Role.AGENT]
        assert Permission.CREATE_COMPLAINTS in agent_perms
        assert Permission.ASSIGN_COMPLAINTS not in agent_perms
        assert Permission.RUN_SLA_CHECKS not in agent_perms

    def test_admin_has_all_permissions(self):
        assert ROLE_PERMISSIONS[Role.ADMIN] == set(Permission)


class TestGetUserRole:

    def test_known_roles(self):
        assert get_user_role(_user("ADMIN")) == Role.ADMIN
        assert get_user_role(_user("AGENT")) == Role.AGENT

    def test_unknown_role_degrades_to_agent(self):
        assert get_user_role(_user("superuser")) == Role.AGENT
        assert get_user_role(_user(None)) == Role.AGENT

    def test_permissions_follow_role(self):
        assert get_user_permissions(_user("ADMIN")) == set(Permission)
        assert has_permission(_user("AGENT"), Permission.CREATE_COMPLAINTS)
        assert not has_permission(_user("AGENT"), Permission.MANAGE_USERS)
        assert has_permission(_user("ADMIN"), Permission.VIEW_ALL_COMPLAINTS)
        assert not has_permission(_user("AGENT"), Permission.VIEW_ALL_COMPLAINTS)


class TestComplaintAccess:

    def _complaint(self, created_by_id=10, assigned_to_id=20):
        complaint = MagicMock()
        complaint.created_by_id = created_by_id
        complaint.assigned_to_id = assigned_to_id
        return complaint

    def test_admin_sees_everything(self):
        assert can_access_complaint(_user("ADMIN", user_id=99), self._complaint())

    def test_creator_and_assignee(self):
        assert can_access_complaint(_user(user_id=10), self._complaint())
        assert can_access_complaint(_user(user_id=20), self._complaint())

    def test_unrelated_agent(self):
        assert not can_access_complaint(_user(user_id=30), self._complaint())

    def test_unassigned_complaint(self):
        assert not can_access_complaint(_user(user_id=30), self._complaint(assigned_to_id=None))


class TestDependencies:

    def test_require_permission_returns_user(self):
        admin = _user("ADMIN")
        checker = require_permission(Permission.RUN_SLA_CHECKS)
        assert checker(admin) is admin

    def test_require_permission_denies(self):
        checker = require_permission(Permission.RUN_SLA_CHECKS)
        with pytest.raises(HTTPException) as exc_info:
            checker(_user("AGENT"))
        assert exc_info.value.status_code == 403
        assert "run_sla_checks" in exc_info.value.detail

    def test_organisation_permission_is_admin_only(self):
        checker = require_permission(Permission.MANAGE_ORGANISATION)
        with pytest.raises(HTTPException) as exc_info:
            checker(_user("AGENT"))
        assert exc_info.value.detail == "Permission denied: requires manage_organisation"
