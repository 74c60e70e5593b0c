# tests/test_accounts.py
"""
Tests for accounts: registration, authentication, role rules and organizations.
"""

import pytest
from django.core.exceptions import PermissionDenied

from accounts.authz import build_actor, can_assign_role
from accounts.commands import (
    create_organization,
    create_user,
    delete_organization,
    organization_hierarchy,
    register_signup,
    set_user_active,
    update_organization,
)
from accounts.models import Organization, User
from accounts.permission_defaults import permissions_for_role
from events.models import BusinessEvent
from events.types import EventTypes

PASSWORD = "S3cure-pass-123"


# =============================================================================
# Registration & Login
# =============================================================================

@pytest.mark.django_db
class TestRegistration:

    def test_signup_creates_tenant_and_admin(self):
        result = register_signup(email="Owner@NewCo.test", password=PASSWORD, tenant_name="NewCo")

        assert result.success
        user, tenant = result.data["user"], result.data["tenant"]
        assert user.email == "owner@newco.test"
        assert user.role == User.Role.ADMIN
        assert user.tenant == tenant
        assert tenant.slug == "newco"
        assert result.event.event_type == EventTypes.USER_REGISTERED

    def test_duplicate_email_rejected(self, user):
        result = register_signup(email=user.email, password=PASSWORD, tenant_name="Dup")
        assert not result.success
        assert "already exists" in result.error

    def test_register_endpoint_returns_tokens(self, api_client, db):
        response = api_client.post("/api/auth/register/", {
            "email": "new@corp.test",
            "password": PASSWORD,
            "tenant_name": "Corp",
        }, format="json")

        assert response.status_code == 201
        body = response.json()
        assert body["user"]["role"] == "ADMIN"
        assert body["access"] and body["refresh"]


@pytest.mark.django_db
class TestLogin:

    def test_login_returns_token_pair(self, api_client, user):
        response = api_client.post("/api/auth/login/", {"email": user.email, "password": PASSWORD}, format="json")

        assert response.status_code == 200
        assert "access" in response.json()
        user.refresh_from_db()
        assert user.last_login_at is not None

    def test_wrong_password_rejected(self, api_client, user):
        response = api_client.post("/api/auth/login/", {"email": user.email, "password": "nope-nope"}, format="json")
        assert response.status_code == 401

    def test_me_lists_role_permissions(self, client_for, viewer_user):
        response = client_for(viewer_user).get("/api/auth/me/")

        assert response.status_code == 200
        perms = response.json()["permissions"]
        assert "catalog.view" in perms
        assert "orders.create" not in perms


# =============================================================================
# Roles & Permissions
# =============================================================================

class TestRolePermissions:

    def test_roles_are_cumulative(self):
        viewer = permissions_for_role(User.Role.VIEWER)
        user = permissions_for_role(User.Role.USER)
        manager = permissions_for_role(User.Role.MANAGER)
        admin = permissions_for_role(User.Role.ADMIN)
        assert viewer <= user <= manager <= admin

    def test_platform_permissions_are_super_admin_only(self):
        assert "tenants.manage" not in permissions_for_role(User.Role.ADMIN)
        assert "integrations.operate" not in permissions_for_role(User.Role.ADMIN)

    @pytest.mark.django_db
    def test_super_admin_has_everything(self, super_admin_actor):
        assert super_admin_actor.has("tenants.manage")
        assert super_admin_actor.has("anything.at.all")

    @pytest.mark.django_db
    def test_inactive_user_has_nothing(self, user):
        user.is_active = False
        assert not build_actor(user).has("catalog.view")

    @pytest.mark.django_db
    def test_admin_cannot_grant_admin(self, admin_actor, super_admin_actor):
        assert can_assign_role(admin_actor, User.Role.MANAGER)
        assert not can_assign_role(admin_actor, User.Role.ADMIN)
        assert can_assign_role(super_admin_actor, User.Role.SUPER_ADMIN)


# =============================================================================
# User Management
# =============================================================================

@pytest.mark.django_db
class TestUserManagement:

    def test_admin_creates_user_in_own_tenant(self, admin_actor, organization):
        result = create_user(
            admin_actor,
            email="new.buyer@acme.test",
            password=PASSWORD,
            role=User.Role.USER,
            organization_id=organization.public_id,
        )

        assert result.success
        assert result.data.tenant == admin_actor.tenant
        assert result.data.organization == organization
        assert BusinessEvent.objects.filter(event_type=EventTypes.USER_CREATED).count() == 1

    def test_admin_cannot_create_peer_admin(self, admin_actor):
        result = create_user(admin_actor, email="peer@acme.test", password=PASSWORD, role=User.Role.ADMIN)
        assert not result.success
        assert result.error == "You cannot create users with role ADMIN."

    def test_manager_cannot_manage_users(self, manager_actor):
        with pytest.raises(PermissionDenied):
            create_user(manager_actor, email="x@acme.test", password=PASSWORD)

    def test_cannot_deactivate_self(self, admin_actor, admin_user):
        result = set_user_active(admin_actor, admin_user.public_id, False)
        assert not result.success

    def test_users_of_other_tenants_are_invisible(self, client_for, admin_user, other_admin):
        response = client_for(admin_user).get(f"/api/users/{other_admin.public_id}/")
        assert response.status_code == 404

    def test_deactivated_user_loses_access(self, client_for, admin_actor, user):
        client = client_for(user)
        assert set_user_active(admin_actor, user.public_id, False).success
        assert client.get("/api/catalog/products/").status_code in (401, 403)


# =============================================================================
# Organizations
# =============================================================================

@pytest.mark.django_db
class TestOrganizations:

    def test_hierarchy_nests_children(self, admin_actor, tenant):
        root = create_organization(admin_actor, name="Head Office", code="HQ").data
        create_organization(admin_actor, name="Plant A", code="PA", parent_id=root.public_id)

        tree = organization_hierarchy(tenant)

        assert [node["code"] for node in tree] == ["HQ"]
        assert [child["code"] for child in tree[0]["children"]] == ["PA"]

    def test_duplicate_code_rejected(self, admin_actor, organization):
        result = create_organization(admin_actor, name="Other", code=organization.code)
        assert not result.success

    def test_circular_parent_rejected(self, admin_actor):
        root = create_organization(admin_actor, name="Root", code="R").data
        child = create_organization(admin_actor, name="Child", code="C", parent_id=root.public_id).data

        result = update_organization(admin_actor, root.public_id, parent_id=child.public_id)

        assert not result.success
        assert "circular" in result.error

    def test_cannot_delete_org_with_users(self, admin_actor, organization, user):
        user.organization = organization
        user.save()
        result = delete_organization(admin_actor, organization.public_id)
        assert not result.success
        assert "has users" in result.error

    def test_delete_and_restore(self, client_for, admin_user, organization):
        client = client_for(admin_user)

        assert client.delete(f"/api/organizations/{organization.public_id}/").status_code == 204
        assert Organization.objects.get(pk=organization.pk).deleted_at is not None

        response = client.post(f"/api/organizations/{organization.public_id}/restore/")
        assert response.status_code == 200
        assert response.json()["deleted_at"] is None
