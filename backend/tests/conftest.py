# tests/conftest.py
"""
Pytest fixtures for the B2B platform tests.

- ActorContext is built from a user with build_actor(user)
- Commands take the actor as first arg and return a CommandResult
- API tests authenticate with a tenant-bound JWT from tokens_for_user()
"""

from decimal import Decimal

import pytest
from django.core.cache import cache
from rest_framework.test import APIClient

from accounts.authz import build_actor
from accounts.middleware import invalidate_tenant_cache
from accounts.models import Organization, User
from accounts.serializers import tokens_for_user
from catalog.models import MasterProduct, TenantProductAccess
from integrations.connectors.rest import clear_token_cache
from integrations.models import Connector, Transformation
from tenant.models import Tenant

PASSWORD = "S3cure-pass-123"


@pytest.fixture(autouse=True)
def _clear_process_caches():
    """Tenant status, throttle and OAuth2 token caches live per process."""
    invalidate_tenant_cache()
    clear_token_cache()
    cache.clear()
    yield
    invalidate_tenant_cache()
    clear_token_cache()


# =============================================================================
# Tenant & User Fixtures
# =============================================================================

@pytest.fixture
def tenant(db):
    """Create a test tenant."""
    return Tenant.objects.create(name="Acme Corp", slug="acme")


@pytest.fixture
def other_tenant(db):
    """Create a second tenant for isolation tests."""
    return Tenant.objects.create(name="Globex", slug="globex")


def make_user(tenant, email, role, **extra):
    return User.objects.create_user(
        email=email,
        password=PASSWORD,
        tenant=tenant,
        role=role,
        first_name=extra.pop("first_name", email.split("@")[0].title()),
        **extra,
    )


@pytest.fixture
def super_admin(tenant):
    return make_user(tenant, "root@acme.test", User.Role.SUPER_ADMIN)


@pytest.fixture
def admin_user(tenant):
    return make_user(tenant, "admin@acme.test", User.Role.ADMIN)


@pytest.fixture
def manager_user(tenant):
    return make_user(tenant, "manager@acme.test", User.Role.MANAGER)


@pytest.fixture
def user(tenant):
    """A regular buyer."""
    return make_user(tenant, "buyer@acme.test", User.Role.USER)


@pytest.fixture
def viewer_user(tenant):
    return make_user(tenant, "viewer@acme.test", User.Role.VIEWER)


@pytest.fixture
def other_admin(other_tenant):
    return make_user(other_tenant, "admin@globex.test", User.Role.ADMIN)


@pytest.fixture
def organization(tenant):
    return Organization.objects.create(tenant=tenant, name="Purchasing", code="PUR")


# =============================================================================
# Actor Fixtures
# =============================================================================

@pytest.fixture
def super_admin_actor(super_admin):
    return build_actor(super_admin)


@pytest.fixture
def admin_actor(admin_user):
    return build_actor(admin_user)


@pytest.fixture
def manager_actor(manager_user):
    return build_actor(manager_user)


@pytest.fixture
def actor(user):
    """Actor for the regular buyer."""
    return build_actor(user)


@pytest.fixture
def viewer_actor(viewer_user):
    return build_actor(viewer_user)


@pytest.fixture
def other_admin_actor(other_admin):
    return build_actor(other_admin)


# =============================================================================
# API Client Fixtures
# =============================================================================

@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def client_for():
    """Return a factory producing an APIClient authenticated as the given user."""
    def _client(user):
        client = APIClient()
        client.credentials(HTTP_AUTHORIZATION=f"Bearer {tokens_for_user(user)['access']}")
        return client
    return _client


# =============================================================================
# Catalog Fixtures
# =============================================================================

@pytest.fixture
def product(db):
    """An active master product with a list price of 100.00."""
    return MasterProduct.objects.create(
        sku="WID-001",
        name="Industrial Widget",
        brand="Acme",
        list_price=Decimal("100.00"),
    )


@pytest.fixture
def second_product(db):
    return MasterProduct.objects.create(
        sku="BOLT-010",
        name="Steel Bolt",
        brand="Bolts Inc",
        list_price=Decimal("2.50"),
    )


@pytest.fixture
def access(tenant, product):
    """Tenant access to ``product`` at the list price."""
    return TenantProductAccess.objects.create(tenant=tenant, product=product)


# =============================================================================
# Integration Fixtures
# =============================================================================

@pytest.fixture
def source_connector(db):
    return Connector.objects.create(code="shop", name="Storefront", type=Connector.Type.API)


@pytest.fixture
def target_connector(db):
    return Connector.objects.create(
        code="erp",
        name="ERP",
        type=Connector.Type.API,
        failure_threshold=2,
        success_threshold=1,
    )


@pytest.fixture
def order_transformation(db):
    """shop ORDER -> erp SALES_ORDER."""
    return Transformation.objects.create(
        name="Order to ERP",
        source_connector="shop",
        target_connector="erp",
        source_type="ORDER",
        target_type="SALES_ORDER",
        source_to_canonical={
            "mappings": [
                {"source": "number", "target": "order.number"},
                {"source": "customer.email", "target": "order.customer"},
            ],
        },
        canonical_to_target={
            "defaults": {"channel": "b2b"},
            "mappings": [{"source": "order.number", "target": "DocNum"}],
            "computed": [{"field": "Customer", "expression": "uppercase(order.customer)"}],
        },
    )
