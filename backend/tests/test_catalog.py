# tests/test_catalog.py
"""
Tests for the catalog: tenant product access, pricing and browsing.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from django.core.exceptions import PermissionDenied
from django.utils import timezone

from catalog.access import accessible_products, effective_price, get_access, has_access
from catalog.commands import (
    create_category,
    create_master_product,
    grant_product_access,
    revoke_product_access,
    set_product_pricing,
)
from catalog.models import Category, TenantProductAccess
from events.types import EventTypes


# =============================================================================
# Access Rules
# =============================================================================

@pytest.mark.django_db
class TestProductAccess:

    def test_no_row_means_no_access(self, tenant, product):
        assert not has_access(tenant, product)
        assert list(accessible_products(tenant)) == []

    def test_active_row_grants_access(self, tenant, product, access):
        assert has_access(tenant, product)
        assert list(accessible_products(tenant)) == [product]

    def test_access_is_per_tenant(self, other_tenant, product, access):
        assert not has_access(other_tenant, product)

    def test_access_window_is_enforced(self, tenant, product):
        now = timezone.now()
        TenantProductAccess.objects.create(
            tenant=tenant,
            product=product,
            valid_from=now + timedelta(days=1),
        )
        assert get_access(tenant, product) is None

    def test_expired_access_is_invalid(self, tenant, product):
        TenantProductAccess.objects.create(
            tenant=tenant,
            product=product,
            valid_until=timezone.now() - timedelta(minutes=1),
        )
        assert not has_access(tenant, product)


# =============================================================================
# Pricing
# =============================================================================

@pytest.mark.django_db
class TestEffectivePrice:

    def test_list_price_by_default(self, tenant, product, access):
        assert effective_price(tenant, product) == Decimal("100.00")

    def test_discount_percent_applies_to_list_price(self, tenant, product, access):
        access.discount_percent = Decimal("15")
        access.save()
        assert effective_price(tenant, product) == Decimal("85.00")

    def test_agreed_price_wins_over_discount(self, tenant, product, access):
        access.discount_percent = Decimal("15")
        access.agreed_price = Decimal("70.00")
        access.save()
        assert effective_price(tenant, product) == Decimal("70.00")


# =============================================================================
# Commands
# =============================================================================

@pytest.mark.django_db
class TestCatalogCommands:

    def test_admin_grants_access(self, admin_actor, product):
        result = grant_product_access(
            admin_actor, product.public_id, agreed_price=Decimal("90.00"), min_quantity=5,
        )

        assert result.success
        assert result.data.granted_by == admin_actor.user
        assert result.data.min_quantity == 5
        assert result.event.event_type == EventTypes.PRODUCT_ACCESS_GRANTED

    def test_regrant_updates_existing_row(self, admin_actor, product, access):
        grant_product_access(admin_actor, product.public_id, discount_percent=Decimal("5"))
        assert TenantProductAccess.objects.filter(tenant=admin_actor.tenant, product=product).count() == 1

    def test_invalid_quantity_bounds_rejected(self, admin_actor, product):
        result = grant_product_access(admin_actor, product.public_id, min_quantity=10, max_quantity=5)
        assert not result.success

    def test_manager_cannot_grant_access(self, manager_actor, product):
        with pytest.raises(PermissionDenied):
            grant_product_access(manager_actor, product.public_id)

    def test_pricing_requires_existing_access(self, admin_actor, product):
        with pytest.raises(PermissionDenied):
            set_product_pricing(admin_actor, product.public_id, agreed_price=Decimal("1.00"))

    def test_revoke_deactivates_row(self, admin_actor, product, access):
        assert revoke_product_access(admin_actor, product.public_id).success
        access.refresh_from_db()
        assert not access.is_active

    def test_duplicate_sku_rejected(self, admin_actor, product):
        result = create_master_product(admin_actor, sku=product.sku, name="Copy", list_price=Decimal("1"))
        assert not result.success

    def test_tenant_category_belongs_to_tenant(self, admin_actor):
        result = create_category(admin_actor, name="Safety Gear")
        assert result.success
        assert result.data.slug == "safety-gear"
        assert Category.objects.get(pk=result.data.pk).tenant == admin_actor.tenant


# =============================================================================
# API
# =============================================================================

@pytest.mark.django_db
class TestCatalogApi:

    def test_list_shows_only_accessible_products(self, client_for, user, product, second_product, access):
        response = client_for(user).get("/api/catalog/products/")

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 1
        assert body["results"][0]["sku"] == product.sku
        assert body["results"][0]["has_access"] is True

    def test_list_shows_tenant_price(self, client_for, user, product, access):
        access.agreed_price = Decimal("80.00")
        access.save()

        row = client_for(user).get("/api/catalog/products/").json()["results"][0]

        assert row["price"] == "80.00"
        assert row["list_price"] == "100.00"

    def test_search_filter(self, client_for, user, tenant, product, second_product, access):
        TenantProductAccess.objects.create(tenant=tenant, product=second_product)
        response = client_for(user).get("/api/catalog/products/", {"search": "bolt"})
        assert [row["sku"] for row in response.json()["results"]] == [second_product.sku]

    def test_product_without_access_is_404(self, client_for, user, product):
        response = client_for(user).get(f"/api/catalog/products/{product.public_id}/")
        assert response.status_code == 404

    def test_admin_grants_access_over_api(self, client_for, admin_user, product):
        response = client_for(admin_user).put(
            f"/api/catalog/products/{product.public_id}/access/",
            {"discount_percent": "10.00"},
            format="json",
        )

        assert response.status_code == 200
        assert response.json()["effective_price"] == "90.00"

    def test_buyer_cannot_manage_master_catalog(self, client_for, user):
        response = client_for(user).post(
            "/api/catalog/master-products/",
            {"sku": "NEW-1", "name": "New", "list_price": "5.00"},
            format="json",
        )
        assert response.status_code == 403
