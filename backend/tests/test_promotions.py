# tests/test_promotions.py
"""
Tests for promotions, coupons and discount tiers.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from sales import cart as cart_commands
from sales import orders as order_commands
from sales.models import Coupon, Promotion, PromotionUsage
from sales.promotions import available_promotions, create_promotion, generate_coupons, validate_code
from sales.tiers import assign_tier, create_tier, discount_percent_for, tier_savings


@pytest.fixture
def promotion(tenant):
    """SPRING10: 10% off orders of 50.00 or more, capped at 25.00."""
    now = timezone.now()
    return Promotion.objects.create(
        tenant=tenant,
        code="SPRING10",
        name="Spring sale",
        discount_type=Promotion.DiscountType.PERCENTAGE,
        discount_value=Decimal("10"),
        min_order_amount=Decimal("50.00"),
        max_discount=Decimal("25.00"),
        start_date=now - timedelta(days=1),
        end_date=now + timedelta(days=30),
    )


# =============================================================================
# Code Validation
# =============================================================================

@pytest.mark.django_db
class TestValidateCode:

    def test_percentage_discount(self, tenant, user, promotion):
        result = validate_code(tenant, user, user.role, "SPRING10", Decimal("200.00"))
        assert result.valid
        assert result.discount == Decimal("20.00")

    def test_max_discount_caps(self, tenant, user, promotion):
        result = validate_code(tenant, user, user.role, "SPRING10", Decimal("1000.00"))
        assert result.discount == Decimal("25.00")

    def test_fixed_discount_never_exceeds_amount(self, tenant, user, promotion):
        promotion.discount_type = Promotion.DiscountType.FIXED
        promotion.discount_value = Decimal("80.00")
        promotion.min_order_amount = None
        promotion.max_discount = None
        promotion.save()

        result = validate_code(tenant, user, user.role, "SPRING10", Decimal("60.00"))

        assert result.discount == Decimal("60.00")

    def test_minimum_order_amount(self, tenant, user, promotion):
        result = validate_code(tenant, user, user.role, "SPRING10", Decimal("10.00"))
        assert not result.valid
        assert result.message.startswith("Minimum order amount")

    def test_expired_promotion(self, tenant, user, promotion):
        promotion.end_date = timezone.now() - timedelta(minutes=1)
        promotion.save()
        assert validate_code(tenant, user, user.role, "SPRING10", Decimal("100")).message == "Promotion has ended."

    def test_target_roles(self, tenant, user, promotion):
        promotion.target_roles = ["MANAGER"]
        promotion.save()
        assert not validate_code(tenant, user, user.role, "SPRING10", Decimal("100")).valid

    def test_codes_are_tenant_scoped(self, other_tenant, other_admin, promotion):
        result = validate_code(other_tenant, other_admin, other_admin.role, "SPRING10", Decimal("100"))
        assert result.message == "Invalid coupon code."

    def test_assigned_coupon_only_for_assignee(self, tenant, user, admin_user, promotion):
        Coupon.objects.create(tenant=tenant, promotion=promotion, code="VIP-1", assigned_to=admin_user)
        result = validate_code(tenant, user, user.role, "VIP-1", Decimal("100"))
        assert result.message == "Coupon is not assigned to you."

    def test_coupon_usage_limit(self, tenant, user, promotion):
        Coupon.objects.create(tenant=tenant, promotion=promotion, code="ONCE", usage_limit=1, usage_count=1)
        assert validate_code(tenant, user, user.role, "ONCE", Decimal("100")).message == "Coupon usage limit reached."


# =============================================================================
# Cart & Order Integration
# =============================================================================

@pytest.mark.django_db
class TestCouponCheckout:

    def test_coupon_applied_to_cart_and_recorded_on_order(self, actor, user, product, access, promotion):
        cart_commands.add_item(actor, quantity=2, master_product_id=product.public_id)
        cart = cart_commands.apply_coupon(actor, "SPRING10").data

        assert cart.coupon_discount == Decimal("20.00")
        assert cart.total == Decimal("180.00")

        order = order_commands.create_order_from_cart(actor).data

        assert order.coupon_code == "SPRING10"
        assert order.total == Decimal("180.00")
        assert PromotionUsage.objects.filter(promotion=promotion, user=user, order=order).exists()
        promotion.refresh_from_db()
        assert promotion.usage_count == 1

    def test_coupon_dropped_when_cart_falls_below_minimum(self, actor, product, access, promotion):
        cart = cart_commands.add_item(actor, quantity=1, master_product_id=product.public_id).data
        cart_commands.apply_coupon(actor, "SPRING10")

        access.agreed_price = Decimal("10.00")
        access.save()
        item = cart.items.get()
        cart = cart_commands.remove_item(actor, item.public_id).data
        cart = cart_commands.add_item(actor, quantity=1, master_product_id=product.public_id).data

        assert cart.coupon_code == ""
        assert cart.coupon_discount == Decimal("0.00")

    def test_per_user_limit(self, actor, user, tenant, product, access, promotion):
        promotion.per_user_limit = 1
        promotion.save()
        cart_commands.add_item(actor, quantity=1, master_product_id=product.public_id)
        cart_commands.apply_coupon(actor, "SPRING10")
        order_commands.create_order_from_cart(actor)

        result = validate_code(tenant, user, user.role, "SPRING10", Decimal("100"))

        assert result.message == "You have already used this promotion."
        assert available_promotions(tenant, user, user.role) == []


# =============================================================================
# Promotion Admin
# =============================================================================

@pytest.mark.django_db
class TestPromotionAdmin:

    def test_end_must_follow_start(self, admin_actor):
        now = timezone.now()
        result = create_promotion(admin_actor, code="BAD", start_date=now, end_date=now,
                                  name="Bad", discount_value=Decimal("5"))
        assert not result.success

    def test_generate_coupons(self, admin_actor, promotion):
        result = generate_coupons(admin_actor, promotion.public_id, count=3, prefix="SPR")

        assert result.success
        assert len(result.data) == 3
        assert all(c.code.startswith("SPR-") for c in result.data)
        assert len({c.code for c in result.data}) == 3

    def test_validate_endpoint(self, client_for, user, promotion):
        response = client_for(user).post("/api/promotions/validate/", {"code": "SPRING10", "order_amount": "100.00"},
                                         format="json")
        assert response.status_code == 200
        assert response.json()["valid"] is True


# =============================================================================
# Discount Tiers
# =============================================================================

@pytest.mark.django_db
class TestDiscountTiers:

    def test_assign_and_read_discount(self, admin_actor, user):
        silver = create_tier(admin_actor, code="SILVER", name="Silver", level=1,
                             discount_percent=Decimal("5"), min_spend=Decimal("0")).data
        create_tier(admin_actor, code="GOLD", name="Gold", level=2,
                    discount_percent=Decimal("10"), min_spend=Decimal("1000"))

        assert assign_tier(admin_actor, user.public_id, silver.public_id, reason="launch").success

        assert discount_percent_for(user) == Decimal("5")
        savings = tier_savings(user)
        assert savings["current_tier"]["code"] == "SILVER"
        assert savings["next_tier"]["tier"]["code"] == "GOLD"
        assert savings["next_tier"]["spend_needed"] == "1000.00"

    def test_expired_assignment_gives_no_discount(self, admin_actor, user):
        tier = create_tier(admin_actor, code="T1", name="T1", discount_percent=Decimal("5")).data
        assign_tier(admin_actor, user.public_id, tier.public_id, expires_at=timezone.now() - timedelta(days=1))
        assert discount_percent_for(user) == Decimal("0")

    def test_purchases_advance_counters(self, admin_actor, actor, user, product, access):
        tier = create_tier(admin_actor, code="T1", name="T1", discount_percent=Decimal("5")).data
        assign_tier(admin_actor, user.public_id, tier.public_id)
        cart_commands.add_item(actor, quantity=1, master_product_id=product.public_id)
        order_commands.create_order_from_cart(actor)

        savings = tier_savings(user)

        assert savings["total_orders"] == 1
        assert Decimal(savings["total_spend"]) == Decimal("100.00")
