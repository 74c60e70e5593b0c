# tests/test_sales.py
"""
Tests for the cart, orders and payments.

Tests cover:
- Cart pricing from tenant access and quantity limits
- Order placement, numbering and status transitions
- Payments with processing fees
"""

from decimal import Decimal

import pytest
from django.core.exceptions import PermissionDenied
from django.utils import timezone

from accounts.authz import build_actor
from accounts.models import User
from events.models import BusinessEvent
from events.types import EventTypes
from notifications.models import Notification
from sales import cart as cart_commands
from sales import orders as order_commands
from sales.models import Order, Payment, PaymentMethod
from sales.payments import delete_payment_method, process_payment


@pytest.fixture
def filled_cart(actor, product, access):
    """Two widgets in the buyer's cart."""
    result = cart_commands.add_item(actor, quantity=2, master_product_id=product.public_id)
    assert result.success
    return result.data


@pytest.fixture
def order(actor, filled_cart):
    """A pending order placed from the filled cart."""
    result = order_commands.create_order_from_cart(actor, shipping_address={"city": "Cairo"})
    assert result.success
    return result.data


@pytest.fixture
def payment_method(tenant):
    return PaymentMethod.objects.create(
        tenant=tenant,
        code="card",
        name="Company card",
        type=PaymentMethod.Type.CREDIT_CARD,
        processing_fee=Decimal("1.00"),
        processing_fee_percent=Decimal("2.00"),
    )


def advance(manager_actor, order, *statuses):
    for status in statuses:
        result = order_commands.update_order(manager_actor, order.public_id, status=status)
        assert result.success, result.error


# =============================================================================
# Cart
# =============================================================================

@pytest.mark.django_db
class TestCart:

    def test_add_item_uses_tenant_price(self, actor, product, access):
        access.discount_percent = Decimal("10")
        access.save()

        cart = cart_commands.add_item(actor, quantity=3, master_product_id=product.public_id).data

        item = cart.items.get()
        assert item.unit_price == Decimal("90.00")
        assert cart.subtotal == Decimal("270.00")
        assert cart.total == Decimal("270.00")

    def test_adding_same_product_merges_lines(self, actor, product, filled_cart):
        cart = cart_commands.add_item(actor, quantity=1, master_product_id=product.public_id).data
        assert cart.items.count() == 1
        assert cart.items.get().quantity == 3

    def test_product_without_access_is_forbidden(self, actor, product):
        with pytest.raises(PermissionDenied):
            cart_commands.add_item(actor, quantity=1, master_product_id=product.public_id)

    def test_minimum_quantity_enforced(self, actor, product, access):
        access.min_quantity = 5
        access.save()

        result = cart_commands.add_item(actor, quantity=2, master_product_id=product.public_id)

        assert not result.success
        assert result.error == "Minimum order quantity is 5."

    def test_maximum_quantity_enforced_on_update(self, actor, product, access, filled_cart):
        access.max_quantity = 4
        access.save()
        item = filled_cart.items.get()

        result = cart_commands.update_item(actor, item.public_id, 10)

        assert not result.success
        assert result.error == "Maximum order quantity is 4."

    def test_update_to_zero_removes_line(self, actor, filled_cart):
        item = filled_cart.items.get()
        cart = cart_commands.update_item(actor, item.public_id, 0).data
        assert cart.items.count() == 0
        assert cart.total == Decimal("0.00")

    def test_custom_line_needs_name_and_price(self, actor):
        assert not cart_commands.add_item(actor, quantity=1, product_name="Consulting").success
        result = cart_commands.add_item(actor, quantity=2, product_name="Consulting", unit_price=Decimal("50"))
        assert result.data.total == Decimal("100.00")

    def test_viewer_cannot_use_cart(self, viewer_actor, product, access):
        with pytest.raises(PermissionDenied):
            cart_commands.add_item(viewer_actor, quantity=1, master_product_id=product.public_id)

    def test_coupon_needs_items(self, actor):
        result = cart_commands.apply_coupon(actor, "ANY")
        assert not result.success

    def test_cart_api(self, client_for, user, product, access):
        client = client_for(user)
        response = client.post("/api/cart/items/", {"master_product_id": str(product.public_id), "quantity": 2},
                               format="json")

        assert response.status_code == 201
        assert response.json()["item_count"] == 2
        assert client.get("/api/cart/").json()["total"] == "200.00"


# =============================================================================
# Orders
# =============================================================================

@pytest.mark.django_db
class TestOrders:

    def test_order_copies_cart_and_clears_it(self, actor, order):
        year = timezone.now().year
        assert order.order_number == f"ORD-{year}-00001"
        assert order.status == Order.Status.PENDING
        assert order.total == Decimal("200.00")
        assert order.items.count() == 1
        assert order.billing_address == {"city": "Cairo"}

        cart = cart_commands.get_cart(actor.tenant, actor.user)
        assert cart.items.count() == 0
        assert cart.total == Decimal("0.00")

    def test_order_emits_event_and_notifies(self, user, order):
        assert BusinessEvent.objects.filter(event_type=EventTypes.ORDER_CREATED,
                                            aggregate_id=str(order.public_id)).exists()
        assert Notification.objects.filter(user=user, title="Order placed").exists()

    def test_empty_cart_rejected(self, actor):
        result = order_commands.create_order_from_cart(actor)
        assert not result.success
        assert "empty cart" in result.error

    def test_order_numbers_are_sequential(self, actor, product, order):
        cart_commands.add_item(actor, quantity=1, master_product_id=product.public_id)
        second = order_commands.create_order_from_cart(actor).data
        assert second.order_number.endswith("-00002")

    def test_buyer_cancels_pending_order(self, actor, order):
        result = order_commands.cancel_order(actor, order.public_id, reason="changed mind")

        assert result.success
        assert result.data.status == Order.Status.CANCELLED
        assert result.data.metadata["cancellation_reason"] == "changed mind"

    def test_cannot_cancel_others_order(self, tenant, order):
        colleague = build_actor(User.objects.create_user(
            email="colleague@acme.test", password="S3cure-pass-123", tenant=tenant, role=User.Role.USER,
        ))
        with pytest.raises(PermissionDenied):
            order_commands.cancel_order(colleague, order.public_id)

    def test_status_transitions_enforced(self, manager_actor, order):
        result = order_commands.update_order(manager_actor, order.public_id, status=Order.Status.SHIPPED)
        assert not result.success
        assert "Cannot change order status" in result.error

    def test_full_lifecycle_and_refund(self, admin_actor, order):
        advance(admin_actor, order, Order.Status.CONFIRMED, Order.Status.PROCESSING,
                Order.Status.SHIPPED, Order.Status.DELIVERED)

        order.refresh_from_db()
        assert order.delivered_at is not None

        result = order_commands.refund_order(admin_actor, order.public_id, reason="damaged")
        assert result.success
        assert result.data.status == Order.Status.REFUNDED

    def test_refund_requires_delivery(self, admin_actor, order):
        result = order_commands.refund_order(admin_actor, order.public_id)
        assert not result.success

    def test_refunded_status_not_settable_directly(self, admin_actor, order):
        result = order_commands.update_order(admin_actor, order.public_id, status=Order.Status.REFUNDED)
        assert not result.success

    def test_reorder_refills_cart(self, actor, order):
        result = order_commands.reorder(actor, order.public_id)

        assert result.success
        assert result.data["skipped"] == []
        assert result.data["cart"].items.get().quantity == 2

    def test_reorder_skips_products_without_access(self, actor, order, access):
        access.is_active = False
        access.save()
        result = order_commands.reorder(actor, order.public_id)
        assert result.data["skipped"] == ["WID-001"]

    def test_other_tenant_cannot_see_order(self, client_for, other_admin, order):
        response = client_for(other_admin).get(f"/api/admin/orders/{order.public_id}/")
        assert response.status_code == 404

    def test_export_csv(self, client_for, manager_user, order):
        response = client_for(manager_user).get("/api/admin/orders/export/", {"format": "csv"})

        assert response.status_code == 200
        assert response["Content-Type"].startswith("text/csv")
        assert order.order_number in response.content.decode("utf-8-sig")

    def test_export_rejects_unknown_format(self, client_for, manager_user):
        response = client_for(manager_user).get("/api/admin/orders/export/", {"format": "pdf"})
        assert response.status_code == 400


# =============================================================================
# Payments
# =============================================================================

@pytest.mark.django_db
class TestPayments:

    def test_payment_adds_fee_and_confirms_order(self, actor, order, payment_method):
        result = process_payment(actor, order.public_id, payment_method.public_id)

        assert result.success
        payment = result.data
        # 1.00 flat + 2% of 200.00
        assert payment.fee == Decimal("5.00")
        assert payment.amount == Decimal("205.00")
        assert payment.status == Payment.Status.COMPLETED
        assert payment.payment_number.startswith(f"PAY-{timezone.now().year}-")
        order.refresh_from_db()
        assert order.status == Order.Status.CONFIRMED

    def test_cannot_pay_twice(self, actor, order, payment_method):
        process_payment(actor, order.public_id, payment_method.public_id)
        result = process_payment(actor, order.public_id, payment_method.public_id)
        assert not result.success

    def test_role_restricted_method(self, actor, order, payment_method):
        payment_method.allowed_roles = ["MANAGER"]
        payment_method.save()
        with pytest.raises(PermissionDenied):
            process_payment(actor, order.public_id, payment_method.public_id)

    def test_max_amount_enforced(self, actor, order, payment_method):
        payment_method.max_amount = Decimal("100.00")
        payment_method.save()
        result = process_payment(actor, order.public_id, payment_method.public_id)
        assert not result.success
        assert result.error.startswith("Maximum amount")

    def test_used_method_is_deactivated_not_deleted(self, admin_actor, actor, order, payment_method):
        process_payment(actor, order.public_id, payment_method.public_id)

        assert delete_payment_method(admin_actor, payment_method.public_id).success

        payment_method.refresh_from_db()
        assert not payment_method.is_active

    def test_payment_api(self, client_for, user, order, payment_method):
        response = client_for(user).post("/api/payments/", {
            "order_id": str(order.public_id),
            "payment_method_id": str(payment_method.public_id),
        }, format="json")

        assert response.status_code == 201
        assert response.json()["amount"] == "205.00"
