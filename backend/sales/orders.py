# sales/orders.py
"""
Order commands.

Orders are created from the user's cart (or from an accepted quote, see
agreements.quotes) and then move through the status machine defined in
sales.policies. Every status change notifies the order owner.
"""
import logging

from django.core.exceptions import PermissionDenied
from django.db import transaction
from django.utils import timezone

from accounts.authz import ActorContext, require
from accounts.commands import CommandResult
from catalog.access import has_access
from events.emitter import emit_event
from events.types import EventTypes
from notifications.commands import notify_user
from notifications.models import Notification
from sales import cart as cart_commands
from sales.models import Order, OrderItem, Payment
from sales.policies import STATUS_TIMESTAMPS, can_cancel_order, can_refund_order, can_transition
from sales.promotions import record_usage, validate_code
from sales.tiers import record_purchase
from tenant.sequences import next_document_number

logger = logging.getLogger(__name__)


def next_order_number(tenant) -> str:
    return next_document_number(tenant, "ORD", 5)


def _notify_status(order: Order, title: str, message: str):
    notify_user(
        order.tenant,
        order.user,
        Notification.Type.INFO,
        title,
        message,
        data={"order_id": str(order.public_id), "order_number": order.order_number, "status": order.status},
        send_email=True,
        action_path=f"/orders/{order.public_id}",
    )


@transaction.atomic
def create_order_from_cart(
    actor: ActorContext,
    shipping_address: dict = None,
    billing_address: dict = None,
    notes: str = "",
    metadata: dict = None,
) -> CommandResult:
    require(actor, "orders.create")

    cart = cart_commands.get_cart(actor.tenant, actor.user)
    cart = cart_commands.recalculate(cart)
    items = list(cart.items.select_related("master_product"))
    if not items:
        return CommandResult.fail("Cannot create an order from an empty cart.")

    order = Order.objects.create(
        tenant=actor.tenant,
        user=actor.user,
        order_number=next_order_number(actor.tenant),
        status=Order.Status.PENDING,
        subtotal=cart.subtotal,
        discount=cart.discount,
        coupon_code=cart.coupon_code,
        coupon_discount=cart.coupon_discount,
        tax=cart.tax,
        total=cart.total,
        notes=notes,
        shipping_address=shipping_address or {},
        billing_address=billing_address or shipping_address or {},
        metadata=metadata or {},
    )
    OrderItem.objects.bulk_create([
        OrderItem(
            order=order,
            line_number=index,
            master_product=item.master_product,
            product_name=item.product_name,
            product_sku=item.product_sku,
            quantity=item.quantity,
            unit_price=item.unit_price,
            discount=item.discount,
            total=item.total,
            metadata=item.metadata,
        )
        for index, item in enumerate(items, start=1)
    ])

    if cart.coupon_code:
        validation = validate_code(actor.tenant, actor.user, actor.role, cart.coupon_code, cart.subtotal)
        if validation.valid:
            record_usage(validation, actor.user, order, cart.coupon_discount)

    record_purchase(actor.user, order.total, order.discount + order.coupon_discount)
    cart_commands.clear_cart(cart)

    event = emit_event(
        actor,
        EventTypes.ORDER_CREATED,
        "Order",
        order.public_id,
        data={
            "order_number": order.order_number,
            "total": order.total,
            "item_count": len(items),
            "coupon_code": order.coupon_code,
        },
    )
    _notify_status(order, "Order placed", f"Your order {order.order_number} has been placed.")
    logger.info("Order created", extra={"order_number": order.order_number, "tenant_id": actor.tenant.id})
    return CommandResult.ok(data=order, event=event)


def get_own_order(actor: ActorContext, order_id) -> Order | None:
    return (
        Order.objects
        .prefetch_related("items")
        .filter(tenant=actor.tenant, user=actor.user, public_id=order_id)
        .first()
    )


def tracking_info(order: Order) -> dict:
    return {
        "order_number": order.order_number,
        "status": order.status,
        "tracking_number": order.tracking_number,
        "tracking_url": order.tracking_url,
        "carrier": order.carrier,
        "estimated_delivery": order.estimated_delivery,
        "confirmed_at": order.confirmed_at,
        "processing_at": order.processing_at,
        "shipped_at": order.shipped_at,
        "delivered_at": order.delivered_at,
    }


@transaction.atomic
def cancel_order(actor: ActorContext, order_id, reason: str = "") -> CommandResult:
    require(actor, "orders.cancel")

    order = Order.objects.select_for_update().filter(tenant=actor.tenant, public_id=order_id).first()
    if order is None:
        return CommandResult.fail("Order not found.")
    if order.user_id != actor.user.pk and not actor.has("orders.manage"):
        raise PermissionDenied("You can only cancel your own orders.")

    allowed, message = can_cancel_order(actor, order)
    if not allowed:
        return CommandResult.fail(message)

    previous = order.status
    order.status = Order.Status.CANCELLED
    order.cancelled_at = timezone.now()
    order.cancelled_by = actor.user
    order.metadata = {**order.metadata, "cancellation_reason": reason}
    order.save()

    event = emit_event(
        actor,
        EventTypes.ORDER_CANCELLED,
        "Order",
        order.public_id,
        data={"order_number": order.order_number, "from_status": previous, "reason": reason},
    )
    _notify_status(order, "Order cancelled", f"Order {order.order_number} has been cancelled.")
    return CommandResult.ok(data=order, event=event)


@transaction.atomic
def reorder(actor: ActorContext, order_id) -> CommandResult:
    """Copy an order's items back into the cart and re-apply its coupon."""
    require(actor, "cart.use")

    order = get_own_order(actor, order_id)
    if order is None:
        return CommandResult.fail("Order not found.")

    skipped = []
    for item in order.items.select_related("master_product"):
        product = item.master_product
        if product is not None:
            if not has_access(actor.tenant, product):
                skipped.append(item.product_sku)
                continue
            result = cart_commands.add_item(actor, quantity=item.quantity, master_product_id=product.public_id)
        else:
            result = cart_commands.add_item(
                actor,
                quantity=item.quantity,
                product_name=item.product_name,
                product_sku=item.product_sku,
                unit_price=item.unit_price,
                metadata=item.metadata,
            )
        if not result.success:
            skipped.append(item.product_sku or item.product_name)

    if order.coupon_code:
        coupon = cart_commands.apply_coupon(actor, order.coupon_code)
        if not coupon.success:
            logger.warning(
                "Could not re-apply coupon on reorder",
                extra={"order_number": order.order_number, "reason": coupon.error},
            )

    cart = cart_commands.get_cart(actor.tenant, actor.user)
    return CommandResult.ok(data={"cart": cart, "skipped": skipped})


def build_invoice(order: Order) -> dict:
    tenant = order.tenant
    return {
        "invoice_number": order.order_number.replace("ORD", "INV", 1),
        "order_number": order.order_number,
        "issued_at": timezone.now().isoformat(),
        "order_date": order.created_at.isoformat(),
        "status": order.status,
        "seller": {"name": tenant.name, "slug": tenant.slug},
        "customer": {
            "name": order.user.full_name,
            "email": order.user.email,
        },
        "billing_address": order.billing_address,
        "shipping_address": order.shipping_address,
        "lines": [
            {
                "line_number": item.line_number,
                "sku": item.product_sku,
                "description": item.product_name,
                "quantity": item.quantity,
                "unit_price": str(item.unit_price),
                "discount": str(item.discount),
                "total": str(item.total),
            }
            for item in order.items.all()
        ],
        "subtotal": str(order.subtotal),
        "discount": str(order.discount),
        "coupon_code": order.coupon_code,
        "coupon_discount": str(order.coupon_discount),
        "tax": str(order.tax),
        "total": str(order.total),
        "currency": order.currency,
        "payments": [
            {
                "payment_number": payment.payment_number,
                "amount": str(payment.amount),
                "status": payment.status,
                "processed_at": payment.processed_at.isoformat() if payment.processed_at else None,
            }
            for payment in order.payments.all()
        ],
    }


# =============================================================================
# Admin
# =============================================================================

ADMIN_FIELDS = ("tracking_number", "tracking_url", "carrier", "estimated_delivery", "notes")


@transaction.atomic
def update_order(actor: ActorContext, order_id, status: str = None, **fields) -> CommandResult:
    require(actor, "orders.manage")

    order = Order.objects.select_for_update().filter(tenant=actor.tenant, public_id=order_id).first()
    if order is None:
        return CommandResult.fail("Order not found.")

    previous = order.status
    if status and status != order.status:
        if status == Order.Status.REFUNDED:
            return CommandResult.fail("Use the refund endpoint to refund an order.")
        allowed, message = can_transition(order, status)
        if not allowed:
            return CommandResult.fail(message)
        order.status = status
        stamp = STATUS_TIMESTAMPS.get(status)
        if stamp:
            setattr(order, stamp, timezone.now())
        if status == Order.Status.CANCELLED:
            order.cancelled_by = actor.user

    for field in ADMIN_FIELDS:
        if field in fields:
            setattr(order, field, fields[field])
    order.save()

    event = None
    if order.status != previous:
        event = emit_event(
            actor,
            EventTypes.ORDER_STATUS_CHANGED,
            "Order",
            order.public_id,
            data={"order_number": order.order_number, "from_status": previous, "to_status": order.status},
        )
        _notify_status(
            order,
            "Order status updated",
            f"Order {order.order_number} is now {order.get_status_display().lower()}.",
        )
    return CommandResult.ok(data=order, event=event)


@transaction.atomic
def refund_order(actor: ActorContext, order_id, reason: str = "") -> CommandResult:
    require(actor, "orders.refund")

    order = Order.objects.select_for_update().filter(tenant=actor.tenant, public_id=order_id).first()
    if order is None:
        return CommandResult.fail("Order not found.")
    allowed, message = can_refund_order(order)
    if not allowed:
        return CommandResult.fail(message)

    order.status = Order.Status.REFUNDED
    order.refunded_at = timezone.now()
    order.refunded_by = actor.user
    if reason:
        order.metadata = {**order.metadata, "refund_reason": reason}
    order.save()
    refunded = order.payments.filter(status=Payment.Status.COMPLETED).update(status=Payment.Status.REFUNDED)

    event = emit_event(
        actor,
        EventTypes.ORDER_REFUNDED,
        "Order",
        order.public_id,
        data={"order_number": order.order_number, "total": order.total, "payments_refunded": refunded},
    )
    _notify_status(order, "Order refunded", f"Order {order.order_number} has been refunded.")
    return CommandResult.ok(data=order, event=event)
