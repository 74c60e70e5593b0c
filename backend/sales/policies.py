# sales/policies.py
"""
Business policies for orders and payments.

Policies answer "is this allowed given the current state?" and return
``(allowed, reason)``. Commands decide what to do with a refusal.
"""
from sales.models import Order, Payment

ORDER_TRANSITIONS = {
    Order.Status.DRAFT: {Order.Status.PENDING},
    Order.Status.PENDING: {Order.Status.CONFIRMED, Order.Status.CANCELLED},
    Order.Status.CONFIRMED: {Order.Status.PROCESSING, Order.Status.CANCELLED},
    Order.Status.PROCESSING: {Order.Status.SHIPPED, Order.Status.CANCELLED},
    Order.Status.SHIPPED: {Order.Status.DELIVERED},
    Order.Status.DELIVERED: {Order.Status.REFUNDED},
    Order.Status.CANCELLED: set(),
    Order.Status.REFUNDED: set(),
}

# Timestamp stamped on the order when it enters a status
STATUS_TIMESTAMPS = {
    Order.Status.CONFIRMED: "confirmed_at",
    Order.Status.PROCESSING: "processing_at",
    Order.Status.SHIPPED: "shipped_at",
    Order.Status.DELIVERED: "delivered_at",
    Order.Status.CANCELLED: "cancelled_at",
    Order.Status.REFUNDED: "refunded_at",
}


def can_transition(order, new_status: str) -> tuple[bool, str]:
    if new_status == order.status:
        return False, f"Order is already {order.status}."
    allowed = ORDER_TRANSITIONS.get(order.status, set())
    if new_status not in allowed:
        return False, f"Cannot change order status from {order.status} to {new_status}."
    return True, ""


def can_cancel_order(actor, order) -> tuple[bool, str]:
    if order.user_id != actor.user.pk and not actor.has("orders.manage"):
        return False, "You can only cancel your own orders."
    return can_transition(order, Order.Status.CANCELLED)


def can_refund_order(order) -> tuple[bool, str]:
    if order.status != Order.Status.DELIVERED:
        return False, "Only delivered orders can be refunded."
    return True, ""


def can_pay_order(actor, order) -> tuple[bool, str]:
    if order.user_id != actor.user.pk:
        return False, "You can only pay for your own orders."
    if order.status != Order.Status.PENDING:
        return False, f"Cannot pay for an order in status {order.status}."
    if order.payments.filter(status=Payment.Status.COMPLETED).exists():
        return False, "Order has already been paid."
    return True, ""
