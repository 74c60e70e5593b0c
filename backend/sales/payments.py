# sales/payments.py
"""
Payment methods and payment processing.

Payments are recorded as COMPLETED immediately; gateway capture is the
job of the integration connectors, not of this module.
"""
import logging
from decimal import Decimal

from django.core.exceptions import PermissionDenied
from django.db import transaction
from django.utils import timezone

from accounts.authz import ActorContext, require
from accounts.commands import CommandResult
from catalog.models import quantize
from events.emitter import emit_event
from events.types import EventTypes
from sales.models import Order, Payment, PaymentMethod
from sales.policies import can_pay_order
from tenant.sequences import next_document_number

logger = logging.getLogger(__name__)

METHOD_FIELDS = (
    "name", "type", "description", "is_active", "sort_order", "min_amount", "max_amount",
    "processing_fee", "processing_fee_percent", "allowed_roles", "config",
)


def processing_fee(method: PaymentMethod, amount: Decimal) -> Decimal:
    return quantize(method.processing_fee + amount * method.processing_fee_percent / Decimal("100"))


def available_methods(actor: ActorContext) -> list[PaymentMethod]:
    methods = PaymentMethod.objects.filter(tenant=actor.tenant, is_active=True).order_by("sort_order", "name")
    return [method for method in methods if method.allows_role(actor.role)]


@transaction.atomic
def create_payment_method(actor: ActorContext, code: str, **fields) -> CommandResult:
    require(actor, "payments.manage")
    if PaymentMethod.objects.filter(tenant=actor.tenant, code=code).exists():
        return CommandResult.fail(f"Payment method with code '{code}' already exists.")

    method = PaymentMethod.objects.create(
        tenant=actor.tenant,
        code=code,
        **{k: v for k, v in fields.items() if k in METHOD_FIELDS},
    )
    event = emit_event(
        actor,
        EventTypes.PAYMENT_METHOD_CREATED,
        "PaymentMethod",
        method.public_id,
        data={"code": code, "type": method.type},
    )
    return CommandResult.ok(data=method, event=event)


@transaction.atomic
def update_payment_method(actor: ActorContext, method_id, **updates) -> CommandResult:
    require(actor, "payments.manage")
    method = PaymentMethod.objects.select_for_update().filter(tenant=actor.tenant, public_id=method_id).first()
    if method is None:
        return CommandResult.fail("Payment method not found.")

    code = updates.pop("code", None)
    if code and code != method.code:
        if PaymentMethod.objects.filter(tenant=actor.tenant, code=code).exclude(pk=method.pk).exists():
            return CommandResult.fail(f"Payment method with code '{code}' already exists.")
        method.code = code

    changed = {k: v for k, v in updates.items() if k in METHOD_FIELDS}
    for field, value in changed.items():
        setattr(method, field, value)
    method.save()

    event = emit_event(
        actor,
        EventTypes.PAYMENT_METHOD_UPDATED,
        "PaymentMethod",
        method.public_id,
        data={"changes": changed, "updated_at": method.updated_at.isoformat()},
    )
    return CommandResult.ok(data=method, event=event)


@transaction.atomic
def delete_payment_method(actor: ActorContext, method_id) -> CommandResult:
    """Deactivates methods that have payments, deletes unused ones."""
    require(actor, "payments.manage")
    method = PaymentMethod.objects.filter(tenant=actor.tenant, public_id=method_id).first()
    if method is None:
        return CommandResult.fail("Payment method not found.")

    if method.payments.exists():
        method.is_active = False
        method.save(update_fields=["is_active", "updated_at"])
    else:
        method.delete()

    event = emit_event(actor, EventTypes.PAYMENT_METHOD_DELETED, "PaymentMethod", method_id, data={"code": method.code})
    return CommandResult.ok(event=event)


@transaction.atomic
def process_payment(actor: ActorContext, order_id, method_id, reference: str = "", metadata: dict = None) -> CommandResult:
    require(actor, "payments.create")

    order = Order.objects.select_for_update().filter(tenant=actor.tenant, public_id=order_id).first()
    if order is None:
        return CommandResult.fail("Order not found.")
    allowed, message = can_pay_order(actor, order)
    if not allowed:
        return CommandResult.fail(message)

    method = PaymentMethod.objects.filter(tenant=actor.tenant, public_id=method_id, is_active=True).first()
    if method is None:
        return CommandResult.fail("Payment method not found.")
    if not method.allows_role(actor.role):
        raise PermissionDenied("This payment method is not available for your role.")
    if method.min_amount is not None and order.total < method.min_amount:
        return CommandResult.fail(f"Minimum amount for {method.name} is {method.min_amount}.")
    if method.max_amount is not None and order.total > method.max_amount:
        return CommandResult.fail(f"Maximum amount for {method.name} is {method.max_amount}.")

    fee = processing_fee(method, order.total)
    now = timezone.now()
    payment = Payment.objects.create(
        tenant=actor.tenant,
        user=actor.user,
        order=order,
        method=method,
        payment_number=next_document_number(actor.tenant, "PAY", 6),
        status=Payment.Status.COMPLETED,
        amount=order.total + fee,
        fee=fee,
        currency=order.currency,
        reference=reference,
        metadata=metadata or {},
        processed_at=now,
    )

    order.status = Order.Status.CONFIRMED
    order.confirmed_at = now
    order.save(update_fields=["status", "confirmed_at", "updated_at"])

    event = emit_event(
        actor,
        EventTypes.PAYMENT_COMPLETED,
        "Payment",
        payment.public_id,
        data={
            "payment_number": payment.payment_number,
            "order_number": order.order_number,
            "amount": payment.amount,
            "fee": fee,
            "method": method.code,
        },
    )
    logger.info("Payment completed", extra={"payment_number": payment.payment_number, "order_number": order.order_number})
    return CommandResult.ok(data=payment, event=event)
