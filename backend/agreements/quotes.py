# agreements/quotes.py
"""
Quote commands.

Line items referencing a catalog product are priced from the tenant's
access row, the same way cart items are. Totals are recomputed from the
line items on every create and update.
"""
import logging
from decimal import Decimal

from django.core.exceptions import PermissionDenied
from django.db import transaction
from django.utils import timezone

from accounts.authz import ActorContext, require
from accounts.commands import CommandResult
from agreements.contracts import create_contract_record
from agreements.models import Contract, Quote, QuoteLineItem
from agreements.policies import (
    can_approve_quote,
    can_delete_quote,
    can_edit_quote,
    can_reject_quote,
    can_transition_quote,
)
from catalog.access import get_access
from catalog.models import MasterProduct, quantize
from events.emitter import emit_event, emit_event_no_actor
from events.types import EventTypes
from notifications.commands import notify_user
from notifications.models import Notification
from tenant.sequences import next_document_number

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")
HUNDRED = Decimal("100")

QUOTE_FIELDS = (
    "title", "description", "customer_name", "customer_email", "valid_until",
    "discount_percent", "currency", "notes", "internal_notes", "metadata",
)


class LineItemError(Exception):
    pass


def resolve_line_items(tenant, line_items: list[dict]) -> list[QuoteLineItem]:
    """
    Build unsaved QuoteLineItem rows from input dicts.

    Raises PermissionDenied when the tenant cannot buy a referenced
    product, LineItemError for malformed custom lines.
    """
    resolved = []
    for index, raw in enumerate(line_items, start=1):
        quantity = int(raw.get("quantity", 1))
        if quantity < 1:
            raise LineItemError(f"Line {index}: quantity must be at least 1.")

        product = None
        if raw.get("master_product_id"):
            product = MasterProduct.objects.filter(public_id=raw["master_product_id"]).first()
            if product is None:
                raise LineItemError(f"Line {index}: product not found.")
            access = get_access(tenant, product)
            if access is None:
                raise PermissionDenied(f"Tenant does not have access to product '{product.sku}'.")
            unit_price = raw.get("unit_price")
            unit_price = access.effective_price() if unit_price is None else quantize(unit_price)
            name = raw.get("product_name") or product.name
            sku = product.sku
        else:
            if not raw.get("product_name"):
                raise LineItemError(f"Line {index}: product_name is required when master_product_id is not provided.")
            if raw.get("unit_price") is None:
                raise LineItemError(f"Line {index}: unit_price is required when master_product_id is not provided.")
            unit_price = quantize(raw["unit_price"])
            name = raw["product_name"]
            sku = raw.get("product_sku", "")

        gross = unit_price * quantity
        discount_percent = raw.get("discount_percent")
        discount = quantize(gross * Decimal(discount_percent) / HUNDRED) if discount_percent else ZERO
        resolved.append(QuoteLineItem(
            line_number=index,
            master_product=product,
            product_name=name,
            product_sku=sku,
            description=raw.get("description", ""),
            quantity=quantity,
            unit_price=unit_price,
            discount_percent=discount_percent,
            discount=discount,
            total=quantize(gross - discount),
        ))
    return resolved


def apply_totals(quote: Quote, items: list[QuoteLineItem]) -> None:
    subtotal = sum((item.unit_price * item.quantity for item in items), ZERO)
    item_discount = sum((item.discount for item in items), ZERO)
    quote_discount = ZERO
    if quote.discount_percent:
        quote_discount = quantize((subtotal - item_discount) * quote.discount_percent / HUNDRED)
    tax = ZERO
    quote.subtotal = quantize(subtotal)
    quote.discount = quantize(item_discount + quote_discount)
    quote.tax = tax
    quote.total = quantize(max(ZERO, subtotal - quote.discount + tax))


def _save_items(quote: Quote, items: list[QuoteLineItem]) -> None:
    quote.line_items.all().delete()
    for item in items:
        item.quote = quote
    QuoteLineItem.objects.bulk_create(items)


def get_quote(actor: ActorContext, quote_id, for_update: bool = False):
    qs = Quote.objects.filter(tenant=actor.tenant, public_id=quote_id)
    if for_update:
        qs = qs.select_for_update()
    return qs.select_related("created_by", "contract").first()


@transaction.atomic
def create_quote(actor: ActorContext, title: str, line_items: list[dict], contract_id=None, **fields) -> CommandResult:
    require(actor, "quotes.create")

    try:
        items = resolve_line_items(actor.tenant, line_items)
    except LineItemError as exc:
        return CommandResult.fail(str(exc))
    if not items:
        return CommandResult.fail("A quote needs at least one line item.")

    contract = None
    if contract_id:
        contract = Contract.objects.filter(tenant=actor.tenant, public_id=contract_id, deleted_at__isnull=True).first()
        if contract is None:
            return CommandResult.fail("Contract not found.")

    values = {k: v for k, v in fields.items() if k in QUOTE_FIELDS}
    values["currency"] = values.get("currency") or "USD"
    quote = Quote(
        tenant=actor.tenant,
        quote_number=next_document_number(actor.tenant, "QT", 4),
        title=title,
        contract=contract,
        created_by=actor.user,
        **values,
    )
    apply_totals(quote, items)
    quote.save()
    _save_items(quote, items)

    event = emit_event(
        actor,
        EventTypes.QUOTE_CREATED,
        "Quote",
        quote.public_id,
        data={"quote_number": quote.quote_number, "title": title, "total": quote.total, "lines": len(items)},
    )
    logger.info("Quote created", extra={"quote_number": quote.quote_number})
    return CommandResult.ok(data=quote, event=event)


@transaction.atomic
def update_quote(actor: ActorContext, quote_id, line_items: list[dict] = None, **fields) -> CommandResult:
    require(actor, "quotes.edit")

    quote = get_quote(actor, quote_id, for_update=True)
    if quote is None:
        return CommandResult.fail("Quote not found.")
    allowed, reason = can_edit_quote(quote)
    if not allowed:
        return CommandResult.fail(reason)

    for field, value in fields.items():
        if field in QUOTE_FIELDS:
            setattr(quote, field, value)

    if line_items is not None:
        try:
            items = resolve_line_items(actor.tenant, line_items)
        except LineItemError as exc:
            return CommandResult.fail(str(exc))
        if not items:
            return CommandResult.fail("A quote needs at least one line item.")
        _save_items(quote, items)
    else:
        items = list(quote.line_items.all())

    apply_totals(quote, items)
    quote.save()

    event = emit_event(
        actor,
        EventTypes.QUOTE_UPDATED,
        "Quote",
        quote.public_id,
        data={"total": quote.total, "updated_at": quote.updated_at.isoformat()},
    )
    return CommandResult.ok(data=quote, event=event)


@transaction.atomic
def delete_quote(actor: ActorContext, quote_id) -> CommandResult:
    require(actor, "quotes.delete")

    quote = get_quote(actor, quote_id, for_update=True)
    if quote is None:
        return CommandResult.fail("Quote not found.")
    allowed, reason = can_delete_quote(quote)
    if not allowed:
        return CommandResult.fail(reason)

    number = quote.quote_number
    quote.delete()
    event = emit_event(actor, EventTypes.QUOTE_DELETED, "Quote", quote_id, data={"quote_number": number})
    return CommandResult.ok(event=event)


def _set_status(actor, quote, target: str, event_type: str, **extra):
    previous = quote.status
    quote.status = target
    quote.save()
    return emit_event(
        actor,
        event_type,
        "Quote",
        quote.public_id,
        data={
            "quote_number": quote.quote_number,
            "from_status": previous,
            "to_status": target,
            "at": timezone.now().isoformat(),
            **extra,
        },
    )


def _transition(actor, quote, target: str, event_type: str, **extra) -> CommandResult:
    allowed, reason = can_transition_quote(quote, target)
    if not allowed:
        return CommandResult.fail(reason)
    event = _set_status(actor, quote, target, event_type, **extra)
    return CommandResult.ok(data=quote, event=event)


def _locked(actor, quote_id):
    return get_quote(actor, quote_id, for_update=True)


@transaction.atomic
def submit_quote(actor: ActorContext, quote_id) -> CommandResult:
    require(actor, "quotes.submit")
    quote = _locked(actor, quote_id)
    if quote is None:
        return CommandResult.fail("Quote not found.")
    if not quote.line_items.exists():
        return CommandResult.fail("Cannot submit a quote without line items.")
    return _transition(actor, quote, Quote.Status.PENDING_APPROVAL, EventTypes.QUOTE_SUBMITTED)


@transaction.atomic
def approve_quote(actor: ActorContext, quote_id) -> CommandResult:
    require(actor, "quotes.approve")
    quote = _locked(actor, quote_id)
    if quote is None:
        return CommandResult.fail("Quote not found.")
    allowed, reason = can_approve_quote(actor, quote)
    if not allowed:
        return CommandResult.fail(reason)

    quote.approved_by = actor.user
    quote.approved_at = timezone.now()
    event = _set_status(actor, quote, Quote.Status.APPROVED, EventTypes.QUOTE_APPROVED)
    notify_user(
        quote.tenant,
        quote.created_by,
        Notification.Type.SUCCESS,
        "Quote approved",
        f"Quote {quote.quote_number} has been approved.",
        data={"quote_id": str(quote.public_id)},
    )
    return CommandResult.ok(data=quote, event=event)


@transaction.atomic
def reject_quote(actor: ActorContext, quote_id, reason: str = "") -> CommandResult:
    """Internal rejection: the quote goes back to DRAFT for rework."""
    require(actor, "quotes.approve")
    quote = _locked(actor, quote_id)
    if quote is None:
        return CommandResult.fail("Quote not found.")
    allowed, message = can_reject_quote(quote)
    if not allowed:
        return CommandResult.fail(message)

    quote.rejection_reason = reason
    quote.approved_by = None
    quote.approved_at = None
    event = _set_status(actor, quote, Quote.Status.DRAFT, EventTypes.QUOTE_REJECTED, reason=reason)
    notify_user(
        quote.tenant,
        quote.created_by,
        Notification.Type.WARNING,
        "Quote rejected",
        f"Quote {quote.quote_number} was rejected" + (f": {reason}" if reason else "."),
        data={"quote_id": str(quote.public_id), "reason": reason},
    )
    return CommandResult.ok(data=quote, event=event)


@transaction.atomic
def send_quote(actor: ActorContext, quote_id) -> CommandResult:
    require(actor, "quotes.send")
    quote = _locked(actor, quote_id)
    if quote is None:
        return CommandResult.fail("Quote not found.")
    allowed, reason = can_transition_quote(quote, Quote.Status.SENT)
    if not allowed:
        return CommandResult.fail(reason)
    quote.sent_at = timezone.now()
    event = _set_status(actor, quote, Quote.Status.SENT, EventTypes.QUOTE_SENT)
    return CommandResult.ok(data=quote, event=event)


@transaction.atomic
def accept_quote(actor: ActorContext, quote_id) -> CommandResult:
    require(actor, "quotes.respond")
    quote = _locked(actor, quote_id)
    if quote is None:
        return CommandResult.fail("Quote not found.")
    allowed, reason = can_transition_quote(quote, Quote.Status.ACCEPTED)
    if not allowed:
        return CommandResult.fail(reason)
    quote.responded_at = timezone.now()
    event = _set_status(actor, quote, Quote.Status.ACCEPTED, EventTypes.QUOTE_ACCEPTED)
    return CommandResult.ok(data=quote, event=event)


@transaction.atomic
def customer_reject_quote(actor: ActorContext, quote_id, reason: str = "") -> CommandResult:
    require(actor, "quotes.respond")
    quote = _locked(actor, quote_id)
    if quote is None:
        return CommandResult.fail("Quote not found.")
    allowed, message = can_transition_quote(quote, Quote.Status.REJECTED)
    if not allowed:
        return CommandResult.fail(message)
    quote.responded_at = timezone.now()
    quote.rejection_reason = reason
    event = _set_status(actor, quote, Quote.Status.REJECTED, EventTypes.QUOTE_CUSTOMER_REJECTED, reason=reason)
    return CommandResult.ok(data=quote, event=event)


@transaction.atomic
def convert_to_contract(actor: ActorContext, quote_id) -> CommandResult:
    require(actor, "quotes.convert")
    quote = _locked(actor, quote_id)
    if quote is None:
        return CommandResult.fail("Quote not found.")
    if quote.status != Quote.Status.ACCEPTED:
        return CommandResult.fail(f"Only accepted quotes can be converted. Quote is {quote.status}.")

    contract = create_contract_record(
        actor,
        f"Contract from {quote.quote_number}: {quote.title}",
        description=quote.description,
        total_value=quote.total,
        currency=quote.currency,
        terms={"source_quote": quote.quote_number, "quote_id": str(quote.public_id)},
    )
    emit_event(
        actor,
        EventTypes.CONTRACT_CREATED,
        "Contract",
        contract.public_id,
        data={"contract_number": contract.contract_number, "source_quote": quote.quote_number},
    )

    quote.contract = contract
    event = _set_status(
        actor,
        quote,
        Quote.Status.CONVERTED,
        EventTypes.QUOTE_CONVERTED,
        contract_id=str(contract.public_id),
    )
    return CommandResult.ok(data={"quote": quote, "contract": contract}, event=event)


def expire_quotes(now=None) -> int:
    """SENT quotes past valid_until become EXPIRED and their creator is told."""
    now = now or timezone.now()
    quotes = Quote.objects.filter(
        status=Quote.Status.SENT,
        valid_until__isnull=False,
        valid_until__lt=now,
    ).select_related("tenant", "created_by")

    count = 0
    for quote in quotes:
        with transaction.atomic():
            quote.status = Quote.Status.EXPIRED
            quote.save(update_fields=["status", "updated_at"])
            emit_event_no_actor(
                tenant=quote.tenant,
                user=None,
                event_type=EventTypes.QUOTE_EXPIRED,
                aggregate_type="Quote",
                aggregate_id=quote.public_id,
                data={"quote_number": quote.quote_number, "from_status": Quote.Status.SENT, "to_status": Quote.Status.EXPIRED},
            )
            notify_user(
                quote.tenant,
                quote.created_by,
                Notification.Type.QUOTE_EXPIRING,
                "Quote expired",
                f"Quote {quote.quote_number} expired without a response.",
                data={"quote_id": str(quote.public_id)},
                send_email=True,
                action_path=f"/quotes/{quote.public_id}",
            )
        count += 1
    if count:
        logger.info("Quotes expired", extra={"count": count})
    return count
