# sales/cart.py
"""
Shopping cart commands.

Each (tenant, user) pair owns exactly one cart. Totals are recomputed
after every change; a coupon that no longer validates against the new
subtotal is dropped.
"""
import logging
from decimal import Decimal

from django.core.exceptions import PermissionDenied
from django.db import transaction

from accounts.authz import ActorContext, require
from accounts.commands import CommandResult
from catalog.access import get_access
from catalog.models import MasterProduct, quantize
from sales.models import Cart, CartItem
from sales.promotions import validate_code

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


def get_cart(tenant, user) -> Cart:
    cart, _ = Cart.objects.get_or_create(tenant=tenant, user=user)
    return cart


def recalculate(cart: Cart) -> Cart:
    items = list(cart.items.all())
    subtotal = sum((item.unit_price * item.quantity for item in items), ZERO)
    discount = sum((item.discount for item in items), ZERO)

    coupon_discount = ZERO
    if cart.coupon_code:
        validation = validate_code(cart.tenant, cart.user, cart.user.role, cart.coupon_code, subtotal)
        if validation.valid:
            coupon_discount = validation.discount
        else:
            logger.info(
                "Dropping invalid coupon from cart",
                extra={"cart_id": cart.pk, "coupon": cart.coupon_code, "reason": validation.message},
            )
            cart.coupon_code = ""

    tax = ZERO
    cart.subtotal = quantize(subtotal)
    cart.discount = quantize(discount)
    cart.coupon_discount = coupon_discount
    cart.tax = tax
    cart.total = quantize(max(ZERO, subtotal - discount - coupon_discount + tax))
    cart.save()
    return cart


def _check_quantity(access, quantity: int):
    if quantity < access.min_quantity:
        return f"Minimum order quantity is {access.min_quantity}."
    if access.max_quantity is not None and quantity > access.max_quantity:
        return f"Maximum order quantity is {access.max_quantity}."
    return None


@transaction.atomic
def add_item(
    actor: ActorContext,
    quantity: int = 1,
    master_product_id=None,
    product_name: str = "",
    product_sku: str = "",
    unit_price=None,
    metadata: dict = None,
) -> CommandResult:
    require(actor, "cart.use")
    if quantity < 1:
        return CommandResult.fail("Quantity must be at least 1.")

    cart = get_cart(actor.tenant, actor.user)

    if master_product_id:
        product = MasterProduct.objects.filter(public_id=master_product_id).first()
        if product is None:
            return CommandResult.fail("Product not found.")
        access = get_access(actor.tenant, product)
        if access is None:
            raise PermissionDenied("Your organization does not have access to this product.")

        item = cart.items.filter(master_product=product).first()
        new_quantity = quantity + (item.quantity if item else 0)
        error = _check_quantity(access, new_quantity)
        if error:
            return CommandResult.fail(error)

        price = access.effective_price()
        if item is None:
            item = CartItem(
                cart=cart,
                master_product=product,
                product_name=product.name,
                product_sku=product.sku,
                metadata=metadata or {},
            )
        item.quantity = new_quantity
        item.unit_price = price
    else:
        if not product_name or unit_price is None:
            return CommandResult.fail("product_name and unit_price are required for custom items.")
        item = CartItem(
            cart=cart,
            product_name=product_name,
            product_sku=product_sku,
            quantity=quantity,
            unit_price=quantize(unit_price),
            metadata=metadata or {},
        )

    item.total = item.compute_total()
    item.save()
    return CommandResult.ok(data=recalculate(cart))


@transaction.atomic
def update_item(actor: ActorContext, item_id, quantity: int) -> CommandResult:
    require(actor, "cart.use")
    cart = get_cart(actor.tenant, actor.user)
    item = cart.items.select_related("master_product").filter(public_id=item_id).first()
    if item is None:
        return CommandResult.fail("Cart item not found.")

    if quantity <= 0:
        item.delete()
        return CommandResult.ok(data=recalculate(cart))

    if item.master_product is not None:
        access = get_access(actor.tenant, item.master_product)
        if access is None:
            raise PermissionDenied("Your organization does not have access to this product.")
        error = _check_quantity(access, quantity)
        if error:
            return CommandResult.fail(error)

    item.quantity = quantity
    item.total = item.compute_total()
    item.save(update_fields=["quantity", "total"])
    return CommandResult.ok(data=recalculate(cart))


@transaction.atomic
def remove_item(actor: ActorContext, item_id) -> CommandResult:
    require(actor, "cart.use")
    cart = get_cart(actor.tenant, actor.user)
    deleted, _ = cart.items.filter(public_id=item_id).delete()
    if not deleted:
        return CommandResult.fail("Cart item not found.")
    return CommandResult.ok(data=recalculate(cart))


def clear_cart(cart: Cart) -> Cart:
    cart.items.all().delete()
    cart.subtotal = ZERO
    cart.discount = ZERO
    cart.coupon_code = ""
    cart.coupon_discount = ZERO
    cart.tax = ZERO
    cart.total = ZERO
    cart.save()
    return cart


@transaction.atomic
def clear(actor: ActorContext) -> CommandResult:
    require(actor, "cart.use")
    return CommandResult.ok(data=clear_cart(get_cart(actor.tenant, actor.user)))


@transaction.atomic
def apply_coupon(actor: ActorContext, code: str) -> CommandResult:
    require(actor, "cart.use")
    cart = get_cart(actor.tenant, actor.user)
    if not cart.items.exists():
        return CommandResult.fail("Cannot apply a coupon to an empty cart.")

    subtotal = sum((item.unit_price * item.quantity for item in cart.items.all()), ZERO)
    validation = validate_code(actor.tenant, actor.user, actor.role, code, subtotal)
    if not validation.valid:
        return CommandResult.fail(validation.message)

    cart.coupon_code = code.strip()
    return CommandResult.ok(data=recalculate(cart))


@transaction.atomic
def remove_coupon(actor: ActorContext) -> CommandResult:
    require(actor, "cart.use")
    cart = get_cart(actor.tenant, actor.user)
    cart.coupon_code = ""
    return CommandResult.ok(data=recalculate(cart))
