# catalog/models.py
"""
Catalog models.

- Category: product categories, global (tenant is null) or tenant-owned
- MasterProduct: the platform-wide product master
- TenantProductAccess: which products a tenant may buy, and at what price
"""
import uuid
from decimal import Decimal, ROUND_HALF_UP

from django.db import models
from django.utils import timezone

CENT = Decimal("0.01")


def quantize(amount) -> Decimal:
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


class Category(models.Model):
    public_id = models.UUIDField(default=uuid.uuid4, editable=False, unique=True)
    tenant = models.ForeignKey(
        "tenant.Tenant",
        on_delete=models.CASCADE,
        related_name="categories",
        null=True,
        blank=True,
    )
    name = models.CharField(max_length=255)
    slug = models.SlugField(max_length=255, unique=True)
    description = models.TextField(blank=True, default="")
    parent = models.ForeignKey(
        "self",
        on_delete=models.PROTECT,
        related_name="children",
        null=True,
        blank=True,
    )
    sort_order = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True)
    image_url = models.URLField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["sort_order", "name"]
        verbose_name_plural = "categories"

    def __str__(self):
        return self.name

    def descendant_ids(self) -> list[int]:
        ids = []
        frontier = [self.pk]
        while frontier:
            children = list(Category.objects.filter(parent_id__in=frontier).values_list("pk", flat=True))
            ids.extend(children)
            frontier = children
        return ids


class MasterProduct(models.Model):
    class Status(models.TextChoices):
        ACTIVE = "ACTIVE", "Active"
        DISCONTINUED = "DISCONTINUED", "Discontinued"
        ARCHIVED = "ARCHIVED", "Archived"

    class Availability(models.TextChoices):
        IN_STOCK = "IN_STOCK", "In stock"
        LOW_STOCK = "LOW_STOCK", "Low stock"
        OUT_OF_STOCK = "OUT_OF_STOCK", "Out of stock"
        PREORDER = "PREORDER", "Pre-order"
        DISCONTINUED = "DISCONTINUED", "Discontinued"

    public_id = models.UUIDField(default=uuid.uuid4, editable=False, unique=True)
    sku = models.CharField(max_length=100, unique=True)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    category = models.ForeignKey(
        Category,
        on_delete=models.SET_NULL,
        related_name="products",
        null=True,
        blank=True,
    )
    subcategory = models.CharField(max_length=255, blank=True, default="")
    brand = models.CharField(max_length=255, blank=True, default="")
    manufacturer = models.CharField(max_length=255, blank=True, default="")
    list_price = models.DecimalField(max_digits=14, decimal_places=2)
    currency = models.CharField(max_length=3, default="USD")
    uom = models.CharField(max_length=20, default="EA")
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.ACTIVE)
    availability = models.CharField(max_length=20, choices=Availability.choices, default=Availability.IN_STOCK)
    attributes = models.JSONField(default=dict, blank=True)
    images = models.JSONField(default=list, blank=True)
    primary_image = models.URLField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]
        indexes = [
            models.Index(fields=["brand"], name="product_brand_idx"),
            models.Index(fields=["status", "availability"], name="product_status_avail_idx"),
        ]

    def __str__(self):
        return f"{self.sku} - {self.name}"


class TenantProductAccess(models.Model):
    tenant = models.ForeignKey("tenant.Tenant", on_delete=models.CASCADE, related_name="product_access")
    product = models.ForeignKey(MasterProduct, on_delete=models.CASCADE, related_name="tenant_access")
    is_active = models.BooleanField(default=True)
    agreed_price = models.DecimalField(max_digits=14, decimal_places=2, null=True, blank=True)
    discount_percent = models.DecimalField(max_digits=5, decimal_places=2, null=True, blank=True)
    min_quantity = models.PositiveIntegerField(default=1)
    max_quantity = models.PositiveIntegerField(null=True, blank=True)
    valid_from = models.DateTimeField(null=True, blank=True)
    valid_until = models.DateTimeField(null=True, blank=True)
    granted_by = models.ForeignKey(
        "accounts.User",
        on_delete=models.SET_NULL,
        related_name="+",
        null=True,
        blank=True,
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["tenant", "product"], name="uniq_tenant_product_access"),
        ]

    def __str__(self):
        return f"{self.tenant_id}:{self.product_id}"

    def is_valid(self, at=None) -> bool:
        at = at or timezone.now()
        if not self.is_active:
            return False
        if self.valid_from and at < self.valid_from:
            return False
        if self.valid_until and at > self.valid_until:
            return False
        return True

    def effective_price(self) -> Decimal:
        list_price = self.product.list_price
        if self.agreed_price is not None:
            return quantize(self.agreed_price)
        if self.discount_percent:
            return quantize(list_price * (Decimal("1") - self.discount_percent / Decimal("100")))
        return quantize(list_price)
