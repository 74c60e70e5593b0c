from rest_framework import serializers

from catalog.models import Category, MasterProduct, TenantProductAccess


class CategorySerializer(serializers.ModelSerializer):
    id = serializers.UUIDField(source="public_id", read_only=True)
    parent_id = serializers.UUIDField(source="parent.public_id", read_only=True, default=None)

    class Meta:
        model = Category
        fields = ("id", "name", "slug", "description", "parent_id", "sort_order", "is_active", "image_url")


class CategoryCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    slug = serializers.SlugField(max_length=255, required=False, allow_blank=True, default="")
    description = serializers.CharField(required=False, allow_blank=True, default="")
    parent_id = serializers.UUIDField(required=False, allow_null=True, default=None)
    sort_order = serializers.IntegerField(required=False, min_value=0, default=0)
    is_active = serializers.BooleanField(required=False, default=True)
    image_url = serializers.URLField(required=False, allow_blank=True, default="")


class CategoryUpdateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255, required=False)
    slug = serializers.SlugField(max_length=255, required=False)
    description = serializers.CharField(required=False, allow_blank=True)
    parent_id = serializers.UUIDField(required=False, allow_null=True)
    sort_order = serializers.IntegerField(required=False, min_value=0)
    is_active = serializers.BooleanField(required=False)
    image_url = serializers.URLField(required=False, allow_blank=True)


class ProductAccessSerializer(serializers.ModelSerializer):
    effective_price = serializers.SerializerMethodField()

    class Meta:
        model = TenantProductAccess
        fields = (
            "is_active",
            "agreed_price",
            "discount_percent",
            "min_quantity",
            "max_quantity",
            "valid_from",
            "valid_until",
            "effective_price",
        )

    def get_effective_price(self, obj):
        return str(obj.effective_price())


class MasterProductSerializer(serializers.ModelSerializer):
    """
    Product as seen by a tenant.

    Pass ``access_map`` (product pk -> TenantProductAccess) in the context
    to include the tenant's price and access flag.
    """
    id = serializers.UUIDField(source="public_id", read_only=True)
    category = CategorySerializer(read_only=True)
    has_access = serializers.SerializerMethodField()
    price = serializers.SerializerMethodField()

    class Meta:
        model = MasterProduct
        fields = (
            "id",
            "sku",
            "name",
            "description",
            "category",
            "subcategory",
            "brand",
            "manufacturer",
            "list_price",
            "price",
            "currency",
            "uom",
            "status",
            "availability",
            "attributes",
            "images",
            "primary_image",
            "has_access",
        )

    def _access(self, obj):
        return self.context.get("access_map", {}).get(obj.pk)

    def get_has_access(self, obj):
        return self._access(obj) is not None

    def get_price(self, obj):
        access = self._access(obj)
        return str(access.effective_price() if access else obj.list_price)


class MasterProductWriteSerializer(serializers.Serializer):
    sku = serializers.CharField(max_length=100)
    name = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True)
    category_id = serializers.UUIDField(required=False, allow_null=True)
    subcategory = serializers.CharField(max_length=255, required=False, allow_blank=True)
    brand = serializers.CharField(max_length=255, required=False, allow_blank=True)
    manufacturer = serializers.CharField(max_length=255, required=False, allow_blank=True)
    list_price = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=0)
    currency = serializers.CharField(max_length=3, required=False)
    uom = serializers.CharField(max_length=20, required=False)
    status = serializers.ChoiceField(choices=MasterProduct.Status.choices, required=False)
    availability = serializers.ChoiceField(choices=MasterProduct.Availability.choices, required=False)
    attributes = serializers.JSONField(required=False)
    images = serializers.ListField(child=serializers.URLField(), required=False)
    primary_image = serializers.URLField(required=False, allow_blank=True)


class GrantAccessSerializer(serializers.Serializer):
    is_active = serializers.BooleanField(required=False, default=True)
    agreed_price = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=0, required=False, allow_null=True)
    discount_percent = serializers.DecimalField(
        max_digits=5, decimal_places=2, min_value=0, max_value=100, required=False, allow_null=True,
    )
    min_quantity = serializers.IntegerField(min_value=1, required=False, default=1)
    max_quantity = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    valid_from = serializers.DateTimeField(required=False, allow_null=True)
    valid_until = serializers.DateTimeField(required=False, allow_null=True)


class PricingSerializer(serializers.Serializer):
    agreed_price = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=0, required=False, allow_null=True)
    discount_percent = serializers.DecimalField(
        max_digits=5, decimal_places=2, min_value=0, max_value=100, required=False, allow_null=True,
    )
