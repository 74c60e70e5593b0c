from rest_framework import serializers

from sales.models import (
    Cart,
    CartItem,
    Coupon,
    DiscountTier,
    Order,
    OrderItem,
    Payment,
    PaymentMethod,
    Promotion,
    UserDiscountTier,
)


# =============================================================================
# Cart
# =============================================================================

class CartItemSerializer(serializers.ModelSerializer):
    id = serializers.UUIDField(source="public_id", read_only=True)
    master_product_id = serializers.UUIDField(source="master_product.public_id", read_only=True, default=None)

    class Meta:
        model = CartItem
        fields = (
            "id", "master_product_id", "product_name", "product_sku", "quantity",
            "unit_price", "discount", "total", "metadata",
        )


class CartSerializer(serializers.ModelSerializer):
    items = CartItemSerializer(many=True, read_only=True)
    item_count = serializers.SerializerMethodField()

    class Meta:
        model = Cart
        fields = (
            "items", "item_count", "subtotal", "discount", "coupon_code",
            "coupon_discount", "tax", "total", "updated_at",
        )

    def get_item_count(self, obj):
        return sum(item.quantity for item in obj.items.all())


class AddCartItemSerializer(serializers.Serializer):
    master_product_id = serializers.UUIDField(required=False, allow_null=True)
    product_name = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    product_sku = serializers.CharField(max_length=100, required=False, allow_blank=True, default="")
    unit_price = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=0, required=False, allow_null=True)
    quantity = serializers.IntegerField(min_value=1, default=1)
    metadata = serializers.JSONField(required=False, default=dict)


class UpdateCartItemSerializer(serializers.Serializer):
    quantity = serializers.IntegerField()


class CouponCodeSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=50)


# =============================================================================
# Orders
# =============================================================================

class OrderItemSerializer(serializers.ModelSerializer):
    master_product_id = serializers.UUIDField(source="master_product.public_id", read_only=True, default=None)

    class Meta:
        model = OrderItem
        fields = (
            "line_number", "master_product_id", "product_name", "product_sku", "quantity",
            "unit_price", "discount", "total", "metadata",
        )


class OrderListSerializer(serializers.ModelSerializer):
    id = serializers.UUIDField(source="public_id", read_only=True)
    item_count = serializers.IntegerField(source="items.count", read_only=True)

    class Meta:
        model = Order
        fields = ("id", "order_number", "status", "total", "currency", "item_count", "created_at")


class OrderSerializer(serializers.ModelSerializer):
    id = serializers.UUIDField(source="public_id", read_only=True)
    user_email = serializers.EmailField(source="user.email", read_only=True)
    items = OrderItemSerializer(many=True, read_only=True)

    class Meta:
        model = Order
        fields = (
            "id", "order_number", "status", "user_email", "items",
            "subtotal", "discount", "coupon_code", "coupon_discount", "tax", "total", "currency",
            "notes", "shipping_address", "billing_address", "metadata",
            "tracking_number", "tracking_url", "carrier", "estimated_delivery",
            "confirmed_at", "processing_at", "shipped_at", "delivered_at",
            "cancelled_at", "refunded_at", "created_at", "updated_at",
        )


class CreateOrderSerializer(serializers.Serializer):
    shipping_address = serializers.JSONField(required=False, default=dict)
    billing_address = serializers.JSONField(required=False, default=dict)
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    metadata = serializers.JSONField(required=False, default=dict)


class CancelOrderSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="")


class AdminOrderUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Order.Status.choices, required=False)
    tracking_number = serializers.CharField(max_length=100, required=False, allow_blank=True)
    tracking_url = serializers.URLField(required=False, allow_blank=True)
    carrier = serializers.CharField(max_length=100, required=False, allow_blank=True)
    estimated_delivery = serializers.DateTimeField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True)


# =============================================================================
# Payments
# =============================================================================

class PaymentMethodSerializer(serializers.ModelSerializer):
    id = serializers.UUIDField(source="public_id", read_only=True)

    class Meta:
        model = PaymentMethod
        fields = (
            "id", "code", "name", "type", "description", "is_active", "sort_order",
            "min_amount", "max_amount", "processing_fee", "processing_fee_percent", "allowed_roles",
        )


class PaymentMethodWriteSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=50)
    name = serializers.CharField(max_length=255)
    type = serializers.ChoiceField(choices=PaymentMethod.Type.choices)
    description = serializers.CharField(required=False, allow_blank=True)
    is_active = serializers.BooleanField(required=False)
    sort_order = serializers.IntegerField(min_value=0, required=False)
    min_amount = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=0, required=False, allow_null=True)
    max_amount = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=0, required=False, allow_null=True)
    processing_fee = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=0, required=False)
    processing_fee_percent = serializers.DecimalField(max_digits=5, decimal_places=2, min_value=0, required=False)
    allowed_roles = serializers.ListField(child=serializers.CharField(), required=False)
    config = serializers.JSONField(required=False)

    def validate(self, attrs):
        low, high = attrs.get("min_amount"), attrs.get("max_amount")
        if low is not None and high is not None and low > high:
            raise serializers.ValidationError("min_amount cannot exceed max_amount.")
        return attrs


class PaymentSerializer(serializers.ModelSerializer):
    id = serializers.UUIDField(source="public_id", read_only=True)
    order_id = serializers.UUIDField(source="order.public_id", read_only=True)
    order_number = serializers.CharField(source="order.order_number", read_only=True)
    method = serializers.CharField(source="method.code", read_only=True)

    class Meta:
        model = Payment
        fields = (
            "id", "payment_number", "order_id", "order_number", "method", "status",
            "amount", "fee", "currency", "reference", "processed_at", "created_at",
        )


class ProcessPaymentSerializer(serializers.Serializer):
    order_id = serializers.UUIDField()
    payment_method_id = serializers.UUIDField()
    reference = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    metadata = serializers.JSONField(required=False, default=dict)


# =============================================================================
# Promotions
# =============================================================================

class PromotionSerializer(serializers.ModelSerializer):
    id = serializers.UUIDField(source="public_id", read_only=True)

    class Meta:
        model = Promotion
        fields = (
            "id", "code", "name", "description", "type", "discount_type", "discount_value",
            "min_order_amount", "max_discount", "usage_limit", "usage_count", "per_user_limit",
            "start_date", "end_date", "is_active", "target_roles", "created_at",
        )


class PromotionWriteSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=50)
    name = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True)
    type = serializers.ChoiceField(choices=Promotion.Type.choices, required=False)
    discount_type = serializers.ChoiceField(choices=Promotion.DiscountType.choices, required=False)
    discount_value = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=0)
    min_order_amount = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=0, required=False, allow_null=True)
    max_discount = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=0, required=False, allow_null=True)
    usage_limit = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    per_user_limit = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    start_date = serializers.DateTimeField()
    end_date = serializers.DateTimeField()
    is_active = serializers.BooleanField(required=False)
    target_roles = serializers.ListField(child=serializers.CharField(), required=False)


class ValidateCodeSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=50)
    order_amount = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=0)


class CouponSerializer(serializers.ModelSerializer):
    id = serializers.UUIDField(source="public_id", read_only=True)
    assigned_to = serializers.EmailField(source="assigned_to.email", read_only=True, default=None)

    class Meta:
        model = Coupon
        fields = ("id", "code", "usage_limit", "usage_count", "expires_at", "assigned_to", "is_active", "created_at")


class GenerateCouponsSerializer(serializers.Serializer):
    count = serializers.IntegerField(min_value=1, max_value=1000)
    prefix = serializers.CharField(max_length=30, required=False, allow_blank=True, default="")
    usage_limit = serializers.IntegerField(min_value=1, required=False, default=1)
    expires_at = serializers.DateTimeField(required=False, allow_null=True, default=None)


# =============================================================================
# Discount tiers
# =============================================================================

class DiscountTierSerializer(serializers.ModelSerializer):
    id = serializers.UUIDField(source="public_id", read_only=True)

    class Meta:
        model = DiscountTier
        fields = (
            "id", "code", "name", "description", "level", "discount_percent",
            "min_spend", "min_orders", "is_active",
        )


class DiscountTierWriteSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=50)
    name = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True)
    level = serializers.IntegerField(min_value=0, required=False)
    discount_percent = serializers.DecimalField(max_digits=5, decimal_places=2, min_value=0, max_value=100)
    min_spend = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=0, required=False)
    min_orders = serializers.IntegerField(min_value=0, required=False)
    is_active = serializers.BooleanField(required=False)


class UserDiscountTierSerializer(serializers.ModelSerializer):
    user_id = serializers.UUIDField(source="user.public_id", read_only=True)
    tier = DiscountTierSerializer(read_only=True)

    class Meta:
        model = UserDiscountTier
        fields = (
            "user_id", "tier", "expires_at", "total_spend", "total_orders",
            "total_savings", "reason", "assigned_at",
        )


class AssignTierSerializer(serializers.Serializer):
    user_id = serializers.UUIDField()
    tier_id = serializers.UUIDField()
    expires_at = serializers.DateTimeField(required=False, allow_null=True, default=None)
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
