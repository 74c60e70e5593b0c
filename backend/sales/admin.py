from django.contrib import admin

from sales.models import (
    Cart,
    Coupon,
    DiscountTier,
    Order,
    OrderItem,
    Payment,
    PaymentMethod,
    Promotion,
    UserDiscountTier,
)


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    readonly_fields = ("line_number", "product_name", "product_sku", "quantity", "unit_price", "total")


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ("order_number", "tenant", "user", "status", "total", "created_at")
    list_filter = ("status",)
    search_fields = ("order_number", "user__email")
    inlines = [OrderItemInline]
    raw_id_fields = ("tenant", "user", "cancelled_by", "refunded_by")


@admin.register(Cart)
class CartAdmin(admin.ModelAdmin):
    list_display = ("user", "tenant", "total", "updated_at")
    raw_id_fields = ("tenant", "user")


@admin.register(PaymentMethod)
class PaymentMethodAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "type", "tenant", "is_active", "sort_order")
    list_filter = ("type", "is_active")


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ("payment_number", "order", "method", "status", "amount", "processed_at")
    list_filter = ("status",)
    search_fields = ("payment_number", "order__order_number")


@admin.register(Promotion)
class PromotionAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "tenant", "discount_type", "discount_value", "is_active", "start_date", "end_date")
    list_filter = ("is_active", "type")
    search_fields = ("code", "name")


@admin.register(Coupon)
class CouponAdmin(admin.ModelAdmin):
    list_display = ("code", "promotion", "usage_count", "usage_limit", "expires_at", "is_active")
    search_fields = ("code",)


@admin.register(DiscountTier)
class DiscountTierAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "tenant", "level", "discount_percent", "is_active")


@admin.register(UserDiscountTier)
class UserDiscountTierAdmin(admin.ModelAdmin):
    list_display = ("user", "tier", "total_spend", "total_orders", "expires_at")
    raw_id_fields = ("user", "tier", "assigned_by")
