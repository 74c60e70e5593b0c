from django.urls import path

from sales import views

app_name = "sales"

urlpatterns = [
    # =========================================================================
    # Cart
    # =========================================================================
    path("cart/", views.CartView.as_view(), name="cart"),
    path("cart/items/", views.CartItemsView.as_view(), name="cart-items"),
    path("cart/items/<uuid:pk>/", views.CartItemDetailView.as_view(), name="cart-item-detail"),
    path("cart/coupon/", views.CartCouponView.as_view(), name="cart-coupon"),

    # =========================================================================
    # Orders
    # =========================================================================
    path("orders/", views.OrderListCreateView.as_view(), name="order-list"),
    path("orders/<uuid:pk>/", views.OrderDetailView.as_view(), name="order-detail"),
    path("orders/<uuid:pk>/tracking/", views.OrderTrackingView.as_view(), name="order-tracking"),
    path("orders/<uuid:pk>/cancel/", views.OrderCancelView.as_view(), name="order-cancel"),
    path("orders/<uuid:pk>/reorder/", views.OrderReorderView.as_view(), name="order-reorder"),
    path("orders/<uuid:pk>/invoice/", views.OrderInvoiceView.as_view(), name="order-invoice"),
    path("orders/<uuid:pk>/payments/", views.OrderPaymentsView.as_view(), name="order-payments"),

    path("admin/orders/", views.AdminOrderListView.as_view(), name="admin-order-list"),
    path("admin/orders/export/", views.AdminOrderExportView.as_view(), name="admin-order-export"),
    path("admin/orders/<uuid:pk>/", views.AdminOrderDetailView.as_view(), name="admin-order-detail"),
    path("admin/orders/<uuid:pk>/refund/", views.AdminOrderRefundView.as_view(), name="admin-order-refund"),

    # =========================================================================
    # Payments
    # =========================================================================
    path("payment-methods/", views.PaymentMethodListCreateView.as_view(), name="payment-method-list"),
    path("payment-methods/<uuid:pk>/", views.PaymentMethodDetailView.as_view(), name="payment-method-detail"),
    path("payments/", views.PaymentListCreateView.as_view(), name="payment-list"),
    path("payments/<uuid:pk>/", views.PaymentDetailView.as_view(), name="payment-detail"),

    # =========================================================================
    # Promotions
    # =========================================================================
    path("promotions/", views.PromotionListCreateView.as_view(), name="promotion-list"),
    path("promotions/available/", views.AvailablePromotionsView.as_view(), name="promotion-available"),
    path("promotions/validate/", views.ValidateCodeView.as_view(), name="promotion-validate"),
    path("promotions/<uuid:pk>/", views.PromotionDetailView.as_view(), name="promotion-detail"),
    path("promotions/<uuid:pk>/coupons/", views.PromotionCouponsView.as_view(), name="promotion-coupons"),
    path("promotions/<uuid:pk>/analytics/", views.PromotionAnalyticsView.as_view(), name="promotion-analytics"),

    # =========================================================================
    # Discount tiers
    # =========================================================================
    path("discount-tiers/", views.DiscountTierListCreateView.as_view(), name="discount-tier-list"),
    path("discount-tiers/assign/", views.AssignTierView.as_view(), name="discount-tier-assign"),
    path("discount-tiers/me/", views.MyTierView.as_view(), name="discount-tier-me"),
    path("discount-tiers/me/savings/", views.MySavingsView.as_view(), name="discount-tier-savings"),
    path("discount-tiers/<uuid:pk>/", views.DiscountTierDetailView.as_view(), name="discount-tier-detail"),
]
