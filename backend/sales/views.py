# sales/views.py
"""
Sales API: cart, orders, payments, promotions and discount tiers.

Views stay thin: parse input, resolve the actor, call a command and
shape the response.
"""
from django.http import Http404
from django.utils import timezone
from django.utils.dateparse import parse_date
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.authz import resolve_actor, require
from b2b_backend.pagination import paginate
from sales import cart as cart_commands
from sales import orders as order_commands
from sales import payments as payment_commands
from sales import promotions as promotion_commands
from sales import tiers as tier_commands
from sales.exports import ORDER_EXPORT_COLUMNS, ExportFormat, create_export_response, order_rows
from sales.models import DiscountTier, Order, Payment, PaymentMethod, Promotion
from sales.serializers import (
    AddCartItemSerializer,
    AdminOrderUpdateSerializer,
    AssignTierSerializer,
    CancelOrderSerializer,
    CartSerializer,
    CouponCodeSerializer,
    CouponSerializer,
    CreateOrderSerializer,
    DiscountTierSerializer,
    DiscountTierWriteSerializer,
    GenerateCouponsSerializer,
    OrderListSerializer,
    OrderSerializer,
    PaymentMethodSerializer,
    PaymentMethodWriteSerializer,
    PaymentSerializer,
    ProcessPaymentSerializer,
    PromotionSerializer,
    PromotionWriteSerializer,
    UpdateCartItemSerializer,
    UserDiscountTierSerializer,
    ValidateCodeSerializer,
)

ORDER_SORT_FIELDS = {"created_at", "total", "order_number", "status"}


def _fail(result):
    return Response({"detail": result.error}, status=status.HTTP_400_BAD_REQUEST)


def _filter_orders(qs, params):
    if params.get("status"):
        qs = qs.filter(status=params["status"])
    if params.get("search"):
        qs = qs.filter(order_number__icontains=params["search"])
    start = parse_date(params.get("start_date", "") or "")
    if start:
        qs = qs.filter(created_at__date__gte=start)
    end = parse_date(params.get("end_date", "") or "")
    if end:
        qs = qs.filter(created_at__date__lte=end)

    sort = params.get("sort_by", "created_at")
    if sort not in ORDER_SORT_FIELDS:
        sort = "created_at"
    direction = "" if params.get("sort_order", "desc").lower() == "asc" else "-"
    return qs.order_by(f"{direction}{sort}")


# =============================================================================
# Cart
# =============================================================================

class CartView(APIView):
    """GET the current cart, DELETE clears it."""
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "cart.use")
        cart = cart_commands.get_cart(actor.tenant, actor.user)
        return Response(CartSerializer(cart).data)

    def delete(self, request):
        actor = resolve_actor(request)
        result = cart_commands.clear(actor)
        return Response(CartSerializer(result.data).data)


class CartItemsView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request):
        actor = resolve_actor(request)
        serializer = AddCartItemSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = cart_commands.add_item(actor, **serializer.validated_data)
        if not result.success:
            return _fail(result)
        return Response(CartSerializer(result.data).data, status=status.HTTP_201_CREATED)


class CartItemDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def patch(self, request, pk):
        actor = resolve_actor(request)
        serializer = UpdateCartItemSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = cart_commands.update_item(actor, pk, serializer.validated_data["quantity"])
        if not result.success:
            return _fail(result)
        return Response(CartSerializer(result.data).data)

    def delete(self, request, pk):
        actor = resolve_actor(request)
        result = cart_commands.remove_item(actor, pk)
        if not result.success:
            return _fail(result)
        return Response(CartSerializer(result.data).data)


class CartCouponView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request):
        actor = resolve_actor(request)
        serializer = CouponCodeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = cart_commands.apply_coupon(actor, serializer.validated_data["code"])
        if not result.success:
            return _fail(result)
        return Response(CartSerializer(result.data).data)

    def delete(self, request):
        actor = resolve_actor(request)
        result = cart_commands.remove_coupon(actor)
        return Response(CartSerializer(result.data).data)


# =============================================================================
# Orders (customer)
# =============================================================================

class OrderListCreateView(APIView):
    """
    GET /api/orders/?status=&search=&start_date=&end_date=&sort_by=&sort_order=
    POST /api/orders/ places an order from the cart
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "orders.view")
        qs = Order.objects.filter(tenant=actor.tenant, user=actor.user)
        qs = _filter_orders(qs, request.query_params)
        return Response(paginate(request, qs, OrderListSerializer))

    def post(self, request):
        actor = resolve_actor(request)
        serializer = CreateOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = order_commands.create_order_from_cart(actor, **serializer.validated_data)
        if not result.success:
            return _fail(result)
        return Response(OrderSerializer(result.data).data, status=status.HTTP_201_CREATED)


class OrderDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        actor = resolve_actor(request)
        require(actor, "orders.view")
        order = order_commands.get_own_order(actor, pk)
        if order is None:
            raise Http404("Order not found.")
        return Response(OrderSerializer(order).data)


class OrderTrackingView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        actor = resolve_actor(request)
        require(actor, "orders.view")
        order = order_commands.get_own_order(actor, pk)
        if order is None:
            raise Http404("Order not found.")
        return Response(order_commands.tracking_info(order))


class OrderCancelView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, pk):
        actor = resolve_actor(request)
        serializer = CancelOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = order_commands.cancel_order(actor, pk, serializer.validated_data["reason"])
        if not result.success:
            return _fail(result)
        return Response(OrderSerializer(result.data).data)


class OrderReorderView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, pk):
        actor = resolve_actor(request)
        result = order_commands.reorder(actor, pk)
        if not result.success:
            return _fail(result)
        return Response({
            "cart": CartSerializer(result.data["cart"]).data,
            "skipped": result.data["skipped"],
        })


class OrderInvoiceView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        actor = resolve_actor(request)
        require(actor, "orders.view")
        order = order_commands.get_own_order(actor, pk)
        if order is None and actor.has("orders.manage"):
            order = Order.objects.filter(tenant=actor.tenant, public_id=pk).first()
        if order is None:
            raise Http404("Order not found.")
        return Response(order_commands.build_invoice(order))


class OrderPaymentsView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        actor = resolve_actor(request)
        require(actor, "payments.view")
        order = order_commands.get_own_order(actor, pk)
        if order is None:
            raise Http404("Order not found.")
        payments = order.payments.select_related("method", "order")
        return Response(PaymentSerializer(payments, many=True).data)


# =============================================================================
# Orders (admin)
# =============================================================================

class AdminOrderListView(APIView):
    """GET /api/admin/orders/?user_id=&status=&search=&start_date=&end_date="""
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "orders.manage")
        qs = Order.objects.filter(tenant=actor.tenant).select_related("user")
        if request.query_params.get("user_id"):
            qs = qs.filter(user__public_id=request.query_params["user_id"])
        qs = _filter_orders(qs, request.query_params)
        return Response(paginate(request, qs, OrderListSerializer))


class AdminOrderDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        actor = resolve_actor(request)
        require(actor, "orders.manage")
        order = Order.objects.filter(tenant=actor.tenant, public_id=pk).select_related("user").first()
        if order is None:
            raise Http404("Order not found.")
        return Response(OrderSerializer(order).data)

    def patch(self, request, pk):
        actor = resolve_actor(request)
        serializer = AdminOrderUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        result = order_commands.update_order(actor, pk, **serializer.validated_data)
        if not result.success:
            return _fail(result)
        return Response(OrderSerializer(result.data).data)


class AdminOrderRefundView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, pk):
        actor = resolve_actor(request)
        serializer = CancelOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = order_commands.refund_order(actor, pk, serializer.validated_data["reason"])
        if not result.success:
            return _fail(result)
        return Response(OrderSerializer(result.data).data)


class AdminOrderExportView(APIView):
    """
    GET /api/admin/orders/export/?format=xlsx|csv plus the list filters
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "orders.manage")

        export_format = request.query_params.get("format", ExportFormat.EXCEL)
        if export_format not in ExportFormat.CHOICES:
            return Response(
                {"detail": f"Invalid format. Must be one of: {', '.join(ExportFormat.CHOICES)}"},
                status=status.HTTP_400_BAD_REQUEST,
            )

        qs = Order.objects.filter(tenant=actor.tenant).select_related("user").prefetch_related("items")
        if request.query_params.get("user_id"):
            qs = qs.filter(user__public_id=request.query_params["user_id"])
        qs = _filter_orders(qs, request.query_params)

        timestamp = timezone.now().strftime("%Y%m%d_%H%M%S")
        return create_export_response(
            data=order_rows(qs),
            columns=ORDER_EXPORT_COLUMNS,
            format=export_format,
            filename=f"orders_{timestamp}",
            title=f"Orders - {actor.tenant.name}",
        )


# =============================================================================
# Payments
# =============================================================================

class PaymentMethodListCreateView(APIView):
    """GET lists methods available to the caller (?all=true for admins)."""
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "payments.view")
        if request.query_params.get("all") == "true":
            require(actor, "payments.manage")
            methods = PaymentMethod.objects.filter(tenant=actor.tenant)
        else:
            methods = payment_commands.available_methods(actor)
        return Response(PaymentMethodSerializer(methods, many=True).data)

    def post(self, request):
        actor = resolve_actor(request)
        serializer = PaymentMethodWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = payment_commands.create_payment_method(actor, **serializer.validated_data)
        if not result.success:
            return _fail(result)
        return Response(PaymentMethodSerializer(result.data).data, status=status.HTTP_201_CREATED)


class PaymentMethodDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        actor = resolve_actor(request)
        require(actor, "payments.view")
        method = PaymentMethod.objects.filter(tenant=actor.tenant, public_id=pk).first()
        if method is None:
            raise Http404("Payment method not found.")
        return Response(PaymentMethodSerializer(method).data)

    def patch(self, request, pk):
        actor = resolve_actor(request)
        serializer = PaymentMethodWriteSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        result = payment_commands.update_payment_method(actor, pk, **serializer.validated_data)
        if not result.success:
            return _fail(result)
        return Response(PaymentMethodSerializer(result.data).data)

    def delete(self, request, pk):
        actor = resolve_actor(request)
        result = payment_commands.delete_payment_method(actor, pk)
        if not result.success:
            return _fail(result)
        return Response(status=status.HTTP_204_NO_CONTENT)


class PaymentListCreateView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "payments.view")
        qs = Payment.objects.filter(tenant=actor.tenant, user=actor.user).select_related("order", "method")
        if request.query_params.get("status"):
            qs = qs.filter(status=request.query_params["status"])
        return Response(paginate(request, qs, PaymentSerializer))

    def post(self, request):
        actor = resolve_actor(request)
        serializer = ProcessPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        result = payment_commands.process_payment(
            actor,
            data["order_id"],
            data["payment_method_id"],
            reference=data["reference"],
            metadata=data["metadata"],
        )
        if not result.success:
            return _fail(result)
        return Response(PaymentSerializer(result.data).data, status=status.HTTP_201_CREATED)


class PaymentDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        actor = resolve_actor(request)
        require(actor, "payments.view")
        payment = (
            Payment.objects
            .filter(tenant=actor.tenant, user=actor.user, public_id=pk)
            .select_related("order", "method")
            .first()
        )
        if payment is None:
            raise Http404("Payment not found.")
        return Response(PaymentSerializer(payment).data)


# =============================================================================
# Promotions
# =============================================================================

class AvailablePromotionsView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "promotions.view")
        promotions = promotion_commands.available_promotions(actor.tenant, actor.user, actor.role)
        return Response(PromotionSerializer(promotions, many=True).data)


class ValidateCodeView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request):
        actor = resolve_actor(request)
        require(actor, "promotions.view")
        serializer = ValidateCodeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        validation = promotion_commands.validate_code(
            actor.tenant,
            actor.user,
            actor.role,
            serializer.validated_data["code"],
            serializer.validated_data["order_amount"],
        )
        if not validation.valid:
            return Response({"valid": False, "message": validation.message})
        return Response({
            "valid": True,
            "discount": str(validation.discount),
            "promotion": PromotionSerializer(validation.promotion).data,
        })


class PromotionListCreateView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "promotions.manage")
        qs = Promotion.objects.filter(tenant=actor.tenant)
        if request.query_params.get("is_active") in ("true", "false"):
            qs = qs.filter(is_active=request.query_params["is_active"] == "true")
        if request.query_params.get("search"):
            qs = qs.filter(name__icontains=request.query_params["search"])
        return Response(paginate(request, qs, PromotionSerializer))

    def post(self, request):
        actor = resolve_actor(request)
        serializer = PromotionWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = promotion_commands.create_promotion(actor, **serializer.validated_data)
        if not result.success:
            return _fail(result)
        return Response(PromotionSerializer(result.data).data, status=status.HTTP_201_CREATED)


def _get_promotion(actor, pk) -> Promotion:
    promotion = Promotion.objects.filter(tenant=actor.tenant, public_id=pk).first()
    if promotion is None:
        raise Http404("Promotion not found.")
    return promotion


class PromotionDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        actor = resolve_actor(request)
        require(actor, "promotions.manage")
        return Response(PromotionSerializer(_get_promotion(actor, pk)).data)

    def patch(self, request, pk):
        actor = resolve_actor(request)
        serializer = PromotionWriteSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        result = promotion_commands.update_promotion(actor, pk, **serializer.validated_data)
        if not result.success:
            return _fail(result)
        return Response(PromotionSerializer(result.data).data)

    def delete(self, request, pk):
        actor = resolve_actor(request)
        result = promotion_commands.delete_promotion(actor, pk)
        if not result.success:
            return _fail(result)
        return Response(status=status.HTTP_204_NO_CONTENT)


class PromotionCouponsView(APIView):
    """GET lists coupons, POST generates a batch."""
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        actor = resolve_actor(request)
        require(actor, "promotions.manage")
        promotion = _get_promotion(actor, pk)
        qs = promotion.coupons.select_related("assigned_to")
        return Response(paginate(request, qs, CouponSerializer))

    def post(self, request, pk):
        actor = resolve_actor(request)
        serializer = GenerateCouponsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = promotion_commands.generate_coupons(actor, pk, **serializer.validated_data)
        if not result.success:
            return _fail(result)
        return Response(CouponSerializer(result.data, many=True).data, status=status.HTTP_201_CREATED)


class PromotionAnalyticsView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        actor = resolve_actor(request)
        require(actor, "promotions.manage")
        return Response(promotion_commands.promotion_analytics(_get_promotion(actor, pk)))


# =============================================================================
# Discount tiers
# =============================================================================

class DiscountTierListCreateView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "discounts.view")
        qs = DiscountTier.objects.filter(tenant=actor.tenant)
        if request.query_params.get("is_active") in ("true", "false"):
            qs = qs.filter(is_active=request.query_params["is_active"] == "true")
        return Response(DiscountTierSerializer(qs, many=True).data)

    def post(self, request):
        actor = resolve_actor(request)
        serializer = DiscountTierWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = tier_commands.create_tier(actor, **serializer.validated_data)
        if not result.success:
            return _fail(result)
        return Response(DiscountTierSerializer(result.data).data, status=status.HTTP_201_CREATED)


class DiscountTierDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        actor = resolve_actor(request)
        require(actor, "discounts.view")
        tier = DiscountTier.objects.filter(tenant=actor.tenant, public_id=pk).first()
        if tier is None:
            raise Http404("Discount tier not found.")
        return Response(DiscountTierSerializer(tier).data)

    def patch(self, request, pk):
        actor = resolve_actor(request)
        serializer = DiscountTierWriteSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        result = tier_commands.update_tier(actor, pk, **serializer.validated_data)
        if not result.success:
            return _fail(result)
        return Response(DiscountTierSerializer(result.data).data)

    def delete(self, request, pk):
        actor = resolve_actor(request)
        result = tier_commands.delete_tier(actor, pk)
        if not result.success:
            return _fail(result)
        return Response(status=status.HTTP_204_NO_CONTENT)


class AssignTierView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request):
        actor = resolve_actor(request)
        serializer = AssignTierSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = tier_commands.assign_tier(actor, **serializer.validated_data)
        if not result.success:
            return _fail(result)
        return Response(UserDiscountTierSerializer(result.data).data)


class MyTierView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "discounts.view")
        assignment = tier_commands.current_assignment(actor.user)
        if assignment is None:
            return Response({"tier": None, "discount_percent": "0"})
        data = UserDiscountTierSerializer(assignment).data
        data["discount_percent"] = str(tier_commands.discount_percent_for(actor.user))
        return Response(data)


class MySavingsView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "discounts.view")
        return Response(tier_commands.tier_savings(actor.user))
