"""
Tenant API.

/api/tenants/ is the platform operator surface (SUPER_ADMIN);
/api/tenants/current/ lets any member read their own tenant.
"""
from django.db.models import Q
from django.http import Http404
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.authz import resolve_actor, require
from b2b_backend.pagination import paginate
from tenant.commands import create_tenant, update_tenant, delete_tenant
from tenant.models import Tenant
from tenant.serializers import TenantSerializer, TenantCreateSerializer, TenantUpdateSerializer


class TenantListCreateView(APIView):
    """
    GET /api/tenants/?search=&is_active=
    POST /api/tenants/
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "tenants.manage")

        qs = Tenant.objects.filter(deleted_at__isnull=True)
        search = request.query_params.get("search")
        if search:
            qs = qs.filter(Q(name__icontains=search) | Q(slug__icontains=search))
        is_active = request.query_params.get("is_active")
        if is_active in ("true", "false"):
            qs = qs.filter(is_active=is_active == "true")
        return Response(paginate(request, qs.order_by("name"), TenantSerializer))

    def post(self, request):
        actor = resolve_actor(request)
        serializer = TenantCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = create_tenant(actor, **serializer.validated_data)
        if not result.success:
            return Response({"detail": result.error}, status=status.HTTP_400_BAD_REQUEST)
        return Response(TenantSerializer(result.data).data, status=status.HTTP_201_CREATED)


class TenantDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        actor = resolve_actor(request)
        require(actor, "tenants.manage")
        tenant = Tenant.objects.filter(public_id=pk, deleted_at__isnull=True).first()
        if tenant is None:
            raise Http404("Tenant not found.")
        return Response(TenantSerializer(tenant).data)

    def patch(self, request, pk):
        actor = resolve_actor(request)
        serializer = TenantUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        result = update_tenant(actor, pk, **serializer.validated_data)
        if not result.success:
            return Response({"detail": result.error}, status=status.HTTP_400_BAD_REQUEST)
        return Response(TenantSerializer(result.data).data)

    def delete(self, request, pk):
        actor = resolve_actor(request)
        result = delete_tenant(actor, pk)
        if not result.success:
            return Response({"detail": result.error}, status=status.HTTP_400_BAD_REQUEST)
        return Response(status=status.HTTP_204_NO_CONTENT)


class CurrentTenantView(APIView):
    """GET /api/tenants/current/"""
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "tenants.view")
        return Response(TenantSerializer(actor.tenant).data)
