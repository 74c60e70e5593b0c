# accounts/views.py
"""
Thin views that delegate to the commands layer.

Views handle: HTTP parsing, authentication, response formatting.
Commands handle: business logic, validation, events.
"""
from django.db.models import Q
from django.http import Http404
from rest_framework import generics, permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import RefreshToken
from rest_framework_simplejwt.views import TokenRefreshView

from b2b_backend.pagination import paginate
from .authz import resolve_actor, require
from .commands import (
    register_signup,
    record_login,
    change_password,
    create_user,
    update_user,
    change_user_role,
    set_user_active,
    delete_user,
    create_organization,
    update_organization,
    delete_organization,
    restore_organization,
    organization_hierarchy,
)
from .models import Organization, User
from .permission_defaults import all_permission_codes, permissions_for_role
from .serializers import (
    ChangePasswordSerializer,
    EmailTokenObtainPairSerializer,
    OrganizationCreateSerializer,
    OrganizationSerializer,
    OrganizationUpdateSerializer,
    ProfileSerializer,
    RegistrationSerializer,
    UserCreateSerializer,
    UserRoleSerializer,
    UserSerializer,
    UserStatusSerializer,
    UserUpdateSerializer,
    tokens_for_user,
)
from .throttles import LoginThrottle, RegistrationThrottle


def _fail(result):
    return Response({"detail": result.error}, status=status.HTTP_400_BAD_REQUEST)


# =============================================================================
# Authentication
# =============================================================================

class RegisterView(generics.GenericAPIView):
    serializer_class = RegistrationSerializer
    permission_classes = [permissions.AllowAny]
    authentication_classes = []
    throttle_classes = [RegistrationThrottle]

    def post(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = register_signup(**serializer.validated_data)
        if not result.success:
            return _fail(result)
        user = result.data["user"]
        return Response(
            {"user": UserSerializer(user).data, **tokens_for_user(user)},
            status=status.HTTP_201_CREATED,
        )


class LoginView(generics.GenericAPIView):
    serializer_class = EmailTokenObtainPairSerializer
    permission_classes = [permissions.AllowAny]
    authentication_classes = []
    throttle_classes = [LoginThrottle]

    def post(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        record_login(serializer.user)
        return Response(serializer.validated_data, status=status.HTTP_200_OK)


class RefreshView(TokenRefreshView):
    authentication_classes = []


class LogoutView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, *args, **kwargs):
        refresh_token = request.data.get("refresh")
        if not refresh_token:
            return Response({"detail": "Refresh token required"}, status=status.HTTP_400_BAD_REQUEST)
        try:
            token = RefreshToken(refresh_token)
            token.blacklist()
        except TokenError:
            return Response({"detail": "Invalid token"}, status=status.HTTP_400_BAD_REQUEST)
        return Response(status=status.HTTP_204_NO_CONTENT)


class MeView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, *args, **kwargs):
        user = request.user
        if user.role == User.Role.SUPER_ADMIN:
            perms = all_permission_codes()
        else:
            perms = permissions_for_role(user.role)
        return Response(ProfileSerializer.from_actor(user, perms).data)


class ChangePasswordView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        actor = resolve_actor(request)
        serializer = ChangePasswordSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = change_password(actor, **serializer.validated_data)
        if not result.success:
            return _fail(result)
        return Response(status=status.HTTP_204_NO_CONTENT)


# =============================================================================
# Users
# =============================================================================

class UserListCreateView(APIView):
    """
    GET /api/users/?search=&role=&is_active=&organization_id=
    POST /api/users/
    """
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "users.view")

        qs = User.objects.filter(tenant=actor.tenant, deleted_at__isnull=True).select_related("organization")
        params = request.query_params
        if params.get("search"):
            term = params["search"]
            qs = qs.filter(Q(email__icontains=term) | Q(first_name__icontains=term) | Q(last_name__icontains=term))
        if params.get("role"):
            qs = qs.filter(role=params["role"])
        if params.get("is_active") in ("true", "false"):
            qs = qs.filter(is_active=params["is_active"] == "true")
        if params.get("organization_id"):
            qs = qs.filter(organization__public_id=params["organization_id"])

        return Response(paginate(request, qs.order_by("email"), UserSerializer))

    def post(self, request):
        actor = resolve_actor(request)
        serializer = UserCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = create_user(actor, **serializer.validated_data)
        if not result.success:
            return _fail(result)
        return Response(UserSerializer(result.data).data, status=status.HTTP_201_CREATED)


class UserDetailView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, pk):
        actor = resolve_actor(request)
        require(actor, "users.view")
        user = User.objects.filter(tenant=actor.tenant, public_id=pk, deleted_at__isnull=True).first()
        if not user:
            raise Http404("User not found.")
        return Response(UserSerializer(user).data)

    def patch(self, request, pk):
        actor = resolve_actor(request)
        serializer = UserUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        result = update_user(actor, pk, **serializer.validated_data)
        if not result.success:
            return _fail(result)
        return Response(UserSerializer(result.data).data)

    def delete(self, request, pk):
        actor = resolve_actor(request)
        result = delete_user(actor, pk)
        if not result.success:
            return _fail(result)
        return Response(status=status.HTTP_204_NO_CONTENT)


class UserRoleView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def put(self, request, pk):
        actor = resolve_actor(request)
        serializer = UserRoleSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = change_user_role(actor, pk, serializer.validated_data["role"])
        if not result.success:
            return _fail(result)
        return Response(UserSerializer(result.data).data)


class UserStatusView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def put(self, request, pk):
        actor = resolve_actor(request)
        serializer = UserStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = set_user_active(actor, pk, serializer.validated_data["is_active"])
        if not result.success:
            return _fail(result)
        return Response(UserSerializer(result.data).data)


# =============================================================================
# Organizations
# =============================================================================

class OrganizationListCreateView(APIView):
    """
    GET /api/organizations/?search=&is_active=&parent_id=&include_deleted=
    POST /api/organizations/
    """
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "organizations.view")

        params = request.query_params
        qs = Organization.objects.filter(tenant=actor.tenant).select_related("parent")
        if params.get("include_deleted") != "true":
            qs = qs.filter(deleted_at__isnull=True)
        if params.get("search"):
            qs = qs.filter(Q(name__icontains=params["search"]) | Q(code__icontains=params["search"]))
        if params.get("is_active") in ("true", "false"):
            qs = qs.filter(is_active=params["is_active"] == "true")
        if params.get("parent_id"):
            qs = qs.filter(parent__public_id=params["parent_id"])

        return Response(paginate(request, qs.order_by("name"), OrganizationSerializer))

    def post(self, request):
        actor = resolve_actor(request)
        serializer = OrganizationCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = create_organization(actor, **serializer.validated_data)
        if not result.success:
            return _fail(result)
        return Response(OrganizationSerializer(result.data).data, status=status.HTTP_201_CREATED)


class OrganizationDetailView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, pk):
        actor = resolve_actor(request)
        require(actor, "organizations.view")
        org = Organization.objects.filter(tenant=actor.tenant, public_id=pk, deleted_at__isnull=True).first()
        if not org:
            raise Http404("Organization not found.")
        return Response(OrganizationSerializer(org).data)

    def patch(self, request, pk):
        actor = resolve_actor(request)
        serializer = OrganizationUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        result = update_organization(actor, pk, **serializer.validated_data)
        if not result.success:
            return _fail(result)
        return Response(OrganizationSerializer(result.data).data)

    def delete(self, request, pk):
        actor = resolve_actor(request)
        result = delete_organization(actor, pk)
        if not result.success:
            return _fail(result)
        return Response(status=status.HTTP_204_NO_CONTENT)


class OrganizationByCodeView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, code):
        actor = resolve_actor(request)
        require(actor, "organizations.view")
        org = Organization.objects.filter(tenant=actor.tenant, code=code, deleted_at__isnull=True).first()
        if not org:
            raise Http404("Organization not found.")
        return Response(OrganizationSerializer(org).data)


class OrganizationRestoreView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, pk):
        actor = resolve_actor(request)
        result = restore_organization(actor, pk)
        if not result.success:
            return _fail(result)
        return Response(OrganizationSerializer(result.data).data)


class OrganizationHierarchyView(APIView):
    """GET /api/organizations/hierarchy/?root_id="""
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "organizations.view")
        root = None
        root_id = request.query_params.get("root_id")
        if root_id:
            root = Organization.objects.filter(
                tenant=actor.tenant, public_id=root_id, deleted_at__isnull=True,
            ).first()
            if root is None:
                raise Http404("Organization not found.")
        return Response(organization_hierarchy(actor.tenant, root))
