from django.contrib.auth import authenticate
from rest_framework import serializers
from rest_framework.exceptions import AuthenticationFailed
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer
from rest_framework_simplejwt.tokens import RefreshToken

from tenant.serializers import TenantSerializer
from .models import Organization, User


def tokens_for_user(user: User) -> dict:
    """JWT pair carrying the tenant_id and role claims read by TenantMiddleware."""
    refresh = RefreshToken.for_user(user)
    refresh["tenant_id"] = user.tenant_id
    refresh["role"] = user.role
    return {"access": str(refresh.access_token), "refresh": str(refresh)}


class OrganizationSummarySerializer(serializers.ModelSerializer):
    id = serializers.UUIDField(source="public_id", read_only=True)

    class Meta:
        model = Organization
        fields = ("id", "name", "code")


class UserSerializer(serializers.ModelSerializer):
    id = serializers.UUIDField(source="public_id", read_only=True)
    organization = OrganizationSummarySerializer(read_only=True)

    class Meta:
        model = User
        fields = (
            "id",
            "email",
            "first_name",
            "last_name",
            "role",
            "is_active",
            "organization",
            "last_login_at",
            "date_joined",
        )


class RegistrationSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField(min_length=8, write_only=True)
    tenant_name = serializers.CharField(max_length=255)
    first_name = serializers.CharField(max_length=150, required=False, allow_blank=True, default="")
    last_name = serializers.CharField(max_length=150, required=False, allow_blank=True, default="")


class EmailTokenObtainPairSerializer(TokenObtainPairSerializer):
    username_field = User.EMAIL_FIELD

    def validate(self, attrs):
        authenticate_kwargs = {
            self.username_field: (attrs.get("email") or "").lower().strip(),
            "password": attrs.get("password"),
        }
        user = authenticate(request=self.context.get("request"), **authenticate_kwargs)
        if not user or user.deleted_at is not None:
            raise AuthenticationFailed("Invalid credentials")
        if user.tenant is None or not user.tenant.is_accessible:
            raise AuthenticationFailed("Your tenant is inactive.")
        self.user = user
        return tokens_for_user(user)


class ChangePasswordSerializer(serializers.Serializer):
    current_password = serializers.CharField(write_only=True)
    new_password = serializers.CharField(min_length=8, write_only=True)


class ProfileSerializer(serializers.Serializer):
    user = UserSerializer()
    tenant = TenantSerializer(allow_null=True)
    permissions = serializers.ListField(child=serializers.CharField())

    @classmethod
    def from_actor(cls, user, permissions):
        return cls(instance={
            "user": user,
            "tenant": user.tenant,
            "permissions": sorted(permissions),
        })


# =============================================================================
# User management
# =============================================================================

class UserCreateSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField(min_length=8, write_only=True)
    first_name = serializers.CharField(max_length=150, required=False, allow_blank=True, default="")
    last_name = serializers.CharField(max_length=150, required=False, allow_blank=True, default="")
    role = serializers.ChoiceField(choices=User.Role.choices, default=User.Role.USER)
    organization_id = serializers.UUIDField(required=False, allow_null=True)


class UserUpdateSerializer(serializers.Serializer):
    first_name = serializers.CharField(max_length=150, required=False, allow_blank=True)
    last_name = serializers.CharField(max_length=150, required=False, allow_blank=True)
    organization_id = serializers.UUIDField(required=False, allow_null=True)


class UserRoleSerializer(serializers.Serializer):
    role = serializers.ChoiceField(choices=User.Role.choices)


class UserStatusSerializer(serializers.Serializer):
    is_active = serializers.BooleanField()


# =============================================================================
# Organizations
# =============================================================================

class OrganizationSerializer(serializers.ModelSerializer):
    id = serializers.UUIDField(source="public_id", read_only=True)
    parent_id = serializers.UUIDField(source="parent.public_id", read_only=True, default=None)

    class Meta:
        model = Organization
        fields = (
            "id",
            "name",
            "code",
            "description",
            "parent_id",
            "is_active",
            "metadata",
            "created_at",
            "updated_at",
            "deleted_at",
        )


class OrganizationCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    code = serializers.CharField(max_length=50)
    description = serializers.CharField(required=False, allow_blank=True, default="")
    parent_id = serializers.UUIDField(required=False, allow_null=True)
    is_active = serializers.BooleanField(required=False, default=True)
    metadata = serializers.JSONField(required=False, default=dict)


class OrganizationUpdateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255, required=False)
    code = serializers.CharField(max_length=50, required=False)
    description = serializers.CharField(required=False, allow_blank=True)
    parent_id = serializers.UUIDField(required=False, allow_null=True)
    is_active = serializers.BooleanField(required=False)
    metadata = serializers.JSONField(required=False)
