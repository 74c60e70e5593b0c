from rest_framework import serializers

from tenant.models import Tenant


class TenantSerializer(serializers.ModelSerializer):
    id = serializers.UUIDField(source="public_id", read_only=True)

    class Meta:
        model = Tenant
        fields = (
            "id",
            "name",
            "slug",
            "config",
            "status",
            "is_active",
            "created_at",
            "updated_at",
            "deleted_at",
        )


class TenantCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    slug = serializers.SlugField(max_length=100, required=False, allow_blank=True)
    config = serializers.JSONField(required=False, default=dict)
    is_active = serializers.BooleanField(required=False, default=True)


class TenantUpdateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255, required=False)
    config = serializers.JSONField(required=False)
    status = serializers.ChoiceField(choices=Tenant.Status.choices, required=False)
    is_active = serializers.BooleanField(required=False)
