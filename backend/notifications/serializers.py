from rest_framework import serializers

from notifications.models import Notification


class NotificationSerializer(serializers.ModelSerializer):
    id = serializers.UUIDField(source="public_id", read_only=True)

    class Meta:
        model = Notification
        fields = ("id", "type", "title", "message", "data", "is_read", "read_at", "created_at")


class NotificationCreateSerializer(serializers.Serializer):
    user_id = serializers.UUIDField()
    type = serializers.ChoiceField(choices=Notification.Type.choices, default=Notification.Type.INFO)
    title = serializers.CharField(max_length=255)
    message = serializers.CharField()
    data = serializers.JSONField(required=False, default=dict)
    send_email = serializers.BooleanField(required=False, default=False)


class NotificationBulkCreateSerializer(serializers.Serializer):
    user_ids = serializers.ListField(child=serializers.UUIDField(), min_length=1)
    type = serializers.ChoiceField(choices=Notification.Type.choices, default=Notification.Type.INFO)
    title = serializers.CharField(max_length=255)
    message = serializers.CharField()
    data = serializers.JSONField(required=False, default=dict)
    send_email = serializers.BooleanField(required=False, default=False)


class MarkReadSerializer(serializers.Serializer):
    ids = serializers.ListField(child=serializers.UUIDField(), min_length=1)
