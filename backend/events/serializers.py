# events/serializers.py
"""Serializers for the audit API."""

from rest_framework import serializers

from events.models import BusinessEvent


class BusinessEventSerializer(serializers.ModelSerializer):
    id = serializers.UUIDField(source="public_id", read_only=True)
    caused_by_user_email = serializers.CharField(
        source="caused_by_user.email",
        read_only=True,
        default=None,
    )

    class Meta:
        model = BusinessEvent
        fields = [
            "id",
            "event_type",
            "aggregate_type",
            "aggregate_id",
            "data",
            "metadata",
            "caused_by_user_email",
            "occurred_at",
            "recorded_at",
        ]
