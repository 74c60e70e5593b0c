"""
Notification API. Users only ever see their own notifications.
"""
from django.http import Http404
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.authz import resolve_actor, require
from b2b_backend.pagination import paginate
from notifications.commands import (
    create_notification,
    create_bulk_notifications,
    mark_as_read,
    mark_many_as_read,
    mark_all_as_read,
    delete_notification,
    unread_count,
)
from notifications.models import Notification
from notifications.serializers import (
    NotificationSerializer,
    NotificationCreateSerializer,
    NotificationBulkCreateSerializer,
    MarkReadSerializer,
)


class NotificationListCreateView(APIView):
    """
    GET /api/notifications/?type=&is_read=
    POST /api/notifications/ (admin: notify a user)
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "notifications.use")

        qs = Notification.objects.filter(user=actor.user)
        if request.query_params.get("type"):
            qs = qs.filter(type=request.query_params["type"])
        is_read = request.query_params.get("is_read")
        if is_read in ("true", "false"):
            qs = qs.filter(is_read=is_read == "true")
        return Response(paginate(request, qs, NotificationSerializer))

    def post(self, request):
        actor = resolve_actor(request)
        serializer = NotificationCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = create_notification(actor, **serializer.validated_data)
        if not result.success:
            return Response({"detail": result.error}, status=status.HTTP_400_BAD_REQUEST)
        return Response(NotificationSerializer(result.data).data, status=status.HTTP_201_CREATED)


class NotificationBulkCreateView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request):
        actor = resolve_actor(request)
        serializer = NotificationBulkCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = create_bulk_notifications(actor, **serializer.validated_data)
        if not result.success:
            return Response({"detail": result.error}, status=status.HTTP_400_BAD_REQUEST)
        return Response({"created": len(result.data)}, status=status.HTTP_201_CREATED)


class NotificationDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        actor = resolve_actor(request)
        notification = Notification.objects.filter(user=actor.user, public_id=pk).first()
        if notification is None:
            raise Http404("Notification not found.")
        return Response(NotificationSerializer(notification).data)

    def delete(self, request, pk):
        actor = resolve_actor(request)
        result = delete_notification(actor, pk)
        if not result.success:
            raise Http404(result.error)
        return Response(status=status.HTTP_204_NO_CONTENT)


class NotificationReadView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, pk):
        actor = resolve_actor(request)
        result = mark_as_read(actor, pk)
        if not result.success:
            raise Http404(result.error)
        return Response(NotificationSerializer(result.data).data)


class NotificationReadManyView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request):
        actor = resolve_actor(request)
        serializer = MarkReadSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        return Response(mark_many_as_read(actor, serializer.validated_data["ids"]).data)


class NotificationReadAllView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request):
        actor = resolve_actor(request)
        return Response(mark_all_as_read(actor).data)


class UnreadCountView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        return Response({"count": unread_count(actor.user)})
