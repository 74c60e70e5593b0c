# events/views.py
"""
Audit API views.

All endpoints require ``audit.view`` and are scoped to the actor's tenant.
"""

from django.http import Http404
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.authz import resolve_actor, require
from b2b_backend.pagination import paginate
from events.models import BusinessEvent
from events.serializers import BusinessEventSerializer


class EventListView(APIView):
    """
    GET /api/audit/

    Filters: event_type, aggregate_type, aggregate_id, user_id,
    occurred_at__gte, occurred_at__lte.
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "audit.view")

        qs = BusinessEvent.objects.filter(tenant=actor.tenant).select_related("caused_by_user")
        params = request.query_params

        if params.get("event_type"):
            qs = qs.filter(event_type=params["event_type"])
        if params.get("aggregate_type"):
            qs = qs.filter(aggregate_type=params["aggregate_type"])
        if params.get("aggregate_id"):
            qs = qs.filter(aggregate_id=params["aggregate_id"])
        if params.get("user_id"):
            qs = qs.filter(caused_by_user_id=params["user_id"])
        if params.get("occurred_at__gte"):
            qs = qs.filter(occurred_at__gte=params["occurred_at__gte"])
        if params.get("occurred_at__lte"):
            qs = qs.filter(occurred_at__lte=params["occurred_at__lte"])

        return Response(paginate(request, qs.order_by("-occurred_at", "-id"), BusinessEventSerializer))


class EventDetailView(APIView):
    """GET /api/audit/<uuid>/"""
    permission_classes = [IsAuthenticated]

    def get(self, request, public_id):
        actor = resolve_actor(request)
        require(actor, "audit.view")
        event = BusinessEvent.objects.filter(tenant=actor.tenant, public_id=public_id).first()
        if not event:
            raise Http404("Event not found.")
        return Response(BusinessEventSerializer(event).data)


class AggregateHistoryView(APIView):
    """GET /api/audit/aggregate/<type>/<id>/ -> oldest first"""
    permission_classes = [IsAuthenticated]

    def get(self, request, aggregate_type, aggregate_id):
        actor = resolve_actor(request)
        require(actor, "audit.view")
        qs = BusinessEvent.objects.filter(
            tenant=actor.tenant,
            aggregate_type=aggregate_type,
            aggregate_id=aggregate_id,
        ).select_related("caused_by_user").order_by("occurred_at", "id")
        return Response(BusinessEventSerializer(qs, many=True).data)
