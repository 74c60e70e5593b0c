# integrations/views.py
"""
Integration hub endpoints.

Connector registry and transformations are platform-wide: anyone with
integrations.view can read them, only platform operators change them.
Everything else is scoped to the actor's tenant.
"""
from django.db.models import Q
from django.http import Http404
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.authz import require, resolve_actor
from b2b_backend.pagination import paginate
from integrations import commands, hub
from integrations.models import (
    Connector,
    ConnectorConfig,
    CredentialVault,
    DeadLetter,
    IntegrationMessage,
    Transformation,
)
from integrations.serializers import (
    ActiveSerializer,
    BulkReprocessSerializer,
    ConnectionTestSerializer,
    ConnectorConfigCreateSerializer,
    ConnectorConfigSerializer,
    ConnectorConfigUpdateSerializer,
    ConnectorCreateSerializer,
    ConnectorEventSerializer,
    ConnectorSerializer,
    ConnectorUpdateSerializer,
    CredentialCreateSerializer,
    CredentialRotateSerializer,
    CredentialSerializer,
    CredentialUpdateSerializer,
    DeadLetterSerializer,
    IntegrationMessageSerializer,
    ProcessingResultSerializer,
    SendMessageSerializer,
    TransformationCreateSerializer,
    TransformationSerializer,
    TransformationUpdateSerializer,
    TransformTestSerializer,
)


def _fail(result):
    return Response({"detail": result.error}, status=status.HTTP_400_BAD_REQUEST)


def _get_connector(pk) -> Connector:
    connector = Connector.objects.filter(public_id=pk).first()
    if connector is None:
        raise Http404("Connector not found.")
    return connector


# =============================================================================
# Connectors
# =============================================================================

class ConnectorListCreateView(APIView):
    """
    GET /api/integrations/connectors/?type=&is_active=&search=
    POST /api/integrations/connectors/
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "integrations.view")

        params = request.query_params
        qs = Connector.objects.all()
        if params.get("type"):
            qs = qs.filter(type=params["type"])
        if params.get("is_active") in ("true", "false"):
            qs = qs.filter(is_active=params["is_active"] == "true")
        if params.get("search"):
            qs = qs.filter(Q(code__icontains=params["search"]) | Q(name__icontains=params["search"]))
        return Response(paginate(request, qs.order_by("code"), ConnectorSerializer))

    def post(self, request):
        actor = resolve_actor(request)
        serializer = ConnectorCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = commands.register_connector(actor, **serializer.validated_data)
        if not result.success:
            return _fail(result)
        return Response(ConnectorSerializer(result.data).data, status=status.HTTP_201_CREATED)


class ConnectorDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        actor = resolve_actor(request)
        require(actor, "integrations.view")
        return Response(ConnectorSerializer(_get_connector(pk)).data)

    def patch(self, request, pk):
        actor = resolve_actor(request)
        serializer = ConnectorUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        result = commands.update_connector(actor, pk, **serializer.validated_data)
        if not result.success:
            return _fail(result)
        return Response(ConnectorSerializer(result.data).data)

    def delete(self, request, pk):
        actor = resolve_actor(request)
        result = commands.delete_connector(actor, pk)
        if not result.success:
            return _fail(result)
        return Response(status=status.HTTP_204_NO_CONTENT)


class ConnectorStatusView(APIView):
    permission_classes = [IsAuthenticated]

    def put(self, request, pk):
        actor = resolve_actor(request)
        serializer = ActiveSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = commands.set_connector_active(actor, pk, serializer.validated_data["is_active"])
        if not result.success:
            return _fail(result)
        return Response(ConnectorSerializer(result.data).data)


class ConnectorCircuitResetView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, pk):
        actor = resolve_actor(request)
        result = commands.reset_connector_circuit(actor, pk)
        if not result.success:
            return _fail(result)
        return Response(ConnectorSerializer(result.data).data)


class ConnectorRateLimitResetView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, pk):
        actor = resolve_actor(request)
        result = commands.reset_connector_rate_limit(actor, pk)
        if not result.success:
            return _fail(result)
        return Response(ConnectorSerializer(result.data).data)


class ConnectorHealthView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        actor = resolve_actor(request)
        require(actor, "integrations.view")
        return Response(hub.connector_health(_get_connector(pk)))


class ConnectorEventsView(APIView):
    """GET /api/integrations/connectors/<id>/events/ (own tenant plus platform events)"""
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        actor = resolve_actor(request)
        require(actor, "integrations.view")
        connector = _get_connector(pk)
        qs = connector.events.select_related("user", "config")
        if not actor.is_super_admin:
            qs = qs.filter(Q(tenant=actor.tenant) | Q(tenant__isnull=True))
        if request.query_params.get("event_type"):
            qs = qs.filter(event_type=request.query_params["event_type"])
        return Response(paginate(request, qs.order_by("-created_at"), ConnectorEventSerializer))


class HealthOverviewView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "integrations.view")
        return Response({"connectors": hub.all_connectors_health()})


# =============================================================================
# Configs
# =============================================================================

class ConnectorConfigListCreateView(APIView):
    """
    GET /api/integrations/configs/?connector=&is_active=
    POST /api/integrations/configs/
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "integrations.view")

        params = request.query_params
        qs = ConnectorConfig.objects.filter(tenant=actor.tenant).select_related("connector", "credential_vault")
        if params.get("connector"):
            qs = qs.filter(connector__code=params["connector"])
        if params.get("is_active") in ("true", "false"):
            qs = qs.filter(is_active=params["is_active"] == "true")
        return Response(paginate(request, qs.order_by("connector__code", "name"), ConnectorConfigSerializer))

    def post(self, request):
        actor = resolve_actor(request)
        serializer = ConnectorConfigCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = commands.create_config(actor, **serializer.validated_data)
        if not result.success:
            return _fail(result)
        return Response(ConnectorConfigSerializer(result.data).data, status=status.HTTP_201_CREATED)


class ConnectorConfigDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        actor = resolve_actor(request)
        require(actor, "integrations.view")
        config = (
            ConnectorConfig.objects
            .select_related("connector", "credential_vault")
            .filter(tenant=actor.tenant, public_id=pk)
            .first()
        )
        if config is None:
            raise Http404("Connector config not found.")
        return Response(ConnectorConfigSerializer(config).data)

    def patch(self, request, pk):
        actor = resolve_actor(request)
        serializer = ConnectorConfigUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        result = commands.update_config(actor, pk, **serializer.validated_data)
        if not result.success:
            return _fail(result)
        return Response(ConnectorConfigSerializer(result.data).data)

    def delete(self, request, pk):
        actor = resolve_actor(request)
        result = commands.delete_config(actor, pk)
        if not result.success:
            return _fail(result)
        return Response(status=status.HTTP_204_NO_CONTENT)


class ConnectorConfigTestView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, pk):
        actor = resolve_actor(request)
        result = commands.test_config(actor, pk)
        if not result.success:
            return _fail(result)
        return Response(ConnectionTestSerializer(result.data).data)


# =============================================================================
# Credentials
# =============================================================================

class CredentialListCreateView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "integrations.manage")
        qs = CredentialVault.objects.filter(tenant=actor.tenant).select_related("created_by")
        if request.query_params.get("type"):
            qs = qs.filter(type=request.query_params["type"])
        return Response(paginate(request, qs.order_by("name"), CredentialSerializer))

    def post(self, request):
        actor = resolve_actor(request)
        serializer = CredentialCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = commands.create_credential(actor, **serializer.validated_data)
        if not result.success:
            return _fail(result)
        return Response(CredentialSerializer(result.data).data, status=status.HTTP_201_CREATED)


class CredentialDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        actor = resolve_actor(request)
        require(actor, "integrations.manage")
        credential = CredentialVault.objects.filter(tenant=actor.tenant, public_id=pk).first()
        if credential is None:
            raise Http404("Credential not found.")
        return Response(CredentialSerializer(credential).data)

    def patch(self, request, pk):
        actor = resolve_actor(request)
        serializer = CredentialUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        result = commands.update_credential(actor, pk, **serializer.validated_data)
        if not result.success:
            return _fail(result)
        return Response(CredentialSerializer(result.data).data)

    def delete(self, request, pk):
        actor = resolve_actor(request)
        result = commands.delete_credential(actor, pk)
        if not result.success:
            return _fail(result)
        return Response(status=status.HTTP_204_NO_CONTENT)


class CredentialRotateView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, pk):
        actor = resolve_actor(request)
        serializer = CredentialRotateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = commands.rotate_credential(actor, pk, serializer.validated_data["data"])
        if not result.success:
            return _fail(result)
        return Response(CredentialSerializer(result.data).data)


# =============================================================================
# Transformations
# =============================================================================

class TransformationListCreateView(APIView):
    """
    GET /api/integrations/transformations/?source_connector=&target_connector=&source_type=&is_active=
    POST /api/integrations/transformations/
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "integrations.view")

        params = request.query_params
        qs = Transformation.objects.all()
        for field in ("source_connector", "target_connector", "source_type"):
            if params.get(field):
                qs = qs.filter(**{field: params[field]})
        if params.get("is_active") in ("true", "false"):
            qs = qs.filter(is_active=params["is_active"] == "true")
        return Response(paginate(request, qs.order_by("-priority", "name"), TransformationSerializer))

    def post(self, request):
        actor = resolve_actor(request)
        serializer = TransformationCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = commands.create_transformation(actor, **serializer.validated_data)
        if not result.success:
            return _fail(result)
        return Response(TransformationSerializer(result.data).data, status=status.HTTP_201_CREATED)


class TransformationDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        actor = resolve_actor(request)
        require(actor, "integrations.view")
        transformation = Transformation.objects.filter(public_id=pk).first()
        if transformation is None:
            raise Http404("Transformation not found.")
        return Response(TransformationSerializer(transformation).data)

    def patch(self, request, pk):
        actor = resolve_actor(request)
        serializer = TransformationUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        result = commands.update_transformation(actor, pk, **serializer.validated_data)
        if not result.success:
            return _fail(result)
        return Response(TransformationSerializer(result.data).data)

    def delete(self, request, pk):
        actor = resolve_actor(request)
        result = commands.delete_transformation(actor, pk)
        if not result.success:
            return _fail(result)
        return Response(status=status.HTTP_204_NO_CONTENT)


class TransformationTestView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request):
        actor = resolve_actor(request)
        serializer = TransformTestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = commands.test_transformation(actor, **serializer.validated_data)
        if not result.success:
            return _fail(result)
        return Response({
            "transformation_id": result.data.transformation_id,
            "canonical_payload": result.data.canonical_payload,
            "target_payload": result.data.target_payload,
        })


# =============================================================================
# Messages
# =============================================================================

class MessageListCreateView(APIView):
    """
    GET /api/integrations/messages/?source=&target=&status=&type=&correlation_id=&include_dlq=
    POST /api/integrations/messages/
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "integrations.view")

        params = request.query_params
        qs = IntegrationMessage.objects.filter(tenant=actor.tenant)
        if params.get("source"):
            qs = qs.filter(source_connector=params["source"])
        if params.get("target"):
            qs = qs.filter(target_connector=params["target"])
        if params.get("status"):
            qs = qs.filter(status=params["status"])
        elif params.get("include_dlq") != "true":
            qs = qs.exclude(status=IntegrationMessage.Status.DEAD_LETTER)
        if params.get("type"):
            qs = qs.filter(type=params["type"])
        if params.get("correlation_id"):
            qs = qs.filter(correlation_id=params["correlation_id"])
        return Response(paginate(request, qs.order_by("-received_at"), IntegrationMessageSerializer))

    def post(self, request):
        actor = resolve_actor(request)
        serializer = SendMessageSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = commands.send_message(actor, **serializer.validated_data)
        if not result.success:
            return _fail(result)
        return Response(ProcessingResultSerializer(result.data).data, status=status.HTTP_202_ACCEPTED)


class MessageDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, message_id):
        actor = resolve_actor(request)
        require(actor, "integrations.view")
        message = IntegrationMessage.objects.filter(tenant=actor.tenant, message_id=message_id).first()
        if message is None:
            raise Http404("Message not found.")
        return Response(IntegrationMessageSerializer(message).data)


# =============================================================================
# Dead letters
# =============================================================================

class DeadLetterListView(APIView):
    """GET /api/integrations/dead-letters/?connector=&reason=&retryable=&reprocessed="""
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "integrations.view")

        params = request.query_params
        qs = DeadLetter.objects.filter(tenant=actor.tenant).select_related("reprocessed_by")
        if params.get("connector"):
            qs = qs.filter(connector=params["connector"])
        if params.get("reason"):
            qs = qs.filter(reason=params["reason"])
        if params.get("retryable") in ("true", "false"):
            qs = qs.filter(retryable=params["retryable"] == "true")
        if params.get("reprocessed") in ("true", "false"):
            qs = qs.filter(reprocessed_at__isnull=params["reprocessed"] == "false")
        return Response(paginate(request, qs.order_by("-created_at"), DeadLetterSerializer))


class DeadLetterDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        actor = resolve_actor(request)
        require(actor, "integrations.view")
        entry = DeadLetter.objects.filter(tenant=actor.tenant, public_id=pk).first()
        if entry is None:
            raise Http404("Dead letter entry not found.")
        return Response(DeadLetterSerializer(entry).data)


class DeadLetterReprocessView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, pk):
        actor = resolve_actor(request)
        result = commands.reprocess_dead_letter(actor, pk)
        if not result.success:
            return _fail(result)
        return Response(ProcessingResultSerializer(result.data).data)


class DeadLetterBulkReprocessView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request):
        actor = resolve_actor(request)
        serializer = BulkReprocessSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = commands.bulk_reprocess_dead_letters(actor, **serializer.validated_data)
        return Response(result.data)


class DeadLetterStatsView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "integrations.view")
        return Response(hub.dead_letter_stats(tenant=actor.tenant))
