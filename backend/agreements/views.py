# agreements/views.py
"""
Contract, quote and approval endpoints.

Each state change is its own POST action so the transition rules live in
the commands layer rather than in PATCH payload handling.
"""
from django.db.models import Q
from django.http import Http404
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.authz import require, resolve_actor
from agreements import approvals, contracts, quotes
from agreements.models import ApprovalChain, ApprovalRequest, Contract, Quote
from agreements.serializers import (
    ApprovalChainCreateSerializer,
    ApprovalChainSerializer,
    ApprovalChainUpdateSerializer,
    ApprovalRequestSerializer,
    ApprovalStepSerializer,
    ContractCreateSerializer,
    ContractSerializer,
    ContractUpdateSerializer,
    ContractVersionSerializer,
    DelegateSerializer,
    QuoteCreateSerializer,
    QuoteListSerializer,
    QuoteSerializer,
    QuoteUpdateSerializer,
    ReasonSerializer,
    StepDecisionSerializer,
    SubmitForApprovalSerializer,
)
from b2b_backend.pagination import paginate


def _fail(result):
    return Response({"detail": result.error}, status=status.HTTP_400_BAD_REQUEST)


# =============================================================================
# Contracts
# =============================================================================

class ContractListCreateView(APIView):
    """
    GET /api/contracts/?status=&search=&organization_id=&include_deleted=
    POST /api/contracts/
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "contracts.view")

        params = request.query_params
        qs = Contract.objects.filter(tenant=actor.tenant).select_related("organization", "created_by", "approved_by")
        if params.get("include_deleted") != "true":
            qs = qs.filter(deleted_at__isnull=True)
        if params.get("status"):
            qs = qs.filter(status=params["status"])
        if params.get("organization_id"):
            qs = qs.filter(organization__public_id=params["organization_id"])
        if params.get("search"):
            term = params["search"]
            qs = qs.filter(Q(title__icontains=term) | Q(contract_number__icontains=term))

        return Response(paginate(request, qs.order_by("-created_at"), ContractSerializer))

    def post(self, request):
        actor = resolve_actor(request)
        serializer = ContractCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = contracts.create_contract(actor, **serializer.validated_data)
        if not result.success:
            return _fail(result)
        return Response(ContractSerializer(result.data).data, status=status.HTTP_201_CREATED)


class ContractDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        actor = resolve_actor(request)
        require(actor, "contracts.view")
        contract = contracts.get_contract(actor, pk)
        if contract is None:
            raise Http404("Contract not found.")
        return Response(ContractSerializer(contract).data)

    def patch(self, request, pk):
        actor = resolve_actor(request)
        serializer = ContractUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        result = contracts.update_contract(actor, pk, **serializer.validated_data)
        if not result.success:
            return _fail(result)
        return Response(ContractSerializer(result.data).data)

    def delete(self, request, pk):
        actor = resolve_actor(request)
        result = contracts.delete_contract(actor, pk)
        if not result.success:
            return _fail(result)
        return Response(status=status.HTTP_204_NO_CONTENT)


class ContractVersionsView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        actor = resolve_actor(request)
        require(actor, "contracts.view")
        contract = contracts.get_contract(actor, pk, include_deleted=True)
        if contract is None:
            raise Http404("Contract not found.")
        versions = contract.versions.select_related("created_by").order_by("-version")
        return Response(ContractVersionSerializer(versions, many=True).data)


class ContractVersionDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, pk, version):
        actor = resolve_actor(request)
        require(actor, "contracts.view")
        contract = contracts.get_contract(actor, pk, include_deleted=True)
        if contract is None:
            raise Http404("Contract not found.")
        entry = contract.versions.select_related("created_by").filter(version=version).first()
        if entry is None:
            raise Http404("Contract version not found.")
        return Response(ContractVersionSerializer(entry).data)


class ContractActionView(APIView):
    """POST an action on a contract; subclasses name the command."""
    permission_classes = [IsAuthenticated]
    command = None
    takes_reason = False

    def post(self, request, pk):
        actor = resolve_actor(request)
        kwargs = {}
        if self.takes_reason:
            serializer = ReasonSerializer(data=request.data)
            serializer.is_valid(raise_exception=True)
            kwargs["reason"] = serializer.validated_data["reason"]
        result = type(self).command(actor, pk, **kwargs)
        if not result.success:
            return _fail(result)
        return Response(ContractSerializer(result.data).data)


class ContractRestoreView(ContractActionView):
    command = contracts.restore_contract


class ContractSubmitView(ContractActionView):
    command = contracts.submit_contract


class ContractApproveView(ContractActionView):
    command = contracts.approve_contract


class ContractRejectView(ContractActionView):
    command = contracts.reject_contract
    takes_reason = True


class ContractActivateView(ContractActionView):
    command = contracts.activate_contract


class ContractTerminateView(ContractActionView):
    command = contracts.terminate_contract
    takes_reason = True


class ContractCancelView(ContractActionView):
    command = contracts.cancel_contract
    takes_reason = True


# =============================================================================
# Quotes
# =============================================================================

class QuoteListCreateView(APIView):
    """
    GET /api/quotes/?status=&search=&contract_id=
    POST /api/quotes/
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "quotes.view")

        params = request.query_params
        qs = Quote.objects.filter(tenant=actor.tenant)
        if params.get("status"):
            qs = qs.filter(status=params["status"])
        if params.get("contract_id"):
            qs = qs.filter(contract__public_id=params["contract_id"])
        if params.get("search"):
            term = params["search"]
            qs = qs.filter(
                Q(title__icontains=term)
                | Q(quote_number__icontains=term)
                | Q(customer_name__icontains=term)
                | Q(customer_email__icontains=term)
            )

        return Response(paginate(request, qs.order_by("-created_at"), QuoteListSerializer))

    def post(self, request):
        actor = resolve_actor(request)
        serializer = QuoteCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = quotes.create_quote(actor, **serializer.validated_data)
        if not result.success:
            return _fail(result)
        return Response(QuoteSerializer(result.data).data, status=status.HTTP_201_CREATED)


class QuoteDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        actor = resolve_actor(request)
        require(actor, "quotes.view")
        quote = quotes.get_quote(actor, pk)
        if quote is None:
            raise Http404("Quote not found.")
        return Response(QuoteSerializer(quote).data)

    def patch(self, request, pk):
        actor = resolve_actor(request)
        serializer = QuoteUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        result = quotes.update_quote(actor, pk, **serializer.validated_data)
        if not result.success:
            return _fail(result)
        return Response(QuoteSerializer(result.data).data)

    def delete(self, request, pk):
        actor = resolve_actor(request)
        result = quotes.delete_quote(actor, pk)
        if not result.success:
            return _fail(result)
        return Response(status=status.HTTP_204_NO_CONTENT)


class QuoteActionView(APIView):
    permission_classes = [IsAuthenticated]
    command = None
    takes_reason = False

    def post(self, request, pk):
        actor = resolve_actor(request)
        kwargs = {}
        if self.takes_reason:
            serializer = ReasonSerializer(data=request.data)
            serializer.is_valid(raise_exception=True)
            kwargs["reason"] = serializer.validated_data["reason"]
        result = type(self).command(actor, pk, **kwargs)
        if not result.success:
            return _fail(result)
        return Response(QuoteSerializer(result.data).data)


class QuoteSubmitView(QuoteActionView):
    command = quotes.submit_quote


class QuoteApproveView(QuoteActionView):
    command = quotes.approve_quote


class QuoteRejectView(QuoteActionView):
    command = quotes.reject_quote
    takes_reason = True


class QuoteSendView(QuoteActionView):
    command = quotes.send_quote


class QuoteAcceptView(QuoteActionView):
    command = quotes.accept_quote


class QuoteDeclineView(QuoteActionView):
    command = quotes.customer_reject_quote
    takes_reason = True


class QuoteConvertView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, pk):
        actor = resolve_actor(request)
        result = quotes.convert_to_contract(actor, pk)
        if not result.success:
            return _fail(result)
        return Response(
            {
                "quote": QuoteSerializer(result.data["quote"]).data,
                "contract": ContractSerializer(result.data["contract"]).data,
            },
            status=status.HTTP_201_CREATED,
        )


# =============================================================================
# Approvals
# =============================================================================

class ApprovalChainListCreateView(APIView):
    """
    GET /api/approvals/chains/?entity_type=&is_active=
    POST /api/approvals/chains/
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "approvals.view")
        params = request.query_params
        qs = ApprovalChain.objects.filter(tenant=actor.tenant).prefetch_related("levels")
        if params.get("entity_type"):
            qs = qs.filter(entity_type=params["entity_type"])
        if params.get("is_active") in ("true", "false"):
            qs = qs.filter(is_active=params["is_active"] == "true")
        return Response(ApprovalChainSerializer(qs.order_by("entity_type", "name"), many=True).data)

    def post(self, request):
        actor = resolve_actor(request)
        serializer = ApprovalChainCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = approvals.create_chain(actor, **serializer.validated_data)
        if not result.success:
            return _fail(result)
        return Response(ApprovalChainSerializer(result.data).data, status=status.HTTP_201_CREATED)


class ApprovalChainDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        actor = resolve_actor(request)
        require(actor, "approvals.view")
        chain = ApprovalChain.objects.filter(tenant=actor.tenant, public_id=pk).first()
        if chain is None:
            raise Http404("Approval chain not found.")
        return Response(ApprovalChainSerializer(chain).data)

    def patch(self, request, pk):
        actor = resolve_actor(request)
        serializer = ApprovalChainUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        result = approvals.update_chain(actor, pk, **serializer.validated_data)
        if not result.success:
            return _fail(result)
        return Response(ApprovalChainSerializer(result.data).data)

    def delete(self, request, pk):
        actor = resolve_actor(request)
        result = approvals.delete_chain(actor, pk)
        if not result.success:
            return _fail(result)
        return Response(status=status.HTTP_204_NO_CONTENT)


class ApprovalRequestListCreateView(APIView):
    """
    GET /api/approvals/requests/?entity_type=&entity_id=&status=&mine=
    POST /api/approvals/requests/ submits an entity for approval
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "approvals.view")
        params = request.query_params
        qs = (
            ApprovalRequest.objects
            .filter(tenant=actor.tenant)
            .select_related("chain", "requested_by")
            .prefetch_related("steps__approver", "steps__delegated_from")
        )
        if params.get("entity_type"):
            qs = qs.filter(entity_type=params["entity_type"])
        if params.get("entity_id"):
            qs = qs.filter(entity_id=params["entity_id"])
        if params.get("status"):
            qs = qs.filter(status=params["status"])
        if params.get("mine") == "true":
            qs = qs.filter(requested_by=actor.user)
        return Response(paginate(request, qs.order_by("-requested_at"), ApprovalRequestSerializer))

    def post(self, request):
        actor = resolve_actor(request)
        serializer = SubmitForApprovalSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = approvals.submit_for_approval(actor, **serializer.validated_data)
        if not result.success:
            return _fail(result)
        return Response(ApprovalRequestSerializer(result.data).data, status=status.HTTP_201_CREATED)


class ApprovalRequestDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        actor = resolve_actor(request)
        require(actor, "approvals.view")
        approval = (
            ApprovalRequest.objects
            .filter(tenant=actor.tenant, public_id=pk)
            .select_related("chain", "requested_by")
            .first()
        )
        if approval is None:
            raise Http404("Approval request not found.")
        return Response(ApprovalRequestSerializer(approval).data)


class ApprovalRequestCancelView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, pk):
        actor = resolve_actor(request)
        result = approvals.cancel_request(actor, pk)
        if not result.success:
            return _fail(result)
        return Response(ApprovalRequestSerializer(result.data).data)


class PendingApprovalsView(APIView):
    """GET /api/approvals/pending/ lists steps waiting on the caller."""
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        return Response(approvals.pending_approvals(actor.user))


class ApprovalStepApproveView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, pk):
        actor = resolve_actor(request)
        serializer = StepDecisionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = approvals.approve_step(actor, pk, **serializer.validated_data)
        if not result.success:
            return _fail(result)
        return Response(ApprovalRequestSerializer(result.data).data)


class ApprovalStepRejectView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, pk):
        actor = resolve_actor(request)
        serializer = StepDecisionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = approvals.reject_step(actor, pk, **serializer.validated_data)
        if not result.success:
            return _fail(result)
        return Response(ApprovalRequestSerializer(result.data).data)


class ApprovalStepDelegateView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, pk):
        actor = resolve_actor(request)
        serializer = DelegateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = approvals.delegate_step(actor, pk, **serializer.validated_data)
        if not result.success:
            return _fail(result)
        return Response(ApprovalStepSerializer(result.data).data, status=status.HTTP_201_CREATED)
