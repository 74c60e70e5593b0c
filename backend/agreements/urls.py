from django.urls import path

from agreements import views

app_name = "agreements"

urlpatterns = [
    # =========================================================================
    # Contracts
    # =========================================================================
    path("contracts/", views.ContractListCreateView.as_view(), name="contract-list"),
    path("contracts/<uuid:pk>/", views.ContractDetailView.as_view(), name="contract-detail"),
    path("contracts/<uuid:pk>/versions/", views.ContractVersionsView.as_view(), name="contract-versions"),
    path("contracts/<uuid:pk>/versions/<int:version>/", views.ContractVersionDetailView.as_view(),
         name="contract-version-detail"),
    path("contracts/<uuid:pk>/restore/", views.ContractRestoreView.as_view(), name="contract-restore"),
    path("contracts/<uuid:pk>/submit/", views.ContractSubmitView.as_view(), name="contract-submit"),
    path("contracts/<uuid:pk>/approve/", views.ContractApproveView.as_view(), name="contract-approve"),
    path("contracts/<uuid:pk>/reject/", views.ContractRejectView.as_view(), name="contract-reject"),
    path("contracts/<uuid:pk>/activate/", views.ContractActivateView.as_view(), name="contract-activate"),
    path("contracts/<uuid:pk>/terminate/", views.ContractTerminateView.as_view(), name="contract-terminate"),
    path("contracts/<uuid:pk>/cancel/", views.ContractCancelView.as_view(), name="contract-cancel"),

    # =========================================================================
    # Quotes
    # =========================================================================
    path("quotes/", views.QuoteListCreateView.as_view(), name="quote-list"),
    path("quotes/<uuid:pk>/", views.QuoteDetailView.as_view(), name="quote-detail"),
    path("quotes/<uuid:pk>/submit/", views.QuoteSubmitView.as_view(), name="quote-submit"),
    path("quotes/<uuid:pk>/approve/", views.QuoteApproveView.as_view(), name="quote-approve"),
    path("quotes/<uuid:pk>/reject/", views.QuoteRejectView.as_view(), name="quote-reject"),
    path("quotes/<uuid:pk>/send/", views.QuoteSendView.as_view(), name="quote-send"),
    path("quotes/<uuid:pk>/accept/", views.QuoteAcceptView.as_view(), name="quote-accept"),
    path("quotes/<uuid:pk>/decline/", views.QuoteDeclineView.as_view(), name="quote-decline"),
    path("quotes/<uuid:pk>/convert/", views.QuoteConvertView.as_view(), name="quote-convert"),

    # =========================================================================
    # Approvals
    # =========================================================================
    path("approvals/chains/", views.ApprovalChainListCreateView.as_view(), name="approval-chain-list"),
    path("approvals/chains/<uuid:pk>/", views.ApprovalChainDetailView.as_view(), name="approval-chain-detail"),
    path("approvals/requests/", views.ApprovalRequestListCreateView.as_view(), name="approval-request-list"),
    path("approvals/requests/<uuid:pk>/", views.ApprovalRequestDetailView.as_view(), name="approval-request-detail"),
    path("approvals/requests/<uuid:pk>/cancel/", views.ApprovalRequestCancelView.as_view(), name="approval-request-cancel"),
    path("approvals/pending/", views.PendingApprovalsView.as_view(), name="approval-pending"),
    path("approvals/steps/<uuid:pk>/approve/", views.ApprovalStepApproveView.as_view(), name="approval-step-approve"),
    path("approvals/steps/<uuid:pk>/reject/", views.ApprovalStepRejectView.as_view(), name="approval-step-reject"),
    path("approvals/steps/<uuid:pk>/delegate/", views.ApprovalStepDelegateView.as_view(), name="approval-step-delegate"),
]
