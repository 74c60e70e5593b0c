from django.urls import path

from integrations import views

app_name = "integrations"

urlpatterns = [
    # Connector registry
    path("connectors/", views.ConnectorListCreateView.as_view(), name="connector-list"),
    path("connectors/<uuid:pk>/", views.ConnectorDetailView.as_view(), name="connector-detail"),
    path("connectors/<uuid:pk>/status/", views.ConnectorStatusView.as_view(), name="connector-status"),
    path("connectors/<uuid:pk>/health/", views.ConnectorHealthView.as_view(), name="connector-health"),
    path("connectors/<uuid:pk>/events/", views.ConnectorEventsView.as_view(), name="connector-events"),
    path("connectors/<uuid:pk>/reset-circuit/", views.ConnectorCircuitResetView.as_view(), name="connector-reset-circuit"),
    path("connectors/<uuid:pk>/reset-rate-limit/", views.ConnectorRateLimitResetView.as_view(), name="connector-reset-rate-limit"),
    path("health/", views.HealthOverviewView.as_view(), name="health"),

    # Tenant configs
    path("configs/", views.ConnectorConfigListCreateView.as_view(), name="config-list"),
    path("configs/<uuid:pk>/", views.ConnectorConfigDetailView.as_view(), name="config-detail"),
    path("configs/<uuid:pk>/test/", views.ConnectorConfigTestView.as_view(), name="config-test"),

    # Credentials
    path("credentials/", views.CredentialListCreateView.as_view(), name="credential-list"),
    path("credentials/<uuid:pk>/", views.CredentialDetailView.as_view(), name="credential-detail"),
    path("credentials/<uuid:pk>/rotate/", views.CredentialRotateView.as_view(), name="credential-rotate"),

    # Transformations
    path("transformations/", views.TransformationListCreateView.as_view(), name="transformation-list"),
    path("transformations/test/", views.TransformationTestView.as_view(), name="transformation-test"),
    path("transformations/<uuid:pk>/", views.TransformationDetailView.as_view(), name="transformation-detail"),

    # Messages
    path("messages/", views.MessageListCreateView.as_view(), name="message-list"),
    path("messages/<str:message_id>/", views.MessageDetailView.as_view(), name="message-detail"),

    # Dead letter queue
    path("dead-letters/", views.DeadLetterListView.as_view(), name="dead-letter-list"),
    path("dead-letters/stats/", views.DeadLetterStatsView.as_view(), name="dead-letter-stats"),
    path("dead-letters/reprocess/", views.DeadLetterBulkReprocessView.as_view(), name="dead-letter-bulk-reprocess"),
    path("dead-letters/<uuid:pk>/", views.DeadLetterDetailView.as_view(), name="dead-letter-detail"),
    path("dead-letters/<uuid:pk>/reprocess/", views.DeadLetterReprocessView.as_view(), name="dead-letter-reprocess"),
]
