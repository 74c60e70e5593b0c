from django.contrib import admin
from django.urls import include, path

from ops.urls import metrics_patterns

urlpatterns = [
    # Operations endpoints (no auth required)
    path("_health/", include("ops.urls")),
    path("_metrics/", include(metrics_patterns)),

    # Admin and API
    path("admin/", admin.site.urls),
    path("api/", include("accounts.urls")),
    path("api/", include("tenant.urls")),
    path("api/catalog/", include("catalog.urls")),
    path("api/", include("sales.urls")),
    path("api/", include("agreements.urls")),
    path("api/notifications/", include("notifications.urls")),
    path("api/audit/", include("events.urls")),
    path("api/integrations/", include("integrations.urls")),
]
