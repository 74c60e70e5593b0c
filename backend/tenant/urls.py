from django.urls import path

from tenant.views import TenantListCreateView, TenantDetailView, CurrentTenantView

app_name = "tenant"

urlpatterns = [
    path("tenants/", TenantListCreateView.as_view(), name="tenant-list"),
    path("tenants/current/", CurrentTenantView.as_view(), name="tenant-current"),
    path("tenants/<uuid:pk>/", TenantDetailView.as_view(), name="tenant-detail"),
]
