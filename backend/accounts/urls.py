# accounts/urls.py
"""
URL configuration for accounts/auth API.

Endpoints:
- /auth/ - Authentication (register, login, refresh, logout, me, change-password)
- /users/ - User management
- /organizations/ - Organization tree
"""

from django.urls import path

from .views import (
    RegisterView,
    LoginView,
    RefreshView,
    LogoutView,
    MeView,
    ChangePasswordView,
    UserListCreateView,
    UserDetailView,
    UserRoleView,
    UserStatusView,
    OrganizationListCreateView,
    OrganizationDetailView,
    OrganizationByCodeView,
    OrganizationRestoreView,
    OrganizationHierarchyView,
)

app_name = "accounts"

urlpatterns = [
    # ==========================================================================
    # Authentication
    # ==========================================================================
    path("auth/register/", RegisterView.as_view(), name="register"),
    path("auth/login/", LoginView.as_view(), name="login"),
    path("auth/refresh/", RefreshView.as_view(), name="token-refresh"),
    path("auth/logout/", LogoutView.as_view(), name="logout"),
    path("auth/me/", MeView.as_view(), name="me"),
    path("auth/change-password/", ChangePasswordView.as_view(), name="change-password"),

    # ==========================================================================
    # Users
    # ==========================================================================
    path("users/", UserListCreateView.as_view(), name="user-list"),
    path("users/<uuid:pk>/", UserDetailView.as_view(), name="user-detail"),
    path("users/<uuid:pk>/role/", UserRoleView.as_view(), name="user-role"),
    path("users/<uuid:pk>/status/", UserStatusView.as_view(), name="user-status"),

    # ==========================================================================
    # Organizations
    # ==========================================================================
    path("organizations/", OrganizationListCreateView.as_view(), name="organization-list"),
    path("organizations/hierarchy/", OrganizationHierarchyView.as_view(), name="organization-hierarchy"),
    path("organizations/code/<str:code>/", OrganizationByCodeView.as_view(), name="organization-by-code"),
    path("organizations/<uuid:pk>/", OrganizationDetailView.as_view(), name="organization-detail"),
    path("organizations/<uuid:pk>/restore/", OrganizationRestoreView.as_view(), name="organization-restore"),
]
