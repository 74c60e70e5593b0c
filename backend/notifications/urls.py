from django.urls import path

from notifications.views import (
    NotificationListCreateView,
    NotificationBulkCreateView,
    NotificationDetailView,
    NotificationReadView,
    NotificationReadManyView,
    NotificationReadAllView,
    UnreadCountView,
)

app_name = "notifications"

urlpatterns = [
    path("", NotificationListCreateView.as_view(), name="notification-list"),
    path("bulk/", NotificationBulkCreateView.as_view(), name="notification-bulk"),
    path("unread-count/", UnreadCountView.as_view(), name="notification-unread-count"),
    path("read/", NotificationReadManyView.as_view(), name="notification-read-many"),
    path("read-all/", NotificationReadAllView.as_view(), name="notification-read-all"),
    path("<uuid:pk>/", NotificationDetailView.as_view(), name="notification-detail"),
    path("<uuid:pk>/read/", NotificationReadView.as_view(), name="notification-read"),
]
