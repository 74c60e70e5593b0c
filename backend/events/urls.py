# events/urls.py
from django.urls import path

from events.views import EventListView, EventDetailView, AggregateHistoryView

app_name = "events"

urlpatterns = [
    path("", EventListView.as_view(), name="event-list"),
    path("<uuid:public_id>/", EventDetailView.as_view(), name="event-detail"),
    path(
        "aggregate/<str:aggregate_type>/<str:aggregate_id>/",
        AggregateHistoryView.as_view(),
        name="aggregate-history",
    ),
]
