"""
Celery application configuration.

Handles the integration retry queue, connector health checks,
notification emails and the daily contract/quote expiry sweeps.

Usage:
    # Start worker
    celery -A b2b_backend worker -l INFO

    # Start beat scheduler (for periodic tasks)
    celery -A b2b_backend beat -l INFO
"""
import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "b2b_backend.settings")

app = Celery("b2b_backend")

# Load config from Django settings
app.config_from_object("django.conf:settings", namespace="CELERY")

# Auto-discover tasks from all installed apps
app.autodiscover_tasks()


@app.task(bind=True, ignore_result=True)
def debug_task(self):
    """Debug task for testing Celery connectivity."""
    print(f"Request: {self.request!r}")
