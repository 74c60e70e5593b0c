# tests/test_notifications.py
"""
Tests for in-app notifications, notification emails and the
credential rotation reminder.
"""

from datetime import timedelta
from types import SimpleNamespace

import pytest
from django.utils import timezone
from kombu.exceptions import OperationalError

from integrations import commands as integration_commands
from integrations.tasks import notify_credential_rotation
from notifications import commands
from notifications import tasks
from notifications.mailer import render_notification
from notifications.models import Notification


@pytest.fixture
def inbox(tenant, user):
    return [
        commands.notify_user(tenant, user, Notification.Type.INFO, f"Note {n}", "Hello")
        for n in range(3)
    ]


# =============================================================================
# Commands
# =============================================================================

@pytest.mark.django_db
class TestNotificationCommands:

    def test_notify_user(self, tenant, user):
        notification = commands.notify_user(tenant, user, Notification.Type.SUCCESS, "Order shipped", "On its way",
                                            data={"order": "ORD-1"})
        assert notification.tenant == tenant
        assert notification.data == {"order": "ORD-1"}
        assert commands.unread_count(user) == 1

    def test_email_is_sent_after_commit(self, tenant, user, mailoutbox, django_capture_on_commit_callbacks):
        with django_capture_on_commit_callbacks(execute=True):
            commands.notify_user(tenant, user, Notification.Type.INFO, "Quote ready", "Please review",
                                 send_email=True, action_path="/quotes/1")

        assert len(mailoutbox) == 1
        email = mailoutbox[0]
        assert email.subject == "Quote ready"
        assert email.to == [user.email]
        assert "http://localhost:3000/quotes/1" in email.alternatives[0][0]

    def test_no_email_unless_requested(self, tenant, user, mailoutbox, django_capture_on_commit_callbacks):
        with django_capture_on_commit_callbacks(execute=True):
            commands.notify_user(tenant, user, Notification.Type.INFO, "Quiet", "No mail")
        assert mailoutbox == []

    def test_unreachable_broker_does_not_fail_the_request(self, tenant, user, mailoutbox, monkeypatch,
                                                          django_capture_on_commit_callbacks):
        def refuse(*args, **kwargs):
            raise OperationalError("Error 111 connecting to redis:6379. Connection refused.")

        monkeypatch.setattr(tasks, "send_notification_email", SimpleNamespace(delay=refuse))
        with django_capture_on_commit_callbacks(execute=True):
            notification = commands.notify_user(tenant, user, Notification.Type.INFO, "Order placed", "Thanks",
                                                send_email=True)

        assert Notification.objects.filter(pk=notification.pk).exists()
        assert mailoutbox == []
        assert tasks.queue_email(user.email, "Retry", "Later") is None

    def test_admin_creates_notification(self, admin_actor, user):
        result = commands.create_notification(admin_actor, user.public_id, "WARNING", "Heads up", "Maintenance")
        assert result.success
        assert result.data.user == user

    def test_user_outside_tenant_not_found(self, admin_actor, other_admin):
        result = commands.create_notification(admin_actor, other_admin.public_id, "INFO", "X", "Y")
        assert result.error == "User not found."

    def test_bulk_requires_every_user(self, admin_actor, user, other_admin):
        result = commands.create_bulk_notifications(
            admin_actor, [user.public_id, other_admin.public_id], "INFO", "X", "Y",
        )
        assert not result.success
        assert not Notification.objects.exists()

    def test_mark_all_as_read(self, actor, user, inbox):
        assert commands.mark_all_as_read(actor).data == {"updated": 3}
        assert commands.unread_count(user) == 0

    def test_cannot_read_someone_elses_notification(self, manager_actor, inbox):
        assert not commands.mark_as_read(manager_actor, inbox[0].public_id).success


def test_render_without_action():
    plain, html = render_notification("Welcome", "Your account is ready")
    assert "Welcome" in html
    assert "Your account is ready" in plain


# =============================================================================
# API
# =============================================================================

@pytest.mark.django_db
class TestNotificationApi:

    def test_list_and_filter(self, client_for, user, inbox):
        client = client_for(user)
        client.post(f"/api/notifications/{inbox[0].public_id}/read/")

        response = client.get("/api/notifications/?is_read=false")

        assert response.status_code == 200
        assert response.json()["total"] == 2
        assert client.get("/api/notifications/unread-count/").json() == {"count": 2}

    def test_read_many(self, client_for, user, inbox):
        response = client_for(user).post("/api/notifications/read/", {
            "ids": [str(n.public_id) for n in inbox[:2]],
        }, format="json")
        assert response.json() == {"updated": 2}

    def test_delete(self, client_for, user, inbox):
        client = client_for(user)
        assert client.delete(f"/api/notifications/{inbox[0].public_id}/").status_code == 204
        assert client.get(f"/api/notifications/{inbox[0].public_id}/").status_code == 404

    def test_other_users_see_nothing(self, client_for, manager_user, inbox):
        assert client_for(manager_user).get("/api/notifications/").json()["total"] == 0

    def test_buyer_cannot_notify_others(self, client_for, user, manager_user):
        response = client_for(user).post("/api/notifications/", {
            "user_id": str(manager_user.public_id), "title": "Hi", "message": "There",
        }, format="json")
        assert response.status_code == 403

    def test_admin_bulk_create(self, client_for, admin_user, user, manager_user):
        response = client_for(admin_user).post("/api/notifications/bulk/", {
            "user_ids": [str(user.public_id), str(manager_user.public_id)],
            "title": "Price list updated",
            "message": "New prices apply from Monday",
        }, format="json")

        assert response.status_code == 201
        assert response.json() == {"created": 2}


# =============================================================================
# Credential Rotation Reminder
# =============================================================================

@pytest.mark.django_db
class TestCredentialRotationReminder:

    def test_admins_are_told_about_due_credentials(self, admin_actor, admin_user, user):
        integration_commands.create_credential(
            admin_actor, name="ERP login", type="BASIC_AUTH", data={"username": "u", "password": "p"},
            rotation_policy={"enabled": True, "interval_days": 30},
        )

        assert notify_credential_rotation() == 0
        assert notify_credential_rotation(now=timezone.now() + timedelta(days=31)) == 1

        notification = Notification.objects.get(user=admin_user)
        assert notification.type == Notification.Type.WARNING
        assert "ERP login (rotation due)" in notification.message
        assert not Notification.objects.filter(user=user).exists()

    def test_expiring_credentials_are_included(self, admin_actor, admin_user):
        integration_commands.create_credential(
            admin_actor, name="CRM key", type="API_KEY", data={"api_key": "k"},
            expires_at=timezone.now() + timedelta(days=2),
        )

        assert notify_credential_rotation() == 1
        assert "CRM key (expires" in Notification.objects.get(user=admin_user).message
