"""
Notification commands.

``notify_user`` / ``notify_users`` are the helpers other apps call when
something happens that a user should see (order status, approvals,
expiring contracts). Emails, when requested, are queued on commit.
"""
import logging

from django.contrib.auth import get_user_model
from django.db import transaction
from django.utils import timezone

from accounts.authz import ActorContext, require
from accounts.commands import CommandResult
from notifications.models import Notification
from notifications.tasks import queue_email

logger = logging.getLogger(__name__)

User = get_user_model()


def notify_user(tenant, user, type: str, title: str, message: str, data: dict = None,
                send_email: bool = False, action_path: str = "") -> Notification:
    notification = Notification.objects.create(
        tenant=tenant,
        user=user,
        type=type,
        title=title,
        message=message,
        data=data or {},
    )
    if send_email and user.email:
        transaction.on_commit(
            lambda: queue_email(user.email, title, message, user.first_name, action_path)
        )
    return notification


def notify_users(tenant, users, type: str, title: str, message: str, data: dict = None,
                 send_email: bool = False, action_path: str = "") -> list[Notification]:
    return [
        notify_user(tenant, user, type, title, message, data, send_email, action_path)
        for user in users
    ]


@transaction.atomic
def create_notification(actor: ActorContext, user_id, type: str, title: str, message: str,
                        data: dict = None, send_email: bool = False) -> CommandResult:
    require(actor, "users.manage")
    user = User.objects.filter(tenant=actor.tenant, public_id=user_id, is_active=True).first()
    if user is None:
        return CommandResult.fail("User not found.")
    return CommandResult.ok(data=notify_user(actor.tenant, user, type, title, message, data, send_email))


@transaction.atomic
def create_bulk_notifications(actor: ActorContext, user_ids: list, type: str, title: str, message: str,
                              data: dict = None, send_email: bool = False) -> CommandResult:
    require(actor, "users.manage")
    users = list(User.objects.filter(tenant=actor.tenant, public_id__in=user_ids, is_active=True))
    if len(users) != len(set(user_ids)):
        return CommandResult.fail("One or more users were not found.")
    notifications = notify_users(actor.tenant, users, type, title, message, data, send_email)
    logger.info("Bulk notifications created", extra={"count": len(notifications)})
    return CommandResult.ok(data=notifications)


def mark_as_read(actor: ActorContext, notification_id) -> CommandResult:
    notification = Notification.objects.filter(user=actor.user, public_id=notification_id).first()
    if notification is None:
        return CommandResult.fail("Notification not found.")
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = timezone.now()
        notification.save(update_fields=["is_read", "read_at"])
    return CommandResult.ok(data=notification)


def mark_many_as_read(actor: ActorContext, notification_ids: list) -> CommandResult:
    updated = Notification.objects.filter(
        user=actor.user,
        public_id__in=notification_ids,
        is_read=False,
    ).update(is_read=True, read_at=timezone.now())
    return CommandResult.ok(data={"updated": updated})


def mark_all_as_read(actor: ActorContext) -> CommandResult:
    updated = Notification.objects.filter(user=actor.user, is_read=False).update(
        is_read=True,
        read_at=timezone.now(),
    )
    return CommandResult.ok(data={"updated": updated})


def delete_notification(actor: ActorContext, notification_id) -> CommandResult:
    deleted, _ = Notification.objects.filter(user=actor.user, public_id=notification_id).delete()
    if not deleted:
        return CommandResult.fail("Notification not found.")
    return CommandResult.ok()


def unread_count(user) -> int:
    return Notification.objects.filter(user=user, is_read=False).count()
