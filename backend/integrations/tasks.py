"""
Scheduled integration hub maintenance.
"""
import logging
from collections import defaultdict

from celery import shared_task
from django.utils import timezone

from accounts.models import User
from integrations import hub, vault
from integrations.models import CredentialVault
from notifications.commands import notify_users
from notifications.models import Notification

logger = logging.getLogger(__name__)


@shared_task
def process_retry_queue() -> dict:
    processed = hub.process_retry_queue()
    if processed:
        logger.info("Integration retry queue processed", extra={"processed": processed})
    return {"processed": processed}


@shared_task
def perform_health_checks() -> dict:
    return {"checked": hub.perform_health_checks()}


def _tenant_admins(tenant):
    return User.objects.filter(
        tenant=tenant,
        role__in=[User.Role.ADMIN, User.Role.SUPER_ADMIN],
        is_active=True,
        deleted_at__isnull=True,
    )


def notify_credential_rotation(now=None) -> int:
    """Tell tenant admins which credentials are due for rotation or about to expire."""
    now = now or timezone.now()
    due = defaultdict(list)
    for entry in vault.credentials_needing_rotation(now=now):
        due[entry.tenant].append((entry, "rotation due"))

    expiring = CredentialVault.objects.filter(
        expires_at__isnull=False,
        expires_at__gt=now,
    ).select_related("tenant")
    for tenant in {entry.tenant for entry in expiring}:
        for entry in vault.expiring_credentials(tenant, now=now):
            due[tenant].append((entry, f"expires {entry.expires_at:%Y-%m-%d}"))

    notified = 0
    for tenant, entries in due.items():
        names = ", ".join(f"{entry.name} ({why})" for entry, why in entries)
        notifications = notify_users(
            tenant,
            _tenant_admins(tenant),
            Notification.Type.WARNING,
            "Integration credentials need attention",
            f"The following credentials need rotation: {names}.",
            data={"credential_ids": [str(entry.public_id) for entry, _ in entries]},
            send_email=True,
            action_path="/integrations/credentials",
        )
        notified += len(notifications)
    return notified


@shared_task
def check_credential_rotation() -> dict:
    notified = notify_credential_rotation()
    logger.info("Credential rotation check finished", extra={"notified": notified})
    return {"notified": notified}
