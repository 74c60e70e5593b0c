"""
Celery tasks for notification delivery.
"""
import logging
from smtplib import SMTPException

from celery import shared_task
from kombu.exceptions import OperationalError

from notifications import mailer

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    max_retries=3,
    default_retry_delay=60,
    autoretry_for=(SMTPException, OSError),
    retry_backoff=True,
)
def send_notification_email(self, to: str, subject: str, message: str,
                            user_name: str = "", action_path: str = "") -> dict:
    mailer.send_notification_email(to, subject, message, user_name=user_name, action_path=action_path)
    return {"to": to, "subject": subject}


def queue_email(to: str, subject: str, message: str, user_name: str = "", action_path: str = ""):
    """Enqueue a single notification email; None when the broker is unreachable."""
    try:
        return send_notification_email.delay(to, subject, message, user_name, action_path)
    except OperationalError:
        logger.exception("Could not queue notification email", extra={"to": to, "subject": subject})
        return None


def queue_bulk_emails(messages: list[dict]) -> int:
    """Enqueue several emails; each dict carries to/subject/message."""
    for item in messages:
        queue_email(
            item["to"],
            item["subject"],
            item["message"],
            item.get("user_name", ""),
            item.get("action_path", ""),
        )
    logger.info("Bulk emails queued", extra={"count": len(messages)})
    return len(messages)
