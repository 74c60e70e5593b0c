"""
Notification emails.

All emails are sent from DEFAULT_FROM_EMAIL and rendered from
templates/emails/notification.html. Delivery runs on Celery
(notifications.tasks.send_notification_email) so SMTP failures retry
with backoff instead of failing the request.
"""

import logging

from django.conf import settings
from django.core.mail import send_mail
from django.template.loader import render_to_string
from django.utils.html import strip_tags

logger = logging.getLogger(__name__)


def render_notification(title: str, message: str, user_name: str = "", action_path: str = "") -> tuple[str, str]:
    """Return (plain_text, html) bodies."""
    context = {
        "title": title,
        "message": message,
        "user_name": user_name or "there",
        "action_url": f"{settings.FRONTEND_URL}{action_path}" if action_path else "",
    }
    html_message = render_to_string("emails/notification.html", context)
    return strip_tags(html_message), html_message


def send_notification_email(to: str, subject: str, message: str, user_name: str = "",
                            action_path: str = "") -> None:
    """Send one email; SMTP errors propagate to the caller."""
    plain_message, html_message = render_notification(subject, message, user_name, action_path)
    send_mail(
        subject=subject,
        message=plain_message,
        from_email=settings.DEFAULT_FROM_EMAIL,
        recipient_list=[to],
        html_message=html_message,
        fail_silently=False,
    )
    logger.info("Notification email sent", extra={"to": to, "subject": subject})
