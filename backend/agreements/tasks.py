"""
Scheduled agreement maintenance.
"""
import logging

from celery import shared_task

from agreements import contracts, quotes

logger = logging.getLogger(__name__)


@shared_task
def check_expiring_contracts() -> dict:
    notified = contracts.notify_expiring_contracts()
    expired = contracts.expire_contracts()
    logger.info("Contract expiry check finished", extra={"notified": notified, "expired": expired})
    return {"notified": notified, "expired": expired}


@shared_task
def expire_quotes() -> dict:
    return {"expired": quotes.expire_quotes()}
