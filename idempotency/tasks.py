import logging

from celery import shared_task

from .services.store import purge_expired

logger = logging.getLogger(__name__)


@shared_task
def purge_expired_records():
    deleted = purge_expired()
    if deleted:
        logger.info("purged %s expired idempotency records", deleted)
    return deleted
