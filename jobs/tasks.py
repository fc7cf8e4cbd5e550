import logging

from celery import shared_task

from providers.services.provider import PollResult
from providers.services.registry import PROVIDER_KINDS
from .services import registry
from .services.orchestrator import JobOrchestrator

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=0)
def reconcile_job(self, job_id: str, signal: dict | None = None):
    """One reconciliation pass for one job; `signal` is a PollResult as dict."""
    return JobOrchestrator().reconcile(job_id, signal=PollResult.from_signal(signal) if signal else None)


@shared_task
def reconcile_active_jobs():
    """Beat: fan out one reconcile_job per processing job, per provider."""
    queued = 0
    for provider in PROVIDER_KINDS:
        for job_id in registry.list_active(provider).values_list("id", flat=True):
            reconcile_job.delay(str(job_id))
            queued += 1
    if queued:
        logger.info("reconcile tick: %s jobs queued", queued)
    return queued


@shared_task
def reap_stale_jobs():
    return JobOrchestrator().reap_stale_jobs()
