import logging

from celery import shared_task
from django.conf import settings
from django.utils import timezone

from core.exceptions import IdempotencyClaimTimeout
from idempotency.services.store import run_once
from jobs.services import registry
from jobs.services.orchestrator import JobOrchestrator
from providers.services.registry import get_provider
from .models import ProviderCallback

logger = logging.getLogger(__name__)


class CallbackDeferred(Exception):
    """Reconcile could not finish the job yet; the delivery must be retried."""

    def __init__(self, outcome: dict):
        self.outcome = outcome
        super().__init__(f"reconcile deferred in state {outcome.get('state')}")


def callback_key(provider: str, delivery_id: str) -> str:
    return f"callback:{provider}:{delivery_id}"


def handle_callback(callback: ProviderCallback) -> dict:
    adapter = get_provider(callback.provider)
    try:
        event = adapter.parse_callback(callback.payload)
    except (KeyError, TypeError, ValueError) as e:
        logger.warning("unparseable %s callback %s: %s", callback.provider, callback.delivery_id, e)
        return {"outcome": "invalid", "error": str(e)[:200]}

    job = registry.find_by_provider_job_id(callback.provider, event.provider_job_id)
    if job is None:
        logger.info("%s callback for unknown provider job %s", callback.provider, event.provider_job_id)
        return {"outcome": "unknown_job", "provider_job_id": event.provider_job_id}

    outcome = JobOrchestrator({callback.provider: adapter}).reconcile(job.id, signal=event.result)
    if outcome.get("outcome") == "deferred":
        # raising releases the delivery claim so a retry runs reconcile again
        raise CallbackDeferred(outcome)
    return outcome


def process_callback(callback_id: int) -> dict | None:
    """
    Routes one journaled callback to reconcile. Redeliveries of the same
    delivery id replay the first final outcome; a deferred one is not kept.
    """
    try:
        callback = ProviderCallback.objects.get(id=callback_id)
    except ProviderCallback.DoesNotExist:
        return None

    try:
        outcome = run_once(
            callback_key(callback.provider, callback.delivery_id),
            settings.IDEMPOTENCY_DEFAULT_TTL_S,
            lambda: handle_callback(callback),
        )
    except CallbackDeferred as e:
        ProviderCallback.objects.filter(id=callback.id).update(outcome={"outcome": "deferred"})
        logger.warning("%s callback %s deferred: %s", callback.provider, callback.delivery_id, e)
        raise
    ProviderCallback.objects.filter(id=callback.id).update(outcome=outcome, processed_at=timezone.now())
    return outcome


@shared_task(bind=True, max_retries=5, default_retry_delay=5)
def process_provider_callback(self, callback_id: int):
    try:
        return process_callback(callback_id)
    except (CallbackDeferred, IdempotencyClaimTimeout) as e:
        raise self.retry(exc=e, countdown=min(5 * 2 ** self.request.retries, 300))
