"""
Job orchestration: admission, submission, reconciliation, cancellation.

Usage is committed in exactly one place: the idempotent completion in
JobOrchestrator._complete, together with the Completed transition.
"""
import logging
from typing import Mapping, Optional

from django.conf import settings
from django.db import DatabaseError

from accounts.services.subscriptions import get_or_create_account
from core.exceptions import (
    IdempotencyClaimTimeout, InvalidParameters, InvalidState, InvalidTransition, ProviderError, QuotaExceeded,
)
from idempotency.services.store import run_once
from jobs.models import GenerationJob
from limits.services.quota import check_and_reserve
from providers.services.provider import BaseGenerationProvider, PollResult, ProviderStatus, PUSH_ONLY
from providers.services.registry import PROVIDER_KINDS, get_provider
from usage.services.metering import commit_usage
from . import registry
from .billing_rules import compute_quantity

logger = logging.getLogger(__name__)

State = GenerationJob.State

FAILURE_REASON_MAX = 200


def summarize_failure(detail: Optional[str], prefix: str = "Generation failed") -> str:
    """Provider wording, single line and bounded, never a raw payload."""
    text = " ".join(str(detail or "").split())
    if not text:
        return prefix
    if len(text) > FAILURE_REASON_MAX:
        text = text[:FAILURE_REASON_MAX - 3] + "..."
    return f"{prefix}: {text}"


def completion_key(job_id) -> str:
    return f"job:{job_id}:usage-commit"


class JobOrchestrator:
    def __init__(self, providers: Optional[Mapping[str, BaseGenerationProvider]] = None) -> None:
        self._providers = dict(providers or {})

    def provider(self, name: str) -> BaseGenerationProvider:
        if name not in self._providers:
            self._providers[name] = get_provider(name)
        return self._providers[name]

    # ------------------------------------------------------------------
    # StartJob
    # ------------------------------------------------------------------
    def start_job(self, *, owner_id: str, kind: str, provider: str, parameters: dict) -> GenerationJob:
        if PROVIDER_KINDS.get(provider) != kind:
            raise InvalidParameters(f"Provider '{provider}' does not generate {kind}", {"field": "provider"})

        quantity = compute_quantity(kind, parameters)

        account = get_or_create_account(owner_id)
        st = check_and_reserve(account, kind, quantity, parameters)
        if not st.allowed:
            logger.info("quota refused owner=%s kind=%s quantity=%s: %s", owner_id, kind, quantity, st.reason)
            raise QuotaExceeded(st.reason, st.used, st.limit, st.remaining)

        adapter = self.provider(provider)
        job = registry.create(owner_id=owner_id, kind=kind, provider=provider,
                              parameters=parameters, quantity=quantity)
        logger.info("job %s queued owner=%s kind=%s provider=%s quantity=%s",
                    job.id, owner_id, kind, provider, quantity)

        try:
            submitted = adapter.submit(kind=kind, parameters=parameters)
        except ProviderError as e:
            registry.transition(job.id, State.FAILED, failure_reason=summarize_failure(e.message, "Submission failed"))
            logger.warning("job %s submission failed (%s): %s", job.id, e.code, e.message)
            raise
        except Exception:
            registry.transition(job.id, State.FAILED, failure_reason="Submission failed: internal error")
            logger.exception("job %s submission crashed", job.id)
            raise

        job = registry.attach_provider_id(job.id, submitted.provider_job_id,
                                          estimated_seconds=submitted.estimated_seconds)
        if submitted.immediate is not None:
            self.reconcile(job.id, signal=submitted.immediate)
            job = registry.load(job.id)
        return job

    # ------------------------------------------------------------------
    # Reconcile
    # ------------------------------------------------------------------
    def reconcile(self, job_id, signal: Optional[PollResult] = None) -> dict:
        """
        Applies the provider's view of a job. `signal` comes from a callback
        or a synchronous submit; without it the provider is polled.
        Returns a JSON-safe outcome.
        """
        job = registry.load(job_id)
        outcome = {"job_id": str(job.id)}

        if job.is_terminal or job.state == State.QUEUED:
            logger.debug("reconcile no-op job=%s state=%s", job.id, job.state)
            return {**outcome, "outcome": "noop", "state": job.state}

        if signal is None:
            try:
                signal = self.provider(job.provider).poll(job.provider_job_id)
            except ProviderError as e:
                # transient: stays processing, next tick retries
                logger.warning("poll failed job=%s provider=%s: %s", job.id, job.provider, e.message)
                return {**outcome, "outcome": "deferred", "state": job.state}
            if signal is PUSH_ONLY:
                return {**outcome, "outcome": "push_only", "state": job.state}

        if signal.status == ProviderStatus.COMPLETED:
            return {**outcome, **self._complete(job, signal)}

        if signal.status == ProviderStatus.FAILED:
            try:
                job = registry.transition(job.id, State.FAILED, failure_reason=summarize_failure(signal.failure_detail))
            except InvalidTransition:
                current = registry.load(job.id)
                logger.info("late failure signal ignored job=%s state=%s", job.id, current.state)
                return {**outcome, "outcome": "noop", "state": current.state}
            return {**outcome, "outcome": "failed", "state": job.state}

        registry.record_progress(job.id, signal.progress_percent)
        return {**outcome, "outcome": "progress", "state": job.state, "progress_percent": signal.progress_percent}

    def _complete(self, job: GenerationJob, signal: PollResult) -> dict:
        result = {"ref": signal.result_ref, "metadata": signal.metadata or {}}

        def operation():
            try:
                registry.transition(job.id, State.COMPLETED, result=result)
            except InvalidTransition:
                # cancelled / reaped first: nothing to charge
                return {"outcome": "noop", "committed": False, "state": registry.load(job.id).state}
            commit_usage(owner_id=job.owner_id, kind=job.kind, quantity=job.quantity,
                         job_id=str(job.id), provider=job.provider)
            return {"outcome": "completed", "committed": True, "state": State.COMPLETED.value}

        try:
            return run_once(completion_key(job.id), settings.GENERATION_USAGE_COMMIT_TTL_S, operation)
        except IdempotencyClaimTimeout:
            logger.warning("completion of job %s still claimed by another worker", job.id)
            return {"outcome": "deferred", "state": job.state}
        except DatabaseError:
            # all-or-nothing: job stays processing, retried next tick
            logger.exception("usage commit failed job=%s", job.id)
            return {"outcome": "deferred", "state": job.state}

    # ------------------------------------------------------------------
    # CancelJob / GetJobStatus
    # ------------------------------------------------------------------
    def cancel_job(self, job_id, owner_id: str) -> tuple[GenerationJob, bool]:
        """Local cancellation is authoritative; the provider call is best effort."""
        job = registry.get(job_id, owner_id)
        if job.is_terminal:
            raise InvalidState(f"Job is already {job.state}", {"state": job.state})
        if job.state == State.QUEUED:
            raise InvalidState("Job has not been submitted yet", {"state": job.state})

        supported = False
        try:
            supported = bool(self.provider(job.provider).cancel(job.provider_job_id))
        except ProviderError as e:
            logger.warning("provider cancel failed job=%s provider=%s: %s", job.id, job.provider, e.message)

        try:
            job = registry.transition(job.id, State.CANCELLED)
        except InvalidTransition:
            current = registry.load(job.id)
            raise InvalidState(f"Job is already {current.state}", {"state": current.state})
        logger.info("job %s cancelled owner=%s provider_supported=%s", job.id, owner_id, supported)
        return job, supported

    def get_job_status(self, job_id, owner_id: str, *, refresh: bool = False) -> GenerationJob:
        job = registry.get(job_id, owner_id)
        if refresh and job.state == State.PROCESSING:
            self.reconcile(job.id)
            job = registry.load(job.id)
        return job

    # ------------------------------------------------------------------
    # Reaper
    # ------------------------------------------------------------------
    def reap_stale_jobs(self, max_age_s: Optional[int] = None) -> int:
        max_age_s = max_age_s or settings.GENERATION_JOB_MAX_AGE_S
        reaped = 0
        for job_id in registry.list_stale(max_age_s).values_list("id", flat=True):
            try:
                registry.transition(job_id, State.FAILED, failure_reason="Generation timed out")
            except InvalidTransition:
                continue  # resolved concurrently
            reaped += 1
        if reaped:
            logger.info("reaped %s stale jobs (max_age=%ss)", reaped, max_age_s)
        return reaped
