"""
Persistence + state machine for GenerationJob.

    queued --attach_provider_id--> processing
    queued --(submission failure / reaper)--> failed
    processing --> completed | failed | cancelled

Every change is a conditional UPDATE on the expected source state, so two
workers racing on the same job cannot both win; the loser gets
InvalidTransition and nothing is written.
"""
import logging
from datetime import timedelta

from django.core.exceptions import ValidationError
from django.utils import timezone

from core.exceptions import InvalidTransition, NotFound
from jobs.models import GenerationJob

logger = logging.getLogger(__name__)

State = GenerationJob.State

# target state -> states it may be reached from (via transition())
_SOURCES = {
    State.COMPLETED: (State.PROCESSING,),
    State.FAILED: (State.QUEUED, State.PROCESSING),
    State.CANCELLED: (State.PROCESSING,),
}


def create(*, owner_id: str, kind: str, provider: str, parameters: dict, quantity: int) -> GenerationJob:
    return GenerationJob.objects.create(
        owner_id=owner_id, kind=kind, provider=provider, parameters=parameters, quantity=quantity,
    )


def load(job_id) -> GenerationJob:
    try:
        return GenerationJob.objects.get(pk=job_id)
    except (GenerationJob.DoesNotExist, ValidationError, ValueError):
        raise NotFound("Job not found", {"job_id": str(job_id)})


def get(job_id, owner_id: str) -> GenerationJob:
    """Owner-scoped read: foreign jobs are indistinguishable from missing ones."""
    try:
        return GenerationJob.objects.get(pk=job_id, owner_id=owner_id)
    except (GenerationJob.DoesNotExist, ValidationError, ValueError):
        raise NotFound("Job not found", {"job_id": str(job_id)})


def _rejected(job_id, target: str) -> InvalidTransition:
    current = load(job_id)
    return InvalidTransition(
        f"Cannot move job from {current.state} to {target}",
        {"job_id": str(job_id), "from": current.state, "to": target},
    )


def attach_provider_id(job_id, provider_job_id: str, *, estimated_seconds: int | None = None) -> GenerationJob:
    now = timezone.now()
    updated = (GenerationJob.objects
               .filter(pk=job_id, state=State.QUEUED, provider_job_id__isnull=True)
               .update(state=State.PROCESSING, provider_job_id=provider_job_id,
                       estimated_seconds=estimated_seconds, updated_at=now))
    if not updated:
        raise _rejected(job_id, State.PROCESSING)
    logger.info("job %s processing provider_job_id=%s", job_id, provider_job_id)
    return load(job_id)


def transition(job_id, new_state: str, *, result: dict | None = None, failure_reason: str | None = None) -> GenerationJob:
    sources = _SOURCES.get(new_state)
    if sources is None:
        # queued/processing are never reached through transition()
        raise _rejected(job_id, new_state)

    now = timezone.now()
    fields = {"state": new_state, "updated_at": now, "finished_at": now}
    if new_state == State.COMPLETED:
        fields.update(result=result or {}, progress_percent=100)
    elif new_state == State.FAILED:
        fields["failure_reason"] = failure_reason or "Generation failed"

    updated = GenerationJob.objects.filter(pk=job_id, state__in=sources).update(**fields)
    if not updated:
        raise _rejected(job_id, new_state)
    logger.info("job %s %s", job_id, new_state)
    return load(job_id)


def record_progress(job_id, progress_percent: int) -> bool:
    """Progress bookkeeping only; not a state transition."""
    percent = max(0, min(int(progress_percent or 0), 99))
    return bool(GenerationJob.objects.filter(pk=job_id, state=State.PROCESSING).update(progress_percent=percent))


def list_active(provider: str):
    return GenerationJob.objects.filter(state=State.PROCESSING, provider=provider).order_by("updated_at")


def list_for_owner(owner_id: str):
    return GenerationJob.objects.filter(owner_id=owner_id).order_by("-created_at")


def find_by_provider_job_id(provider: str, provider_job_id: str) -> GenerationJob | None:
    return GenerationJob.objects.filter(provider=provider, provider_job_id=provider_job_id).first()


def list_stale(max_age_s: int):
    cutoff = timezone.now() - timedelta(seconds=max_age_s)
    return (GenerationJob.objects
            .filter(state__in=(State.QUEUED, State.PROCESSING), created_at__lt=cutoff)
            .order_by("created_at"))
