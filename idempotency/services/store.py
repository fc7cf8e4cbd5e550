"""
Durable run-once store.

run_once(key, ttl, operation) executes `operation` at most once per key
across processes. The claim is an insert on a unique key: exactly one
caller wins, losers poll until the winner's result is stored. The result
is written in the same transaction as the operation's own writes, so a
crash between claim and completion leaves only an expiring claim.
"""
import logging
import time
import uuid
from datetime import timedelta
from typing import Any, Callable

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Q
from django.utils import timezone

from core.exceptions import IdempotencyClaimTimeout
from idempotency.models import IdempotencyRecord

logger = logging.getLogger(__name__)


class ClaimLost(Exception):
    """Our claim expired and was taken over while the operation ran."""


def _try_claim(key: str, ttl: float, claim_ttl: float):
    """
    Returns (token, None) when we own the claim, (None, record) when another
    caller holds it or already completed it.
    """
    now = timezone.now()
    token = uuid.uuid4().hex
    try:
        with transaction.atomic():
            IdempotencyRecord.objects.create(
                key=key,
                state=IdempotencyRecord.STATE_CLAIMED,
                claim_token=token,
                claim_expires_at=now + timedelta(seconds=claim_ttl),
                expires_at=now + timedelta(seconds=ttl),
            )
        return token, None
    except IntegrityError:
        pass

    # take over an orphaned claim, or a record past its retention window
    taken = (IdempotencyRecord.objects
             .filter(key=key)
             .filter(Q(state=IdempotencyRecord.STATE_CLAIMED, claim_expires_at__lte=now) | Q(expires_at__lte=now))
             .update(state=IdempotencyRecord.STATE_CLAIMED, claim_token=token, result=None, completed_at=None,
                     claim_expires_at=now + timedelta(seconds=claim_ttl),
                     expires_at=now + timedelta(seconds=ttl)))
    if taken:
        logger.info("idempotency claim taken over key=%s", key)
        return token, None
    return None, IdempotencyRecord.objects.filter(key=key).first()


def _release(key: str, token: str) -> None:
    IdempotencyRecord.objects.filter(key=key, claim_token=token, state=IdempotencyRecord.STATE_CLAIMED).delete()


def run_once(key: str, ttl: float | None, operation: Callable[[], Any], *,
             claim_ttl: float | None = None, wait_timeout: float | None = None,
             poll_interval: float | None = None) -> Any:
    """
    Runs `operation` once for `key` and returns its (JSON-serializable) result.
    Repeated or concurrent calls return the stored result without running it.
    Raises IdempotencyClaimTimeout when another caller holds the claim longer
    than `wait_timeout`; the operation's own exceptions release the claim and propagate.
    """
    ttl = ttl or settings.IDEMPOTENCY_DEFAULT_TTL_S
    claim_ttl = claim_ttl or settings.IDEMPOTENCY_CLAIM_TTL_S
    wait_timeout = settings.IDEMPOTENCY_WAIT_TIMEOUT_S if wait_timeout is None else wait_timeout
    poll_interval = poll_interval or settings.IDEMPOTENCY_WAIT_INTERVAL_S

    deadline = time.monotonic() + wait_timeout
    while True:
        token, record = _try_claim(key, ttl, claim_ttl)
        if token:
            break
        if record is not None and record.state == IdempotencyRecord.STATE_COMPLETED:
            logger.debug("idempotency replay key=%s", key)
            return record.result
        # record None: it was released between our insert and read, retry the claim
        if record is not None and time.monotonic() >= deadline:
            raise IdempotencyClaimTimeout(details={"key": key})
        time.sleep(poll_interval)

    try:
        with transaction.atomic():
            result = operation()
            done = (IdempotencyRecord.objects
                    .filter(key=key, claim_token=token, state=IdempotencyRecord.STATE_CLAIMED)
                    .update(state=IdempotencyRecord.STATE_COMPLETED, result=result, completed_at=timezone.now()))
            if not done:
                raise ClaimLost(key)
    except ClaimLost:
        # rolled back; whoever took over the claim owns the outcome
        logger.warning("idempotency claim lost key=%s", key)
        return run_once(key, ttl, operation, claim_ttl=claim_ttl,
                        wait_timeout=wait_timeout, poll_interval=poll_interval)
    except Exception:
        _release(key, token)
        raise
    return result


def get_result(key: str):
    """Stored result for a completed key, else None."""
    rec = IdempotencyRecord.objects.filter(key=key, state=IdempotencyRecord.STATE_COMPLETED).first()
    return rec.result if rec else None


def purge_expired(before=None) -> int:
    before = before or timezone.now()
    deleted, _ = IdempotencyRecord.objects.filter(expires_at__lte=before).filter(
        Q(state=IdempotencyRecord.STATE_COMPLETED) | Q(claim_expires_at__lte=before)
    ).delete()
    return deleted
