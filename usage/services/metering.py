import logging
from decimal import Decimal
from typing import Optional

from django.db import transaction

from usage.models import UsageEvent

logger = logging.getLogger(__name__)

KINDS = ("image", "video", "voice")


def get_usage(owner_id: str, kind: str) -> dict:
    """{"used", "limit"} for the current month. limit None = unlimited."""
    from accounts.services.subscriptions import get_or_create_account
    from limits.services.quota import get_quota_limit, used_this_month

    account = get_or_create_account(owner_id)
    return {"used": used_this_month(owner_id, kind), "limit": get_quota_limit(account, kind)}


def plan_unit_price(owner_id: str, kind: str) -> Decimal:
    """Price per unit from the owner's plan; 0 when the plan sets none."""
    from accounts.models import Account

    account = Account.objects.select_related("plan").filter(owner_id=owner_id).first()
    if account is None:
        return Decimal(0)
    return Decimal(str(account.plan.unit_prices.get(kind, 0)))


def commit_usage(*, owner_id: str, kind: str, quantity: int, job_id: str, provider: str = "",
                 unit_price: Optional[Decimal] = None) -> UsageEvent:
    """
    The only mutating ledger call. Meant to run inside the job's idempotent
    completion; a second commit for the same job_id raises IntegrityError.
    unit_price is taken from the owner's plan when not given.
    """
    from limits.services.quota import invalidate_usage

    if unit_price is None:
        unit_price = plan_unit_price(owner_id, kind)
    event = UsageEvent.objects.create(
        owner_id=owner_id, kind=kind, job_id=str(job_id), provider=provider,
        amount=quantity, unit_price=unit_price,
    )
    invalidate_usage(owner_id, kind)
    # a read between commit and transaction end may re-cache the old total
    transaction.on_commit(lambda: invalidate_usage(owner_id, kind))
    logger.info("usage committed owner=%s kind=%s amount=%s job=%s", owner_id, kind, quantity, job_id)
    return event
