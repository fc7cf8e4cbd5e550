from dataclasses import dataclass
from datetime import datetime
from calendar import monthrange
from django.conf import settings
from django.utils.timezone import now
from django.core.cache import cache
from django.db.models import Sum
from accounts.models import Account
from usage.models import UsageEvent

# job kind -> monthly quota key in plan/override
KIND_TO_QUOTA_KEY = {
    "image": "image_monthly",
    "video": "video_seconds_monthly",
    "voice": "voice_minutes_monthly",
}
KIND_UNITS = {"image": "images", "video": "seconds", "voice": "minutes"}
VIDEO_MAX_DURATION_KEY = "video_max_duration"

@dataclass
class QuotaStatus:
    allowed: bool
    used: int
    limit: int | None  # None => unlimited
    remaining: int | None
    reason: str = ""

def _month_bounds(dt: datetime):
    y, m = dt.year, dt.month
    start = dt.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    end = dt.replace(day=monthrange(y, m)[1], hour=23, minute=59, second=59, microsecond=999999)
    return start, end

def _cache_key(owner_id: str, kind: str, at: datetime | None = None):
    n = at or now()
    return f"quota:{owner_id}:{kind}:{n.year}{n.month:02d}"

def _normalize(limit):
    if limit is None:
        return None
    limit = int(limit)
    return None if limit < 0 else limit

def _quota_value(account: Account, key: str):
    if hasattr(account, "limits_override") and key in (account.limits_override.quotas_override or {}):
        return account.limits_override.quotas_override[key]
    return account.plan.quotas.get(key)

def get_quota_limit(account: Account, kind: str) -> int | None:
    """Monthly limit for a job kind (None = unlimited). Override > plan."""
    key = KIND_TO_QUOTA_KEY.get(kind)
    if not key:
        return None
    return _normalize(_quota_value(account, key))

def get_video_max_duration(account: Account) -> int | None:
    return _normalize(_quota_value(account, VIDEO_MAX_DURATION_KEY))

def used_this_month(owner_id: str, kind: str) -> int:
    ckey = _cache_key(owner_id, kind)
    used = cache.get(ckey)
    if used is None:
        # DB fallback (first call of the month, or cache evicted / invalidated)
        start, end = _month_bounds(now())
        used = (UsageEvent.objects
                .filter(owner_id=owner_id, kind=kind, created_at__gte=start, created_at__lte=end)
                .aggregate(total=Sum("amount"))["total"] or 0)
        cache.set(ckey, used, timeout=settings.QUOTA_USAGE_CACHE_TTL_S)
    return used

def invalidate_usage(owner_id: str, kind: str) -> None:
    cache.delete(_cache_key(owner_id, kind))

def quota_status(account: Account, kind: str) -> QuotaStatus:
    limit = get_quota_limit(account, kind)
    used = used_this_month(account.owner_id, kind)
    if limit is None:
        return QuotaStatus(True, used, None, None)  # unlimited
    remaining = max(limit - used, 0)
    return QuotaStatus(allowed=(used < limit), used=used, limit=limit, remaining=remaining)

def check_and_reserve(account: Account, kind: str, quantity: int, parameters: dict | None = None) -> QuotaStatus:
    """
    Admission check before a job is submitted. Reads only: usage is committed
    once, when the job completes (usage.services.metering.commit_usage).
    """
    if not account.is_active:
        st = quota_status(account, kind)
        return QuotaStatus(False, st.used, st.limit, st.remaining, "Subscription is not active")

    if kind == "video":
        max_duration = get_video_max_duration(account)
        duration = int((parameters or {}).get("duration", quantity))
        if max_duration is not None and duration > max_duration:
            st = quota_status(account, kind)
            return QuotaStatus(False, st.used, st.limit, st.remaining,
                               f"Video duration exceeds limit. Maximum {max_duration} seconds allowed.")

    st = quota_status(account, kind)
    if st.limit is None:
        return st

    if st.used + quantity > st.limit:
        label = kind.capitalize()
        reason = f"{label} limit exceeded. {st.used}/{st.limit} {KIND_UNITS[kind]} used this month."
        return QuotaStatus(False, st.used, st.limit, st.remaining, reason)

    return QuotaStatus(True, st.used, st.limit, st.limit - st.used)
