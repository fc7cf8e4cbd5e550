from rest_framework.throttling import SimpleRateThrottle

from accounts.services.subscriptions import get_or_create_account

def _account_cache_key(prefix: str, owner_id: str) -> str:
    return f"{prefix}:{owner_id}"

def _get_effective_rates(request):
    """
    Effective request rates for the caller's account (override > plan).
    Returns (rate_minute, rate_day) in DRF "N/min" / "N/day" format.
    """
    owner_id = getattr(request.user, "owner_id", None)
    if not owner_id:
        # unauthenticated (provider/billing callbacks): not throttled here
        return None, None
    account = get_or_create_account(owner_id)
    pm = account.plan.per_minute
    pd = account.plan.per_day
    if hasattr(account, "limits_override"):
        if account.limits_override.per_minute:
            pm = account.limits_override.per_minute
        if account.limits_override.per_day:
            pd = account.limits_override.per_day
    return f"{pm}/min", f"{pd}/day"

class _AccountThrottle(SimpleRateThrottle):
    fallback_rate = ""
    rate_index = 0

    def get_cache_key(self, request, view):
        owner_id = getattr(request.user, "owner_id", None)
        if not owner_id:
            return None
        return _account_cache_key(f"throttle:{self.scope}", owner_id)

    def get_rate(self):
        # DRF calls get_rate() without the request; the real rate is set in allow_request.
        return self.fallback_rate

    def allow_request(self, request, view):
        rate = _get_effective_rates(request)[self.rate_index]
        if not rate:
            return True
        self.rate = rate
        self.num_requests, self.duration = self.parse_rate(rate)
        return super().allow_request(request, view)

class AccountMinuteThrottle(_AccountThrottle):
    scope = "account_minute"
    fallback_rate = "1000/min"
    rate_index = 0

class AccountDailyThrottle(_AccountThrottle):
    scope = "account_day"
    fallback_rate = "100000/day"
    rate_index = 1
