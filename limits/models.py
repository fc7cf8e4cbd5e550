from django.db import models

class AccountLimitOverride(models.Model):
    """
    Optional per-account overrides of plan limits.
    - per_minute / per_day: take precedence over the plan when set
    - quotas_override: JSON (e.g. {"video_seconds_monthly": 1200}) > plan.quotas
    """
    account = models.OneToOneField("accounts.Account", on_delete=models.CASCADE, related_name="limits_override")
    per_minute = models.PositiveIntegerField(null=True, blank=True)
    per_day = models.PositiveIntegerField(null=True, blank=True)
    quotas_override = models.JSONField(default=dict, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "account_limit_overrides"

    def __str__(self) -> str:
        return f"LimitsOverride(account={self.account_id})"
