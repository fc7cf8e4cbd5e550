from django.db import models


class Plan(models.Model):
    """
    Subscription plan (free / pro / business / business_plus).
    - slug: stable identifier, also used by Stripe price mapping
    - rate limits: per_minute / per_day (API requests)
    - quotas: JSON, e.g. {"image_monthly": 100, "video_seconds_monthly": 300,
      "voice_minutes_monthly": 60, "video_max_duration": 30}
      None or -1 => unlimited
    - unit_prices: JSON per kind, e.g. {"image": 0.04, "video": 0.05}; copied
      onto each UsageEvent when usage is committed
    """
    name = models.CharField(max_length=100)
    slug = models.SlugField(max_length=100, unique=True, db_index=True)
    active = models.BooleanField(default=True)

    per_minute = models.PositiveIntegerField(default=60)
    per_day = models.PositiveIntegerField(default=50000)

    quotas = models.JSONField(default=dict, blank=True)
    unit_prices = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "plans"
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.slug} ({'active' if self.active else 'inactive'})"


class Account(models.Model):
    """
    One account per external identity (Firebase uid).
    - status follows the Stripe subscription lifecycle
    - stripe_* ids are filled in by billing events
    """
    STATUS_ACTIVE = "active"
    STATUS_TRIALING = "trialing"
    STATUS_PAST_DUE = "past_due"
    STATUS_CANCELED = "canceled"
    STATUS_SUSPENDED = "suspended"
    STATUS_CHOICES = [
        (STATUS_ACTIVE, "Active"),
        (STATUS_TRIALING, "Trialing"),
        (STATUS_PAST_DUE, "Past due"),
        (STATUS_CANCELED, "Canceled"),
        (STATUS_SUSPENDED, "Suspended"),
    ]
    USABLE_STATUSES = (STATUS_ACTIVE, STATUS_TRIALING)

    owner_id = models.CharField(max_length=128, unique=True, db_index=True)
    plan = models.ForeignKey(Plan, on_delete=models.PROTECT, related_name="accounts")
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_ACTIVE)

    stripe_customer_id = models.CharField(max_length=64, blank=True, default="")
    stripe_subscription_id = models.CharField(max_length=64, blank=True, default="")
    current_period_end = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "accounts"
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.owner_id} [{self.plan.slug}]"

    @property
    def is_active(self) -> bool:
        return self.status in self.USABLE_STATUSES
