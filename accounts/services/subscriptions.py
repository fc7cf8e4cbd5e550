import logging

from django.conf import settings
from django.db import IntegrityError, transaction

from accounts.models import Account, Plan

logger = logging.getLogger(__name__)

UNLIMITED = -1

PLAN_DEFAULTS = {
    "free": {
        "name": "Free",
        "per_minute": 30,
        "per_day": 2000,
        "quotas": {"image_monthly": 10, "video_seconds_monthly": 0,
                   "voice_minutes_monthly": 0, "video_max_duration": 0},
        "unit_prices": {},
    },
    "pro": {
        "name": "Pro",
        "per_minute": 60,
        "per_day": 20000,
        "quotas": {"image_monthly": 100, "video_seconds_monthly": 300,
                   "voice_minutes_monthly": 60, "video_max_duration": 30},
        "unit_prices": {"image": 0.04, "video": 0.05, "voice": 0.02},
    },
    "business": {
        "name": "Business",
        "per_minute": 120,
        "per_day": 50000,
        "quotas": {"image_monthly": 500, "video_seconds_monthly": 3000,
                   "voice_minutes_monthly": 300, "video_max_duration": 60},
        "unit_prices": {"image": 0.03, "video": 0.04, "voice": 0.015},
    },
    "business_plus": {
        "name": "Business Plus",
        "per_minute": 240,
        "per_day": 100000,
        "quotas": {"image_monthly": UNLIMITED, "video_seconds_monthly": UNLIMITED,
                   "voice_minutes_monthly": UNLIMITED, "video_max_duration": 300},
        "unit_prices": {"image": 0.02, "video": 0.03, "voice": 0.01},
    },
}


def get_plan(slug: str) -> Plan:
    """Plan by slug; the built-in plans are created on first use."""
    try:
        return Plan.objects.get(slug=slug)
    except Plan.DoesNotExist:
        if slug not in PLAN_DEFAULTS:
            raise
    defaults = PLAN_DEFAULTS[slug]
    plan, _ = Plan.objects.get_or_create(slug=slug, defaults={
        **defaults, "quotas": dict(defaults["quotas"]), "unit_prices": dict(defaults["unit_prices"]),
    })
    return plan


def get_or_create_account(owner_id: str) -> Account:
    try:
        return Account.objects.select_related("plan", "limits_override").get(owner_id=owner_id)
    except Account.DoesNotExist:
        pass

    plan = get_plan(settings.DEFAULT_PLAN_SLUG)
    try:
        with transaction.atomic():
            account = Account.objects.create(owner_id=owner_id, plan=plan)
        logger.info("account created owner=%s plan=%s", owner_id, plan.slug)
        return account
    except IntegrityError:
        # concurrent first request created it
        return Account.objects.select_related("plan").get(owner_id=owner_id)


def resolve_plan_slug(*, metadata: dict | None = None, price_id: str | None = None) -> str | None:
    """Plan slug from Stripe metadata ("plan"/"planName") or a known price id."""
    metadata = metadata or {}
    for key in ("plan", "planName", "plan_slug"):
        value = metadata.get(key)
        if value:
            slug = str(value).strip().lower().replace(" ", "_").replace("-", "_")
            if slug in PLAN_DEFAULTS or Plan.objects.filter(slug=slug).exists():
                return slug
    if price_id:
        return settings.STRIPE_PRICE_PLANS.get(price_id)
    return None


def change_plan(account: Account, *, plan_slug: str | None = None, status: str | None = None, **stripe_fields) -> Account:
    fields = []
    if plan_slug and plan_slug != account.plan.slug:
        account.plan = get_plan(plan_slug)
        fields.append("plan")
    if status and status != account.status:
        account.status = status
        fields.append("status")
    for name, value in stripe_fields.items():
        if value is not None and getattr(account, name) != value:
            setattr(account, name, value)
            fields.append(name)
    if fields:
        account.save(update_fields=fields + ["updated_at"])
        logger.info("account updated owner=%s fields=%s plan=%s status=%s",
                    account.owner_id, fields, account.plan.slug, account.status)
    return account
