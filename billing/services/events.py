"""
Stripe subscription events -> account plan / status.
Events are plain dicts (the verified JSON body).
"""
import logging
from datetime import datetime, timezone as dt_timezone

from django.conf import settings

from accounts.models import Account
from accounts.services.subscriptions import change_plan, get_or_create_account, resolve_plan_slug

logger = logging.getLogger(__name__)

HANDLED_EVENTS = (
    "checkout.session.completed",
    "invoice.payment_succeeded",
    "customer.subscription.updated",
    "customer.subscription.deleted",
)

# Stripe subscription.status -> Account.status
SUBSCRIPTION_STATUS = {
    "active": Account.STATUS_ACTIVE,
    "trialing": Account.STATUS_TRIALING,
    "past_due": Account.STATUS_PAST_DUE,
    "unpaid": Account.STATUS_PAST_DUE,
    "incomplete": Account.STATUS_PAST_DUE,
    "incomplete_expired": Account.STATUS_CANCELED,
    "canceled": Account.STATUS_CANCELED,
    "paused": Account.STATUS_SUSPENDED,
}


def _owner_id(obj: dict) -> str | None:
    metadata = obj.get("metadata") or {}
    return metadata.get("userId") or metadata.get("user_id") or obj.get("client_reference_id")


def _timestamp(value) -> datetime | None:
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=dt_timezone.utc)


def _first_price_id(items: dict | None) -> str | None:
    data = (items or {}).get("data") or []
    if not data:
        return None
    price = data[0].get("price") or {}
    return price.get("id")


def _find_account(obj: dict, *, subscription_id: str | None = None, customer_id: str | None = None) -> Account | None:
    owner_id = _owner_id(obj)
    if owner_id:
        return get_or_create_account(owner_id)
    qs = Account.objects.select_related("plan")
    if subscription_id:
        account = qs.filter(stripe_subscription_id=subscription_id).first()
        if account:
            return account
    if customer_id:
        return qs.filter(stripe_customer_id=customer_id).first()
    return None


def apply_stripe_event(event: dict) -> dict:
    """Applies one verified Stripe event. Returns a JSON-safe outcome."""
    event_type = event.get("type", "")
    obj = (event.get("data") or {}).get("object") or {}
    if event_type not in HANDLED_EVENTS:
        logger.debug("stripe event ignored type=%s", event_type)
        return {"applied": False, "event_type": event_type, "reason": "ignored"}

    if event_type.startswith("customer.subscription."):
        subscription_id = obj.get("id")
    else:
        subscription_id = obj.get("subscription")
    customer_id = obj.get("customer")
    account = _find_account(obj, subscription_id=subscription_id, customer_id=customer_id)
    if account is None:
        logger.warning("stripe %s: no account for customer=%s subscription=%s", event_type, customer_id, subscription_id)
        return {"applied": False, "event_type": event_type, "reason": "account not found"}

    plan_slug, status, period_end = None, None, None
    if event_type == "checkout.session.completed":
        plan_slug = resolve_plan_slug(metadata=obj.get("metadata"))
        status = Account.STATUS_ACTIVE
    elif event_type == "invoice.payment_succeeded":
        lines = obj.get("lines") or {}
        plan_slug = resolve_plan_slug(metadata=obj.get("metadata"), price_id=_first_price_id(lines))
        status = Account.STATUS_ACTIVE
        line = (lines.get("data") or [{}])[0]
        period_end = _timestamp((line.get("period") or {}).get("end"))
    elif event_type == "customer.subscription.updated":
        plan_slug = resolve_plan_slug(metadata=obj.get("metadata"), price_id=_first_price_id(obj.get("items")))
        status = SUBSCRIPTION_STATUS.get(obj.get("status"), Account.STATUS_PAST_DUE)
        period_end = _timestamp(obj.get("current_period_end"))
    elif event_type == "customer.subscription.deleted":
        plan_slug = settings.DEFAULT_PLAN_SLUG
        status = Account.STATUS_CANCELED

    account = change_plan(
        account,
        plan_slug=plan_slug,
        status=status,
        stripe_customer_id=customer_id,
        stripe_subscription_id=subscription_id,
        current_period_end=period_end,
    )
    return {"applied": True, "event_type": event_type, "owner_id": account.owner_id,
            "plan": account.plan.slug, "status": account.status}
