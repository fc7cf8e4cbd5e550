from django.test import TestCase, override_settings

from accounts.models import Account, Plan
from accounts.services.subscriptions import (
    PLAN_DEFAULTS, change_plan, get_or_create_account, get_plan, resolve_plan_slug,
)


class SubscriptionsTest(TestCase):
    def test_account_created_lazily_on_default_plan(self):
        self.assertFalse(Account.objects.filter(owner_id="u1").exists())
        account = get_or_create_account("u1")
        self.assertEqual(account.plan.slug, "free")
        self.assertEqual(account.status, Account.STATUS_ACTIVE)
        self.assertEqual(account.plan.quotas["image_monthly"], 10)
        # second call returns the same row
        self.assertEqual(get_or_create_account("u1").pk, account.pk)
        self.assertEqual(Account.objects.filter(owner_id="u1").count(), 1)

    @override_settings(DEFAULT_PLAN_SLUG="pro")
    def test_default_plan_is_configurable(self):
        self.assertEqual(get_or_create_account("u2").plan.slug, "pro")

    def test_builtin_plans_match_defaults(self):
        for slug, defaults in PLAN_DEFAULTS.items():
            plan = get_plan(slug)
            self.assertEqual(plan.quotas, defaults["quotas"])
            self.assertEqual(plan.unit_prices, defaults["unit_prices"])
        self.assertEqual(get_plan("business_plus").quotas["video_max_duration"], 300)

    def test_unknown_plan(self):
        with self.assertRaises(Plan.DoesNotExist):
            get_plan("platinum")

    def test_resolve_plan_slug(self):
        self.assertEqual(resolve_plan_slug(metadata={"plan": "Business Plus"}), "business_plus")
        self.assertEqual(resolve_plan_slug(metadata={"planName": "pro"}), "pro")
        self.assertEqual(resolve_plan_slug(price_id="price_pro_monthly"), "pro")
        self.assertIsNone(resolve_plan_slug(metadata={"plan": "nope"}, price_id="price_unknown"))

    def test_change_plan(self):
        account = get_or_create_account("u3")
        change_plan(account, plan_slug="business", status=Account.STATUS_PAST_DUE, stripe_customer_id="cus_1")
        account.refresh_from_db()
        self.assertEqual(account.plan.slug, "business")
        self.assertEqual(account.status, Account.STATUS_PAST_DUE)
        self.assertEqual(account.stripe_customer_id, "cus_1")
        self.assertFalse(account.is_active)
