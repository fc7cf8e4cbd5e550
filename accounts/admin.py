from django.contrib import admin
from .models import Account, Plan


@admin.register(Plan)
class PlanAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "slug", "active", "per_minute", "per_day", "created_at")
    list_filter = ("active",)
    search_fields = ("name", "slug")
    readonly_fields = ("created_at",)


@admin.register(Account)
class AccountAdmin(admin.ModelAdmin):
    list_display = ("id", "owner_id", "plan", "status", "stripe_customer_id", "current_period_end", "created_at")
    list_filter = ("status", "plan")
    search_fields = ("owner_id", "stripe_customer_id", "stripe_subscription_id")
    readonly_fields = ("created_at", "updated_at")
