from django.contrib import admin
from .models import AccountLimitOverride


@admin.register(AccountLimitOverride)
class AccountLimitOverrideAdmin(admin.ModelAdmin):
    list_display = ("id", "account", "per_minute", "per_day", "updated_at")
    search_fields = ("account__owner_id",)
    readonly_fields = ("updated_at",)
