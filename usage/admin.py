from django.contrib import admin
from .models import UsageEvent


@admin.register(UsageEvent)
class UsageEventAdmin(admin.ModelAdmin):
    list_display = ("id", "owner_id", "kind", "amount", "unit_price", "provider", "job_id", "created_at")
    list_filter = ("kind", "provider")
    search_fields = ("owner_id", "job_id")
    readonly_fields = [f.name for f in UsageEvent._meta.fields]
