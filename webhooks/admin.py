from django.contrib import admin
from .models import ProviderCallback


@admin.register(ProviderCallback)
class ProviderCallbackAdmin(admin.ModelAdmin):
    list_display = ("id", "provider", "delivery_id", "received_at", "processed_at")
    list_filter = ("provider",)
    search_fields = ("delivery_id",)
    readonly_fields = [f.name for f in ProviderCallback._meta.fields]
