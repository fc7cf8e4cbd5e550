from django.contrib import admin
from .models import GenerationJob


@admin.register(GenerationJob)
class GenerationJobAdmin(admin.ModelAdmin):
    list_display = ("id", "owner_id", "kind", "provider", "state", "quantity", "progress_percent", "created_at")
    list_filter = ("state", "kind", "provider")
    search_fields = ("id", "owner_id", "provider_job_id")
    # state is owned by the registry's guarded transitions
    readonly_fields = [f.name for f in GenerationJob._meta.fields]
