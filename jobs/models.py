import uuid

from django.db import models
from django.utils import timezone

from providers.services.registry import PROVIDER_LABELS


class GenerationJob(models.Model):
    """
    One request to generate one artifact through one provider.
    State changes go through jobs.services.registry only (guarded updates).
    """
    class Kind(models.TextChoices):
        IMAGE = "image", "Image"
        VIDEO = "video", "Video"
        VOICE = "voice", "Voice"

    class State(models.TextChoices):
        QUEUED = "queued", "Queued"
        PROCESSING = "processing", "Processing"
        COMPLETED = "completed", "Completed"
        FAILED = "failed", "Failed"
        CANCELLED = "cancelled", "Cancelled"

    TERMINAL_STATES = (State.COMPLETED, State.FAILED, State.CANCELLED)

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    owner_id = models.CharField(max_length=128, db_index=True)
    kind = models.CharField(max_length=16, choices=Kind.choices)
    provider = models.CharField(max_length=32, choices=list(PROVIDER_LABELS.items()))
    parameters = models.JSONField(default=dict, blank=True)

    state = models.CharField(max_length=16, choices=State.choices, default=State.QUEUED, db_index=True)
    provider_job_id = models.CharField(max_length=128, null=True, blank=True)
    progress_percent = models.PositiveSmallIntegerField(default=0)
    result = models.JSONField(null=True, blank=True)          # {"ref": ..., "metadata": {...}}
    failure_reason = models.TextField(blank=True, default="")

    quantity = models.PositiveIntegerField()                  # images / seconds / minutes
    estimated_seconds = models.PositiveIntegerField(null=True, blank=True)

    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    updated_at = models.DateTimeField(default=timezone.now)   # advanced on each state transition
    finished_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "generation_jobs"
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(fields=["provider", "provider_job_id"], name="uniq_generation_provider_job"),
        ]
        indexes = [
            models.Index(fields=["owner_id", "created_at"]),
            models.Index(fields=["state", "provider"]),
        ]

    def __str__(self):
        return f"GenerationJob#{self.id}({self.kind}/{self.provider}, {self.state})"

    @property
    def is_terminal(self) -> bool:
        return self.state in self.TERMINAL_STATES
