from django.db import models


class ProviderCallback(models.Model):
    """
    Journal of inbound provider callbacks (immutable except processing outcome).
    - provider: adapter slug from the URL
    - delivery_id: provider's delivery/event id, else sha256 of the body
    - payload: JSON body as received (signature verified)
    - outcome: result of processing (reconcile outcome, unknown_job, ...)
    Duplicates are journaled too; processing is deduplicated on (provider, delivery_id).
    """
    provider = models.CharField(max_length=32)
    delivery_id = models.CharField(max_length=128)
    payload = models.JSONField(default=dict, blank=True)
    headers = models.JSONField(default=dict, blank=True)
    outcome = models.JSONField(null=True, blank=True)
    received_at = models.DateTimeField(auto_now_add=True)
    processed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "provider_callbacks"
        ordering = ["-received_at"]
        indexes = [
            models.Index(fields=["provider", "delivery_id"]),
            models.Index(fields=["received_at"]),
        ]

    def __str__(self) -> str:
        return f"ProviderCallback({self.provider}, {self.delivery_id})"
