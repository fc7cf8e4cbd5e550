from django.db import models

class UsageEvent(models.Model):
    """
    Committed consumption (quota ledger + billing export).
    - owner_id: who consumed
    - kind: 'image' | 'video' | 'voice'
    - job_id: the generation job this usage belongs to; unique, so a job
      can never be charged twice
    - amount: quantity in the kind's unit (images, seconds, minutes)
    - unit_price: the owner's plan price per unit at commit time (billing export)
    """
    owner_id = models.CharField(max_length=128, db_index=True)
    kind = models.CharField(max_length=16, db_index=True)
    job_id = models.CharField(max_length=64, unique=True)
    provider = models.CharField(max_length=32, blank=True, default="")
    unit_price = models.DecimalField(max_digits=10, decimal_places=4, default=0)
    amount = models.PositiveIntegerField(default=1)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "usage_events"
        indexes = [
            models.Index(fields=["owner_id", "kind", "created_at"]),
            models.Index(fields=["owner_id", "created_at"]),
        ]

    def __str__(self) -> str:
        return f"{self.owner_id}:{self.kind}x{self.amount}@{self.created_at:%Y-%m-%d %H:%M:%S}"
