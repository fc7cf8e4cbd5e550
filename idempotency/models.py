from django.db import models


class IdempotencyRecord(models.Model):
    """
    Dedupe ledger entry for one guarded operation.
    - key: operation fingerprint ("job:<id>:usage-commit", "callback:<provider>:<delivery>", ...)
    - state: claimed (operation running) -> completed (result stored)
    - claim_token / claim_expires_at: owner of the running claim; an expired
      claim (crashed worker) can be taken over
    - result: JSON outcome of the first execution, replayed verbatim
    - expires_at: record may be purged after this
    """
    STATE_CLAIMED = "claimed"
    STATE_COMPLETED = "completed"
    STATE_CHOICES = [
        (STATE_CLAIMED, "Claimed"),
        (STATE_COMPLETED, "Completed"),
    ]

    key = models.CharField(max_length=255, unique=True)
    state = models.CharField(max_length=16, choices=STATE_CHOICES, default=STATE_CLAIMED)
    result = models.JSONField(null=True, blank=True)
    claim_token = models.CharField(max_length=64)
    claim_expires_at = models.DateTimeField()
    expires_at = models.DateTimeField(db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "idempotency_records"

    def __str__(self) -> str:
        return f"Idempotency({self.key}, {self.state})"
