import uuid

from django.core.validators import MinValueValidator
from django.db import models

from billing.models import CreditAccount, CreditLedgerEntry


class GenerationAttempt(models.Model):
    """
    One credit-metered generation request.

    Attempts start ``running`` and move exactly once to ``succeeded`` or
    ``failed``. Credits are charged only on success, through the ledger entry
    referenced by ``ledger_entry``.
    """
    KIND_STYLE = 'style'
    KIND_ASSET = 'asset'
    KIND_ASSET_REFINEMENT = 'asset_refinement'
    KIND_CHOICES = [
        (KIND_STYLE, 'Style'),
        (KIND_ASSET, 'Asset'),
        (KIND_ASSET_REFINEMENT, 'Asset refinement'),
    ]

    STATUS_RUNNING = 'running'
    STATUS_SUCCEEDED = 'succeeded'
    STATUS_FAILED = 'failed'
    STATUS_CHOICES = [
        (STATUS_RUNNING, 'Running'),
        (STATUS_SUCCEEDED, 'Succeeded'),
        (STATUS_FAILED, 'Failed'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    account = models.ForeignKey(CreditAccount, on_delete=models.CASCADE, related_name='generation_attempts')
    kind = models.CharField(max_length=32, choices=KIND_CHOICES)
    credits_reserved = models.PositiveIntegerField(
        validators=[MinValueValidator(1)],
        help_text="Credits charged if the attempt succeeds",
    )
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_RUNNING)
    error_detail = models.TextField(blank=True, default='')
    ledger_entry = models.ForeignKey(
        CreditLedgerEntry,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name='generation_attempts',
        help_text="Credit spend entry recorded for a successful attempt",
    )
    metadata = models.JSONField(default=dict, blank=True)
    started_at = models.DateTimeField(auto_now_add=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    duration_ms = models.PositiveIntegerField(null=True, blank=True)

    class Meta:
        db_table = 'generation_attempts'
        verbose_name = 'Generation Attempt'
        verbose_name_plural = 'Generation Attempts'
        ordering = ['-started_at']
        indexes = [
            models.Index(fields=['account', 'status'], name='generation_account_status_idx'),
        ]

    @property
    def is_running(self):
        return self.status == self.STATUS_RUNNING

    def __str__(self):
        return f"{self.kind} attempt {self.id} ({self.status})"
