"""Webhook event ledger models."""
from django.db import models
from django.utils import timezone


class WebhookEvent(models.Model):
    """One row per (gateway, event_id) ever observed from a payment provider."""

    class Gateway(models.TextChoices):
        STRIPE = 'stripe', 'Stripe'
        PAYMOB = 'paymob', 'Paymob'
        PAYTABS = 'paytabs', 'PayTabs'
        PADDLE = 'paddle', 'Paddle'

    class Status(models.TextChoices):
        PROCESSING = 'processing', 'Processing'
        PROCESSED = 'processed', 'Processed'
        FAILED = 'failed', 'Failed'
        SKIPPED = 'skipped', 'Skipped'

    # Event identification
    gateway = models.CharField(max_length=20, choices=Gateway.choices)
    event_id = models.CharField(max_length=255)
    event_type = models.CharField(max_length=255, db_index=True)

    # Original callback body, kept for audit/replay
    payload = models.JSONField(null=True, blank=True)

    # Processing status
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.PROCESSING,
    )
    processed_at = models.DateTimeField(default=timezone.now)
    error = models.TextField(blank=True)
    metadata = models.JSONField(null=True, blank=True)

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['gateway', 'event_id'],
                name='uniq_webhook_event_per_gateway',
            ),
        ]
        indexes = [
            models.Index(fields=['gateway', 'status'], name='webhook_gateway_status_idx'),
            models.Index(fields=['created_at'], name='webhook_created_at_idx'),
        ]

    def __str__(self):
        return f"{self.gateway}:{self.event_id} ({self.status})"

    def to_dict(self) -> dict:
        """JSON-safe representation for monitoring endpoints."""
        return {
            'gateway': self.gateway,
            'event_id': self.event_id,
            'event_type': self.event_type,
            'status': self.status,
            'payload': self.payload,
            'metadata': self.metadata,
            'error': self.error or None,
            'processed_at': self.processed_at.isoformat() if self.processed_at else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
