"""
Webhook idempotency service.

Turns at-least-once payment provider callbacks into effectively-once
processing. The unique constraint on (gateway, event_id) is the only
serialization point: no in-process locking is used, so this works across
any number of workers.

Lifecycle of a record:
    check_and_mark_processing()  -> created as 'processing'
    mark_processed() / mark_failed() / mark_skipped()  -> terminal state

The transition helpers are fire-and-forget: they never raise and never
report failure. A missing record or a storage error is only visible in the
logs. Callers rely on this, so do not turn them into raising APIs.
"""
import json
import logging
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from asgiref.sync import sync_to_async
from django.db import IntegrityError, transaction
from django.db.models import Count
from django.utils import timezone

from .models import WebhookEvent

logger = logging.getLogger('payment_webhooks')

LOG_LEVELS = {
    'info': logging.INFO,
    'warn': logging.WARNING,
    'error': logging.ERROR,
}

DEFAULT_RECENT_LIMIT = 100
DEFAULT_STATS_HOURS = 24


@dataclass
class ProcessWebhookResult:
    """Outcome of an idempotency check. Callers branch on ``status``."""

    is_new: bool
    status: str  # 'new' | 'duplicate' | 'error'
    event: WebhookEvent | None = None
    error: str | None = None


def webhook_log(level: str, message: str, **context: Any) -> None:
    """
    Emit one structured webhook log record.

    Args:
        level: 'info', 'warn' or 'error'
        message: Human readable message
        **context: gateway, event_id, event_type and any extra fields
    """
    log_data = {
        'timestamp': timezone.now().isoformat(),
        'level': level,
        'message': message,
        **context,
    }
    logger.log(
        LOG_LEVELS.get(level, logging.INFO),
        f"[Webhook] {message} {json.dumps(log_data, default=str)}",
        extra={'webhook': log_data},
    )


def generate_event_id(gateway: str, transaction_id: str, event_type: str) -> str:
    """
    Build an event id for gateways that don't send one.

    The id embeds the current time in milliseconds, so calling this again for
    a retried delivery yields a different id. Store and reuse the result if
    retries must dedupe.
    """
    return f"{gateway}:{transaction_id}:{event_type}:{int(time.time() * 1000)}"


def _find_event(gateway: str, event_id: str) -> WebhookEvent | None:
    return WebhookEvent.objects.filter(gateway=gateway, event_id=event_id).first()


def _insert_event(gateway: str, event_id: str, event_type: str, payload) -> WebhookEvent | None:
    """
    Insert the reservation row. Returns None when a concurrent caller already
    holds (gateway, event_id); any other integrity failure is re-raised.
    """
    try:
        # Savepoint keeps an outer transaction usable after a unique violation
        with transaction.atomic():
            return WebhookEvent.objects.create(
                gateway=gateway,
                event_id=event_id,
                event_type=event_type,
                payload=payload,
                status=WebhookEvent.Status.PROCESSING,
                processed_at=timezone.now(),
            )
    except IntegrityError:
        if WebhookEvent.objects.filter(gateway=gateway, event_id=event_id).exists():
            return None
        raise


def _update_event(gateway: str, event_id: str, **fields) -> int:
    # QuerySet.update() skips auto_now
    fields['updated_at'] = timezone.now()
    return WebhookEvent.objects.filter(gateway=gateway, event_id=event_id).update(**fields)


async def check_and_mark_processing(
    gateway: str,
    event_id: str,
    event_type: str,
    payload: dict | None = None,
) -> ProcessWebhookResult:
    """
    Reserve a webhook event for processing, or report it as a duplicate.

    Across any number of concurrent callers with the same (gateway, event_id)
    at most one gets status 'new'. A unique violation on insert means another
    caller won the race and is reported as 'duplicate' without re-fetching
    the record. Other storage errors, including integrity failures that are
    not a (gateway, event_id) collision, come back as status 'error' so the
    caller can ask the provider to redeliver.

    Returns:
        ProcessWebhookResult
    """
    if gateway not in WebhookEvent.Gateway.values or not event_id:
        error = f"Unknown gateway: {gateway}" if event_id else "Missing event id"
        webhook_log(
            'error', 'Rejected webhook event',
            gateway=gateway, event_id=event_id, event_type=event_type, error=error,
        )
        return ProcessWebhookResult(is_new=False, status='error', error=error)

    try:
        existing = await sync_to_async(_find_event)(gateway, event_id)
        if existing:
            webhook_log(
                'info', 'Duplicate webhook event, skipping',
                gateway=gateway,
                event_id=event_id,
                event_type=event_type,
                original_status=existing.status,
                original_processed_at=existing.processed_at,
            )
            return ProcessWebhookResult(is_new=False, status='duplicate', event=existing)

        event = await sync_to_async(_insert_event)(gateway, event_id, event_type, payload)
        if event is None:
            webhook_log(
                'info', 'Duplicate webhook event (race condition), skipping',
                gateway=gateway, event_id=event_id, event_type=event_type,
            )
            return ProcessWebhookResult(is_new=False, status='duplicate')

    except Exception as e:
        webhook_log(
            'error', 'Error checking webhook idempotency',
            gateway=gateway, event_id=event_id, event_type=event_type, error=str(e),
        )
        return ProcessWebhookResult(is_new=False, status='error', error=str(e))

    webhook_log(
        'info', 'Webhook event reserved for processing',
        gateway=gateway, event_id=event_id, event_type=event_type,
    )
    return ProcessWebhookResult(is_new=True, status='new', event=event)


async def _transition(gateway: str, event_id: str, status: str, **fields) -> None:
    try:
        updated = await sync_to_async(_update_event)(
            gateway, event_id, status=status, **fields
        )
    except Exception as e:
        webhook_log(
            'error', f'Error marking webhook as {status}',
            gateway=gateway, event_id=event_id, error=str(e),
        )
        return

    if not updated:
        webhook_log(
            'error', 'Webhook event not found for status update',
            gateway=gateway, event_id=event_id, target_status=status,
        )


async def mark_processed(gateway: str, event_id: str, metadata: dict | None = None) -> None:
    """Close an event as processed. Never raises; failures are only logged."""
    fields = {'processed_at': timezone.now()}
    if metadata is not None:
        fields['metadata'] = metadata
    await _transition(gateway, event_id, WebhookEvent.Status.PROCESSED, **fields)


async def mark_failed(gateway: str, event_id: str, error_message: str) -> None:
    """Close an event as failed. Never raises; failures are only logged."""
    await _transition(gateway, event_id, WebhookEvent.Status.FAILED, error=error_message)


async def mark_skipped(gateway: str, event_id: str, reason: str | None = None) -> None:
    """Close an event as skipped, e.g. an unhandled event type. Never raises."""
    fields = {'error': reason} if reason else {}
    await _transition(gateway, event_id, WebhookEvent.Status.SKIPPED, **fields)


def _recent_events(gateway: str | None, limit: int) -> list[WebhookEvent]:
    events = WebhookEvent.objects.all()
    if gateway:
        events = events.filter(gateway=gateway)
    return list(events.order_by('-created_at')[:limit])


async def get_recent_events(
    gateway: str | None = None,
    limit: int = DEFAULT_RECENT_LIMIT,
) -> list[WebhookEvent]:
    """Most recently created events, newest first."""
    return await sync_to_async(_recent_events)(gateway, limit)


def _grouped_counts(gateway: str | None, since) -> tuple[list[dict], list[dict]]:
    events = WebhookEvent.objects.filter(created_at__gte=since)
    if gateway:
        events = events.filter(gateway=gateway)

    # order_by() drops Meta.ordering so it doesn't leak into GROUP BY
    by_status = list(events.values('status').annotate(count=Count('id')).order_by())
    by_type = list(events.values('event_type').annotate(count=Count('id')).order_by())
    return by_status, by_type


async def get_event_stats(
    gateway: str | None = None,
    hours: int = DEFAULT_STATS_HOURS,
) -> dict:
    """
    Count events created in the trailing window.

    Returns:
        {'total', 'processing', 'processed', 'failed', 'skipped', 'by_type'}
        Statuses with no events in the window are reported as 0.
    """
    since = timezone.now() - timedelta(hours=hours)
    by_status, by_type = await sync_to_async(_grouped_counts)(gateway, since)

    result = {status: 0 for status in WebhookEvent.Status.values}
    result['total'] = 0
    for row in by_status:
        result[row['status']] = row['count']
        result['total'] += row['count']

    result['by_type'] = {row['event_type']: row['count'] for row in by_type}
    return result
