"""Async webhook views for payment gateway callbacks."""
import hmac
import logging
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods
from django.utils import timezone
from django.conf import settings
from asgiref.sync import sync_to_async

from .exceptions import WebhookError
from .gateways import parse_callback
from .handlers import get_handler
from .models import WebhookEvent
from .service import (
    DEFAULT_RECENT_LIMIT,
    DEFAULT_STATS_HOURS,
    check_and_mark_processing,
    get_event_stats,
    get_recent_events,
    mark_failed,
    mark_processed,
    mark_skipped,
    webhook_log,
)
from .utils import get_client_ip, parse_positive_int

logger = logging.getLogger('payment_webhooks')

MAX_RECENT_LIMIT = 1000
MAX_STATS_HOURS = 24 * 90


@csrf_exempt  # Safe: gateway signatures authenticate requests
@require_http_methods(["POST"])
async def gateway_webhook(request, gateway):
    """
    Receive one payment gateway callback.

    Verifies the signature, reserves the event through the idempotency gate,
    runs the registered handler and closes the event. Returns 5xx only when
    the provider should redeliver.
    """
    if gateway not in WebhookEvent.Gateway.values:
        return JsonResponse({'error': 'Unknown gateway'}, status=404)

    client_ip = get_client_ip(request)
    raw_body = await sync_to_async(lambda: request.body)()

    if len(raw_body) > settings.WEBHOOK_MAX_PAYLOAD_SIZE:
        logger.warning(f"Payload too large from {client_ip}: {len(raw_body)} bytes")
        return JsonResponse({'error': 'Payload too large'}, status=413)

    try:
        callback = parse_callback(gateway, raw_body, request.headers, request.GET)
    except WebhookError as e:
        webhook_log(
            'error' if e.status_code >= 500 else 'warn',
            f'Rejected webhook callback: {e.message}',
            gateway=gateway, event_id='unknown', event_type='unknown', client_ip=client_ip,
        )
        return JsonResponse({'error': e.message}, status=e.status_code)

    event_id, event_type = callback.event_id, callback.event_type
    webhook_log(
        'info', 'Webhook received',
        gateway=gateway, event_id=event_id, event_type=event_type, client_ip=client_ip,
    )

    result = await check_and_mark_processing(gateway, event_id, event_type, callback.payload)
    if result.status == 'duplicate':
        return JsonResponse({'received': True, 'status': 'duplicate'})
    if result.status == 'error':
        return JsonResponse({'error': 'Storage error'}, status=500)

    handler = get_handler(gateway, event_type)
    if handler is None:
        await mark_skipped(gateway, event_id, f"Unhandled event type: {event_type}")
        return JsonResponse({'received': True, 'status': 'skipped'})

    try:
        outcome = await handler(callback)
    except Exception as e:
        webhook_log(
            'error', 'Webhook handler failed',
            gateway=gateway, event_id=event_id, event_type=event_type, error=str(e),
        )
        await mark_failed(gateway, event_id, str(e) or type(e).__name__)
        return JsonResponse({'error': 'Webhook handler failed'}, status=500)

    await mark_processed(gateway, event_id, {'event_type': event_type, **(outcome or {})})
    return JsonResponse({'received': True, 'status': 'processed'})


def _monitor_denied(request):
    token = settings.WEBHOOK_MONITOR_TOKEN
    if not token:
        return None
    header = request.headers.get('Authorization', '')
    if hmac.compare_digest(header, f"Bearer {token}"):
        return None
    logger.warning(f"Unauthorized monitoring request from {get_client_ip(request)}")
    return JsonResponse({'error': 'Unauthorized'}, status=401)


def _gateway_filter(request):
    gateway = request.GET.get('gateway') or None
    if gateway and gateway not in WebhookEvent.Gateway.values:
        raise ValueError(f"unknown gateway {gateway}")
    return gateway


@require_http_methods(["GET"])
async def recent_events(request):
    """List the most recent webhook events, newest first."""
    denied = _monitor_denied(request)
    if denied:
        return denied

    try:
        gateway = _gateway_filter(request)
        limit = parse_positive_int(request.GET.get('limit'), DEFAULT_RECENT_LIMIT, MAX_RECENT_LIMIT)
    except ValueError as e:
        return JsonResponse({'error': str(e)}, status=400)

    events = await get_recent_events(gateway, limit)
    return JsonResponse({'events': [event.to_dict() for event in events]})


@require_http_methods(["GET"])
async def event_stats(request):
    """Per-status and per-type counts over a trailing window."""
    denied = _monitor_denied(request)
    if denied:
        return denied

    try:
        gateway = _gateway_filter(request)
        hours = parse_positive_int(request.GET.get('hours'), DEFAULT_STATS_HOURS, MAX_STATS_HOURS)
    except ValueError as e:
        return JsonResponse({'error': str(e)}, status=400)

    stats = await get_event_stats(gateway, hours)
    return JsonResponse({'gateway': gateway, 'hours': hours, **stats})


async def health_check(request):
    """Health check endpoint for monitoring."""
    return JsonResponse({
        'status': 'ok',
        'timestamp': timezone.now().isoformat()
    })
