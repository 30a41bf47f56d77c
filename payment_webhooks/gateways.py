"""
Per-gateway callback parsing.

Each parser verifies the provider's signature and reduces the raw callback
to the (gateway, event_id, event_type, payload) tuple the idempotency gate
works with.
"""
import json
import logging
import time
from dataclasses import dataclass
from typing import Callable, Mapping

import stripe
from django.conf import settings

from .exceptions import GatewayNotConfigured, InvalidPayload, InvalidSignature
from .service import generate_event_id
from .signature import verify_paddle_signature, verify_paymob_hmac, verify_paytabs_signature

logger = logging.getLogger('payment_webhooks')


@dataclass
class ParsedCallback:
    gateway: str
    event_id: str
    event_type: str
    payload: dict


def _load_json(raw_body: bytes) -> dict:
    try:
        data = json.loads(raw_body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise InvalidPayload("Invalid JSON")
    if not isinstance(data, dict):
        raise InvalidPayload("Expected a JSON object")
    return data


def _secret(gateway: str, setting_name: str) -> str | None:
    """Return the configured secret, or None when verification is disabled."""
    if settings.SKIP_SIGNATURE_VERIFICATION:
        logger.warning(f"Signature verification skipped for {gateway}")
        return None
    secret = getattr(settings, setting_name, '')
    if not secret:
        logger.error(f"Missing {setting_name} configuration")
        raise GatewayNotConfigured(gateway)
    return secret


def parse_stripe(raw_body: bytes, headers: Mapping, query: Mapping) -> ParsedCallback:
    secret = _secret('stripe', 'STRIPE_WEBHOOK_SECRET')
    if secret:
        signature = headers.get('Stripe-Signature', '')
        if not signature:
            raise InvalidSignature("Missing signature")
        try:
            stripe.Webhook.construct_event(
                raw_body, signature, secret,
                tolerance=settings.WEBHOOK_TIMESTAMP_TOLERANCE,
            )
        except ValueError:
            raise InvalidPayload("Invalid JSON")
        except stripe.SignatureVerificationError as e:
            logger.warning(f"Stripe signature verification failed: {e}")
            raise InvalidSignature()

    data = _load_json(raw_body)
    event_id, event_type = data.get('id'), data.get('type')
    if not event_id or not event_type:
        raise InvalidPayload("Missing event id or type")

    obj = (data.get('data') or {}).get('object')
    return ParsedCallback('stripe', str(event_id), str(event_type), obj if isinstance(obj, dict) else {})


def parse_paddle(raw_body: bytes, headers: Mapping, query: Mapping) -> ParsedCallback:
    secret = _secret('paddle', 'PADDLE_WEBHOOK_SECRET')
    if secret and not verify_paddle_signature(raw_body, headers.get('Paddle-Signature', ''), secret):
        raise InvalidSignature()

    data = _load_json(raw_body)
    event_id = data.get('event_id') or f"paddle-{int(time.time() * 1000)}"
    event_type = str(data.get('event_type') or 'unknown')
    return ParsedCallback('paddle', str(event_id), event_type, data)


def parse_paymob(raw_body: bytes, headers: Mapping, query: Mapping) -> ParsedCallback:
    data = _load_json(raw_body)
    obj = data.get('obj')
    if not isinstance(obj, dict) or obj.get('id') in (None, ''):
        raise InvalidPayload("Missing transaction object")

    secret = _secret('paymob', 'PAYMOB_HMAC_SECRET')
    received = query.get('hmac') or data.get('hmac') or ''
    if secret and not verify_paymob_hmac(obj, received, secret):
        raise InvalidSignature()

    event_type = str(data.get('type') or 'TRANSACTION')
    event_id = generate_event_id('paymob', str(obj['id']), event_type)
    return ParsedCallback('paymob', event_id, event_type, obj)


def parse_paytabs(raw_body: bytes, headers: Mapping, query: Mapping) -> ParsedCallback:
    secret = _secret('paytabs', 'PAYTABS_SERVER_KEY')
    if secret and not verify_paytabs_signature(raw_body, headers.get('Signature', ''), secret):
        raise InvalidSignature()

    data = _load_json(raw_body)
    result = data.get('payment_result') if isinstance(data.get('payment_result'), dict) else {}
    response_status = result.get('response_status')
    event_type = 'payment.success' if response_status == 'A' else 'payment.failed'
    tran_ref = data.get('tran_ref') or 'unknown'

    payload = {
        'tran_ref': data.get('tran_ref'),
        'cart_id': data.get('cart_id'),
        'response_status': response_status,
    }
    return ParsedCallback('paytabs', generate_event_id('paytabs', tran_ref, event_type), event_type, payload)


PARSERS: dict[str, Callable[[bytes, Mapping, Mapping], ParsedCallback]] = {
    'stripe': parse_stripe,
    'paddle': parse_paddle,
    'paymob': parse_paymob,
    'paytabs': parse_paytabs,
}


def parse_callback(
    gateway: str,
    raw_body: bytes,
    headers: Mapping,
    query: Mapping | None = None,
) -> ParsedCallback:
    """
    Verify and parse a raw gateway callback.

    Raises:
        InvalidPayload: body is not a usable JSON callback
        InvalidSignature: signature missing or wrong
        GatewayNotConfigured: no secret configured for the gateway
        KeyError: unknown gateway
    """
    return PARSERS[gateway](raw_body, headers, query or {})
