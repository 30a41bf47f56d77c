"""HMAC signature checks for gateways without an official verification SDK."""
import hashlib
import hmac
import time
import logging
from django.conf import settings

logger = logging.getLogger('payment_webhooks')

# Field order Paymob uses to build its HMAC string
PAYMOB_HMAC_FIELDS = (
    'amount_cents',
    'created_at',
    'currency',
    'error_occured',
    'has_parent_transaction',
    'id',
    'integration_id',
    'is_3d_secure',
    'is_auth',
    'is_capture',
    'is_refunded',
    'is_standalone_payment',
    'is_voided',
    'order.id',
    'owner',
    'pending',
    'source_data.pan',
    'source_data.sub_type',
    'source_data.type',
    'success',
)


def _paymob_value(obj: dict, path: str) -> str:
    value = obj
    for key in path.split('.'):
        value = value.get(key) if isinstance(value, dict) else None
    if value is None:
        return ''
    if isinstance(value, bool):
        # Paymob signs JSON booleans in their JS spelling
        return 'true' if value else 'false'
    return str(value)


def is_timestamp_valid(timestamp: int | str, tolerance: int | None = None) -> bool:
    """
    Check if timestamp is within acceptable range (prevent replay attacks).

    Args:
        timestamp: Signature timestamp (Unix seconds)
        tolerance: Max age in seconds (uses settings if not provided)

    Returns:
        True if timestamp is recent enough
    """
    if tolerance is None:
        tolerance = settings.WEBHOOK_TIMESTAMP_TOLERANCE

    try:
        ts = int(timestamp)
        age = abs(int(time.time()) - ts)
        is_valid = age <= tolerance

        if not is_valid:
            logger.warning(f"Stale timestamp: age={age}s, tolerance={tolerance}s")

        return is_valid

    except (ValueError, TypeError) as e:
        logger.warning(f"Invalid timestamp format: {timestamp}, error: {e}")
        return False


def verify_paddle_signature(raw_body: bytes, header: str, secret: str) -> bool:
    """
    Verify a Paddle Billing signature.

    Header format: ``ts=<unix>;h1=<hex>``, where
    h1 = HMAC-SHA256(secret, f"{ts}:{raw_body}").
    """
    if not header:
        logger.warning("Missing Paddle-Signature header")
        return False

    parts = dict(
        item.split('=', 1) for item in header.split(';') if '=' in item
    )
    ts, received = parts.get('ts', ''), parts.get('h1', '')
    if not ts or not received:
        logger.warning("Malformed Paddle-Signature header")
        return False

    if not is_timestamp_valid(ts):
        return False

    if isinstance(raw_body, str):
        raw_body = raw_body.encode('utf-8')
    # Signed over raw bytes; the body may not be valid UTF-8
    expected = hmac.new(
        secret.encode('utf-8'), f"{ts}:".encode('utf-8') + raw_body, hashlib.sha256
    ).hexdigest()

    is_valid = hmac.compare_digest(received.lower(), expected)
    if not is_valid:
        logger.warning(f"Paddle signature mismatch: received={received[:16]}...")
    return is_valid


def verify_paymob_hmac(obj: dict, received: str, secret: str) -> bool:
    """
    Verify a Paymob transaction callback.

    The HMAC-SHA512 is computed over the concatenation of
    PAYMOB_HMAC_FIELDS taken from the callback's ``obj``.
    """
    if not received:
        logger.warning("Missing Paymob hmac")
        return False

    message = ''.join(_paymob_value(obj, field) for field in PAYMOB_HMAC_FIELDS)
    expected = hmac.new(
        secret.encode('utf-8'), message.encode('utf-8'), hashlib.sha512
    ).hexdigest()

    is_valid = hmac.compare_digest(received.lower(), expected)
    if not is_valid:
        logger.warning(f"Paymob hmac mismatch: received={received[:16]}...")
    return is_valid


def verify_paytabs_signature(raw_body: bytes, signature: str, server_key: str) -> bool:
    """Verify a PayTabs callback: HMAC-SHA256 of the raw body keyed by the server key."""
    if not signature:
        logger.warning("Missing PayTabs signature header")
        return False

    raw = raw_body if isinstance(raw_body, bytes) else raw_body.encode('utf-8')
    expected = hmac.new(server_key.encode('utf-8'), raw, hashlib.sha256).hexdigest()

    is_valid = hmac.compare_digest(signature.lower(), expected)
    if not is_valid:
        logger.warning(f"PayTabs signature mismatch: received={signature[:16]}...")
    return is_valid
