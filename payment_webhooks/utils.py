"""Shared utility functions for webhook handling."""
from django.conf import settings


def get_client_ip(request) -> str:
    """
    Extract client IP from request.

    X-Forwarded-For is only honoured when TRUST_X_FORWARDED_FOR is set,
    i.e. when the app runs behind a proxy that overwrites the header.

    Args:
        request: Django HTTP request object

    Returns:
        Client IP address as string
    """
    if getattr(settings, 'TRUST_X_FORWARDED_FOR', False):
        x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
        if x_forwarded_for:
            return x_forwarded_for.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR', '')


def parse_positive_int(value: str | None, default: int, maximum: int) -> int:
    """
    Parse a query string integer, clamped to ``maximum``.

    Raises:
        ValueError: value is not a positive integer
    """
    if value in (None, ''):
        return default
    number = int(value)
    if number < 1:
        raise ValueError(f"expected a positive integer, got {value}")
    return min(number, maximum)
