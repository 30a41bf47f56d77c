"""
Registry of side-effect handlers keyed by (gateway, event_type).

Billing code registers coroutines here; the webhook view looks them up after
the idempotency gate grants a reservation. A handler may return a dict that
is stored as the event's metadata. Event types with no handler are closed
as skipped.

    @register('paddle', 'subscription.updated')
    async def sync_subscription(callback):
        ...
"""
from typing import Awaitable, Callable

from .gateways import ParsedCallback
from .models import WebhookEvent

Handler = Callable[[ParsedCallback], Awaitable[dict | None]]

_HANDLERS: dict[tuple[str, str], Handler] = {}


def register_handler(gateway: str, event_type: str, handler: Handler) -> None:
    if gateway not in WebhookEvent.Gateway.values:
        raise ValueError(f"unknown_gateway:{gateway}")
    key = (gateway, event_type)
    if key in _HANDLERS:
        raise ValueError(f"duplicate_handler_for:{gateway}:{event_type}")
    _HANDLERS[key] = handler


def register(gateway: str, event_type: str):
    def decorator(handler: Handler) -> Handler:
        register_handler(gateway, event_type, handler)
        return handler
    return decorator


def unregister_handler(gateway: str, event_type: str) -> None:
    _HANDLERS.pop((gateway, event_type), None)


def get_handler(gateway: str, event_type: str) -> Handler | None:
    return _HANDLERS.get((gateway, event_type))
