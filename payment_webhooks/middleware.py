"""Rate limiting and audit logging for webhook endpoints."""
import logging
import time
from django.http import JsonResponse
from django.conf import settings
from django.core.cache import cache
from asgiref.sync import iscoroutinefunction, markcoroutinefunction, sync_to_async

from .utils import get_client_ip

logger = logging.getLogger('payment_webhooks')

RATE_LIMIT_WINDOW = 60


def _is_webhook_path(path: str) -> bool:
    return path.startswith(settings.WEBHOOK_PATH_PREFIX)


class RateLimitMiddleware:
    """
    Per-IP fixed-window rate limit on webhook paths, counted in the shared
    cache (Redis in production). Cache outages fail open.
    """

    sync_capable = True
    async_capable = True

    def __init__(self, get_response):
        self.get_response = get_response
        self.rate_limit = getattr(settings, 'RATE_LIMIT_PER_MINUTE', 100)
        self.async_mode = iscoroutinefunction(get_response)
        if self.async_mode:
            markcoroutinefunction(self)

    def __call__(self, request):
        if self.async_mode:
            return self._async_call(request)
        return self._sync_call(request)

    def _limited_response(self, client_ip: str):
        logger.warning(f"Rate limit exceeded for {client_ip}")
        return JsonResponse({'error': 'Rate limit exceeded'}, status=429)

    async def _async_call(self, request):
        if not _is_webhook_path(request.path):
            return await self.get_response(request)

        client_ip = get_client_ip(request)
        if await sync_to_async(self._is_rate_limited)(client_ip):
            return self._limited_response(client_ip)

        return await self.get_response(request)

    def _sync_call(self, request):
        if not _is_webhook_path(request.path):
            return self.get_response(request)

        client_ip = get_client_ip(request)
        if self._is_rate_limited(client_ip):
            return self._limited_response(client_ip)

        return self.get_response(request)

    def _is_rate_limited(self, client_ip: str) -> bool:
        cache_key = f'webhook-ratelimit:{client_ip}'
        try:
            # add() is a no-op when the window is already open
            cache.add(cache_key, 0, timeout=RATE_LIMIT_WINDOW)
            current = cache.incr(cache_key)
            return current > self.rate_limit
        except ValueError:
            # Window expired between add() and incr()
            cache.set(cache_key, 1, timeout=RATE_LIMIT_WINDOW)
            return False
        except Exception as e:
            logger.error(f"Rate limit cache error: {e}")
            return False


class RequestLoggingMiddleware:
    """Audit log line for every webhook request. Supports sync and async."""

    sync_capable = True
    async_capable = True

    def __init__(self, get_response):
        self.get_response = get_response
        self.async_mode = iscoroutinefunction(get_response)
        if self.async_mode:
            markcoroutinefunction(self)

    def __call__(self, request):
        if self.async_mode:
            return self._async_call(request)
        return self._sync_call(request)

    def _log_completed(self, request, response, start_time: float):
        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            f"Completed: {request.method} {request.path} "
            f"status={response.status_code} duration={duration_ms:.2f}ms"
        )

    async def _async_call(self, request):
        if not _is_webhook_path(request.path):
            return await self.get_response(request)

        start_time = time.time()
        logger.debug(
            f"Incoming: {request.method} {request.path} from {get_client_ip(request)}"
        )
        response = await self.get_response(request)
        self._log_completed(request, response, start_time)
        return response

    def _sync_call(self, request):
        if not _is_webhook_path(request.path):
            return self.get_response(request)

        start_time = time.time()
        logger.debug(
            f"Incoming: {request.method} {request.path} from {get_client_ip(request)}"
        )
        response = self.get_response(request)
        self._log_completed(request, response, start_time)
        return response
