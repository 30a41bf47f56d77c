"""Tests for rate limiting and request logging middleware."""
from unittest.mock import patch

from django.core.cache import cache
from django.http import HttpResponse
from django.test import RequestFactory, TestCase, override_settings

from payment_webhooks.middleware import RateLimitMiddleware, RequestLoggingMiddleware


def ok_view(request):
    return HttpResponse('ok')


async def async_ok_view(request):
    return HttpResponse('ok')


@override_settings(RATE_LIMIT_PER_MINUTE=2)
class RateLimitMiddlewareTests(TestCase):

    def setUp(self):
        cache.clear()
        self.factory = RequestFactory()

    def test_blocks_after_limit(self):
        middleware = RateLimitMiddleware(ok_view)
        request = self.factory.post('/api/webhooks/paddle/', REMOTE_ADDR='10.0.0.1')

        self.assertEqual(middleware(request).status_code, 200)
        self.assertEqual(middleware(request).status_code, 200)
        with self.assertLogs('payment_webhooks', level='WARNING'):
            self.assertEqual(middleware(request).status_code, 429)

    def test_limit_is_per_ip(self):
        middleware = RateLimitMiddleware(ok_view)
        for _ in range(3):
            middleware(self.factory.post('/api/webhooks/paddle/', REMOTE_ADDR='10.0.0.1'))

        other = self.factory.post('/api/webhooks/paddle/', REMOTE_ADDR='10.0.0.2')
        self.assertEqual(middleware(other).status_code, 200)

    def test_other_paths_not_limited(self):
        middleware = RateLimitMiddleware(ok_view)
        for _ in range(5):
            response = middleware(self.factory.get('/health/', REMOTE_ADDR='10.0.0.1'))
        self.assertEqual(response.status_code, 200)

    def test_cache_outage_fails_open(self):
        middleware = RateLimitMiddleware(ok_view)
        request = self.factory.post('/api/webhooks/paddle/', REMOTE_ADDR='10.0.0.1')

        with patch('payment_webhooks.middleware.cache.add', side_effect=ConnectionError('redis down')):
            with self.assertLogs('payment_webhooks', level='ERROR'):
                response = middleware(request)
        self.assertEqual(response.status_code, 200)

    async def test_async_mode(self):
        middleware = RateLimitMiddleware(async_ok_view)
        request = self.factory.post('/api/webhooks/stripe/', REMOTE_ADDR='10.0.0.3')

        statuses = [(await middleware(request)).status_code for _ in range(3)]
        self.assertEqual(statuses, [200, 200, 429])


class RequestLoggingMiddlewareTests(TestCase):

    def setUp(self):
        self.factory = RequestFactory()

    def test_logs_webhook_requests(self):
        middleware = RequestLoggingMiddleware(ok_view)
        with self.assertLogs('payment_webhooks', level='INFO') as logs:
            middleware(self.factory.post('/api/webhooks/paymob/'))
        self.assertIn('status=200', logs.output[0])

    @override_settings(TRUST_X_FORWARDED_FOR=True)
    def test_forwarded_ip_used_behind_proxy(self):
        middleware = RequestLoggingMiddleware(ok_view)
        request = self.factory.post(
            '/api/webhooks/paymob/', HTTP_X_FORWARDED_FOR='203.0.113.9, 10.0.0.1'
        )
        with self.assertLogs('payment_webhooks', level='DEBUG') as logs:
            middleware(request)
        self.assertIn('from 203.0.113.9', logs.output[0])
