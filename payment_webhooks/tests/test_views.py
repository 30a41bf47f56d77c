"""Tests for webhook HTTP endpoints."""
import json

from django.test import TestCase, override_settings

from payment_webhooks.handlers import register_handler, unregister_handler
from payment_webhooks.models import WebhookEvent

from .test_gateways import PADDLE_SECRET, STRIPE_SECRET, paddle_header, stripe_header


def paddle_body(event_id='evt_01', event_type='subscription.updated'):
    return json.dumps({'event_id': event_id, 'event_type': event_type, 'data': {'id': 'sub_789'}})


@override_settings(STRIPE_WEBHOOK_SECRET=STRIPE_SECRET, PADDLE_WEBHOOK_SECRET=PADDLE_SECRET)
class GatewayWebhookEndpointTests(TestCase):
    """Test POST /api/webhooks/<gateway>/."""

    async def _post_paddle(self, body):
        return await self.async_client.post(
            '/api/webhooks/paddle/',
            data=body,
            content_type='application/json',
            headers={'Paddle-Signature': paddle_header(body)},
        )

    def _register(self, gateway, event_type, handler):
        register_handler(gateway, event_type, handler)
        self.addCleanup(unregister_handler, gateway, event_type)

    async def test_unhandled_type_is_skipped(self):
        response = await self._post_paddle(paddle_body(event_type='address.created'))

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {'received': True, 'status': 'skipped'})
        event = await WebhookEvent.objects.aget(gateway='paddle', event_id='evt_01')
        self.assertEqual(event.status, WebhookEvent.Status.SKIPPED)
        self.assertEqual(event.error, 'Unhandled event type: address.created')

    async def test_handler_success_marks_processed(self):
        calls = []

        async def sync_subscription(callback):
            calls.append(callback.event_id)
            return {'subscription_id': callback.payload['data']['id']}

        self._register('paddle', 'subscription.updated', sync_subscription)

        response = await self._post_paddle(paddle_body())

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['status'], 'processed')
        self.assertEqual(calls, ['evt_01'])
        event = await WebhookEvent.objects.aget(gateway='paddle', event_id='evt_01')
        self.assertEqual(event.status, WebhookEvent.Status.PROCESSED)
        self.assertEqual(event.metadata, {'event_type': 'subscription.updated', 'subscription_id': 'sub_789'})

    async def test_redelivery_is_acknowledged_without_side_effects(self):
        calls = []

        async def sync_subscription(callback):
            calls.append(callback.event_id)

        self._register('paddle', 'subscription.updated', sync_subscription)

        first = await self._post_paddle(paddle_body())
        second = await self._post_paddle(paddle_body())

        self.assertEqual(first.json()['status'], 'processed')
        self.assertEqual(second.status_code, 200)
        self.assertEqual(second.json(), {'received': True, 'status': 'duplicate'})
        self.assertEqual(calls, ['evt_01'])

    async def test_handler_failure_marks_failed_and_asks_for_retry(self):
        async def explode(callback):
            raise RuntimeError('User not found')

        self._register('paddle', 'subscription.updated', explode)

        with self.assertLogs('payment_webhooks', level='ERROR'):
            response = await self._post_paddle(paddle_body())

        self.assertEqual(response.status_code, 500)
        event = await WebhookEvent.objects.aget(gateway='paddle', event_id='evt_01')
        self.assertEqual(event.status, WebhookEvent.Status.FAILED)
        self.assertEqual(event.error, 'User not found')

    async def test_stripe_event(self):
        body = json.dumps({
            'id': 'evt_123', 'object': 'event', 'type': 'invoice.paid',
            'data': {'object': {'id': 'in_1'}},
        })
        response = await self.async_client.post(
            '/api/webhooks/stripe/',
            data=body,
            content_type='application/json',
            headers={'Stripe-Signature': stripe_header(body)},
        )

        self.assertEqual(response.status_code, 200)
        event = await WebhookEvent.objects.aget(gateway='stripe', event_id='evt_123')
        self.assertEqual(event.payload, {'id': 'in_1'})

    async def test_invalid_signature(self):
        body = paddle_body()
        response = await self.async_client.post(
            '/api/webhooks/paddle/',
            data=body,
            content_type='application/json',
            headers={'Paddle-Signature': paddle_header(body, secret='wrong')},
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(await WebhookEvent.objects.acount(), 0)

    async def test_invalid_json(self):
        response = await self._post_paddle('not valid json')
        self.assertEqual(response.status_code, 400)

    async def test_non_utf8_body_rejected(self):
        response = await self._post_paddle(b'\xff\xfe{}')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(await WebhookEvent.objects.acount(), 0)

    @override_settings(PADDLE_WEBHOOK_SECRET='')
    async def test_unconfigured_gateway(self):
        response = await self._post_paddle(paddle_body())
        self.assertEqual(response.status_code, 503)

    @override_settings(WEBHOOK_MAX_PAYLOAD_SIZE=10)
    async def test_payload_too_large(self):
        response = await self._post_paddle(paddle_body())
        self.assertEqual(response.status_code, 413)

    async def test_unknown_gateway(self):
        response = await self.async_client.post(
            '/api/webhooks/paypal/', data='{}', content_type='application/json'
        )
        self.assertEqual(response.status_code, 404)

    async def test_get_not_allowed(self):
        response = await self.async_client.get('/api/webhooks/paddle/')
        self.assertEqual(response.status_code, 405)


class MonitoringEndpointTests(TestCase):
    """Test the recent-events and stats endpoints."""

    def setUp(self):
        WebhookEvent.objects.create(
            gateway='paddle', event_id='sub_789', event_type='subscription.updated',
            status=WebhookEvent.Status.PROCESSED,
        )
        WebhookEvent.objects.create(
            gateway='stripe', event_id='evt_123', event_type='invoice.paid',
            status=WebhookEvent.Status.FAILED, error='boom',
        )

    async def test_recent_events(self):
        response = await self.async_client.get('/api/webhooks/events/', {'gateway': 'paddle', 'limit': '10'})

        self.assertEqual(response.status_code, 200)
        events = response.json()['events']
        self.assertEqual(len(events), 1)
        self.assertEqual(events[0]['event_id'], 'sub_789')
        self.assertEqual(events[0]['status'], 'processed')

    async def test_stats(self):
        response = await self.async_client.get('/api/webhooks/stats/')

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data['total'], 2)
        self.assertEqual(data['processed'], 1)
        self.assertEqual(data['failed'], 1)
        self.assertEqual(data['skipped'], 0)
        self.assertEqual(data['hours'], 24)
        self.assertEqual(data['by_type'], {'subscription.updated': 1, 'invoice.paid': 1})

    async def test_bad_query_values(self):
        response = await self.async_client.get('/api/webhooks/events/', {'limit': 'abc'})
        self.assertEqual(response.status_code, 400)
        response = await self.async_client.get('/api/webhooks/stats/', {'hours': '0'})
        self.assertEqual(response.status_code, 400)
        response = await self.async_client.get('/api/webhooks/stats/', {'gateway': 'paypal'})
        self.assertEqual(response.status_code, 400)

    @override_settings(WEBHOOK_MONITOR_TOKEN='s3cret')
    async def test_token_required_when_configured(self):
        response = await self.async_client.get('/api/webhooks/stats/')
        self.assertEqual(response.status_code, 401)

        response = await self.async_client.get(
            '/api/webhooks/stats/', headers={'Authorization': 'Bearer s3cret'}
        )
        self.assertEqual(response.status_code, 200)


class HealthCheckTests(TestCase):

    def test_health_check(self):
        response = self.client.get('/health/')
        self.assertEqual(response.status_code, 200)
        data = json.loads(response.content)
        self.assertEqual(data['status'], 'ok')
