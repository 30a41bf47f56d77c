from django.apps import AppConfig


class PaymentWebhooksConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'payment_webhooks'
    verbose_name = 'Payment webhooks'
