"""Root URL configuration."""
from django.urls import include, path

urlpatterns = [
    path('', include('payment_webhooks.urls')),
]
