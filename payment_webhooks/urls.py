"""URL patterns for webhook endpoints."""
from django.urls import path
from . import views

urlpatterns = [
    path('api/webhooks/events/', views.recent_events, name='webhook_recent_events'),
    path('api/webhooks/stats/', views.event_stats, name='webhook_event_stats'),
    path('api/webhooks/<str:gateway>/', views.gateway_webhook, name='gateway_webhook'),
    path('health/', views.health_check, name='health_check'),
]
