import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='WebhookEvent',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('gateway', models.CharField(choices=[('stripe', 'Stripe'), ('paymob', 'Paymob'), ('paytabs', 'PayTabs'), ('paddle', 'Paddle')], max_length=20)),
                ('event_id', models.CharField(max_length=255)),
                ('event_type', models.CharField(db_index=True, max_length=255)),
                ('payload', models.JSONField(blank=True, null=True)),
                ('status', models.CharField(choices=[('processing', 'Processing'), ('processed', 'Processed'), ('failed', 'Failed'), ('skipped', 'Skipped')], default='processing', max_length=20)),
                ('processed_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('error', models.TextField(blank=True)),
                ('metadata', models.JSONField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['gateway', 'status'], name='webhook_gateway_status_idx'),
                    models.Index(fields=['created_at'], name='webhook_created_at_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('gateway', 'event_id'), name='uniq_webhook_event_per_gateway'),
                ],
            },
        ),
    ]
