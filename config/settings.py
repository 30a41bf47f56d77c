"""Django settings for the payment webhook ledger."""
import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).resolve().parent.parent


def env_flag(name: str, default: str = 'false') -> bool:
    return os.getenv(name, default).lower() in ('true', '1', 'yes')


# Ensure logs directory exists
LOGS_DIR = BASE_DIR / 'logs'
LOGS_DIR.mkdir(exist_ok=True)

# Security
SECRET_KEY = os.getenv('SECRET_KEY', 'insecure-dev-key-change-in-production')
DEBUG = env_flag('DEBUG')
ALLOWED_HOSTS = os.getenv('ALLOWED_HOSTS', 'localhost,127.0.0.1').split(',')

# Application definition
INSTALLED_APPS = [
    'django.contrib.contenttypes',
    'django.contrib.auth',
    'payment_webhooks',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'payment_webhooks.middleware.RequestLoggingMiddleware',
    'payment_webhooks.middleware.RateLimitMiddleware',
    'django.middleware.common.CommonMiddleware',
]

ROOT_URLCONF = 'config.urls'
WSGI_APPLICATION = 'config.wsgi.application'
ASGI_APPLICATION = 'config.asgi.application'

# Database - PostgreSQL (the unique (gateway, event_id) constraint needs a real RDBMS)
DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.postgresql',
        'NAME': os.getenv('DATABASE_NAME', 'webhook_db'),
        'USER': os.getenv('DATABASE_USER', 'webhook_user'),
        'PASSWORD': os.getenv('DATABASE_PASSWORD', 'webhook_pass'),
        'HOST': os.getenv('DATABASE_HOST', 'localhost'),
        'PORT': os.getenv('DATABASE_PORT', '5432'),
    }
}

# Cache - Redis (rate limit counters)
CACHES = {
    'default': {
        'BACKEND': 'django_redis.cache.RedisCache',
        'LOCATION': os.getenv('REDIS_URL', 'redis://localhost:6379/0'),
        'OPTIONS': {
            'CLIENT_CLASS': 'django_redis.client.DefaultClient',
        }
    }
}

# Internationalization
LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

# Default primary key field type
DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# Gateway secrets
STRIPE_WEBHOOK_SECRET = os.getenv('STRIPE_WEBHOOK_SECRET', '')
PADDLE_WEBHOOK_SECRET = os.getenv('PADDLE_WEBHOOK_SECRET', '')
PAYMOB_HMAC_SECRET = os.getenv('PAYMOB_HMAC_SECRET', '')
PAYTABS_SERVER_KEY = os.getenv('PAYTABS_SERVER_KEY', '')

# Webhook Configuration
WEBHOOK_PATH_PREFIX = os.getenv('WEBHOOK_PATH_PREFIX', '/api/webhooks')
WEBHOOK_MAX_PAYLOAD_SIZE = int(os.getenv('WEBHOOK_MAX_PAYLOAD_SIZE', '1000000'))
WEBHOOK_TIMESTAMP_TOLERANCE = int(os.getenv('WEBHOOK_TIMESTAMP_TOLERANCE', '300'))
WEBHOOK_MONITOR_TOKEN = os.getenv('WEBHOOK_MONITOR_TOKEN', '')
RATE_LIMIT_PER_MINUTE = int(os.getenv('RATE_LIMIT_PER_MINUTE', '100'))
SKIP_SIGNATURE_VERIFICATION = env_flag('SKIP_SIGNATURE_VERIFICATION')
TRUST_X_FORWARDED_FOR = env_flag('TRUST_X_FORWARDED_FOR')

# Security Headers (production)
SECURE_SSL_REDIRECT = not DEBUG
SECURE_HSTS_SECONDS = 31536000 if not DEBUG else 0
SECURE_HSTS_INCLUDE_SUBDOMAINS = not DEBUG
SECURE_CONTENT_TYPE_NOSNIFF = True
X_FRAME_OPTIONS = 'DENY'

# Logging
LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{levelname} {asctime} {module} {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
        'file': {
            'class': 'logging.handlers.RotatingFileHandler',
            'filename': LOGS_DIR / 'payment_webhooks.log',
            'maxBytes': 10485760,  # 10MB
            'backupCount': 5,
            'formatter': 'verbose',
        },
    },
    'loggers': {
        'payment_webhooks': {
            'handlers': ['console', 'file'],
            'level': 'DEBUG' if DEBUG else 'INFO',
            'propagate': False,
        },
    },
}
