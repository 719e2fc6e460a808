"""
Django settings for the storefront state layer.

The package never owns tables: every row lives in the hosted backend and is
reached through storefront.core.backend_client. Django provides settings,
the cache framework, signals, management commands and the test runner.
"""
import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent.parent

SECRET_KEY = os.getenv('DJANGO_SECRET_KEY', 'storefront-insecure-dev-key')

DEBUG = os.getenv('DJANGO_DEBUG', 'false').lower() == 'true'

ALLOWED_HOSTS = []

INSTALLED_APPS = [
    'django.contrib.contenttypes',
    'django.contrib.auth',
    'rest_framework',
    'storefront.core',
    'storefront.accounts',
    'storefront.catalog',
    'storefront.cart',
    'storefront.garage',
    'storefront.orders',
]

# No local database: rows belong to the hosted backend
DATABASES = {}

USE_TZ = True
TIME_ZONE = 'Europe/Paris'
LANGUAGE_CODE = 'fr-fr'

# Hosted backend (PostgREST tables, storage, auth, edge functions)
SUPABASE_URL = os.getenv('SUPABASE_URL', 'http://localhost:54321')
SUPABASE_ANON_KEY = os.getenv('SUPABASE_ANON_KEY', '')
SUPABASE_SERVICE_ROLE_KEY = os.getenv('SUPABASE_SERVICE_ROLE_KEY', '')
BACKEND_TIMEOUT = int(os.getenv('BACKEND_TIMEOUT', '10'))

SCOOTER_PHOTOS_BUCKET = os.getenv('SCOOTER_PHOTOS_BUCKET', 'scooter-photos')
ORDER_EMAIL_FUNCTION = os.getenv('ORDER_EMAIL_FUNCTION', 'send-order-email')
ORDER_EMAIL_TIMEOUT = 2

# Public site, used for auth redirects
SITE_URL = os.getenv('SITE_URL', 'http://localhost:8080')
OAUTH_CALLBACK_TIMEOUT = 10  # seconds before the callback page gives up
SIGNUP_BONUS_POINTS = 100

REDIS_URL = os.getenv('REDIS_URL', '')

# 'default' holds query results, 'local' holds persisted client state
# (cart, selected scooter, search history) and never expires.
if REDIS_URL:
    _query_cache = {
        'BACKEND': 'django_redis.cache.RedisCache',
        'LOCATION': REDIS_URL,
        'KEY_PREFIX': 'storefront',
        'OPTIONS': {
            'CLIENT_CLASS': 'django_redis.client.DefaultClient',
            'IGNORE_EXCEPTIONS': True,
        },
    }
else:
    _query_cache = {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        'LOCATION': 'storefront-queries',
    }

CACHES = {
    'default': _query_cache,
    'local': {
        'BACKEND': 'django.core.cache.backends.filebased.FileBasedCache',
        'LOCATION': os.getenv('LOCAL_STORAGE_DIR', str(BASE_DIR / '.local_storage')),
        'TIMEOUT': None,
    },
}

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{asctime} {levelname} {name} {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'loggers': {
        'storefront': {
            'handlers': ['console'],
            'level': os.getenv('STOREFRONT_LOG_LEVEL', 'INFO'),
            'propagate': False,
        },
    },
}
