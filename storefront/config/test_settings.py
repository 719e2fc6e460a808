from .settings import *  # noqa: F401,F403

CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        'LOCATION': 'storefront-test-queries',
    },
    'local': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        'LOCATION': 'storefront-test-local',
        'TIMEOUT': None,
    },
}

SUPABASE_URL = 'http://backend.test'
SUPABASE_ANON_KEY = 'test-anon-key'

LOGGING['loggers']['storefront']['level'] = 'CRITICAL'  # noqa: F405
SITE_URL = 'http://shop.test'
