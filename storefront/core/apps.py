from django.apps import AppConfig


class CoreConfig(AppConfig):
    name = 'storefront.core'

    def ready(self):
        """Import signals when app is ready"""
        import storefront.core.cache_signals  # noqa: F401  # Cache invalidation signals
