"""
Cache invalidation signals
Mutations announce what they changed; receivers invalidate the query resources
"""
from django.dispatch import Signal, receiver
import logging

from .query_cache import CATALOG_RESOURCES

logger = logging.getLogger(__name__)

# Every signal is sent with query_client=<QueryClient> plus context kwargs
order_created = Signal()
order_status_changed = Signal()
garage_changed = Signal()
favorites_changed = Signal()
catalog_changed = Signal()
profile_changed = Signal()


@receiver(order_created)
@receiver(order_status_changed)
def invalidate_orders_cache(sender, query_client, **kwargs):
    query_client.invalidate('admin-orders', 'user-orders', 'order-items')


@receiver(order_created)
def invalidate_stock_after_order(sender, query_client, **kwargs):
    # Stock quantities moved
    query_client.invalidate('parts', 'part-detail', 'featured-parts', 'compatible-parts')


@receiver(garage_changed)
def invalidate_garage_cache(sender, query_client, **kwargs):
    query_client.invalidate('user-garage')


@receiver(favorites_changed)
def invalidate_favorites_cache(sender, query_client, **kwargs):
    query_client.invalidate('favorites')


@receiver(catalog_changed)
def invalidate_catalog_cache(sender, query_client, **kwargs):
    query_client.invalidate(*CATALOG_RESOURCES)
    logger.info(f"Invalidated catalogue caches ({kwargs.get('reason', 'update')})")


@receiver(profile_changed)
def invalidate_profile_cache(sender, query_client, **kwargs):
    query_client.invalidate('profile')
