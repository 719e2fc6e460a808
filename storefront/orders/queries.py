"""Order reads for the admin back-office and the customer profile"""
import logging

from storefront.core.query_cache import ORDERS_CACHE_TTL

logger = logging.getLogger(__name__)

ORDERS_TABLE = 'orders'
ORDER_ITEMS_TABLE = 'order_items'


class OrderQueries:

    def __init__(self, backend, query_client, auth=None):
        self.backend = backend
        self.query_client = query_client
        self.auth = auth

    def admin_orders(self):
        """Every order, newest first (admin only, enforced by the backend policies)"""
        return self.query_client.fetch(
            'admin-orders',
            lambda: self.backend.select(ORDERS_TABLE, order='-created_at'),
            ttl=ORDERS_CACHE_TTL,
        )

    def user_orders(self):
        if self.auth is None or not self.auth.is_authenticated:
            return []
        return self.query_client.fetch(
            'user-orders',
            lambda user_id: self.backend.select(ORDERS_TABLE, filters={'user_id': user_id}, order='-created_at'),
            self.auth.user_id,
            ttl=ORDERS_CACHE_TTL,
        )

    def order_stats(self):
        orders = self.user_orders()
        return {
            'count': len(orders),
            'last_order': orders[0] if orders else None,
        }

    def order_items(self, order_id):
        if not order_id:
            return []
        return self.query_client.fetch(
            'order-items',
            lambda order_id: self.backend.select(ORDER_ITEMS_TABLE, filters={'order_id': order_id}),
            order_id,
            ttl=ORDERS_CACHE_TTL,
        )
