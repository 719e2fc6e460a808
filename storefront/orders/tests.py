"""
Test suite for orders
Tests: admin/user order queries, order stats, optimistic status change,
exact rollback and invalidation after commit
"""
from unittest import mock

from storefront.accounts.auth import AuthContext
from storefront.core.exceptions import BackendError, ValidationFailed
from storefront.core.test_utils import StorefrontTestCase
from storefront.orders.queries import OrderQueries
from storefront.orders.status import (
    Committed,
    Idle,
    OrderStatus,
    OrderStatusMutation,
    RolledBack,
    status_label,
)


class OrderQueriesTests(StorefrontTestCase):

    def setUp(self):
        super().setUp()
        self.user = self.factory.create_user(email='rider@test.com')
        self.other = self.factory.create_user(email='other@test.com')
        self.auth = AuthContext(self.backend, self.query_client, self.toaster)
        self.queries = OrderQueries(self.backend, self.query_client, self.auth)
        self.old = self.factory.create_order(self.user, created_at='2026-01-01T10:00:00+00:00')
        self.new = self.factory.create_order(self.user, created_at='2026-02-01T10:00:00+00:00')
        self.factory.create_order(self.other)

    def test_admin_orders_lists_everything_newest_first(self):
        orders = self.queries.admin_orders()
        self.assertEqual(len(orders), 3)
        self.assertEqual(orders[0]['id'], self.new['id'])

    def test_user_orders_only_for_signed_in_user(self):
        self.assertEqual(self.queries.user_orders(), [])
        self.auth.sign_in('rider@test.com', 'testpass123')
        self.assertEqual([o['id'] for o in self.queries.user_orders()], [self.new['id'], self.old['id']])

    def test_order_stats(self):
        self.auth.sign_in('rider@test.com', 'testpass123')
        stats = self.queries.order_stats()
        self.assertEqual(stats['count'], 2)
        self.assertEqual(stats['last_order']['id'], self.new['id'])

    def test_order_items(self):
        self.backend.seed('order_items', order_id=self.old['id'], part_name='Pneu', quantity=1)
        self.assertEqual([i['part_name'] for i in self.queries.order_items(self.old['id'])], ['Pneu'])
        self.assertEqual(self.queries.order_items(None), [])


class OrderStatusMutationTests(StorefrontTestCase):

    def setUp(self):
        super().setUp()
        self.queries = OrderQueries(self.backend, self.query_client)
        self.order = self.factory.create_order(status='pending')
        self.other = self.factory.create_order(status='shipped')
        self.mutation = OrderStatusMutation(self.backend, self.query_client, self.toaster)
        self.cached = self.queries.admin_orders()

    def _cached_status(self, order_id):
        for order in self.query_client.get_query_data('admin-orders'):
            if order['id'] == order_id:
                return order['status']

    def test_starts_idle(self):
        self.assertIsInstance(self.mutation.state, Idle)

    def test_cache_is_updated_before_the_write(self):
        seen = {}
        real_update = self.backend.update

        def spy(table, values, filters):
            seen['status'] = self._cached_status(self.order['id'])
            seen['pending'] = self.mutation.is_pending
            return real_update(table, values, filters)

        with mock.patch.object(self.backend, 'update', side_effect=spy):
            self.mutation.mutate(self.order['id'], 'shipped')
        self.assertEqual(seen, {'status': 'shipped', 'pending': True})

    def test_commit_invalidates_and_refetches(self):
        state = self.mutation.mutate(self.order['id'], 'processing')
        self.assertIsInstance(state, Committed)
        self.assertIs(state.status, OrderStatus.PROCESSING)
        self.assertIsNone(self.query_client.get_query_data('admin-orders'))
        refreshed = {o['id']: o['status'] for o in self.queries.admin_orders()}
        self.assertEqual(refreshed[self.order['id']], 'processing')
        self.assertEqual(self.toaster.last.message, 'Statut mis à jour')

    def test_rejection_restores_snapshot_exactly(self):
        self.backend.fail_on('update', 'orders', 'permission denied')
        state = self.mutation.mutate(self.order['id'], 'delivered')
        self.assertIsInstance(state, RolledBack)
        self.assertEqual(self.query_client.get_query_data('admin-orders'), self.cached)
        self.assertEqual(state.snapshot, self.cached)
        self.assertEqual(self.backend.rows('orders')[0]['status'], 'pending')
        self.assertEqual(self.toaster.last.message, 'Erreur lors de la mise à jour')
        self.assertIsInstance(state.error, BackendError)

    def test_unknown_status_rejected_before_write(self):
        with self.assertRaises(ValidationFailed):
            self.mutation.mutate(self.order['id'], 'lost')
        self.assertEqual(self.backend.calls_for('update'), [])
        self.assertEqual(self._cached_status(self.order['id']), 'pending')
        self.assertIsInstance(self.mutation.state, Idle)

    def test_works_without_cached_list(self):
        self.query_client.invalidate('admin-orders')
        state = self.mutation.mutate(self.order['id'], 'paid')
        self.assertIsInstance(state, Committed)

    def test_status_labels(self):
        self.assertEqual(OrderStatus.SHIPPED.label, 'Expédié')
        self.assertEqual(status_label('bogus'), 'En attente')
