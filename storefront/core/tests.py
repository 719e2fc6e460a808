"""
Test suite for the core layer
Tests: backend client filter translation and error mapping, query cache,
invalidation signals, local storage and helpers
"""
from django.test import SimpleTestCase
from decimal import Decimal
from unittest import mock
import re

import requests

from storefront.core import cache_signals
from storefront.core.backend_client import BackendClient, build_filter_params, build_order_param
from storefront.core.exceptions import BackendError
from storefront.core.query_cache import QueryClient, make_cache_key
from storefront.core.test_utils import StorefrontTestCase
from storefront.core.utils import format_price, generate_order_number, quantize_money, to_base36


class FilterTranslationTests(SimpleTestCase):
    """Django-style lookups become PostgREST parameters"""

    def test_equality_and_booleans(self):
        params = build_filter_params({'slug': 'pneu-10', 'is_featured': True})
        self.assertEqual(params, [('slug', 'eq.pneu-10'), ('is_featured', 'eq.true')])

    def test_in_lookup_quotes_values(self):
        params = build_filter_params({'id__in': ['a', 'b']})
        self.assertEqual(params, [('id', 'in.("a","b")')])

    def test_none_means_is_null(self):
        self.assertEqual(build_filter_params({'parent_id': None}), [('parent_id', 'is.null')])
        self.assertEqual(build_filter_params({'parent_id__isnull': False}), [('parent_id', 'not.is.null')])

    def test_ilike_any_builds_or_clause(self):
        params = build_filter_params({'name__ilike_any': ['%xiaomi%', '%xiaom%']})
        self.assertEqual(params, [('or', '(name.ilike.%xiaomi%,name.ilike.%xiaom%)')])

    def test_unknown_lookup_rejected(self):
        with self.assertRaises(ValueError):
            build_filter_params({'name__regex': 'x'})

    def test_order_param(self):
        self.assertEqual(build_order_param('-added_at'), 'added_at.desc')
        self.assertEqual(build_order_param(['display_order', 'name']), 'display_order.asc,name.asc')
        self.assertIsNone(build_order_param(None))


class BackendClientTests(SimpleTestCase):
    """Test error mapping with a mocked requests session"""

    def setUp(self):
        self.session = mock.Mock()
        self.client = BackendClient('http://backend.test/', 'anon', timeout=3, session=self.session)

    def _response(self, status_code, payload=None, text=''):
        response = mock.Mock()
        response.status_code = status_code
        response.content = b'x' if payload is not None or text else b''
        response.text = text
        response.json.return_value = payload
        return response

    def test_select_returns_rows(self):
        self.session.request.return_value = self._response(200, [{'id': 1}])
        rows = self.client.select('parts', filters={'slug': 'pneu'}, order='name', limit=4)
        self.assertEqual(rows, [{'id': 1}])
        args, kwargs = self.session.request.call_args
        self.assertEqual(args, ('GET', 'http://backend.test/rest/v1/parts'))
        self.assertIn(('limit', '4'), kwargs['params'])
        self.assertIn(('order', 'name.asc'), kwargs['params'])
        self.assertEqual(kwargs['timeout'], 3)

    def test_error_status_raises_backend_error(self):
        self.session.request.return_value = self._response(
            409, {'message': 'duplicate key value', 'code': '23505'}
        )
        with self.assertRaises(BackendError) as ctx:
            self.client.insert('parts', {'slug': 'x'})
        self.assertEqual(ctx.exception.status_code, 409)
        self.assertEqual(ctx.exception.code, '23505')
        self.assertEqual(ctx.exception.message, 'duplicate key value')

    def test_network_error_raises_backend_error(self):
        self.session.request.side_effect = requests.exceptions.ConnectionError('refused')
        with self.assertRaises(BackendError) as ctx:
            self.client.select('parts')
        self.assertIn('Erreur réseau', ctx.exception.message)

    def test_update_requires_filters(self):
        with self.assertRaises(ValueError):
            self.client.update('parts', {'price': 1}, {})
        self.session.request.assert_not_called()

    def test_access_token_used_for_authorization(self):
        self.session.request.return_value = self._response(204)
        self.client.set_access_token('user-jwt')
        self.client.delete('favorites', {'id': 'f1'})
        headers = self.session.request.call_args[1]['headers']
        self.assertEqual(headers['Authorization'], 'Bearer user-jwt')
        self.assertEqual(headers['apikey'], 'anon')


class QueryClientTests(StorefrontTestCase):
    """Test caching, invalidation and result states"""

    def setUp(self):
        super().setUp()
        self.calls = 0

    def fetcher(self, slug=None):
        self.calls += 1
        return {'slug': slug, 'call': self.calls}

    def test_identical_requests_hit_cache(self):
        first = self.query_client.fetch('part-detail', self.fetcher, slug='pneu')
        second = self.query_client.fetch('part-detail', self.fetcher, slug='pneu')
        self.assertEqual(first, second)
        self.assertEqual(self.calls, 1)

    def test_different_params_use_different_keys(self):
        self.query_client.fetch('part-detail', self.fetcher, slug='pneu')
        self.query_client.fetch('part-detail', self.fetcher, slug='frein')
        self.assertEqual(self.calls, 2)

    def test_invalidate_forces_refetch(self):
        self.query_client.fetch('part-detail', self.fetcher, slug='pneu')
        self.query_client.invalidate('part-detail')
        data = self.query_client.fetch('part-detail', self.fetcher, slug='pneu')
        self.assertEqual(data['call'], 2)

    def test_invalidate_leaves_other_resources(self):
        self.query_client.fetch('part-detail', self.fetcher, slug='pneu')
        self.query_client.invalidate('parts')
        self.query_client.fetch('part-detail', self.fetcher, slug='pneu')
        self.assertEqual(self.calls, 1)

    def test_none_results_are_cached(self):
        fetcher = mock.Mock(return_value=None)
        self.query_client.fetch('part-detail', fetcher, slug='missing')
        self.query_client.fetch('part-detail', fetcher, slug='missing')
        self.assertEqual(fetcher.call_count, 1)

    def test_failures_are_not_cached(self):
        fetcher = mock.Mock(side_effect=[BackendError('boom'), ['ok']])
        result = self.query_client.query('parts', fetcher)
        self.assertTrue(result.is_error)
        self.assertIsInstance(result.error, BackendError)
        result = self.query_client.query('parts', fetcher)
        self.assertTrue(result.is_success)
        self.assertEqual(result.data, ['ok'])

    def test_disabled_query_is_idle(self):
        fetcher = mock.Mock()
        result = self.query_client.query('parts', fetcher, enabled=False)
        self.assertTrue(result.is_idle)
        fetcher.assert_not_called()

    def test_set_and_get_query_data(self):
        self.assertIsNone(self.query_client.get_query_data('admin-orders'))
        self.query_client.set_query_data('admin-orders', [{'id': 'o1'}])
        self.assertEqual(self.query_client.get_query_data('admin-orders'), [{'id': 'o1'}])

    def test_cache_key_is_stable(self):
        self.assertEqual(
            make_cache_key('parts', 'a', limit=4, slug='x'),
            make_cache_key('parts', 'a', slug='x', limit=4),
        )


class CacheSignalTests(StorefrontTestCase):
    """Test that mutation signals invalidate the matching resources"""

    def test_order_status_change_invalidates_both_order_lists(self):
        self.query_client.set_query_data('admin-orders', ['a'])
        self.query_client.set_query_data('user-orders', ['b'], 'user-1')
        cache_signals.order_status_changed.send(sender=self.__class__, query_client=self.query_client)
        self.assertIsNone(self.query_client.get_query_data('admin-orders'))
        self.assertIsNone(self.query_client.get_query_data('user-orders', 'user-1'))

    def test_catalog_change_invalidates_parts(self):
        self.query_client.set_query_data('parts', ['p'])
        self.query_client.set_query_data('user-garage', ['g'], 'user-1')
        cache_signals.catalog_changed.send(sender=self.__class__, query_client=self.query_client, reason='import')
        self.assertIsNone(self.query_client.get_query_data('parts'))
        self.assertEqual(self.query_client.get_query_data('user-garage', 'user-1'), ['g'])


class LocalStorageTests(StorefrontTestCase):

    def test_round_trip_with_decimals(self):
        self.storage.set_json('pt-cart', [{'price': Decimal('19.99')}])
        self.assertEqual(self.storage.get_json('pt-cart'), [{'price': '19.99'}])

    def test_corrupt_entry_returns_default_and_is_removed(self):
        self.storage.set_raw('pt-cart', '{not json')
        self.assertEqual(self.storage.get_json('pt-cart', []), [])
        self.assertIsNone(self.storage.get_json('pt-cart'))


class UtilsTests(SimpleTestCase):

    def test_format_price(self):
        self.assertEqual(format_price(Decimal('12.5')), '12.50 €')
        self.assertEqual(format_price(107.98), '107.98 €')

    def test_quantize_rounds_half_up(self):
        self.assertEqual(quantize_money('0.125'), Decimal('0.13'))

    def test_base36(self):
        self.assertEqual(to_base36(0), '0')
        self.assertEqual(to_base36(35), 'Z')
        self.assertEqual(to_base36(36), '10')

    def test_order_number_format(self):
        number = generate_order_number()
        self.assertRegex(number, re.compile(r'^PT-[0-9A-Z]+-[0-9A-Z]{4}$'))


class AppStateTests(StorefrontTestCase):

    def setUp(self):
        super().setUp()
        from storefront.state import AppState
        self.email_sender = mock.Mock()
        self.email_sender.send.return_value = True
        self.state = AppState(self.backend, self.query_client, self.storage, self.toaster,
                              email_sender=self.email_sender)

    def test_containers_share_auth_and_cache(self):
        self.assertIs(self.state.garage.auth, self.state.auth)
        self.assertIs(self.state.checkout.cart, self.state.cart)
        self.assertIs(self.state.catalog.query_client, self.query_client)
        self.assertIs(self.state.auth.profiles, self.state.profiles)

    def test_sign_in_to_order(self):
        self.factory.create_user(email='rider@test.com')
        part = self.factory.create_part('Pneu 10', price='29.90', stock=2)
        self.state.auth.sign_in('rider@test.com', 'testpass123')
        self.state.cart.add_item(self.state.catalog.part_by_slug('pneu-10'))

        result = self.state.checkout.place_order({
            'first_name': 'Jean', 'last_name': 'Dupont', 'email': 'jean@test.com',
            'address': '12 rue des Lilas', 'postal_code': '75011', 'city': 'Paris',
        })

        self.assertEqual(result['totals'].total_ttc, Decimal('35.88'))
        self.assertEqual(self.state.orders.user_orders()[0]['order_number'], result['order_number'])
        self.assertEqual(self.backend.rows('order_items')[0]['part_id'], part['id'])
        self.email_sender.send.assert_called_once()
