"""
Test suite for the cart
Tests: totals arithmetic, stock clamping, persistence, saved cart,
checkout validation, price/stock re-check, compensating delete and e-mail
"""
from decimal import Decimal
from unittest import mock

import requests
from django.test import SimpleTestCase

from storefront.accounts.auth import AuthContext
from storefront.cart.cart import CART_STORAGE_KEY, Cart, compute_totals
from storefront.cart.checkout import Checkout
from storefront.cart.emails import OrderEmailSender, build_order_email_payload
from storefront.cart.serializers import CheckoutSerializer
from storefront.core.cache_signals import order_created
from storefront.core.exceptions import CheckoutError, NotAuthenticated, ValidationFailed
from storefront.core.test_utils import StorefrontTestCase, part_as_cart_input

VALID_FORM = {
    'first_name': 'Jean',
    'last_name': 'Dupont',
    'email': 'Jean.Dupont@Example.com ',
    'phone': '06 12 34 56 78',
    'address': '12 rue des Lilas',
    'postal_code': '75011',
    'city': 'Paris',
}


class ComputeTotalsTests(SimpleTestCase):

    def test_vat_and_loyalty_points(self):
        totals = compute_totals([(Decimal('19.99'), 2), (Decimal('50.00'), 1)])
        self.assertEqual(totals.item_count, 3)
        self.assertEqual(totals.subtotal_ht, Decimal('89.98'))
        self.assertEqual(totals.tva, Decimal('18.00'))
        self.assertEqual(totals.total_ttc, Decimal('107.98'))
        self.assertEqual(totals.loyalty_points, 107)

    def test_empty_cart_is_zero(self):
        totals = compute_totals([])
        self.assertEqual(totals.total_ttc, Decimal('0.00'))
        self.assertEqual(totals.loyalty_points, 0)

    def test_vat_rounds_half_up(self):
        # 0.20 * 0.025 rounds 0.005 up
        self.assertEqual(compute_totals([(Decimal('0.025'), 1)]).tva, Decimal('0.01'))


class CartTests(StorefrontTestCase):

    def setUp(self):
        super().setUp()
        self.cart = Cart(self.storage, self.toaster)
        self.pads = self.factory.create_part('Plaquettes', price='19.99', stock=5)
        self.motor = self.factory.create_part('Moteur', price='50.00', stock=1)

    def test_add_and_totals(self):
        self.cart.add_item(part_as_cart_input(self.pads))
        self.cart.add_item(part_as_cart_input(self.pads))
        self.cart.add_item(part_as_cart_input(self.motor))
        totals = self.cart.totals
        self.assertEqual(totals.subtotal_ht, Decimal('89.98'))
        self.assertEqual(totals.total_ttc, Decimal('107.98'))
        self.assertEqual(totals.loyalty_points, 107)
        self.assertEqual(self.toaster.last.message, 'Ajouté au panier')

    def test_removing_line_recomputes_totals(self):
        self.cart.add_item(part_as_cart_input(self.pads))
        self.cart.add_item(part_as_cart_input(self.motor))
        self.cart.remove_item(self.pads['id'])
        self.assertEqual(self.cart.totals.subtotal_ht, Decimal('50.00'))

    def test_quantity_never_exceeds_stock(self):
        for _ in range(3):
            self.cart.add_item(part_as_cart_input(self.motor))
        self.assertEqual(self.cart.items[0].quantity, 1)
        self.cart.update_quantity(self.pads['id'], 3)  # not in cart, ignored
        self.cart.add_item(part_as_cart_input(self.pads))
        self.cart.update_quantity(self.pads['id'], 50)
        self.assertEqual(self.cart._find(self.pads['id']).quantity, 5)

    def test_add_at_stock_ceiling_is_refused(self):
        self.assertIsNotNone(self.cart.add_item(part_as_cart_input(self.motor)))
        self.assertIsNone(self.cart.add_item(part_as_cart_input(self.motor)))
        self.assertEqual(self.cart.items[0].quantity, 1)
        self.assertEqual(self.toaster.last.message, 'Stock maximum atteint')
        self.assertEqual([t.message for t in self.toaster.toasts].count('Ajouté au panier'), 1)

    def test_out_of_stock_is_refused(self):
        empty = self.factory.create_part('Guidon', stock=0)
        self.assertIsNone(self.cart.add_item(part_as_cart_input(empty)))
        self.assertTrue(self.cart.is_empty)
        self.assertEqual(self.toaster.last.message, 'Rupture de stock')

    def test_quantity_below_one_removes_line(self):
        self.cart.add_item(part_as_cart_input(self.pads))
        self.cart.update_quantity(self.pads['id'], 0)
        self.assertTrue(self.cart.is_empty)

    def test_cart_survives_reload(self):
        self.cart.add_item(part_as_cart_input(self.pads))
        self.cart.add_item(part_as_cart_input(self.pads))
        restored = Cart(self.storage)
        self.assertEqual(len(restored.items), 1)
        self.assertEqual(restored.items[0].quantity, 2)
        self.assertEqual(restored.items[0].price, Decimal('19.99'))

    def test_unreadable_storage_yields_empty_cart(self):
        self.storage.set_raw(CART_STORAGE_KEY, '{not json')
        self.assertTrue(Cart(self.storage).is_empty)
        self.storage.set_json(CART_STORAGE_KEY, [{'name': 'sans id'}])
        self.assertTrue(Cart(self.storage).is_empty)
        self.assertIsNone(self.storage.get_json(CART_STORAGE_KEY))

    def test_save_for_later(self):
        self.assertFalse(self.cart.save_for_later())
        self.cart.add_item(part_as_cart_input(self.pads))
        self.assertTrue(self.cart.save_for_later())
        self.cart.clear_cart()
        self.assertEqual([item.id for item in self.cart.saved_items()], [self.pads['id']])


class CheckoutSerializerTests(SimpleTestCase):

    def _data(self, **overrides):
        data = dict(VALID_FORM, items=[{'id': 'p1', 'name': 'Pneu', 'price': '10.00', 'quantity': 1}])
        data.update(overrides)
        return data

    def test_valid_form_is_normalized(self):
        serializer = CheckoutSerializer(data=self._data(first_name='Je<an>'))
        self.assertTrue(serializer.is_valid(), serializer.errors)
        self.assertEqual(serializer.validated_data['email'], 'jean.dupont@example.com')
        self.assertEqual(serializer.validated_data['phone'], '0612345678')
        self.assertEqual(serializer.validated_data['first_name'], 'Jean')
        self.assertNotIn('delivery_method', serializer.validated_data)

    def test_field_errors(self):
        serializer = CheckoutSerializer(data=self._data(postal_code='7501', phone='abc', city='P'))
        self.assertFalse(serializer.is_valid())
        self.assertIn('postal_code', serializer.errors)
        self.assertIn('phone', serializer.errors)
        self.assertIn('city', serializer.errors)

    def test_empty_cart_rejected(self):
        serializer = CheckoutSerializer(data=self._data(items=[]))
        self.assertFalse(serializer.is_valid())
        self.assertIn('items', serializer.errors)

    def test_quantity_bounds(self):
        items = [{'id': 'p1', 'name': 'Pneu', 'price': '10.00', 'quantity': 100}]
        self.assertFalse(CheckoutSerializer(data=self._data(items=items)).is_valid())


class CheckoutTests(StorefrontTestCase):

    def setUp(self):
        super().setUp()
        post_patcher = mock.patch('storefront.cart.emails.requests.post')
        self.mock_post = post_patcher.start()
        self.addCleanup(post_patcher.stop)

        self.user = self.factory.create_user(email='rider@test.com')
        self.auth = AuthContext(self.backend, self.query_client, self.toaster)
        self.auth.sign_in('rider@test.com', 'testpass123')

        self.cart = Cart(self.storage, self.toaster)
        self.pads = self.factory.create_part('Plaquettes', price='19.99', stock=5)
        self.motor = self.factory.create_part('Moteur', price='50.00', stock=3)
        self.cart.add_item(part_as_cart_input(self.pads))
        self.cart.add_item(part_as_cart_input(self.pads))
        self.cart.add_item(part_as_cart_input(self.motor))

        self.checkout = Checkout(self.backend, self.query_client, self.cart, self.auth, self.toaster)

    def _backend_part(self, part_id):
        return next(row for row in self.backend.rows('parts') if row['id'] == part_id)

    def test_successful_order(self):
        result = self.checkout.place_order(VALID_FORM)

        orders = self.backend.rows('orders')
        self.assertEqual(len(orders), 1)
        order = orders[0]
        self.assertEqual(order['user_id'], self.user['id'])
        self.assertEqual(order['status'], 'pending')
        self.assertEqual(order['customer_email'], 'jean.dupont@example.com')
        self.assertAlmostEqual(order['total_ttc'], 107.98)
        self.assertEqual(order['loyalty_points_earned'], 107)
        self.assertRegex(result['order_number'], r'^PT-[0-9A-Z]+-[0-9A-Z]{4}$')

        items = self.backend.rows('order_items')
        self.assertEqual(len(items), 2)
        self.assertTrue(all(item['order_id'] == order['id'] for item in items))
        pads_line = next(item for item in items if item['part_id'] == self.pads['id'])
        self.assertAlmostEqual(pads_line['line_total'], 39.98)

        self.assertTrue(self.cart.is_empty)
        self.assertTrue(result['email_sent'])
        self.assertEqual(self.toaster.last.message, 'Commande confirmée')

    def test_email_payload_posted_to_function(self):
        result = self.checkout.place_order(VALID_FORM)
        args, kwargs = self.mock_post.call_args
        self.assertEqual(args[0], 'http://backend.test/functions/v1/send-order-email')
        self.assertEqual(kwargs['json']['orderNumber'], result['order_number'])
        self.assertEqual(kwargs['json']['customerName'], 'Jean Dupont')
        self.assertEqual(kwargs['json']['totals']['totalTTC'], 107.98)

    def test_email_failure_does_not_block_order(self):
        self.mock_post.side_effect = requests.exceptions.ConnectionError('down')
        result = self.checkout.place_order(VALID_FORM)
        self.assertFalse(result['email_sent'])
        self.assertEqual(len(self.backend.rows('orders')), 1)
        self.assertTrue(self.cart.is_empty)

    def test_requires_authentication(self):
        self.auth.sign_out()
        with self.assertRaises(NotAuthenticated):
            self.checkout.place_order(VALID_FORM)
        self.assertEqual(self.backend.calls_for('insert', 'orders'), [])

    def test_invalid_form_raises_field_errors(self):
        with self.assertRaises(ValidationFailed) as ctx:
            self.checkout.place_order(dict(VALID_FORM, postal_code='abc', email='nope'))
        self.assertIn('postal_code', ctx.exception.errors)
        self.assertIn('email', ctx.exception.errors)
        self.assertEqual(self.backend.calls_for('insert'), [])

    def test_price_drift_is_refused(self):
        self._backend_part(self.pads['id'])['price'] = 24.99
        with self.assertRaises(CheckoutError) as ctx:
            self.checkout.place_order(VALID_FORM)
        self.assertIn('Le prix de "Plaquettes" a changé', str(ctx.exception))
        self.assertEqual(self.backend.rows('orders'), [])
        self.assertFalse(self.cart.is_empty)

    def test_small_rounding_difference_is_accepted(self):
        self._backend_part(self.pads['id'])['price'] = 19.995
        self.checkout.place_order(VALID_FORM)
        self.assertEqual(len(self.backend.rows('orders')), 1)

    def test_insufficient_stock_is_refused(self):
        self._backend_part(self.pads['id'])['stock_quantity'] = 1
        with self.assertRaises(CheckoutError) as ctx:
            self.checkout.place_order(VALID_FORM)
        self.assertEqual(str(ctx.exception), 'Stock insuffisant pour "Plaquettes" (1 disponible)')

    def test_missing_part_is_refused(self):
        self.backend.tables['parts'] = [row for row in self.backend.rows('parts') if row['id'] != self.motor['id']]
        with self.assertRaises(CheckoutError) as ctx:
            self.checkout.place_order(VALID_FORM)
        self.assertEqual(str(ctx.exception), 'Certains articles ne sont plus disponibles')

    def test_items_failure_deletes_order(self):
        self.backend.fail_on('insert', 'order_items')
        with self.assertRaises(CheckoutError) as ctx:
            self.checkout.place_order(VALID_FORM)
        self.assertEqual(str(ctx.exception), "Erreur lors de l'ajout des articles")
        self.assertEqual(len(self.backend.calls_for('delete', 'orders')), 1)
        self.assertEqual(self.backend.rows('orders'), [])
        self.assertFalse(self.cart.is_empty)
        self.mock_post.assert_not_called()
        self.assertEqual(self.toaster.errors[-1].description, "Erreur lors de l'ajout des articles")

    def test_order_created_signal_sent(self):
        received = []

        def listener(sender, **kwargs):
            received.append(kwargs['order_id'])

        order_created.connect(listener)
        self.addCleanup(order_created.disconnect, listener)
        result = self.checkout.place_order(VALID_FORM)
        self.assertEqual(received, [result['order_id']])


class OrderEmailTests(StorefrontTestCase):

    def test_payload_shape(self):
        totals = compute_totals([(Decimal('10.00'), 2)])
        order = {
            'order_number': 'PT-ABC-1234',
            'customer_email': 'a@test.com',
            'customer_first_name': 'Ana',
            'customer_last_name': 'Lopez',
            'address': '1 rue Haute',
            'postal_code': '69001',
            'city': 'Lyon',
        }
        lines = [{'name': 'Pneu', 'quantity': 2, 'unit_price': 10.0, 'image_url': None}]
        payload = build_order_email_payload(order, lines, totals)
        self.assertEqual(payload['items'], [{'name': 'Pneu', 'quantity': 2, 'price': 10.0, 'imageUrl': None}])
        self.assertEqual(payload['totals']['tva'], 4.0)
        self.assertEqual(payload['address']['postalCode'], '69001')
        self.assertEqual(payload['deliveryMethod'], 'standard')
        self.assertEqual(payload['totals']['deliveryPrice'], 0)
        self.assertEqual(payload['totals']['totalTTC'], 24.0)

    @mock.patch('storefront.cart.emails.requests.post')
    def test_http_error_reported_as_false(self, mock_post):
        mock_post.return_value.raise_for_status.side_effect = requests.exceptions.HTTPError('500')
        self.assertFalse(OrderEmailSender(self.backend).send({'orderNumber': 'PT-1'}))
