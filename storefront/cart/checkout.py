"""
Checkout: validate the form, re-check prices and stock against the backend,
write the order and its items, then send the confirmation e-mail.
"""
from decimal import Decimal
import logging

from storefront.core.cache_signals import order_created
from storefront.core.exceptions import BackendError, CheckoutError, NotAuthenticated, ValidationFailed
from storefront.core.utils import generate_order_number, quantize_money, to_decimal

from .cart import compute_totals
from .emails import OrderEmailSender, build_order_email_payload
from .serializers import CheckoutSerializer, cart_to_checkout_lines

logger = logging.getLogger(__name__)

PRICE_TOLERANCE = Decimal('0.01')


def _plain_errors(errors):
    if isinstance(errors, dict):
        return {field: _plain_errors(value) for field, value in errors.items()}
    if isinstance(errors, list):
        return [_plain_errors(value) for value in errors]
    return str(errors)


class Checkout:

    def __init__(self, backend, query_client, cart, auth, toaster, email_sender=None):
        self.backend = backend
        self.query_client = query_client
        self.cart = cart
        self.auth = auth
        self.toaster = toaster
        self.email_sender = email_sender or OrderEmailSender(backend)

    def validate(self, form_data):
        """Return validated data or raise ValidationFailed with per-field errors"""
        data = dict(form_data)
        data['items'] = cart_to_checkout_lines(self.cart)
        serializer = CheckoutSerializer(data=data)
        if not serializer.is_valid():
            raise ValidationFailed(_plain_errors(serializer.errors))
        return serializer.validated_data

    def _fail(self, message):
        self.toaster.error('Commande impossible', message)
        return CheckoutError(message)

    def _verify_lines(self, lines):
        """Re-read prices and stock; returns {part_id: backend row}"""
        part_ids = [line['id'] for line in lines]
        try:
            rows = self.backend.select(
                'parts', columns='id,name,price,stock_quantity', filters={'id__in': part_ids}
            )
        except BackendError as e:
            logger.error(f"Error fetching parts for checkout: {str(e)}")
            raise self._fail('Erreur lors de la vérification des articles') from e

        parts = {row['id']: row for row in rows}
        if len(parts) != len(set(part_ids)):
            logger.warning(f"Some parts not found: requested {len(set(part_ids))}, found {len(parts)}")
            raise self._fail('Certains articles ne sont plus disponibles')

        for line in lines:
            part = parts[line['id']]
            db_price = to_decimal(part['price'])
            if abs(db_price - line['price']) > PRICE_TOLERANCE:
                logger.warning(f"Price mismatch for {line['id']}: cart={line['price']}, backend={db_price}")
                raise self._fail(f"Le prix de \"{line['name']}\" a changé. Veuillez rafraîchir votre panier.")
            stock = part.get('stock_quantity')
            if stock is not None and stock < line['quantity']:
                raise self._fail(f"Stock insuffisant pour \"{line['name']}\" ({stock} disponible)")
        return parts

    def place_order(self, form_data):
        if not self.auth.is_authenticated:
            raise NotAuthenticated('Authentification requise pour passer commande')

        data = self.validate(form_data)
        lines = data['items']
        parts = self._verify_lines(lines)

        # Totals from backend prices, never from the cart snapshot
        priced_lines = [(to_decimal(parts[line['id']]['price']), line['quantity']) for line in lines]
        totals = compute_totals(priced_lines)
        order_number = generate_order_number()

        order_values = {
            'order_number': order_number,
            'user_id': self.auth.user_id,
            'customer_first_name': data['first_name'],
            'customer_last_name': data['last_name'],
            'customer_email': data['email'],
            'customer_phone': data['phone'],
            'address': data['address'],
            'postal_code': data['postal_code'],
            'city': data['city'],
            'subtotal_ht': float(totals.subtotal_ht),
            'tva_amount': float(totals.tva),
            'total_ttc': float(totals.total_ttc),
            'loyalty_points_earned': totals.loyalty_points,
            'status': 'pending',
        }
        logger.info(f"Creating order {order_number} for user {self.auth.user_id}: "
                    f"{totals.subtotal_ht} HT, {totals.total_ttc} TTC")
        try:
            order = self.backend.insert('orders', order_values)[0]
        except BackendError as e:
            logger.error(f"Order creation error: {str(e)}")
            raise self._fail('Erreur lors de la création de la commande') from e

        item_rows = []
        for line in lines:
            unit_price = to_decimal(parts[line['id']]['price'])
            item_rows.append({
                'order_id': order['id'],
                'part_id': line['id'],
                'part_name': line['name'],
                'part_image_url': line.get('image_url'),
                'unit_price': float(unit_price),
                'quantity': line['quantity'],
                'line_total': float(quantize_money(unit_price * line['quantity'])),
            })
        try:
            self.backend.insert('order_items', item_rows)
        except BackendError as e:
            logger.error(f"Order items error for {order_number}: {str(e)}")
            try:
                self.backend.delete('orders', {'id': order['id']})
            except BackendError as delete_error:
                logger.error(f"Could not delete orphan order {order_number}: {str(delete_error)}")
            raise self._fail("Erreur lors de l'ajout des articles") from e

        logger.info(f"Order {order_number} created successfully with {len(item_rows)} items")

        email_lines = [dict(row, name=row['part_name'], image_url=row['part_image_url']) for row in item_rows]
        email_sent = self.email_sender.send(
            build_order_email_payload(order_values, email_lines, totals)
        )

        self.cart.clear_cart()
        order_created.send(sender=self.__class__, query_client=self.query_client, order_id=order['id'])
        self.toaster.success('Commande confirmée', f"Commande {order_number}")
        return {
            'order_id': order['id'],
            'order_number': order_number,
            'totals': totals,
            'email_sent': email_sent,
        }
