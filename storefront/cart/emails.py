"""Order confirmation e-mail, sent through the backend's e-mail function"""
from django.conf import settings
import logging

import requests

logger = logging.getLogger(__name__)


# Orders placed here ship with standard delivery, which is not priced
DELIVERY_METHOD = 'standard'
DELIVERY_PRICE = 0


def build_order_email_payload(order, lines, totals):
    return {
        'orderNumber': order['order_number'],
        'customerEmail': order['customer_email'],
        'customerName': f"{order['customer_first_name']} {order['customer_last_name']}",
        'items': [
            {
                'name': line['name'],
                'quantity': line['quantity'],
                'price': float(line['unit_price']),
                'imageUrl': line.get('image_url'),
            }
            for line in lines
        ],
        'totals': {
            'subtotalHT': float(totals.subtotal_ht),
            'tva': float(totals.tva),
            'totalTTC': float(totals.total_ttc),
            'deliveryPrice': float(DELIVERY_PRICE),
        },
        'address': {
            'street': order['address'],
            'postalCode': order['postal_code'],
            'city': order['city'],
        },
        'deliveryMethod': DELIVERY_METHOD,
    }


class OrderEmailSender:
    """
    Fire-and-forget POST to the confirmation e-mail function.

    A failure is logged and reported as False; it never undoes the order.
    """

    def __init__(self, backend, function_name=None, timeout=None):
        self.backend = backend
        self.function_name = function_name or getattr(settings, 'ORDER_EMAIL_FUNCTION', 'send-order-email')
        self.timeout = timeout or getattr(settings, 'ORDER_EMAIL_TIMEOUT', 2)

    def send(self, payload):
        url = self.backend.function_url(self.function_name)
        try:
            response = requests.post(
                url,
                json=payload,
                headers=self.backend.function_headers(),
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            logger.error(f"Order email for {payload.get('orderNumber')} not sent: {str(e)}")
            return False
        logger.info(f"Order email sent for {payload.get('orderNumber')}")
        return True
