"""Formatting and identifier helpers shared by the storefront apps"""
from decimal import Decimal, ROUND_HALF_UP
import random
import string
import time

from django.utils.text import slugify

BASE36_ALPHABET = string.digits + string.ascii_uppercase
CENT = Decimal('0.01')


def to_decimal(value):
    """Coerce a backend number (float, int, str) into a Decimal"""
    if isinstance(value, Decimal):
        return value
    if value is None or value == '':
        return Decimal('0')
    return Decimal(str(value))


def quantize_money(value):
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def format_price(value):
    """12.5 -> '12.50 €' (non-breaking space, French style)"""
    return f"{quantize_money(value):.2f}\u00a0€"


def to_base36(number):
    if number == 0:
        return '0'
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(BASE36_ALPHABET[remainder])
    return ''.join(reversed(digits))


def generate_order_number(now=None):
    """PT-<base36 millisecond timestamp>-<4 random chars>"""
    millis = int((now if now is not None else time.time()) * 1000)
    suffix = ''.join(random.choices(BASE36_ALPHABET, k=4))
    return f"PT-{to_base36(millis)}-{suffix}"


def make_slug(value):
    return slugify(value or '')
