"""
Shopping cart held client-side and persisted to local storage.

Totals are never stored: they are recomputed from the lines on every read.
"""
from decimal import Decimal, ROUND_DOWN
import logging

from storefront.core.utils import quantize_money, to_decimal

logger = logging.getLogger(__name__)

CART_STORAGE_KEY = 'pt-cart'
SAVED_CART_KEY = 'pt-saved-config'
TVA_RATE = Decimal('0.20')


class CartItem:
    """One cart line; price and stock are snapshots taken when the part was added"""

    def __init__(self, id, name, price, quantity=1, image_url=None, stock_quantity=0):
        self.id = id
        self.name = name
        self.price = to_decimal(price)
        self.quantity = int(quantity)
        self.image_url = image_url
        self.stock_quantity = int(stock_quantity or 0)

    @property
    def line_total(self):
        return self.price * self.quantity

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'price': str(self.price),
            'quantity': self.quantity,
            'image_url': self.image_url,
            'stock_quantity': self.stock_quantity,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=data['id'],
            name=data['name'],
            price=data['price'],
            quantity=data.get('quantity', 1),
            image_url=data.get('image_url'),
            stock_quantity=data.get('stock_quantity', 0),
        )

    def __repr__(self):
        return f"CartItem({self.id!r}, qty={self.quantity})"


class CartTotals:

    def __init__(self, item_count, subtotal_ht, tva, total_ttc, loyalty_points):
        self.item_count = item_count
        self.subtotal_ht = subtotal_ht
        self.tva = tva
        self.total_ttc = total_ttc
        self.loyalty_points = loyalty_points

    def as_dict(self):
        return {
            'item_count': self.item_count,
            'subtotal_ht': self.subtotal_ht,
            'tva': self.tva,
            'total_ttc': self.total_ttc,
            'loyalty_points': self.loyalty_points,
        }

    def __eq__(self, other):
        return isinstance(other, CartTotals) and self.as_dict() == other.as_dict()

    def __repr__(self):
        return f"CartTotals({self.as_dict()!r})"


def compute_totals(lines):
    """
    Pure totals over (unit_price, quantity) pairs.

    VAT is 20% of the subtotal rounded half-up to the cent; one loyalty
    point per whole euro of the total.
    """
    subtotal = Decimal('0')
    item_count = 0
    for price, quantity in lines:
        subtotal += to_decimal(price) * quantity
        item_count += quantity
    subtotal = quantize_money(subtotal)
    tva = quantize_money(subtotal * TVA_RATE)
    total = subtotal + tva
    return CartTotals(
        item_count=item_count,
        subtotal_ht=subtotal,
        tva=tva,
        total_ttc=total,
        loyalty_points=int(total.to_integral_value(rounding=ROUND_DOWN)),
    )


class Cart:

    def __init__(self, storage, toaster=None):
        self.storage = storage
        self.toaster = toaster
        self.is_open = False
        self.items = self._restore()

    def _restore(self):
        stored = self.storage.get_json(CART_STORAGE_KEY, [])
        try:
            return [CartItem.from_dict(data) for data in stored]
        except (KeyError, TypeError, ValueError, ArithmeticError):
            logger.warning("Discarding unreadable stored cart")
            self.storage.remove(CART_STORAGE_KEY)
            return []

    def _persist(self):
        self.storage.set_json(CART_STORAGE_KEY, [item.to_dict() for item in self.items])

    def _find(self, part_id):
        for item in self.items:
            if item.id == part_id:
                return item
        return None

    @property
    def totals(self):
        return compute_totals((item.price, item.quantity) for item in self.items)

    @property
    def is_empty(self):
        return not self.items

    def add_item(self, part):
        """
        Add one unit of `part` (a dict with id, name, price, image_url,
        stock_quantity). Never exceeds the stock snapshot; out-of-stock parts
        and lines already at the stock ceiling are refused with a toast and
        None is returned.
        """
        existing = self._find(part['id'])
        stock = int(part.get('stock_quantity') or 0) if existing is None else existing.stock_quantity
        if stock <= 0:
            if self.toaster:
                self.toaster.error('Rupture de stock', f"{part['name']} n'est plus disponible")
            return None

        if existing:
            if existing.quantity >= existing.stock_quantity:
                if self.toaster:
                    self.toaster.info('Stock maximum atteint', f"{existing.stock_quantity} disponible(s)")
                return None
            existing.quantity += 1
            item = existing
        else:
            item = CartItem(
                id=part['id'],
                name=part['name'],
                price=part['price'],
                quantity=1,
                image_url=part.get('image_url'),
                stock_quantity=stock,
            )
            self.items.append(item)
        self._persist()
        if self.toaster:
            self.toaster.success('Ajouté au panier', part['name'])
        return item

    def update_quantity(self, part_id, quantity):
        if quantity < 1:
            self.remove_item(part_id)
            return
        item = self._find(part_id)
        if item is None:
            return
        item.quantity = min(int(quantity), item.stock_quantity)
        self._persist()

    def remove_item(self, part_id):
        self.items = [item for item in self.items if item.id != part_id]
        self._persist()

    def clear_cart(self):
        self.items = []
        self._persist()

    def save_for_later(self):
        """Copy the cart aside; False when there is nothing to save"""
        if not self.items:
            return False
        self.storage.set_json(SAVED_CART_KEY, [item.to_dict() for item in self.items])
        return True

    def saved_items(self):
        return [CartItem.from_dict(data) for data in self.storage.get_json(SAVED_CART_KEY, [])]
