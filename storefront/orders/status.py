"""
Admin order-status change, applied optimistically to the cached admin list.

The mutation moves through Idle -> Pending(snapshot) -> Committed or
RolledBack(snapshot). On rejection the snapshot taken before the optimistic
write is put back verbatim.
"""
from enum import Enum
import copy
import logging

from storefront.core.cache_signals import order_status_changed
from storefront.core.exceptions import BackendError, ValidationFailed

from .queries import ORDERS_TABLE

logger = logging.getLogger(__name__)


class OrderStatus(Enum):
    PENDING = 'pending'
    PAID = 'paid'
    PROCESSING = 'processing'
    SHIPPED = 'shipped'
    DELIVERED = 'delivered'
    CANCELLED = 'cancelled'

    @property
    def label(self):
        return STATUS_LABELS[self]


STATUS_LABELS = {
    OrderStatus.PENDING: 'En attente',
    OrderStatus.PAID: 'Payée',
    OrderStatus.PROCESSING: 'En préparation',
    OrderStatus.SHIPPED: 'Expédié',
    OrderStatus.DELIVERED: 'Livré',
    OrderStatus.CANCELLED: 'Annulé',
}


def status_label(value):
    """Label for a raw status value; unknown values read as pending"""
    try:
        return OrderStatus(value).label
    except ValueError:
        return OrderStatus.PENDING.label


class Idle:
    def __repr__(self):
        return 'Idle()'


class Pending:
    def __init__(self, order_id, status, snapshot):
        self.order_id = order_id
        self.status = status
        self.snapshot = snapshot

    def __repr__(self):
        return f"Pending({self.order_id!r}, {self.status.value!r})"


class Committed:
    def __init__(self, order_id, status):
        self.order_id = order_id
        self.status = status

    def __repr__(self):
        return f"Committed({self.order_id!r}, {self.status.value!r})"


class RolledBack:
    def __init__(self, order_id, snapshot, error):
        self.order_id = order_id
        self.snapshot = snapshot
        self.error = error

    def __repr__(self):
        return f"RolledBack({self.order_id!r}, error={str(self.error)!r})"


class OrderStatusMutation:
    resource = 'admin-orders'

    def __init__(self, backend, query_client, toaster):
        self.backend = backend
        self.query_client = query_client
        self.toaster = toaster
        self.state = Idle()

    @property
    def is_pending(self):
        return isinstance(self.state, Pending)

    def _apply_optimistic(self, order_id, status):
        snapshot = self.query_client.get_query_data(self.resource)
        if snapshot is not None:
            self.query_client.set_query_data(self.resource, [
                dict(order, status=status.value) if order['id'] == order_id else order
                for order in snapshot
            ])
        # Deep copy so later cache writes cannot alter the snapshot
        return copy.deepcopy(snapshot)

    def mutate(self, order_id, new_status):
        """
        Change an order's status. Returns the final state (Committed or
        RolledBack); unknown status values raise ValidationFailed before
        anything is written.
        """
        try:
            status = OrderStatus(new_status)
        except ValueError:
            raise ValidationFailed({'status': [f"Statut inconnu : {new_status}"]})

        snapshot = self._apply_optimistic(order_id, status)
        self.state = Pending(order_id, status, snapshot)
        try:
            self.backend.update(ORDERS_TABLE, {'status': status.value}, {'id': order_id})
        except BackendError as e:
            if snapshot is not None:
                self.query_client.set_query_data(self.resource, snapshot)
            self.state = RolledBack(order_id, snapshot, e)
            self.toaster.error('Erreur lors de la mise à jour', exc=e)
            return self.state

        logger.info(f"Order {order_id} moved to {status.value}")
        order_status_changed.send(
            sender=self.__class__, query_client=self.query_client, order_id=order_id, status=status.value
        )
        self.state = Committed(order_id, status)
        self.toaster.success('Statut mis à jour', status.label)
        return self.state
