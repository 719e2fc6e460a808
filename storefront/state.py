"""
Application state: one object wiring the backend client, the query cache and
every context container. Consumers receive what they need from here; nothing
is a module-level singleton.
"""
import logging

from storefront.accounts.auth import AuthContext
from storefront.accounts.profile import ProfileService
from storefront.cart.cart import Cart
from storefront.cart.checkout import Checkout
from storefront.cart.emails import OrderEmailSender
from storefront.catalog.compatibility import CompatibilityChecker, ScooterSelection
from storefront.catalog.importer import PartsImporter
from storefront.catalog.queries import CatalogQueries
from storefront.catalog.search import SearchHistory, Spotlight, UnifiedSearch
from storefront.core.backend_client import get_backend_client
from storefront.core.local_storage import LocalStorage
from storefront.core.notifications import Toaster
from storefront.core.query_cache import QueryClient
from storefront.garage.favorites import Favorites
from storefront.garage.garage import Garage
from storefront.orders.queries import OrderQueries
from storefront.orders.status import OrderStatusMutation

logger = logging.getLogger(__name__)


class AppState:

    def __init__(self, backend, query_client=None, storage=None, toaster=None, email_sender=None):
        self.backend = backend
        self.query_client = query_client or QueryClient()
        self.storage = storage or LocalStorage()
        self.toaster = toaster or Toaster()

        self.profiles = ProfileService(backend, self.query_client)
        self.auth = AuthContext(backend, self.query_client, self.toaster, profiles=self.profiles)
        self.catalog = CatalogQueries(backend, self.query_client)

        self.selection = ScooterSelection(self.storage)
        self.compatibility = CompatibilityChecker(self.catalog, self.selection)

        self.search = UnifiedSearch(backend, self.query_client, self.catalog)
        self.search_history = SearchHistory(self.storage)
        self.spotlight = Spotlight()

        self.cart = Cart(self.storage, self.toaster)
        self.checkout = Checkout(
            backend, self.query_client, self.cart, self.auth, self.toaster,
            email_sender=email_sender or OrderEmailSender(backend),
        )

        self.garage = Garage(backend, self.query_client, self.auth, self.toaster, catalog=self.catalog)
        self.favorites = Favorites(backend, self.query_client, self.auth, self.toaster)

        self.orders = OrderQueries(backend, self.query_client, self.auth)
        self.order_status = OrderStatusMutation(backend, self.query_client, self.toaster)
        self.parts_importer = PartsImporter(backend, self.query_client)

    @classmethod
    def from_settings(cls, client_id='anonymous', access_token=None):
        """Build the state for one client and restore its session"""
        state = cls(get_backend_client(), storage=LocalStorage(namespace=client_id))
        state.auth.initialize(access_token)
        logger.debug(f"App state ready for {client_id} (authenticated={state.auth.is_authenticated})")
        return state
