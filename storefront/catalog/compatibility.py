"""Selected scooter and the "fits my scooter?" check"""
import logging

from storefront.core.exceptions import StorefrontError
from storefront.core.query_cache import QueryResult

logger = logging.getLogger(__name__)

SELECTED_SCOOTER_KEY = 'pt-selected-scooter'
SELECTION_FIELDS = ('id', 'name', 'slug', 'brand_name', 'image_url')


class ScooterSelection:
    """The visitor's current scooter, persisted across sessions"""

    def __init__(self, storage):
        self.storage = storage
        stored = storage.get_json(SELECTED_SCOOTER_KEY)
        self.selected = stored if isinstance(stored, dict) and stored.get('id') else None

    @property
    def scooter_id(self):
        return self.selected['id'] if self.selected else None

    def select(self, scooter):
        if not scooter:
            self.clear()
            return
        self.selected = {field: scooter.get(field) for field in SELECTION_FIELDS}
        self.storage.set_json(SELECTED_SCOOTER_KEY, self.selected)

    def clear(self):
        self.selected = None
        self.storage.remove(SELECTED_SCOOTER_KEY)


class CompatibilityChecker:

    def __init__(self, catalog, selection):
        self.catalog = catalog
        self.selection = selection

    def check(self, part_id):
        """
        Is `part_id` compatible with the selected scooter?

        idle without a scooter or part; success(True/False); error when the
        lookup failed, which callers must not read as "not compatible".
        """
        scooter_id = self.selection.scooter_id
        if not scooter_id or not part_id:
            return QueryResult.idle(data=False)
        try:
            return QueryResult.success(self.catalog.is_compatible(part_id, scooter_id))
        except StorefrontError as e:
            logger.error(f"Error checking compatibility of {part_id} with {scooter_id}: {str(e)}")
            return QueryResult.failure(e)

    def compatible_parts_count(self):
        return self.catalog.compatible_parts_count(self.selection.scooter_id)
