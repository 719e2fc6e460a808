"""Favorite parts of the signed-in user"""
import logging

from storefront.core.cache_signals import favorites_changed
from storefront.core.exceptions import BackendError, NotAuthenticated
from storefront.core.query_cache import GARAGE_CACHE_TTL

logger = logging.getLogger(__name__)

FAVORITES_TABLE = 'favorites'
FAVORITE_PART_COLUMNS = 'id,name,slug,price,image_url,stock_quantity,difficulty_level,is_featured'


class Favorites:

    def __init__(self, backend, query_client, auth, toaster):
        self.backend = backend
        self.query_client = query_client
        self.auth = auth
        self.toaster = toaster

    def _fetch(self, user_id):
        rows = self.backend.select(FAVORITES_TABLE, filters={'user_id': user_id}, order='-created_at')
        part_ids = [row['part_id'] for row in rows]
        parts = {}
        if part_ids:
            parts = {
                part['id']: part
                for part in self.backend.select('parts', columns=FAVORITE_PART_COLUMNS, filters={'id__in': part_ids})
            }
        return [dict(row, part=parts.get(row['part_id'])) for row in rows]

    def list(self):
        """Newest first, each row carrying its part under 'part'"""
        if not self.auth.is_authenticated:
            return []
        return self.query_client.fetch('favorites', self._fetch, self.auth.user_id, ttl=GARAGE_CACHE_TTL)

    def get(self, part_id):
        for favorite in self.list():
            if favorite['part_id'] == part_id:
                return favorite
        return None

    def is_favorite(self, part_id):
        return self.get(part_id) is not None

    def _changed(self, part_id):
        favorites_changed.send(sender=self.__class__, query_client=self.query_client,
                               user_id=self.auth.user_id, part_id=part_id)

    def add(self, part_id):
        if not self.auth.is_authenticated:
            raise NotAuthenticated()
        try:
            row = self.backend.insert(FAVORITES_TABLE, {'user_id': self.auth.user_id, 'part_id': part_id})[0]
        except BackendError as e:
            self.toaster.error("Erreur lors de l'ajout aux favoris", exc=e)
            raise
        self._changed(part_id)
        return row

    def remove(self, part_id):
        if not self.auth.is_authenticated:
            raise NotAuthenticated()
        try:
            self.backend.delete(FAVORITES_TABLE, {'user_id': self.auth.user_id, 'part_id': part_id})
        except BackendError as e:
            self.toaster.error('Erreur lors du retrait des favoris', exc=e)
            raise
        self._changed(part_id)

    def toggle(self, part_id, part_name=None):
        """Returns the new favorite state, or None for anonymous users"""
        if not self.auth.is_authenticated:
            self.toaster.info(
                'Connectez-vous pour ajouter des favoris',
                'Créez un compte pour sauvegarder vos pièces préférées',
            )
            return None
        if self.is_favorite(part_id):
            self.remove(part_id)
            self.toaster.success('Retiré des favoris')
            return False
        self.add(part_id)
        self.toaster.success(f"{part_name or 'Pièce'} ajoutée aux favoris")
        return True
