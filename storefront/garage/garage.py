"""
The user garage: scooters marked as favorited ("Collection") or owned
("Écurie"), with nickname, mileage, maintenance tracking and a custom photo.

Mutations are not applied optimistically. Each one writes, then announces
garage_changed so the cached garage list is refetched.
"""
from collections import namedtuple
import logging
import time

from django.conf import settings

from storefront.core.cache_signals import garage_changed
from storefront.core.exceptions import BackendError, NotAuthenticated, ValidationFailed
from storefront.core.query_cache import GARAGE_CACHE_TTL

from .entries import GarageEntry
from .serializers import GarageDetailsSerializer

logger = logging.getLogger(__name__)

GARAGE_TABLE = 'user_garage'
PHOTO_BUCKET = 'scooter-photos'
MAX_PHOTO_BYTES = 5 * 1024 * 1024

# Performance points
NICKNAME_POINTS = 100
OWNED_POINTS = 10
FAVORITED_POINTS = 5
PROMOTION_POINTS = 5

Membership = namedtuple('Membership', ['in_garage', 'is_owned', 'entry'])


def points_for_new_entry(is_owned, nickname=None):
    if nickname:
        return NICKNAME_POINTS
    return OWNED_POINTS if is_owned else FAVORITED_POINTS


class Garage:

    def __init__(self, backend, query_client, auth, toaster, catalog=None):
        self.backend = backend
        self.query_client = query_client
        self.auth = auth
        self.toaster = toaster
        self.catalog = catalog

    def _require_user(self):
        if not self.auth.is_authenticated:
            raise NotAuthenticated()
        return self.auth.user_id

    def _changed(self, **kwargs):
        garage_changed.send(sender=self.__class__, query_client=self.query_client,
                            user_id=self.auth.user_id, **kwargs)

    def _credit_points(self, points):
        """
        Second write after a garage mutation. A failure here leaves the
        garage change in place and the points un-credited.
        """
        try:
            self.auth.profiles.add_points(self.auth.user_id, points)
        except BackendError as e:
            logger.error(f"Garage points (+{points}) not credited for {self.auth.user_id}: {str(e)}")
            return False
        self.auth.refresh_profile()
        return True

    # ------------------------------------------------------------------ reads

    def rows(self):
        if not self.auth.is_authenticated:
            return []
        return self.query_client.fetch(
            'user-garage',
            lambda user_id: self.backend.select(GARAGE_TABLE, filters={'user_id': user_id}, order='-added_at'),
            self.auth.user_id,
            ttl=GARAGE_CACHE_TTL,
        )

    def _scooters(self):
        if self.catalog is None:
            return {}
        try:
            return {s['id']: s for s in self.catalog.scooter_models()}
        except BackendError as e:
            logger.warning(f"Garage shown without scooter details: {str(e)}")
            return {}

    def entries(self):
        scooters = self._scooters()
        return [GarageEntry.from_row(row, scooters.get(row['scooter_model_id'])) for row in self.rows()]

    def owned(self):
        return [entry for entry in self.entries() if entry.is_owned]

    def favorited(self):
        return [entry for entry in self.entries() if not entry.is_owned]

    def membership(self, scooter_id):
        """Depends on the garage list only, never on the catalogue"""
        for row in self.rows():
            if row['scooter_model_id'] == scooter_id:
                entry = GarageEntry.from_row(row)
                return Membership(True, entry.is_owned, entry)
        return Membership(False, False, None)

    # -------------------------------------------------------------- mutations

    def add(self, scooter_id, is_owned=False, nickname=None, current_km=None, scooter_name=None):
        """Add a scooter and credit points (+100 with a nickname, else +10 owned / +5 favorited)"""
        user_id = self._require_user()
        nickname = (nickname or '').strip() or None
        try:
            row = self.backend.insert(GARAGE_TABLE, {
                'user_id': user_id,
                'scooter_model_id': scooter_id,
                'is_owned': bool(is_owned),
                'nickname': nickname,
                'current_km': current_km or None,
            })[0]
        except BackendError as e:
            self.toaster.error("Erreur lors de l'ajout au garage", exc=e)
            raise

        points = points_for_new_entry(is_owned, nickname)
        credited = self._credit_points(points)
        self._changed(entry_id=row['id'])
        logger.info(f"Scooter {scooter_id} added to garage of {user_id} (owned={bool(is_owned)})")
        self.toaster.success(
            f"{scooter_name or 'Trottinette'} ajoutée au garage",
            f"+{points} Performance Points" if credited else None,
            points=points if credited else 0,
        )
        return GarageEntry.from_row(row)

    def set_owned(self, entry_id, is_owned):
        """Flip only the owned flag; nickname and mileage are left untouched"""
        user_id = self._require_user()
        try:
            rows = self.backend.update(GARAGE_TABLE, {'is_owned': bool(is_owned)},
                                       {'id': entry_id, 'user_id': user_id})
        except BackendError as e:
            self.toaster.error('Erreur lors de la modification', exc=e)
            raise

        if is_owned:
            credited = self._credit_points(PROMOTION_POINTS)
            self.toaster.success(
                'Promu dans votre écurie !',
                f"+{PROMOTION_POINTS} Performance Points bonus" if credited else None,
            )
        else:
            self.toaster.info('Déplacé dans votre collection')
        self._changed(entry_id=entry_id)
        return GarageEntry.from_row(rows[0]) if rows else None

    def promote(self, entry_id):
        return self.set_owned(entry_id, True)

    def demote(self, entry_id):
        return self.set_owned(entry_id, False)

    def toggle(self, entry):
        return self.set_owned(entry.id, not entry.is_owned)

    def remove(self, entry_id):
        user_id = self._require_user()
        try:
            self.backend.delete(GARAGE_TABLE, {'id': entry_id, 'user_id': user_id})
        except BackendError as e:
            self.toaster.error('Erreur lors du retrait', exc=e)
            raise
        self._changed(entry_id=entry_id)
        self.toaster.info('Véhicule retiré de votre garage', 'À bientôt !')

    def update_details(self, entry_id, **details):
        """Update nickname, current_km, next_maintenance_km or last_maintenance_date"""
        user_id = self._require_user()
        serializer = GarageDetailsSerializer(data=details, partial=True)
        if not serializer.is_valid():
            raise ValidationFailed({field: [str(e) for e in errors] for field, errors in serializer.errors.items()})
        values = serializer.to_backend_values()
        if not values:
            return None
        try:
            rows = self.backend.update(GARAGE_TABLE, values, {'id': entry_id, 'user_id': user_id})
        except BackendError as e:
            self.toaster.error('Erreur lors de la mise à jour', exc=e)
            raise
        self._changed(entry_id=entry_id)
        self.toaster.success('Informations mises à jour')
        return GarageEntry.from_row(rows[0]) if rows else None

    def upload_photo(self, entry_id, content, filename, content_type):
        """Store a custom photo under <user_id>/<entry_id>-<timestamp>.<ext>; returns its public URL"""
        user_id = self._require_user()
        if not (content_type or '').startswith('image/'):
            raise ValidationFailed({'photo': ['Veuillez sélectionner une image']})
        max_bytes = getattr(settings, 'GARAGE_PHOTO_MAX_BYTES', MAX_PHOTO_BYTES)
        if len(content) > max_bytes:
            raise ValidationFailed({'photo': ["L'image ne doit pas dépasser 5 Mo"]})

        extension = filename.rsplit('.', 1)[-1].lower() if '.' in filename else 'jpg'
        path = f"{user_id}/{entry_id}-{int(time.time() * 1000)}.{extension}"
        bucket = getattr(settings, 'SCOOTER_PHOTOS_BUCKET', PHOTO_BUCKET)
        try:
            self.backend.upload(bucket, path, content, content_type=content_type, upsert=True)
            public_url = self.backend.public_url(bucket, path)
            self.backend.update(GARAGE_TABLE, {'custom_photo_url': public_url},
                               {'id': entry_id, 'user_id': user_id})
        except BackendError as e:
            self.toaster.error('Erreur lors du téléchargement', exc=e)
            raise
        self._changed(entry_id=entry_id)
        self.toaster.success('Photo ajoutée avec succès !')
        return public_url
