"""
Profiles and performance points
"""
from django.utils import timezone
import logging

from storefront.core.cache_signals import profile_changed
from storefront.core.exceptions import NotAuthenticated
from storefront.core.query_cache import DEFAULT_QUERY_TTL

logger = logging.getLogger(__name__)

PROFILES_TABLE = 'profiles'

# (threshold, label), highest first
PERFORMANCE_LEVELS = (
    (1000, 'EXPERT'),
    (500, 'AVANCÉ'),
    (100, 'INTERMÉDIAIRE'),
    (0, 'DÉBUTANT'),
)
POINTS_PER_LEVEL_STEP = 500


def performance_level(points):
    points = points or 0
    for threshold, label in PERFORMANCE_LEVELS:
        if points >= threshold:
            return label
    return PERFORMANCE_LEVELS[-1][1]


def points_to_next_step(points):
    return POINTS_PER_LEVEL_STEP - ((points or 0) % POINTS_PER_LEVEL_STEP)


class ProfileService:
    """Read and write the profiles table for the signed-in user"""

    def __init__(self, backend, query_client):
        self.backend = backend
        self.query_client = query_client

    def get(self, user_id):
        if not user_id:
            return None
        return self.query_client.fetch(
            'profile',
            lambda uid: self.backend.select_one(PROFILES_TABLE, filters={'id': uid}),
            user_id,
            ttl=DEFAULT_QUERY_TTL,
        )

    def add_points(self, user_id, points):
        """
        Credit performance points; creates the profile row when missing.

        Returns the new balance. Raises BackendError when the write fails.
        """
        if not user_id:
            raise NotAuthenticated()
        profile = self.backend.select_one(PROFILES_TABLE, filters={'id': user_id})
        now = timezone.now().isoformat()
        if profile is None:
            balance = points
            self.backend.insert(PROFILES_TABLE, {
                'id': user_id,
                'performance_points': balance,
                'created_at': now,
                'updated_at': now,
            })
        else:
            balance = (profile.get('performance_points') or 0) + points
            self.backend.update(
                PROFILES_TABLE,
                {'performance_points': balance, 'updated_at': now},
                {'id': user_id},
            )
        logger.info(f"Credited {points} points to {user_id} (balance {balance})")
        profile_changed.send(sender=self.__class__, query_client=self.query_client, user_id=user_id)
        return balance

    def update_display_name(self, user_id, display_name):
        if not user_id:
            raise NotAuthenticated()
        rows = self.backend.update(
            PROFILES_TABLE,
            {'display_name': display_name, 'updated_at': timezone.now().isoformat()},
            {'id': user_id},
        )
        profile_changed.send(sender=self.__class__, query_client=self.query_client, user_id=user_id)
        return rows[0] if rows else None
