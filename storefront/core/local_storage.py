"""
Persisted client-side state (cart, selected scooter, search history).

Backed by the 'local' cache alias, which never expires entries. Each browser
or device gets its own namespace so carts never mix.
"""
from django.core.cache import caches
from django.core.serializers.json import DjangoJSONEncoder
import json
import logging

logger = logging.getLogger(__name__)


class LocalStorage:
    """JSON key/value store scoped to one client namespace"""

    def __init__(self, namespace='anonymous', cache_alias='local'):
        self.namespace = namespace
        self.cache = caches[cache_alias]

    def _key(self, key):
        return f"localstorage:{self.namespace}:{key}"

    def get_json(self, key, default=None):
        raw = self.cache.get(self._key(key))
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            logger.warning(f"Discarding unreadable local storage entry '{key}' for {self.namespace}")
            self.remove(key)
            return default

    def set_json(self, key, value):
        self.cache.set(self._key(key), json.dumps(value, cls=DjangoJSONEncoder), None)

    def set_raw(self, key, raw):
        self.cache.set(self._key(key), raw, None)

    def remove(self, key):
        self.cache.delete(self._key(key))
