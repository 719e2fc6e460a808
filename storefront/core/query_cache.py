"""
Query result caching keyed by resource name + parameters.

Uses the Django cache framework ('default' alias: Redis in production,
local memory otherwise). Invalidation works per resource: every key embeds
the resource generation, and invalidating bumps that generation, so stale
entries become unreachable on any cache backend.
"""
from django.core.cache import caches
import hashlib
import logging

from .exceptions import StorefrontError

logger = logging.getLogger(__name__)

# Cache TTLs (in seconds)
DEFAULT_QUERY_TTL = 300  # 5 minutes
CATALOG_CACHE_TTL = 600  # 10 minutes (brands, categories, scooter models)
PARTS_CACHE_TTL = 120  # 2 minutes (stock moves)
COMPATIBILITY_CHECK_TTL = 60  # 1 minute
SEARCH_CACHE_TTL = 30
ORDERS_CACHE_TTL = 60
GARAGE_CACHE_TTL = 300

GENERATION_KEY_PREFIX = 'querygen:'

# Resources invalidated together when the catalogue changes
CATALOG_RESOURCES = (
    'parts', 'part-detail', 'featured-parts', 'compatible-parts',
    'compatible-parts-count', 'compatible-scooters', 'category-parts-count',
    'unified-search',
)


def make_cache_key(prefix, *args, **kwargs):
    """Generate a unique cache key from arguments"""
    # Convert args and kwargs to a stable string representation
    key_data = f"{prefix}:{args}:{sorted(kwargs.items())}"
    # Hash it to keep key length reasonable
    key_hash = hashlib.md5(key_data.encode()).hexdigest()
    return f"{prefix}:{key_hash}"


class QueryResult:
    """Outcome of a cached query: idle (disabled), success or error"""
    IDLE = 'idle'
    SUCCESS = 'success'
    ERROR = 'error'

    def __init__(self, status, data=None, error=None):
        self.status = status
        self.data = data
        self.error = error

    @classmethod
    def idle(cls, data=None):
        return cls(cls.IDLE, data=data)

    @classmethod
    def success(cls, data):
        return cls(cls.SUCCESS, data=data)

    @classmethod
    def failure(cls, error):
        return cls(cls.ERROR, error=error)

    @property
    def is_idle(self):
        return self.status == self.IDLE

    @property
    def is_success(self):
        return self.status == self.SUCCESS

    @property
    def is_error(self):
        return self.status == self.ERROR

    def __repr__(self):
        return f"QueryResult(status={self.status!r}, data={self.data!r}, error={self.error!r})"


class QueryClient:
    """Shared read-through cache; every consumer reads through the same keys"""

    def __init__(self, cache_alias='default', default_ttl=DEFAULT_QUERY_TTL):
        self.cache = caches[cache_alias]
        self.default_ttl = default_ttl

    def _generation(self, resource):
        gen_key = f"{GENERATION_KEY_PREFIX}{resource}"
        generation = self.cache.get(gen_key)
        if generation is None:
            self.cache.add(gen_key, 0, None)
            generation = self.cache.get(gen_key, 0)
        return generation

    def key_for(self, resource, *args, **params):
        generation = self._generation(resource)
        return make_cache_key(f"{resource}:g{generation}", *args, **params)

    def fetch(self, resource, fetcher, *args, ttl=None, **params):
        """
        Return cached data for (resource, args, params) or call fetcher(*args, **params).

        Errors propagate to the caller and are never cached; there is no retry.
        """
        cache_key = self.key_for(resource, *args, **params)
        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.debug(f"Cache HIT for {resource}: {cache_key}")
            return cached['data']

        logger.debug(f"Cache MISS for {resource}: {cache_key}")
        data = fetcher(*args, **params)
        self.cache.set(cache_key, {'data': data}, ttl or self.default_ttl)
        return data

    def query(self, resource, fetcher, *args, enabled=True, ttl=None, **params):
        """Like fetch() but folds the outcome into a QueryResult"""
        if not enabled:
            return QueryResult.idle()
        try:
            return QueryResult.success(self.fetch(resource, fetcher, *args, ttl=ttl, **params))
        except StorefrontError as e:
            logger.warning(f"Query {resource} failed: {str(e)}")
            return QueryResult.failure(e)

    def get_query_data(self, resource, *args, **params):
        """Read a cached entry without fetching; None when absent"""
        cached = self.cache.get(self.key_for(resource, *args, **params))
        return cached['data'] if cached is not None else None

    def set_query_data(self, resource, data, *args, ttl=None, **params):
        """Overwrite a cached entry in place"""
        self.cache.set(self.key_for(resource, *args, **params), {'data': data}, ttl or self.default_ttl)

    def invalidate(self, *resources):
        """Mark every cached key of the given resources stale"""
        for resource in resources:
            gen_key = f"{GENERATION_KEY_PREFIX}{resource}"
            self._generation(resource)
            try:
                self.cache.incr(gen_key)
            except ValueError:
                # Generation evicted between read and increment
                self.cache.set(gen_key, 1, None)
            logger.info(f"Invalidated query cache for resource: {resource}")
