"""
Unified search across scooter models, parts and tutorials, plus the
spotlight palette (recent history and quick actions).
"""
import logging
import re
import time
import uuid

from storefront.core.query_cache import SEARCH_CACHE_TTL

logger = logging.getLogger(__name__)

MIN_TERM_LENGTH = 2
MAX_FUZZY_VARIANTS = 4
SCOOTER_LIMIT = 4
PART_LIMIT = 4
TUTORIAL_LIMIT = 3

FILTER_SCOOTERS = 'scooters'
FILTER_PARTS = 'parts'
FILTER_TUTORIALS = 'tutorials'

PREFIX_FILTERS = {
    'part': FILTER_PARTS,
    'piece': FILTER_PARTS,
    'p': FILTER_PARTS,
    'tuto': FILTER_TUTORIALS,
    't': FILTER_TUTORIALS,
    'model': FILTER_SCOOTERS,
    'm': FILTER_SCOOTERS,
}
PREFIX_RE = re.compile(r'^(part|piece|p|tuto|t|model|m):(.+)', re.IGNORECASE | re.DOTALL)

# Common French typos: doubled letters, accents, ph/f, qu/k
FUZZY_REPLACEMENTS = [
    (r'tt', 't'),
    (r'([^t])t([^t])', r'\1tt\2'),
    (r'ss', 's'),
    (r'([^s])s([^s])', r'\1ss\2'),
    (r'll', 'l'),
    (r'([^l])l([^l])', r'\1ll\2'),
    (r'nn', 'n'),
    (r'([^n])n([^n])', r'\1nn\2'),
    (r'rr', 'r'),
    (r'([^r])r([^r])', r'\1rr\2'),
    (r'é', 'e'),
    (r'è', 'e'),
    (r'ê', 'e'),
    (r'e', 'é'),
    (r'à', 'a'),
    (r'â', 'a'),
    (r'ù', 'u'),
    (r'û', 'u'),
    (r'î', 'i'),
    (r'ô', 'o'),
    (r'ph', 'f'),
    (r'f', 'ph'),
    (r'qu', 'k'),
    (r'k', 'qu'),
]

QUICK_ACTIONS = (
    {'id': 'garage', 'label': 'Aller au Garage', 'href': '/garage', 'shortcut': 'G'},
    {'id': 'academy', 'label': "Voir l'Academy", 'href': '/tutos', 'shortcut': 'A'},
    {'id': 'catalogue', 'label': 'Catalogue Pièces', 'href': '/catalogue', 'shortcut': 'C'},
    {'id': 'scooters', 'label': 'Trottinettes', 'href': '/trottinettes', 'shortcut': 'T'},
)

SEARCH_HISTORY_KEY = 'pt-search-history'
MAX_HISTORY_ITEMS = 5


def parse_query(query):
    """'p:pneu' -> ('parts', 'pneu'); no prefix -> (None, query)"""
    query = query or ''
    match = PREFIX_RE.match(query)
    if match:
        return PREFIX_FILTERS[match.group(1).lower()], match.group(2).strip()
    return None, query


def fuzzy_variants(term):
    """The lower-cased term first, then up to three typo variants"""
    lower = term.lower()
    variants = [lower]
    for pattern, replacement in FUZZY_REPLACEMENTS:
        variant = re.sub(pattern, replacement, lower)
        if variant != lower and variant not in variants:
            variants.append(variant)
    return variants[:MAX_FUZZY_VARIANTS]


class SearchResults:

    def __init__(self, scooters=None, parts=None, tutorials=None, active_filter=None):
        self.scooters = scooters or []
        self.parts = parts or []
        self.tutorials = tutorials or []
        self.active_filter = active_filter

    @property
    def is_empty(self):
        return not (self.scooters or self.parts or self.tutorials)

    def groups(self):
        """Non-empty groups in display order: models, parts, tutorials"""
        ordered = [
            (FILTER_SCOOTERS, self.scooters),
            (FILTER_PARTS, self.parts),
            (FILTER_TUTORIALS, self.tutorials),
        ]
        return [(name, items) for name, items in ordered if items]

    def to_dict(self):
        return {
            'scooters': self.scooters,
            'parts': self.parts,
            'tutorials': self.tutorials,
            'active_filter': self.active_filter,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(data['scooters'], data['parts'], data['tutorials'], data['active_filter'])


class UnifiedSearch:

    def __init__(self, backend, query_client, catalog):
        self.backend = backend
        self.query_client = query_client
        self.catalog = catalog

    def search(self, query):
        active_filter, term = parse_query(query)
        if len(term) < MIN_TERM_LENGTH:
            return SearchResults(active_filter=active_filter)
        data = self.query_client.fetch(
            'unified-search', self._run, active_filter, term, ttl=SEARCH_CACHE_TTL
        )
        return SearchResults.from_dict(data)

    def _run(self, active_filter, term):
        patterns = [f'%{variant}%' for variant in fuzzy_variants(term)]
        scooters, parts, tutorials = [], [], []

        if active_filter in (None, FILTER_SCOOTERS):
            rows = self.backend.select(
                'scooter_models', columns='id,slug,name,image_url,brand_id',
                filters={'name__ilike_any': patterns}, limit=SCOOTER_LIMIT,
            )
            brands = self.catalog.brand_names() if rows else {}
            scooters = [
                {
                    'slug': row['slug'],
                    'name': row['name'],
                    'brand_name': brands.get(row.get('brand_id'), ''),
                    'image_url': row.get('image_url'),
                }
                for row in rows
            ]

        if active_filter in (None, FILTER_PARTS):
            rows = self.backend.select(
                'parts', columns='id,slug,name,price,image_url,category_id',
                filters={'name__ilike_any': patterns}, limit=PART_LIMIT,
            )
            categories = self.catalog.category_names() if rows else {}
            parts = [
                {
                    'slug': row['slug'],
                    'name': row['name'],
                    'category': categories.get(row.get('category_id'), ''),
                    'price': row.get('price'),
                    'image_url': row.get('image_url'),
                }
                for row in rows
            ]

        if active_filter in (None, FILTER_TUTORIALS):
            rows = self.backend.select(
                'tutorials', columns='id,slug,title,difficulty,scooter_model_id',
                filters={'title__ilike_any': patterns}, limit=TUTORIAL_LIMIT,
            )
            scooter_names = {}
            if any(row.get('scooter_model_id') for row in rows):
                scooter_names = {s['id']: s['name'] for s in self.catalog.scooter_models()}
            tutorials = [
                {
                    'slug': row['slug'],
                    'title': row['title'],
                    'difficulty': row.get('difficulty'),
                    'scooter_name': scooter_names.get(row.get('scooter_model_id')),
                }
                for row in rows
            ]

        logger.debug(f"Search '{term}' ({active_filter or 'all'}): "
                     f"{len(scooters)} models, {len(parts)} parts, {len(tutorials)} tutorials")
        return SearchResults(scooters, parts, tutorials, active_filter).to_dict()

    def palette(self, query, history):
        """What the spotlight shows for the current input"""
        _, term = parse_query(query)
        if len(term) < MIN_TERM_LENGTH:
            return {
                'history': list(history.items),
                'quick_actions': list(QUICK_ACTIONS),
                'results': None,
            }
        return {'history': [], 'quick_actions': [], 'results': self.search(query)}


class SearchHistory:
    """Recently visited search results, most recent first"""

    def __init__(self, storage):
        self.storage = storage
        stored = storage.get_json(SEARCH_HISTORY_KEY, [])
        self.items = stored if isinstance(stored, list) else []

    def _save(self):
        if self.items:
            self.storage.set_json(SEARCH_HISTORY_KEY, self.items)
        else:
            self.storage.remove(SEARCH_HISTORY_KEY)

    def add(self, item_type, slug, name, image_url=None, meta=None):
        kept = [h for h in self.items if not (h['type'] == item_type and h['slug'] == slug)]
        entry = {
            'id': uuid.uuid4().hex,
            'type': item_type,
            'slug': slug,
            'name': name,
            'image_url': image_url,
            'meta': meta,
            'visited_at': int(time.time() * 1000),
        }
        self.items = [entry] + kept[:MAX_HISTORY_ITEMS - 1]
        self._save()
        return entry

    def remove(self, entry_id):
        self.items = [h for h in self.items if h['id'] != entry_id]
        self._save()

    def clear(self):
        self.items = []
        self.storage.remove(SEARCH_HISTORY_KEY)


class Spotlight:
    """Command palette visibility"""

    def __init__(self):
        self.is_open = False

    def open(self):
        self.is_open = True

    def close(self):
        self.is_open = False

    def toggle(self):
        self.is_open = not self.is_open

    def shortcut(self, key, query=''):
        """Quick-action letter pressed; only honoured while the input is empty"""
        if not self.is_open or query:
            return None
        for action in QUICK_ACTIONS:
            if action['shortcut'] == key.upper():
                self.close()
                return action['href']
        return None
