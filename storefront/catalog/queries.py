"""
Catalogue read queries: brands, categories, scooter models, parts, tutorials
and the part/scooter compatibility graph.

Every read goes through the shared QueryClient so identical requests inside
the TTL are served from cache.
"""
import logging

from storefront.core.query_cache import (
    CATALOG_CACHE_TTL,
    COMPATIBILITY_CHECK_TTL,
    PARTS_CACHE_TTL,
)

logger = logging.getLogger(__name__)

UNKNOWN_BRAND = 'Unknown'
UNKNOWN_CATEGORY = 'Autre'


class CatalogQueries:

    def __init__(self, backend, query_client):
        self.backend = backend
        self.query_client = query_client

    # ------------------------------------------------------------- reference

    def brands(self):
        return self.query_client.fetch(
            'brands',
            lambda: self.backend.select('brands', order='name'),
            ttl=CATALOG_CACHE_TTL,
        )

    def brand_names(self):
        return {brand['id']: brand['name'] for brand in self.brands()}

    def categories(self, top_level_only=False):
        def fetch_categories(top_level_only):
            filters = {'parent_id': None} if top_level_only else None
            return self.backend.select('categories', filters=filters, order='display_order')

        return self.query_client.fetch(
            'categories', fetch_categories, top_level_only=top_level_only, ttl=CATALOG_CACHE_TTL
        )

    def category_names(self):
        return {category['id']: category['name'] for category in self.categories()}

    def category_parts_count(self):
        """Top-level categories with the number of parts in them and their children"""
        def fetch_counts():
            categories = self.categories()
            parent_of = {c['id']: c.get('parent_id') for c in categories}
            counts = {}
            for part in self.backend.select('parts', columns='id,category_id'):
                category_id = part.get('category_id')
                # Walk up to the top-level category
                while category_id is not None and parent_of.get(category_id) is not None:
                    category_id = parent_of[category_id]
                if category_id is not None:
                    counts[category_id] = counts.get(category_id, 0) + 1
            return [
                dict(category, parts_count=counts.get(category['id'], 0))
                for category in categories
                if category.get('parent_id') is None
            ]

        return self.query_client.fetch('category-parts-count', fetch_counts, ttl=PARTS_CACHE_TTL)

    # --------------------------------------------------------------- scooters

    def _with_brand(self, scooters):
        names = self.brand_names()
        return [dict(s, brand_name=names.get(s.get('brand_id'), UNKNOWN_BRAND)) for s in scooters]

    def scooter_models(self, brand_slug=None):
        def fetch_models(brand_slug):
            filters = {}
            if brand_slug:
                brand = self.backend.select_one('brands', filters={'slug': brand_slug})
                if brand is None:
                    return []
                filters['brand_id'] = brand['id']
            return self._with_brand(self.backend.select('scooter_models', filters=filters, order='name'))

        return self.query_client.fetch('scooter-models', fetch_models, brand_slug=brand_slug, ttl=CATALOG_CACHE_TTL)

    def scooter_options(self):
        """Light list for the scooter selector"""
        return [
            {
                'id': s['id'],
                'name': s['name'],
                'slug': s['slug'],
                'brand_name': s['brand_name'],
                'image_url': s.get('image_url'),
            }
            for s in self.scooter_models()
        ]

    def scooters_grouped_by_brand(self):
        grouped = {}
        for scooter in self.scooter_models():
            grouped.setdefault(scooter['brand_name'], []).append(scooter)
        return grouped

    def scooter_by_slug(self, slug):
        def fetch_scooter(slug):
            scooter = self.backend.select_one('scooter_models', filters={'slug': slug})
            return self._with_brand([scooter])[0] if scooter else None

        return self.query_client.fetch('scooter-detail', fetch_scooter, slug, ttl=CATALOG_CACHE_TTL)

    # ------------------------------------------------------------------ parts

    def _with_category(self, parts):
        names = self.category_names()
        return [dict(p, category_name=names.get(p.get('category_id'), UNKNOWN_CATEGORY)) for p in parts]

    def parts(self, category_id=None):
        def fetch_parts(category_id):
            filters = {'category_id': category_id} if category_id else None
            return self._with_category(self.backend.select('parts', filters=filters, order='name'))

        return self.query_client.fetch('parts', fetch_parts, category_id=category_id, ttl=PARTS_CACHE_TTL)

    def featured_parts(self, limit=None):
        """The "Pépites du Chef" selection"""
        def fetch_featured(limit):
            rows = self.backend.select('parts', filters={'is_featured': True}, order='name', limit=limit)
            return self._with_category(rows)

        return self.query_client.fetch('featured-parts', fetch_featured, limit=limit, ttl=PARTS_CACHE_TTL)

    def part_by_slug(self, slug):
        def fetch_part(slug):
            part = self.backend.select_one('parts', filters={'slug': slug})
            return self._with_category([part])[0] if part else None

        return self.query_client.fetch('part-detail', fetch_part, slug, ttl=PARTS_CACHE_TTL)

    def parts_by_ids(self, part_ids):
        """Fresh read (no cache) used to verify prices and stock"""
        if not part_ids:
            return {}
        rows = self.backend.select(
            'parts', columns='id,name,price,stock_quantity,image_url', filters={'id__in': list(part_ids)}
        )
        return {row['id']: row for row in rows}

    # ---------------------------------------------------------- compatibility

    def compatible_parts(self, scooter_id):
        def fetch_compatible(scooter_id):
            links = self.backend.select(
                'part_compatibility', columns='part_id', filters={'scooter_model_id': scooter_id}
            )
            if not links:
                return []
            part_ids = [link['part_id'] for link in links]
            rows = self.backend.select('parts', filters={'id__in': part_ids}, order='name')
            return self._with_category(rows)

        if not scooter_id:
            return []
        return self.query_client.fetch('compatible-parts', fetch_compatible, scooter_id, ttl=PARTS_CACHE_TTL)

    def compatible_parts_count(self, scooter_id):
        def fetch_count(scooter_id):
            return len(self.backend.select(
                'part_compatibility', columns='id', filters={'scooter_model_id': scooter_id}
            ))

        if not scooter_id:
            return 0
        return self.query_client.fetch('compatible-parts-count', fetch_count, scooter_id, ttl=PARTS_CACHE_TTL)

    def compatible_scooters(self, part_id):
        def fetch_scooters(part_id):
            links = self.backend.select(
                'part_compatibility', columns='scooter_model_id', filters={'part_id': part_id}
            )
            if not links:
                return []
            scooter_ids = [link['scooter_model_id'] for link in links]
            rows = self.backend.select('scooter_models', filters={'id__in': scooter_ids}, order='name')
            return self._with_brand(rows)

        return self.query_client.fetch('compatible-scooters', fetch_scooters, part_id, ttl=CATALOG_CACHE_TTL)

    def is_compatible(self, part_id, scooter_id):
        def fetch_link(part_id, scooter_id):
            link = self.backend.select_one(
                'part_compatibility', columns='id', filters={'part_id': part_id, 'scooter_model_id': scooter_id}
            )
            return link is not None

        return self.query_client.fetch(
            'part-compatibility-check', fetch_link, part_id, scooter_id, ttl=COMPATIBILITY_CHECK_TTL
        )

    # -------------------------------------------------------------- tutorials

    def tutorials(self):
        return self.query_client.fetch(
            'tutorials',
            lambda: self.backend.select('tutorials', order='difficulty'),
            ttl=CATALOG_CACHE_TTL,
        )

    def tutorial_for_scooter(self, scooter_id):
        """Easiest tutorial for the model, else the easiest generic one"""
        def fetch_tutorial(scooter_id):
            if scooter_id:
                tutorial = self.backend.select_one(
                    'tutorials', filters={'scooter_model_id': scooter_id}, order='difficulty'
                )
                if tutorial:
                    return tutorial
            return self.backend.select_one('tutorials', filters={'scooter_model_id': None}, order='difficulty')

        return self.query_client.fetch('scooter-tutorial', fetch_tutorial, scooter_id, ttl=CATALOG_CACHE_TTL)
