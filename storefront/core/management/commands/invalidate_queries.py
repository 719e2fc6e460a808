"""
Django management command to mark cached query results stale.

Usage:
    python manage.py invalidate_queries parts featured-parts
    python manage.py invalidate_queries --catalog
"""
from django.core.management.base import BaseCommand, CommandError
from django.conf import settings

from storefront.core.query_cache import CATALOG_RESOURCES, QueryClient


class Command(BaseCommand):
    help = 'Invalidate cached query results by resource name'

    def add_arguments(self, parser):
        parser.add_argument('resources', nargs='*', help='Resource names (e.g. parts, admin-orders)')
        parser.add_argument(
            '--catalog',
            action='store_true',
            help='Invalidate every catalogue resource',
        )

    def handle(self, *args, **options):
        resources = list(options['resources'])
        if options['catalog']:
            resources.extend(CATALOG_RESOURCES)
        if not resources:
            raise CommandError('Give at least one resource name or --catalog')

        self.stdout.write(f"Cache Backend: {settings.CACHES['default']['BACKEND']}")
        QueryClient().invalidate(*resources)
        for resource in resources:
            self.stdout.write(self.style.SUCCESS(f"✅ Invalidated: {resource}"))
