"""
Management command to export the parts catalogue to CSV
"""
from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from storefront.core.backend_client import get_backend_client
from storefront.core.exceptions import BackendError
from storefront.core.query_cache import QueryClient
from storefront.catalog.exporter import export_parts_csv
from storefront.catalog.queries import CatalogQueries


class Command(BaseCommand):
    help = "Exports every part to a CSV file with French headers"

    def add_arguments(self, parser):
        parser.add_argument(
            '--output',
            type=str,
            default=None,
            help='Destination file (default: pieces-<date>.csv)',
        )
        parser.add_argument(
            '--category',
            type=str,
            default=None,
            help='Only export parts of this category id',
        )

    def handle(self, *args, **options):
        output = options['output'] or f"pieces-{timezone.now().date().isoformat()}.csv"
        catalog = CatalogQueries(get_backend_client(service_role=True), QueryClient())

        try:
            parts = catalog.parts(category_id=options['category'])
        except BackendError as e:
            raise CommandError(f"Could not load parts: {e}") from e

        # utf-8-sig so spreadsheet tools detect the encoding
        with open(output, 'w', encoding='utf-8-sig', newline='') as f:
            export_parts_csv(parts, f)

        self.stdout.write(self.style.SUCCESS(f"Exported {len(parts)} parts to {output}"))
