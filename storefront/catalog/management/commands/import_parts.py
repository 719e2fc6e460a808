"""
Management command to import parts from a CSV file
"""
import os
from django.core.management.base import BaseCommand, CommandError

from storefront.core.backend_client import get_backend_client
from storefront.core.exceptions import BackendError, ImportFileError
from storefront.core.query_cache import QueryClient
from storefront.catalog.importer import PartsImporter


class Command(BaseCommand):
    help = "Imports parts from a CSV file (French or English headers, ',' or ';' delimiter)"

    def add_arguments(self, parser):
        parser.add_argument(
            'csv_file',
            type=str,
            help='Path to the CSV file',
        )
        parser.add_argument(
            '--quiet-rows',
            action='store_true',
            help='Do not print progress for every row',
        )

    def handle(self, *args, **options):
        csv_file = options['csv_file']
        quiet_rows = options['quiet_rows']

        self.stdout.write(self.style.SUCCESS("=" * 80))
        self.stdout.write(self.style.SUCCESS("IMPORTING PARTS FROM CSV"))
        self.stdout.write(self.style.SUCCESS("=" * 80))
        self.stdout.write(f"CSV File: {csv_file}")

        if not os.path.exists(csv_file):
            raise CommandError(f"CSV file not found at {csv_file}")

        with open(csv_file, 'rb') as f:
            content = f.read()

        def progress(row_number, total):
            if not quiet_rows:
                self.stdout.write(f"  Row {row_number}/{total}")

        importer = PartsImporter(get_backend_client(service_role=True), QueryClient())
        try:
            report = importer.run(content, progress=progress)
        except (ImportFileError, BackendError) as e:
            raise CommandError(f"Error reading CSV file: {e}") from e

        for error in report.errors:
            details = '; '.join(f"{field}: {', '.join(messages)}" for field, messages in error['errors'].items())
            self.stdout.write(self.style.ERROR(f"  ✗ Row {error['row']}: {details}"))

        self.stdout.write(self.style.SUCCESS("\n" + "=" * 80))
        self.stdout.write(self.style.SUCCESS("SUMMARY"))
        self.stdout.write(self.style.SUCCESS("=" * 80))
        self.stdout.write(f"Rows read: {report.total}")
        self.stdout.write(f"Parts created: {report.created}")
        self.stdout.write(f"Parts updated: {report.updated}")
        if report.error_count > 0:
            self.stdout.write(self.style.ERROR(f"Rows with errors: {report.error_count}"))
        self.stdout.write(self.style.SUCCESS("=" * 80))
