"""
Parts CSV import.

Rows are validated one by one; invalid rows are skipped and reported by their
1-based data-row number while valid rows are written (insert, or update when
the slug already exists). The catalogue caches are invalidated once at the end.
"""
import csv
import io
import logging

from storefront.core.cache_signals import catalog_changed
from storefront.core.exceptions import BackendError, ImportFileError

from .serializers import PartImportRowSerializer

logger = logging.getLogger(__name__)

# Lower-cased header -> serializer field
HEADER_ALIASES = {
    'nom': 'name',
    'name': 'name',
    'slug': 'slug',
    'catégorie': 'category',
    'categorie': 'category',
    'category': 'category',
    'prix': 'price',
    'price': 'price',
    'stock': 'stock_quantity',
    'stock_quantity': 'stock_quantity',
    'difficulté': 'difficulty_level',
    'difficulte': 'difficulty_level',
    'difficulty': 'difficulty_level',
    'difficulty_level': 'difficulty_level',
    'temps install': 'estimated_install_time_minutes',
    'temps installation': 'estimated_install_time_minutes',
    'install_time': 'estimated_install_time_minutes',
    'estimated_install_time_minutes': 'estimated_install_time_minutes',
    'outils': 'required_tools',
    'tools': 'required_tools',
    'required_tools': 'required_tools',
    'youtube id': 'youtube_video_id',
    'youtube': 'youtube_video_id',
    'youtube_video_id': 'youtube_video_id',
    'description': 'description',
    'métadonnées': 'technical_metadata',
    'metadonnees': 'technical_metadata',
    'metadata': 'technical_metadata',
    'technical_metadata': 'technical_metadata',
    'pépite': 'is_featured',
    'pepite': 'is_featured',
    'featured': 'is_featured',
    'is_featured': 'is_featured',
}


class ImportReport:

    def __init__(self):
        self.total = 0
        self.created = 0
        self.updated = 0
        self.errors = []

    @property
    def success_count(self):
        return self.created + self.updated

    @property
    def error_count(self):
        return len(self.errors)

    def add_error(self, row_number, errors):
        self.errors.append({'row': row_number, 'errors': errors})

    def __repr__(self):
        return (f"ImportReport(total={self.total}, success={self.success_count}, "
                f"errors={self.error_count})")


def _plain_errors(errors):
    """Flatten DRF ErrorDetail structures into {field: [str, ...]}"""
    plain = {}
    for field, messages in errors.items():
        if isinstance(messages, dict):
            messages = [f"{k}: {v}" for k, v in messages.items()]
        elif not isinstance(messages, (list, tuple)):
            messages = [messages]
        plain[field] = [str(message) for message in messages]
    return plain


def detect_delimiter(header_line):
    return ';' if header_line.count(';') > header_line.count(',') else ','


def read_csv_rows(content):
    """
    Decode and parse the file; returns (row_number, {field: value}) pairs.

    Row numbers count data lines after the header, blank lines included, so
    errors point at the line the user sees in the file.

    Unknown columns are ignored and blank cells are dropped so field defaults
    apply. Raises ImportFileError when the file has no usable header.
    """
    if isinstance(content, bytes):
        try:
            content = content.decode('utf-8-sig')
        except UnicodeDecodeError as e:
            raise ImportFileError(f"Fichier illisible (UTF-8 attendu): {str(e)}") from e
    content = content.lstrip('\ufeff')
    if not content.strip():
        raise ImportFileError('Fichier CSV vide')

    header_line = content.splitlines()[0]
    reader = csv.reader(io.StringIO(content), delimiter=detect_delimiter(header_line))
    header = next(reader)
    columns = [HEADER_ALIASES.get(h.strip().lower()) for h in header]
    if 'name' not in columns:
        raise ImportFileError("Colonne 'Nom' introuvable dans l'en-tête")

    rows = []
    for row_number, cells in enumerate(reader, start=1):
        if not any(cell.strip() for cell in cells):
            continue
        data = {}
        for column, cell in zip(columns, cells):
            if column and cell.strip():
                data[column] = cell.strip()
        rows.append((row_number, data))
    return rows


class PartsImporter:

    def __init__(self, backend, query_client):
        self.backend = backend
        self.query_client = query_client

    def run(self, content, progress=None):
        """
        Import parts from CSV `content` (str or bytes).

        progress(done, total) is called after each row.
        """
        rows = read_csv_rows(content)
        categories = self.backend.select('categories', columns='id,name,slug')
        report = ImportReport()
        report.total = len(rows)

        for index, (row_number, data) in enumerate(rows, start=1):
            serializer = PartImportRowSerializer(data=data, context={'categories': categories})
            if not serializer.is_valid():
                report.add_error(row_number, _plain_errors(serializer.errors))
                logger.warning(f"Import row {row_number} rejected: {_plain_errors(serializer.errors)}")
            else:
                try:
                    self._write(serializer.to_backend_row(), report)
                except BackendError as e:
                    report.add_error(row_number, {'non_field_errors': [e.message]})
                    logger.error(f"Import row {row_number} failed: {str(e)}")
            if progress:
                progress(index, report.total)

        if report.success_count:
            catalog_changed.send(sender=self.__class__, query_client=self.query_client, reason='import')
        logger.info(f"Parts import finished: {report}")
        return report

    def _write(self, row, report):
        existing = self.backend.select_one('parts', columns='id', filters={'slug': row['slug']})
        if existing:
            self.backend.update('parts', row, {'id': existing['id']})
            report.updated += 1
        else:
            self.backend.insert('parts', row)
            report.created += 1


def import_parts_csv(backend, query_client, content, progress=None):
    return PartsImporter(backend, query_client).run(content, progress=progress)
