"""Parts CSV export with the French headers the importer reads back"""
from decimal import Decimal
import csv
import io
import json

EXPORT_HEADERS = [
    'Nom', 'Slug', 'Catégorie', 'Prix', 'Stock', 'Difficulté', 'Temps Install',
    'Outils', 'YouTube ID', 'Description', 'Métadonnées', 'Pépite',
]


def _cell(value):
    return '' if value is None else str(value)


def part_to_csv_row(part):
    price = part.get('price')
    return [
        _cell(part.get('name')),
        _cell(part.get('slug')),
        _cell(part.get('category_name')),
        '' if price is None else f"{Decimal(str(price)):.2f}",
        _cell(part.get('stock_quantity')),
        _cell(part.get('difficulty_level')),
        _cell(part.get('estimated_install_time_minutes')),
        '; '.join(part.get('required_tools') or []),
        _cell(part.get('youtube_video_id')),
        _cell(part.get('description')),
        json.dumps(part['technical_metadata'], ensure_ascii=False) if part.get('technical_metadata') else '',
        'oui' if part.get('is_featured') else 'non',
    ]


def export_parts_csv(parts, output=None):
    """Write `parts` (rows carrying category_name) as CSV; returns the text when no output is given"""
    buffer = output or io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL)
    writer.writerow(EXPORT_HEADERS)
    for part in parts:
        writer.writerow(part_to_csv_row(part))
    if output is None:
        return buffer.getvalue()
    return None
