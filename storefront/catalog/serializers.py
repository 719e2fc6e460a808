from rest_framework import serializers
from decimal import Decimal
import json

from storefront.core.utils import make_slug


class TechnicalMetadataField(serializers.Field):
    """Free-form key/value object, given either as a dict or as JSON text"""
    default_error_messages = {
        'invalid_json': 'JSON invalide: {error}',
        'not_an_object': 'Les métadonnées doivent être un objet JSON.',
    }

    def to_internal_value(self, data):
        if data in (None, ''):
            return {}
        if isinstance(data, str):
            try:
                data = json.loads(data)
            except ValueError as e:
                self.fail('invalid_json', error=str(e))
        if not isinstance(data, dict):
            self.fail('not_an_object')
        return data

    def to_representation(self, value):
        return json.dumps(value or {}, ensure_ascii=False)


class FrenchBooleanField(serializers.BooleanField):
    TRUE_VALUES = serializers.BooleanField.TRUE_VALUES | {'oui', 'Oui', 'OUI', 'x', 'X'}
    FALSE_VALUES = serializers.BooleanField.FALSE_VALUES | {'non', 'Non', 'NON'}


class FrenchDecimalField(serializers.DecimalField):
    """Accepts '19,99' as well as '19.99'"""

    def to_internal_value(self, data):
        if isinstance(data, str):
            data = data.strip().replace('\u00a0', '').replace(' ', '').replace(',', '.')
        return super().to_internal_value(data)


class ToolListField(serializers.Field):
    """'Clé 8; Tournevis' -> ['Clé 8', 'Tournevis']"""

    def to_internal_value(self, data):
        if isinstance(data, (list, tuple)):
            return [str(tool).strip() for tool in data if str(tool).strip()]
        return [tool.strip() for tool in str(data).split(';') if tool.strip()]

    def to_representation(self, value):
        return '; '.join(value or [])


class PartImportRowSerializer(serializers.Serializer):
    """
    One CSV row of the parts import.

    Expects context['categories']: the category rows used to resolve the
    'category' column (name, case-insensitive, then slug).
    """
    name = serializers.CharField(max_length=200)
    slug = serializers.SlugField(max_length=200, required=False)
    category = serializers.CharField(max_length=200)
    price = FrenchDecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0'), required=False)
    stock_quantity = serializers.IntegerField(min_value=0, required=False)
    difficulty_level = serializers.IntegerField(min_value=1, max_value=5, required=False)
    estimated_install_time_minutes = serializers.IntegerField(min_value=0, required=False)
    required_tools = ToolListField(required=False)
    youtube_video_id = serializers.CharField(max_length=32, required=False)
    description = serializers.CharField(required=False, allow_blank=True)
    technical_metadata = TechnicalMetadataField(required=False)
    is_featured = FrenchBooleanField(required=False)

    def validate_category(self, value):
        categories = self.context.get('categories', [])
        wanted = value.strip().lower()
        matches = [c for c in categories if (c.get('name') or '').strip().lower() == wanted]
        if not matches:
            wanted_slug = make_slug(value)
            matches = [c for c in categories if c.get('slug') == wanted_slug]
        if not matches:
            raise serializers.ValidationError(f"Catégorie inconnue: {value}")
        if len(matches) > 1:
            raise serializers.ValidationError(
                f"Catégorie ambiguë: {value} correspond à {len(matches)} catégories"
            )
        return matches[0]

    def validate(self, attrs):
        category = attrs.pop('category')
        attrs['category_id'] = category['id']
        if not attrs.get('slug'):
            attrs['slug'] = make_slug(attrs['name'])
        if not attrs['slug']:
            raise serializers.ValidationError({'slug': 'Impossible de générer un slug à partir du nom.'})
        return attrs

    def to_backend_row(self):
        """validated_data shaped for the parts table"""
        row = dict(self.validated_data)
        if 'price' in row:
            row['price'] = float(row['price'])
        return row
