from rest_framework import serializers
from decimal import Decimal
import re

MAX_CART_LINES = 100


def _sanitize(value):
    return re.sub(r'[<>]', '', value)


class CheckoutLineSerializer(serializers.Serializer):
    id = serializers.CharField(max_length=64)
    name = serializers.CharField()
    image_url = serializers.CharField(required=False, allow_null=True, allow_blank=True, default=None)
    price = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0'))
    quantity = serializers.IntegerField(min_value=1, max_value=99)

    def validate_name(self, value):
        return value[:200]


class CheckoutSerializer(serializers.Serializer):
    """Delivery form plus the cart lines being ordered"""
    first_name = serializers.CharField(
        min_length=2, max_length=100,
        error_messages={'min_length': 'Prénom requis (min 2 caractères)', 'blank': 'Prénom requis (min 2 caractères)'},
    )
    last_name = serializers.CharField(
        min_length=2, max_length=100,
        error_messages={'min_length': 'Nom requis (min 2 caractères)', 'blank': 'Nom requis (min 2 caractères)'},
    )
    email = serializers.EmailField(max_length=255, error_messages={'invalid': 'Email invalide'})
    phone = serializers.CharField(required=False, allow_blank=True, allow_null=True, default=None)
    address = serializers.CharField(
        min_length=5, max_length=500,
        error_messages={'min_length': 'Adresse requise (min 5 caractères)', 'blank': 'Adresse requise (min 5 caractères)'},
    )
    postal_code = serializers.RegexField(
        r'^\d{5}$', error_messages={'invalid': 'Code postal invalide (5 chiffres)'},
    )
    city = serializers.CharField(
        min_length=2, max_length=100,
        error_messages={'min_length': 'Ville requise (min 2 caractères)', 'blank': 'Ville requise (min 2 caractères)'},
    )
    items = CheckoutLineSerializer(many=True, allow_empty=False, error_messages={'empty': 'Le panier est vide'})

    def validate_first_name(self, value):
        return _sanitize(value)

    def validate_last_name(self, value):
        return _sanitize(value)

    def validate_address(self, value):
        return _sanitize(value)

    def validate_city(self, value):
        return _sanitize(value)

    def validate_email(self, value):
        return value.strip().lower()

    def validate_phone(self, value):
        if not value:
            return None
        cleaned = re.sub(r'\s', '', value)
        if not re.fullmatch(r'\+?\d+', cleaned) or not 10 <= len(cleaned) <= 15:
            raise serializers.ValidationError('Téléphone invalide')
        return cleaned

    def validate_items(self, value):
        if len(value) > MAX_CART_LINES:
            raise serializers.ValidationError("Trop d'articles dans le panier")
        return value


def cart_to_checkout_lines(cart):
    return [
        {
            'id': item.id,
            'name': item.name,
            'image_url': item.image_url,
            'price': str(item.price),
            'quantity': item.quantity,
        }
        for item in cart.items
    ]
