from rest_framework import serializers


class GarageDetailsSerializer(serializers.Serializer):
    """Editable garage fields; used with partial=True"""
    nickname = serializers.CharField(max_length=50, allow_blank=True, allow_null=True, required=False)
    current_km = serializers.IntegerField(min_value=0, max_value=1000000, allow_null=True, required=False)
    next_maintenance_km = serializers.IntegerField(min_value=0, max_value=1000000, allow_null=True, required=False)
    last_maintenance_date = serializers.DateField(allow_null=True, required=False)

    def validate_nickname(self, value):
        value = (value or '').strip()
        return value or None

    def to_backend_values(self):
        values = dict(self.validated_data)
        if values.get('last_maintenance_date') is not None:
            values['last_maintenance_date'] = values['last_maintenance_date'].isoformat()
        return values
