from rest_framework import serializers

from records.models import Prescription
from records.serializers.records import clean_text

MISSING_ITEMS = 'Medical Record ID and at least one medication are required.'


class MedicationSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=200)
    dosage = serializers.CharField(max_length=100)
    frequency = serializers.CharField(max_length=100)
    duration = serializers.CharField(max_length=100)
    notes = serializers.CharField(max_length=1000, required=False, allow_blank=True)

    def validate(self, attrs):
        return {k: clean_text(v) for k, v in attrs.items()}


def _medication_list(items) -> list:
    if not items:
        raise serializers.ValidationError(MISSING_ITEMS)
    return [dict(item) for item in items]


class PrescriptionCreateSerializer(serializers.Serializer):
    medicalRecordId = serializers.IntegerField(min_value=1, error_messages={'required': MISSING_ITEMS})
    medications = MedicationSerializer(many=True, error_messages={'required': MISSING_ITEMS})
    digitalSignature = serializers.CharField(max_length=4000, error_messages={
        'required': 'Digital signature is required.',
        'blank': 'Digital signature is required.',
    })

    def validate_medications(self, v):
        return _medication_list(v)


class PrescriptionUpdateSerializer(serializers.Serializer):
    medications = MedicationSerializer(many=True, required=False)
    status = serializers.ChoiceField(choices=Prescription.Status.choices, required=False)

    def validate_medications(self, v):
        return _medication_list(v)

    def validate(self, attrs):
        if 'medications' not in attrs and 'status' not in attrs:
            raise serializers.ValidationError('Nothing to update: supply medications and/or status.')
        return attrs
