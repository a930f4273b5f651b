import html

import bleach
from rest_framework import serializers

from records.models import MedicalRecord

# request key -> model field
CLINICAL_KEYS = {
    'diagnosis': 'diagnosis',
    'symptoms': 'symptoms',
    'treatmentPlan': 'treatment_plan',
    'notes': 'notes',
}


def clean_text(v):
    """Strip markup from free text and store it unescaped.

    bleach escapes ``<``, ``>`` and ``&``; the result is decoded again so clinical
    text such as ``HbA1c < 7% & stable`` round-trips. Cleaning repeats until
    decoding exposes no further tags.
    """
    if v is None:
        return v
    v = v.strip()
    for _ in range(5):
        cleaned = html.unescape(bleach.clean(v, tags=set(), strip=True)).strip()
        if cleaned == v:
            break
        v = cleaned
    return v


def to_clinical_patch(validated_data: dict) -> dict:
    return {field: validated_data[key] for key, field in CLINICAL_KEYS.items() if key in validated_data}


class _ClinicalTextMixin:
    def validate_diagnosis(self, v):
        return clean_text(v)

    def validate_symptoms(self, v):
        return clean_text(v)

    def validate_treatmentPlan(self, v):
        return clean_text(v)

    def validate_notes(self, v):
        return clean_text(v) or ''


class RecordCreateSerializer(_ClinicalTextMixin, serializers.Serializer):
    appointmentId = serializers.IntegerField(min_value=1)
    diagnosis = serializers.CharField(max_length=4000)
    symptoms = serializers.CharField(max_length=4000)
    treatmentPlan = serializers.CharField(max_length=4000)
    notes = serializers.CharField(max_length=4000, required=False, allow_blank=True, allow_null=True)


class RecordUpdateSerializer(_ClinicalTextMixin, serializers.Serializer):
    """Partial clinical edit; ``expectedVersion`` is the optional optimistic token."""
    diagnosis = serializers.CharField(max_length=4000, required=False)
    symptoms = serializers.CharField(max_length=4000, required=False)
    treatmentPlan = serializers.CharField(max_length=4000, required=False)
    notes = serializers.CharField(max_length=4000, required=False, allow_blank=True, allow_null=True)
    expectedVersion = serializers.IntegerField(min_value=1, required=False)

    def validate(self, attrs):
        if not any(key in attrs for key in CLINICAL_KEYS):
            raise serializers.ValidationError('At least one clinical field must be supplied.')
        return attrs


class RecordStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=MedicalRecord.Status.choices)


class RecordListQuerySerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=MedicalRecord.Status.choices, required=False)
    patientId = serializers.IntegerField(min_value=1, required=False)
    doctorId = serializers.IntegerField(min_value=1, required=False)
    dateFrom = serializers.DateField(required=False)
    dateTo = serializers.DateField(required=False)
    page = serializers.IntegerField(min_value=1, required=False)
    limit = serializers.IntegerField(min_value=1, max_value=100, required=False)

    def validate(self, attrs):
        if attrs.get('dateFrom') and attrs.get('dateTo') and attrs['dateFrom'] > attrs['dateTo']:
            raise serializers.ValidationError('dateFrom must not be after dateTo.')
        return attrs
