"""
Prescription store operations.

Only the doctor who owns the underlying medical record may create a
prescription on it, and only the prescribing doctor may later change or
delete it. Prescriptions are not versioned: updates overwrite in place.
"""
from __future__ import annotations

import logging
from typing import Optional

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError

from records.models import MedicalRecord, Prescription, Role
from records.permissions import PRESCRIBER_ROLES
from records.services.audit import log_identity_action
from records.services.authz import Identity, ids_equal, require_ownership, require_role

logger = logging.getLogger(__name__)

User = get_user_model()

# Active is the only state that can be left; the other two are terminal.
TRANSITIONS = {
    Prescription.Status.ACTIVE: {Prescription.Status.ACTIVE, Prescription.Status.CANCELLED, Prescription.Status.COMPLETED},
    Prescription.Status.CANCELLED: set(),
    Prescription.Status.COMPLETED: set(),
}


def can_transition(current: str, new: str) -> bool:
    return new in TRANSITIONS.get(current, set())


def _full_clean(rx: Prescription) -> None:
    try:
        rx.full_clean()
    except DjangoValidationError as e:
        raise ValidationError(e.message_dict)


def _load(rx_id, *, for_update: bool = False) -> Prescription:
    qs = Prescription.objects.select_for_update() if for_update else Prescription.objects.select_related('doctor')
    rx = qs.filter(pk=rx_id).first()
    if rx is None:
        raise NotFound('Prescription not found.')
    return rx


@transaction.atomic
def create_prescription(identity: Identity, *, medical_record_id, medications: list,
                        digital_signature: str) -> Prescription:
    require_role(identity, PRESCRIBER_ROLES)
    if not medical_record_id or not isinstance(medications, list) or not medications:
        raise ValidationError('Medical Record ID and at least one medication are required.')
    if not (digital_signature or '').strip():
        raise ValidationError('Digital signature is required.')

    record = MedicalRecord.objects.filter(pk=medical_record_id).first()
    if record is None:
        raise NotFound('Medical Record not found.')
    require_ownership(record, identity, 'doctor',
                      'You are not authorized to create a prescription for this medical record.')

    rx = Prescription(
        medical_record=record,
        patient_id=record.patient_id,
        doctor_id=record.doctor_id,
        medications=medications,
        digital_signature=digital_signature,
        date_signed=timezone.now(),
    )
    _full_clean(rx)
    rx.save()

    log_identity_action(identity=identity, action='prescription_create', object_type='prescription',
                        object_id=rx.id, detail={'medicalRecordId': record.id, 'count': len(medications)})
    logger.info('Prescription %s created on record %s by %s', rx.id, record.id, identity.id)
    return rx


@transaction.atomic
def update_prescription(identity: Identity, rx_id, *, medications: Optional[list] = None,
                        status: Optional[str] = None) -> Prescription:
    rx = _load(rx_id, for_update=True)
    require_ownership(rx, identity, 'doctor', 'You are not authorized to perform this action.')
    if medications is None and status is None:
        raise ValidationError('Nothing to update: supply medications and/or status.')
    if rx.status != Prescription.Status.ACTIVE:
        raise ValidationError(f'A {rx.status.lower()} prescription can no longer be changed.')
    if status is not None and not can_transition(rx.status, status):
        raise ValidationError({'status': [f'Cannot move a prescription from {rx.status} to {status}.']})

    changed = []
    if medications is not None:
        rx.medications = medications
        changed.append('medications')
    if status is not None:
        rx.status = status
        changed.append('status')
    _full_clean(rx)
    rx.save()

    log_identity_action(identity=identity, action='prescription_update', object_type='prescription',
                        object_id=rx.id, detail={'fields': changed, 'status': rx.status})
    return _load(rx.pk)


@transaction.atomic
def delete_prescription(identity: Identity, rx_id) -> None:
    rx = _load(rx_id, for_update=True)
    require_ownership(rx, identity, 'doctor', 'You are not authorized to perform this action.')
    rx_pk = rx.pk
    rx.delete()
    log_identity_action(identity=identity, action='prescription_delete', object_type='prescription',
                        object_id=rx_pk, detail={'medicalRecordId': rx.medical_record_id})
    logger.info('Prescription %s deleted by %s', rx_pk, identity.id)


def list_for_record(identity: Identity, medical_record_id) -> list[Prescription]:
    record = MedicalRecord.objects.filter(pk=medical_record_id).first()
    if record is None:
        raise NotFound('Medical Record not found.')
    if identity.has_role(Role.PATIENT):
        require_ownership(record, identity, 'patient',
                          "You are not authorized to view this record's prescriptions.")
    return list(
        Prescription.objects.filter(medical_record_id=record.pk)
        .select_related('doctor')
        .order_by('-created_at', '-id')
    )


def list_for_patient(identity: Identity, patient_id) -> list[Prescription]:
    if not User.objects.filter(pk=patient_id).exists():
        raise NotFound('Patient not found.')
    if identity.has_role(Role.PATIENT) and not ids_equal(identity.id, patient_id):
        raise PermissionDenied("You are not authorized to view this patient's prescriptions.")
    return list(
        Prescription.objects.filter(patient_id=patient_id)
        .select_related('doctor')
        .order_by('-created_at', '-id')
    )
