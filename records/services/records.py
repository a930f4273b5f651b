"""
Medical record store operations.

Clinical edits go through :func:`apply_update`, which snapshots the
pre-update state into :class:`MedicalRecordVersion` and advances the
record's ``current_version`` in one transaction. Two writers racing on
the same record cannot both succeed: the row is locked, the head update
is conditional on the version it read, and ``(record, version)`` is
unique. The loser gets a :class:`Conflict`.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta
from typing import Optional

from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError

from records.exceptions import Conflict
from records.models import Appointment, MedicalRecord, MedicalRecordVersion, Role
from records.services.audit import log_identity_action
from records.services.authz import Identity, ids_equal, require_ownership

logger = logging.getLogger(__name__)

User = get_user_model()


def _require_editor(identity: Identity, record: MedicalRecord) -> None:
    # Admin edits on behalf of the owning doctor.
    if identity.has_role(Role.ADMIN):
        return
    require_ownership(record, identity, 'doctor', 'You are not authorized to modify this medical record.')


def _require_reader(identity: Identity, record: MedicalRecord) -> None:
    if identity.has_role(Role.PATIENT):
        require_ownership(record, identity, 'patient', 'You are not authorized to view this medical record.')


def _load(record_id, *, for_update: bool = False) -> MedicalRecord:
    qs = MedicalRecord.objects.select_related('patient', 'doctor', 'appointment')
    if for_update:
        qs = MedicalRecord.objects.select_for_update()
    record = qs.filter(pk=record_id).first()
    if record is None:
        raise NotFound('Medical record not found.')
    return record


def clean_clinical_patch(patch: dict) -> dict:
    """Return the clinical fields to write, or raise before anything is touched."""
    changes = {f: patch[f] for f in MedicalRecord.CLINICAL_FIELDS if f in patch}
    if not changes:
        raise ValidationError({'non_field_errors': ['At least one clinical field must be supplied.']})
    for field in MedicalRecord.REQUIRED_CLINICAL_FIELDS:
        if field in changes and not str(changes[field] or '').strip():
            raise ValidationError({field: ['This field may not be blank.']})
    if 'notes' in changes and changes['notes'] is None:
        changes['notes'] = ''
    return changes


@transaction.atomic
def create_record(identity: Identity, *, appointment_id, diagnosis: str, symptoms: str,
                  treatment_plan: str, notes: str = '') -> MedicalRecord:
    appointment = Appointment.objects.filter(pk=appointment_id).first()
    if appointment is None:
        raise NotFound('Appointment not found.')
    if not identity.has_role(Role.ADMIN):
        require_ownership(appointment, identity, 'doctor',
                          'You are not authorized to create a medical record for this appointment.')
    if MedicalRecord.objects.filter(appointment=appointment).exists():
        raise ValidationError('Medical record already exists for this appointment.')

    clean_clinical_patch({'diagnosis': diagnosis, 'symptoms': symptoms, 'treatment_plan': treatment_plan})
    try:
        with transaction.atomic():
            record = MedicalRecord.objects.create(
                appointment=appointment,
                patient_id=appointment.patient_id,
                doctor_id=appointment.doctor_id,
                diagnosis=diagnosis,
                symptoms=symptoms,
                treatment_plan=treatment_plan,
                notes=notes or '',
            )
    except IntegrityError:
        raise ValidationError('Medical record already exists for this appointment.')

    log_identity_action(identity=identity, action='record_create', object_type='medical_record',
                        object_id=record.id, detail={'appointmentId': appointment.id})
    logger.info('Medical record %s created for appointment %s by %s', record.id, appointment.id, identity.id)
    return record


@transaction.atomic
def apply_update(identity: Identity, record_id, patch: dict,
                 expected_version: Optional[int] = None) -> MedicalRecord:
    """Apply a tracked clinical edit.

    Steps, all inside one transaction:

    1. lock the record row (NotFound when missing);
    2. check the caller may edit it;
    3. validate the patch (nothing is written on failure);
    4. compare the optional ``expected_version`` token;
    5. append the pre-update snapshot as version ``current_version``;
    6. bump ``current_version`` by one, stamp ``updated_at`` and write the
       patch, conditional on the version read in step 1.
    """
    record = _load(record_id, for_update=True)
    _require_editor(identity, record)
    if record.status == MedicalRecord.Status.ARCHIVED:
        raise ValidationError('Archived medical records cannot be modified.')
    changes = clean_clinical_patch(patch)

    read_version = record.current_version
    if expected_version is not None and expected_version != read_version:
        logger.warning('Stale update on record %s: expected v%s, current v%s', record.id, expected_version, read_version)
        raise Conflict(f'Medical record is at version {read_version}, not {expected_version}.')

    try:
        with transaction.atomic():
            MedicalRecordVersion.objects.create(
                record=record,
                version=read_version,
                diagnosis=record.diagnosis,
                symptoms=record.symptoms,
                treatment_plan=record.treatment_plan,
                notes=record.notes,
                updated_by_id=record.doctor_id,
                updated_at=record.updated_at,
            )
            matched = MedicalRecord.objects.filter(pk=record.pk, current_version=read_version).update(
                current_version=F('current_version') + 1,
                updated_at=timezone.now(),
                **changes,
            )
            if matched != 1:
                raise Conflict()
    except IntegrityError:
        logger.warning('Version %s of record %s already written by a concurrent update', read_version, record.id)
        raise Conflict()

    log_identity_action(identity=identity, action='record_update', object_type='medical_record',
                        object_id=record.id, detail={'fromVersion': read_version, 'fields': sorted(changes)})
    logger.info('Medical record %s advanced to v%s by %s', record.id, read_version + 1, identity.id)
    return _load(record.pk)


@transaction.atomic
def change_status(identity: Identity, record_id, status: str) -> MedicalRecord:
    """Move a record between workflow states; ``Archived`` is the soft delete."""
    if status not in MedicalRecord.Status.values:
        raise ValidationError({'status': [f'"{status}" is not a valid choice.']})
    record = _load(record_id, for_update=True)
    _require_editor(identity, record)
    previous = record.status
    if previous == status:
        return _load(record.pk)
    MedicalRecord.objects.filter(pk=record.pk).update(status=status, updated_at=timezone.now())
    log_identity_action(identity=identity, action='record_status', object_type='medical_record',
                        object_id=record.id, detail={'from': previous, 'to': status})
    return _load(record.pk)


def get_record(identity: Identity, record_id) -> MedicalRecord:
    record = _load(record_id)
    _require_reader(identity, record)
    return record


def get_record_for_appointment(identity: Identity, appointment_id) -> Optional[MedicalRecord]:
    record = (
        MedicalRecord.objects.select_related('patient', 'doctor', 'appointment')
        .filter(appointment_id=appointment_id)
        .first()
    )
    if record is not None:
        _require_reader(identity, record)
    return record


def _day_start(d: date) -> datetime:
    return timezone.make_aware(datetime.combine(d, time.min))


def list_records(identity: Identity, *, status: Optional[str] = None, patient_id=None, doctor_id=None,
                 date_from: Optional[date] = None, date_to: Optional[date] = None,
                 page: int = 1, limit: int = 10):
    qs = MedicalRecord.objects.select_related('patient', 'doctor', 'appointment')
    if identity.has_role(Role.PATIENT):
        qs = qs.filter(patient_id=identity.id)
    if status:
        qs = qs.filter(status=status)
    if patient_id:
        qs = qs.filter(patient_id=patient_id)
    if doctor_id:
        qs = qs.filter(doctor_id=doctor_id)
    if date_from:
        qs = qs.filter(created_at__gte=_day_start(date_from))
    if date_to:
        qs = qs.filter(created_at__lt=_day_start(date_to) + timedelta(days=1))

    total = qs.count()
    page = max(1, int(page or 1))
    limit = min(100, max(1, int(limit or 10)))
    start = (page - 1) * limit
    items = list(qs.order_by('-updated_at', '-id')[start:start + limit])
    return items, total


def patient_history(identity: Identity, patient_id) -> list[MedicalRecord]:
    if not User.objects.filter(pk=patient_id).exists():
        raise NotFound('Patient not found.')
    if identity.has_role(Role.PATIENT) and not ids_equal(identity.id, patient_id):
        raise PermissionDenied("You are not authorized to view this patient's records.")
    return list(
        MedicalRecord.objects.select_related('patient', 'doctor', 'appointment')
        .filter(patient_id=patient_id)
        .order_by('-created_at', '-id')
    )


def list_versions(identity: Identity, record_id):
    record = get_record(identity, record_id)
    return record, list(record.versions.select_related('updated_by').order_by('version'))


def record_statistics() -> dict:
    today = _day_start(timezone.localdate())
    qs = MedicalRecord.objects.all()
    return {
        'totalRecords': qs.count(),
        'activeCases': qs.filter(status=MedicalRecord.Status.ACTIVE).count(),
        'pendingReview': qs.filter(status=MedicalRecord.Status.PENDING).count(),
        'resolvedToday': qs.filter(status=MedicalRecord.Status.RESOLVED, updated_at__gte=today).count(),
        'recentActivity': {
            'created': qs.filter(created_at__gte=today).count(),
            'updated': qs.filter(updated_at__gte=today, current_version__gt=MedicalRecord.BASELINE_VERSION).count(),
        },
    }
