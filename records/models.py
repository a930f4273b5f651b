"""
Database models for the clinic records service.

The clinical record for one appointment is kept as a mutable head row
(:class:`MedicalRecord`) plus an append-only table of superseded states
(:class:`MedicalRecordVersion`) keyed by ``(record, version)``.
Prescriptions hang off a medical record and carry their own, unversioned
lifecycle.
"""
from __future__ import annotations

from django.contrib.auth.models import AbstractUser
from django.core.exceptions import ValidationError
from django.db import models


class Role(models.TextChoices):
    """Closed set of roles every authorization check keys off."""
    PATIENT = 'Patient', 'Patient'
    DOCTOR = 'Doctor', 'Doctor'
    ADMIN = 'Admin', 'Admin'
    TECHNICIAN = 'Technician', 'Technician'
    LAB_TECHNICIAN = 'LabTechnician', 'Lab Technician'
    LAB_SUPERVISOR = 'LabSupervisor', 'Lab Supervisor'
    RECEPTIONIST = 'Receptionist', 'Receptionist'
    BILLING_STAFF = 'BillingStaff', 'Billing Staff'
    PHARMACIST = 'Pharmacist', 'Pharmacist'
    NURSE = 'Nurse', 'Nurse'
    INSURANCE_STAFF = 'Insurance Staff', 'Insurance Staff'


class User(AbstractUser):
    """Custom user model carrying the caller's role.

    Doctors additionally record the department they belong to, which is
    shown wherever a prescription or record exposes its author.
    """
    role = models.CharField(max_length=32, choices=Role.choices, default=Role.PATIENT, db_index=True)
    doctor_department = models.CharField(max_length=128, blank=True)

    def __str__(self) -> str:
        return f"{self.username} ({self.role})"


class Appointment(models.Model):
    """A booked encounter between a patient and a doctor.

    Appointments are managed elsewhere; the records service only needs
    them to anchor a medical record to its patient/doctor pair.
    """
    class Status(models.TextChoices):
        PENDING = 'Pending', 'Pending'
        ACCEPTED = 'Accepted', 'Accepted'
        REJECTED = 'Rejected', 'Rejected'
        COMPLETED = 'Completed', 'Completed'
        CANCELLED = 'Cancelled', 'Cancelled'
        CHECKED_IN = 'Checked-in', 'Checked-in'

    patient = models.ForeignKey(User, on_delete=models.PROTECT, related_name='patient_appointments')
    doctor = models.ForeignKey(User, on_delete=models.PROTECT, related_name='doctor_appointments')
    appointment_date = models.DateTimeField()
    department = models.CharField(max_length=128, blank=True)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"Appointment #{self.pk} p={self.patient_id} d={self.doctor_id}"


class MedicalRecord(models.Model):
    """Current clinical state of one appointment's record.

    ``current_version`` starts at :attr:`BASELINE_VERSION` and grows by
    exactly one per tracked update; after every update
    ``versions.count() == current_version - BASELINE_VERSION``.
    ``patient`` and ``doctor`` never change once the row exists.
    """
    BASELINE_VERSION = 1
    CLINICAL_FIELDS = ('diagnosis', 'symptoms', 'treatment_plan', 'notes')
    REQUIRED_CLINICAL_FIELDS = ('diagnosis', 'symptoms', 'treatment_plan')

    class Status(models.TextChoices):
        ACTIVE = 'Active', 'Active'
        PENDING = 'Pending', 'Pending'
        RESOLVED = 'Resolved', 'Resolved'
        ARCHIVED = 'Archived', 'Archived'

    appointment = models.OneToOneField(Appointment, on_delete=models.PROTECT, related_name='medical_record')
    patient = models.ForeignKey(User, on_delete=models.PROTECT, related_name='patient_records')
    doctor = models.ForeignKey(User, on_delete=models.PROTECT, related_name='doctor_records')

    diagnosis = models.TextField()
    symptoms = models.TextField()
    treatment_plan = models.TextField()
    notes = models.TextField(blank=True, default='')

    status = models.CharField(max_length=16, choices=Status.choices, default=Status.ACTIVE, db_index=True)
    current_version = models.PositiveIntegerField(default=BASELINE_VERSION)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=['patient', 'created_at'], name='rec_patient_created_idx'),
            models.Index(fields=['doctor', 'updated_at'], name='rec_doctor_updated_idx'),
        ]

    def __str__(self) -> str:
        return f"Record #{self.pk} v{self.current_version} p={self.patient_id}"

    def clinical_snapshot(self) -> dict:
        return {field: getattr(self, field) for field in self.CLINICAL_FIELDS}


class MedicalRecordVersion(models.Model):
    """Immutable copy of a record's clinical fields taken before an update."""
    record = models.ForeignKey(MedicalRecord, on_delete=models.PROTECT, related_name='versions')
    version = models.PositiveIntegerField()
    diagnosis = models.TextField()
    symptoms = models.TextField()
    treatment_plan = models.TextField()
    notes = models.TextField(blank=True, default='')
    updated_by = models.ForeignKey(User, on_delete=models.PROTECT, related_name='+')
    updated_at = models.DateTimeField()

    class Meta:
        ordering = ['record', 'version']
        constraints = [
            models.UniqueConstraint(fields=['record', 'version'], name='uniq_record_version'),
        ]

    def __str__(self) -> str:
        return f"Record #{self.record_id} v{self.version}"


def validate_medications(value) -> None:
    """Document-level check that a prescription holds at least one full line item."""
    if not isinstance(value, list) or not value:
        raise ValidationError('A prescription must contain at least one medication.')
    for item in value:
        if not isinstance(item, dict):
            raise ValidationError('Each medication must be an object.')
        for key in Prescription.MEDICATION_REQUIRED_KEYS:
            if not str(item.get(key) or '').strip():
                raise ValidationError(f'Medication {key} is required.')


class Prescription(models.Model):
    """Medication order signed by the doctor who owns the medical record."""
    MEDICATION_REQUIRED_KEYS = ('name', 'dosage', 'frequency', 'duration')

    class Status(models.TextChoices):
        ACTIVE = 'Active', 'Active'
        CANCELLED = 'Cancelled', 'Cancelled'
        COMPLETED = 'Completed', 'Completed'

    medical_record = models.ForeignKey(MedicalRecord, on_delete=models.PROTECT, related_name='prescriptions', db_index=True)
    patient = models.ForeignKey(User, on_delete=models.PROTECT, related_name='patient_prescriptions', db_index=True)
    doctor = models.ForeignKey(User, on_delete=models.PROTECT, related_name='doctor_prescriptions')
    medications = models.JSONField(default=list, validators=[validate_medications])
    digital_signature = models.TextField()
    date_signed = models.DateTimeField(null=True, blank=True)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.ACTIVE)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=['medical_record', 'created_at'], name='rx_record_created_idx'),
            models.Index(fields=['patient', 'created_at'], name='rx_patient_created_idx'),
        ]

    def __str__(self) -> str:
        return f"Rx #{self.pk} ({self.status}) record={self.medical_record_id}"

    def clean(self) -> None:
        if not (self.digital_signature or '').strip():
            raise ValidationError({'digital_signature': 'Digital signature is required before saving.'})


class AuditEvent(models.Model):
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True)
    action = models.CharField(max_length=64)
    object_type = models.CharField(max_length=64, blank=True, null=True)
    object_id = models.BigIntegerField(blank=True, null=True)
    detail = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=['action', 'created_at'], name='audit_action_created_idx'),
            models.Index(fields=['object_type', 'object_id', 'created_at'], name='audit_object_created_idx'),
        ]

    def __str__(self):
        return f"{self.action}:{self.object_type}#{self.object_id} by {self.user_id}"
