"""Record update service: version history, atomicity and conflicts."""
import pytest
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError

from records.exceptions import Conflict
from records.models import MedicalRecord, MedicalRecordVersion
from records.services import records as svc
from records.services.authz import Identity

pytestmark = pytest.mark.django_db


def _state(record_id):
    r = MedicalRecord.objects.get(pk=record_id)
    versions = list(MedicalRecordVersion.objects.filter(record_id=record_id).values_list(
        'version', 'diagnosis', 'symptoms', 'treatment_plan', 'notes'))
    return r.current_version, r.clinical_snapshot(), versions


def test_new_record_starts_at_baseline(record):
    assert record.current_version == MedicalRecord.BASELINE_VERSION == 1
    assert record.versions.count() == 0


def test_single_update_snapshots_previous_state(record, doctor):
    before = MedicalRecord.objects.get(pk=record.pk)

    updated = svc.apply_update(Identity.from_user(doctor), record.pk, {'diagnosis': 'Flu, resolved'})

    assert updated.current_version == 2
    assert updated.diagnosis == 'Flu, resolved'
    assert updated.updated_at > before.updated_at
    versions = list(updated.versions.all())
    assert len(versions) == 1
    v = versions[0]
    assert v.version == 1
    assert (v.diagnosis, v.symptoms, v.treatment_plan, v.notes) == ('Flu', 'Fever', 'Rest', '')
    assert v.updated_by_id == doctor.id
    assert v.updated_at == before.updated_at


def test_n_updates_append_n_versions_in_order(record, doctor):
    ident = Identity.from_user(doctor)
    diagnoses = ['Flu', 'Cold', 'Bronchitis', 'Pneumonia', 'Recovered']
    for d in diagnoses[1:]:
        svc.apply_update(ident, record.pk, {'diagnosis': d})

    record.refresh_from_db()
    n = len(diagnoses) - 1
    assert record.current_version == MedicalRecord.BASELINE_VERSION + n
    versions = list(record.versions.order_by('version'))
    assert len(versions) == n
    assert [v.version for v in versions] == [1, 2, 3, 4]
    # snapshot i holds the state right before update i+1
    assert [v.diagnosis for v in versions] == diagnoses[:-1]
    assert record.diagnosis == diagnoses[-1]


def test_partial_patch_only_changes_given_fields(record, doctor):
    svc.apply_update(Identity.from_user(doctor), record.pk, {'notes': 'Follow up in a week'})
    record.refresh_from_db()
    assert record.notes == 'Follow up in a week'
    assert (record.diagnosis, record.symptoms, record.treatment_plan) == ('Flu', 'Fever', 'Rest')


@pytest.mark.parametrize('patch', [
    {},
    {'diagnosis': ''},
    {'symptoms': '   '},
    {'treatment_plan': None},
    {'unrelated': 'value'},
])
def test_invalid_patch_leaves_record_untouched(record, doctor, patch):
    ident = Identity.from_user(doctor)
    svc.apply_update(ident, record.pk, {'diagnosis': 'Cold'})
    before = _state(record.pk)
    updated_at = MedicalRecord.objects.get(pk=record.pk).updated_at

    with pytest.raises(ValidationError):
        svc.apply_update(ident, record.pk, patch)

    assert _state(record.pk) == before
    assert MedicalRecord.objects.get(pk=record.pk).updated_at == updated_at


def test_other_doctor_cannot_update(record, other_doctor):
    before = _state(record.pk)
    with pytest.raises(PermissionDenied):
        svc.apply_update(Identity.from_user(other_doctor), record.pk, {'diagnosis': 'Hijacked'})
    assert _state(record.pk) == before


def test_admin_updates_on_behalf_of_doctor(record, admin_user, doctor):
    updated = svc.apply_update(Identity.from_user(admin_user), record.pk, {'treatment_plan': 'Fluids'})
    assert updated.current_version == 2
    # the snapshot is attributed to the record's doctor
    assert updated.versions.get().updated_by_id == doctor.id


def test_missing_record_is_not_found(doctor):
    with pytest.raises(NotFound):
        svc.apply_update(Identity.from_user(doctor), 999999, {'diagnosis': 'x'})


def test_stale_expected_version_conflicts(record, doctor):
    ident = Identity.from_user(doctor)
    svc.apply_update(ident, record.pk, {'diagnosis': 'Cold'}, expected_version=1)
    before = _state(record.pk)

    with pytest.raises(Conflict):
        svc.apply_update(ident, record.pk, {'diagnosis': 'Lost update'}, expected_version=1)

    assert _state(record.pk) == before


def test_version_already_written_by_racing_writer_conflicts(record, doctor):
    # This row stands in for a concurrent writer that committed its snapshot of
    # version 1 between our read and our write; the head row has not caught up
    # yet, so the versions/current_version invariant is briefly off by one.
    MedicalRecordVersion.objects.create(
        record=record, version=1, diagnosis='Flu', symptoms='Fever', treatment_plan='Rest',
        notes='', updated_by=doctor, updated_at=record.updated_at,
    )
    with pytest.raises(Conflict):
        svc.apply_update(Identity.from_user(doctor), record.pk, {'diagnosis': 'Cold'})

    record.refresh_from_db()
    assert record.current_version == 1
    assert record.diagnosis == 'Flu'
    assert record.versions.count() == 1


def test_archived_record_cannot_be_edited(record, doctor):
    ident = Identity.from_user(doctor)
    svc.change_status(ident, record.pk, MedicalRecord.Status.ARCHIVED)
    with pytest.raises(ValidationError):
        svc.apply_update(ident, record.pk, {'diagnosis': 'Cold'})
    record.refresh_from_db()
    assert record.current_version == 1


def test_status_change_does_not_create_version(record, doctor):
    updated = svc.change_status(Identity.from_user(doctor), record.pk, MedicalRecord.Status.RESOLVED)
    assert updated.status == 'Resolved'
    assert updated.current_version == 1
    assert updated.versions.count() == 0


def test_status_change_rejects_unknown_status(record, doctor):
    with pytest.raises(ValidationError):
        svc.change_status(Identity.from_user(doctor), record.pk, 'Deleted')
