import pytest
from rest_framework.exceptions import NotAuthenticated, PermissionDenied
from rest_framework.test import APIRequestFactory

from records.models import Role
from records.permissions import HasRole
from records.services.authz import (
    Identity,
    ids_equal,
    is_owner,
    require_authenticated,
    require_ownership,
    require_role,
)

pytestmark = pytest.mark.django_db


class _Resource:
    def __init__(self, doctor_id):
        self.doctor_id = doctor_id


def test_ids_equal_compares_identifiers_as_strings():
    assert ids_equal(7, '7')
    assert ids_equal('abc', 'abc')
    assert not ids_equal(7, 8)
    assert not ids_equal(None, None)
    assert not ids_equal(None, '1')


def test_identity_from_user_uses_stored_role(doctor):
    ident = Identity.from_user(doctor)
    assert ident.id == str(doctor.pk)
    assert ident.role == 'Doctor'
    assert ident.has_role(Role.DOCTOR, Role.ADMIN)
    assert not ident.has_role(Role.PATIENT)


def test_require_authenticated_rejects_anonymous():
    request = APIRequestFactory().get('/')
    request.user = None
    with pytest.raises(NotAuthenticated):
        require_authenticated(request)


def test_require_authenticated_returns_identity(patient):
    request = APIRequestFactory().get('/')
    request.user = patient
    assert require_authenticated(request) == Identity(id=str(patient.pk), role='Patient')


def test_require_role_is_default_deny():
    ident = Identity(id='1', role=Role.RECEPTIONIST.value)
    require_role(ident, {Role.RECEPTIONIST})
    with pytest.raises(PermissionDenied):
        require_role(ident, {Role.DOCTOR, Role.ADMIN})
    with pytest.raises(PermissionDenied):
        require_role(ident, set())


def test_require_ownership_matches_owner_field():
    res = _Resource(doctor_id=5)
    require_ownership(res, Identity(id='5', role='Doctor'), 'doctor')
    assert is_owner(res, Identity(id='5', role='Doctor'), 'doctor')
    with pytest.raises(PermissionDenied):
        require_ownership(res, Identity(id='6', role='Doctor'), 'doctor')


def test_has_role_permission(doctor, patient):
    perm = HasRole(Role.DOCTOR)()
    request = APIRequestFactory().get('/')
    request.user = doctor
    assert perm.has_permission(request, None)
    request.user = patient
    assert not perm.has_permission(request, None)
    request.user = None
    assert not perm.has_permission(request, None)
