import itertools

import pytest
from django.core.cache import cache
from django.utils import timezone
from rest_framework.test import APIClient

from records.models import Appointment, Role, User
from records.services import records as record_svc
from records.services.authz import Identity

PASSWORD = 'P@ssw0rd1'


@pytest.fixture(autouse=True)
def _clear_throttle_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def make_user(db):
    counter = itertools.count(1)

    def _make(role=Role.PATIENT, **extra):
        n = next(counter)
        username = extra.pop('username', f"{str(role).lower().replace(' ', '_')}_{n}")
        return User.objects.create_user(username=username, password=PASSWORD, role=role, **extra)
    return _make


@pytest.fixture
def doctor(make_user):
    return make_user(Role.DOCTOR, first_name='Gregory', last_name='House', doctor_department='Diagnostics')


@pytest.fixture
def other_doctor(make_user):
    return make_user(Role.DOCTOR, first_name='James', last_name='Wilson', doctor_department='Oncology')


@pytest.fixture
def admin_user(make_user):
    return make_user(Role.ADMIN)


@pytest.fixture
def nurse(make_user):
    return make_user(Role.NURSE)


@pytest.fixture
def patient(make_user):
    return make_user(Role.PATIENT, first_name='Pat', last_name='One')


@pytest.fixture
def other_patient(make_user):
    return make_user(Role.PATIENT, first_name='Pat', last_name='Two')


@pytest.fixture
def make_appointment(db):
    def _make(patient, doctor, **extra):
        extra.setdefault('appointment_date', timezone.now())
        extra.setdefault('status', Appointment.Status.COMPLETED)
        return Appointment.objects.create(patient=patient, doctor=doctor, **extra)
    return _make


@pytest.fixture
def make_record(make_appointment):
    def _make(patient, doctor, diagnosis='Flu', symptoms='Fever', treatment_plan='Rest', notes=''):
        appt = make_appointment(patient, doctor)
        return record_svc.create_record(
            Identity.from_user(doctor),
            appointment_id=appt.id,
            diagnosis=diagnosis,
            symptoms=symptoms,
            treatment_plan=treatment_plan,
            notes=notes,
        )
    return _make


@pytest.fixture
def record(make_record, patient, doctor):
    return make_record(patient, doctor)


@pytest.fixture
def client_for():
    def _client(user=None):
        c = APIClient()
        if user is not None:
            c.force_authenticate(user=user)
        return c
    return _client
