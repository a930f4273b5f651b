"""
URL mappings for the clinic records API.

All resource routes live under ``/api/v1/``. Trailing slashes are
deliberately omitted (``APPEND_SLASH`` is off).
"""
from django.urls import path, include

from .auth_views import login_view, refresh_view, logout_view, me_view
from .views import health
from .views.records import (
    medical_records,
    medical_record_statistics,
    medical_record_detail,
    medical_record_status,
    medical_record_versions,
    medical_record_for_appointment,
    patient_medical_history,
)
from .views.prescriptions import (
    prescriptions_create,
    prescription_detail,
    prescriptions_for_record,
    prescriptions_for_patient,
)


urlpatterns = [
    path('', include('django_prometheus.urls')),
    path('healthz', health.healthz),
    # Authentication
    path('api/v1/auth/login', login_view, name='auth-login'),
    path('api/v1/auth/refresh', refresh_view, name='auth-refresh'),
    path('api/v1/auth/logout', logout_view, name='auth-logout'),
    path('api/v1/auth/me', me_view, name='auth-me'),
    # Medical records
    path('api/v1/medical-records', medical_records, name='records'),
    path('api/v1/medical-records/statistics', medical_record_statistics, name='records-statistics'),
    path('api/v1/medical-records/<int:pk>', medical_record_detail, name='record-detail'),
    path('api/v1/medical-records/<int:pk>/status', medical_record_status, name='record-status'),
    path('api/v1/medical-records/<int:pk>/versions', medical_record_versions, name='record-versions'),
    path('api/v1/medical-records/appointment/<int:appointment_id>', medical_record_for_appointment,
         name='record-for-appointment'),
    path('api/v1/medical-records/patient/<int:patient_id>/history', patient_medical_history,
         name='patient-history'),
    # Prescriptions
    path('api/v1/prescriptions', prescriptions_create, name='prescriptions'),
    path('api/v1/prescriptions/<int:pk>', prescription_detail, name='prescription-detail'),
    path('api/v1/prescriptions/record/<int:record_id>', prescriptions_for_record, name='prescriptions-for-record'),
    path('api/v1/prescriptions/patient/<int:patient_id>', prescriptions_for_patient,
         name='prescriptions-for-patient'),
]
