"""
Medical record endpoints.

Every handler builds the caller's :class:`Identity` once and hands it to
:mod:`records.services.records`; role allow-lists are declared with
:func:`HasRole`, ownership is decided by the service after the record has
been found. Clinical edits always go through ``apply_update`` so each one
leaves a version row behind.
"""
from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response

from ..models import MedicalRecord, MedicalRecordVersion
from ..permissions import HasRole, CLINICAL_STAFF_ROLES, RECORD_EDITOR_ROLES, RECORD_READER_ROLES
from ..serializers.records import (
    RecordCreateSerializer,
    RecordListQuerySerializer,
    RecordStatusSerializer,
    RecordUpdateSerializer,
    to_clinical_patch,
)
from ..services import records as svc
from ..services.authz import require_authenticated, require_role


def _iso(dt):
    return dt.isoformat() if dt else None


def _person(user, *, with_department: bool = False) -> dict | None:
    if user is None:
        return None
    data = {'id': user.id, 'firstName': user.first_name, 'lastName': user.last_name}
    if with_department:
        data['doctorDepartment'] = user.doctor_department
    return data


def _serialize(record: MedicalRecord) -> dict:
    return {
        'id': record.id,
        'appointmentId': record.appointment_id,
        'patientId': record.patient_id,
        'doctorId': record.doctor_id,
        'patient': _person(record.patient),
        'doctor': _person(record.doctor, with_department=True),
        'diagnosis': record.diagnosis,
        'symptoms': record.symptoms,
        'treatmentPlan': record.treatment_plan,
        'notes': record.notes,
        'status': record.status,
        'currentVersion': record.current_version,
        'createdAt': _iso(record.created_at),
        'updatedAt': _iso(record.updated_at),
    }


def _serialize_version(v: MedicalRecordVersion) -> dict:
    return {
        'version': v.version,
        'diagnosis': v.diagnosis,
        'symptoms': v.symptoms,
        'treatmentPlan': v.treatment_plan,
        'notes': v.notes,
        'updatedBy': v.updated_by_id,
        'updatedAt': _iso(v.updated_at),
    }


@api_view(['GET', 'POST'])
@permission_classes([HasRole(*RECORD_READER_ROLES)])
def medical_records(request):
    identity = require_authenticated(request)
    if request.method == 'GET':
        q = RecordListQuerySerializer(data=request.query_params)
        q.is_valid(raise_exception=True)
        vd = q.validated_data
        page, limit = vd.get('page', 1), vd.get('limit', 10)
        items, total = svc.list_records(
            identity,
            status=vd.get('status'),
            patient_id=vd.get('patientId'),
            doctor_id=vd.get('doctorId'),
            date_from=vd.get('dateFrom'),
            date_to=vd.get('dateTo'),
            page=page,
            limit=limit,
        )
        return Response({
            'success': True,
            'count': len(items),
            'records': [_serialize(r) for r in items],
            'pagination': {'total': total, 'page': page, 'limit': limit, 'pages': (total + limit - 1) // limit},
        })

    # POST
    require_role(identity, RECORD_EDITOR_ROLES)
    s = RecordCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    record = svc.create_record(
        identity,
        appointment_id=vd['appointmentId'],
        diagnosis=vd['diagnosis'],
        symptoms=vd['symptoms'],
        treatment_plan=vd['treatmentPlan'],
        notes=vd.get('notes') or '',
    )
    record = svc.get_record(identity, record.pk)
    return Response(
        {'success': True, 'message': 'Medical record created successfully', 'record': _serialize(record)},
        status=status.HTTP_201_CREATED,
    )


@api_view(['GET'])
@permission_classes([HasRole(*CLINICAL_STAFF_ROLES)])
def medical_record_statistics(request):
    return Response({'success': True, 'data': svc.record_statistics()})


@api_view(['GET', 'PUT', 'PATCH'])
@permission_classes([HasRole(*RECORD_READER_ROLES)])
def medical_record_detail(request, pk: int):
    identity = require_authenticated(request)
    if request.method == 'GET':
        return Response({'success': True, 'record': _serialize(svc.get_record(identity, pk))})

    require_role(identity, RECORD_EDITOR_ROLES)
    s = RecordUpdateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    record = svc.apply_update(
        identity,
        pk,
        to_clinical_patch(s.validated_data),
        expected_version=s.validated_data.get('expectedVersion'),
    )
    return Response({'success': True, 'message': 'Medical record updated successfully', 'record': _serialize(record)})


@api_view(['POST'])
@permission_classes([HasRole(*RECORD_EDITOR_ROLES)])
def medical_record_status(request, pk: int):
    identity = require_authenticated(request)
    s = RecordStatusSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    record = svc.change_status(identity, pk, s.validated_data['status'])
    return Response({
        'success': True,
        'message': f'Medical record marked {record.status}',
        'record': _serialize(record),
    })


@api_view(['GET'])
@permission_classes([HasRole(*RECORD_READER_ROLES)])
def medical_record_versions(request, pk: int):
    identity = require_authenticated(request)
    record, versions = svc.list_versions(identity, pk)
    return Response({
        'success': True,
        'count': len(versions),
        'currentVersion': record.current_version,
        'versions': [_serialize_version(v) for v in versions],
    })


@api_view(['GET'])
@permission_classes([HasRole(*RECORD_READER_ROLES)])
def medical_record_for_appointment(request, appointment_id: int):
    identity = require_authenticated(request)
    record = svc.get_record_for_appointment(identity, appointment_id)
    if record is None:
        return Response({'success': True, 'message': 'No medical record found for this appointment.', 'record': None})
    return Response({'success': True, 'record': _serialize(record)})


@api_view(['GET'])
@permission_classes([HasRole(*RECORD_READER_ROLES)])
def patient_medical_history(request, patient_id: int):
    identity = require_authenticated(request)
    items = svc.patient_history(identity, patient_id)
    return Response({'success': True, 'count': len(items), 'records': [_serialize(r) for r in items]})
