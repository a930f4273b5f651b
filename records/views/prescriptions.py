"""
Prescription endpoints.

Creation is limited to doctors and, inside the service, to the doctor who
owns the medical record. Change and delete are limited to the prescribing
doctor. Lists are open to every signed-in role, but a patient only ever
sees their own prescriptions.
"""
from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..models import Prescription
from ..permissions import HasRole, PRESCRIBER_ROLES
from ..serializers.prescriptions import PrescriptionCreateSerializer, PrescriptionUpdateSerializer
from ..services import prescriptions as svc
from ..services.authz import require_authenticated


def _serialize(rx: Prescription) -> dict:
    doctor = rx.doctor
    return {
        'id': rx.id,
        'medicalRecordId': rx.medical_record_id,
        'patientId': rx.patient_id,
        'doctorId': {
            'id': doctor.id,
            'firstName': doctor.first_name,
            'lastName': doctor.last_name,
            'doctorDepartment': doctor.doctor_department,
        },
        'medications': rx.medications,
        'digitalSignature': rx.digital_signature,
        'dateSigned': rx.date_signed.isoformat() if rx.date_signed else None,
        'status': rx.status,
        'createdAt': rx.created_at.isoformat() if rx.created_at else None,
        'updatedAt': rx.updated_at.isoformat() if rx.updated_at else None,
    }


@api_view(['POST'])
@permission_classes([HasRole(*PRESCRIBER_ROLES)])
def prescriptions_create(request):
    identity = require_authenticated(request)
    s = PrescriptionCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    rx = svc.create_prescription(
        identity,
        medical_record_id=s.validated_data['medicalRecordId'],
        medications=s.validated_data['medications'],
        digital_signature=s.validated_data['digitalSignature'],
    )
    return Response(
        {'success': True, 'message': 'Prescription created successfully!', 'prescription': _serialize(rx)},
        status=status.HTTP_201_CREATED,
    )


@api_view(['PUT', 'PATCH', 'DELETE'])
@permission_classes([HasRole(*PRESCRIBER_ROLES)])
def prescription_detail(request, pk: int):
    identity = require_authenticated(request)
    if request.method == 'DELETE':
        svc.delete_prescription(identity, pk)
        return Response({'success': True, 'message': 'Prescription deleted successfully!'})

    s = PrescriptionUpdateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    rx = svc.update_prescription(
        identity,
        pk,
        medications=s.validated_data.get('medications'),
        status=s.validated_data.get('status'),
    )
    return Response({'success': True, 'message': 'Prescription updated successfully!', 'prescription': _serialize(rx)})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def prescriptions_for_record(request, record_id: int):
    identity = require_authenticated(request)
    items = svc.list_for_record(identity, record_id)
    return Response({'success': True, 'count': len(items), 'prescriptions': [_serialize(rx) for rx in items]})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def prescriptions_for_patient(request, patient_id: int):
    identity = require_authenticated(request)
    items = svc.list_for_patient(identity, patient_id)
    return Response({'success': True, 'count': len(items), 'prescriptions': [_serialize(rx) for rx in items]})
