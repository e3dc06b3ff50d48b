"""
Authz views - self-service registration for patients, doctors and clinic
administrators.
"""
from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from apps.authz.guards import Actor
from apps.authz.serializers import (
    ClinicAdminRegistrationSerializer,
    DoctorRegistrationSerializer,
    PatientRegistrationSerializer,
    UserSerializer,
)
from apps.authz.services import register_clinic_admin, register_doctor, register_patient
from apps.core.exceptions import Forbidden


def _request_is_admin(request):
    if not request.user or not request.user.is_authenticated:
        return False
    try:
        return Actor.from_user(request.user).is_admin
    except Forbidden:
        return False


class ClinicAdminRegistrationView(APIView):
    """
    POST /api/v1/clinic-admins/register/

    Public endpoint: creates the clinic administrator's account and redeems
    the clinic's registration code in one step.

    Request body:
    {
        "clinic_id": "<uuid>",
        "registration_code": "CLINIC-1718000000000-ABCDEF123",
        "email": "admin@clinic.co.za",
        "password": "...",
        "first_name": "Thandi",
        "last_name": "Mokoena"
    }

    ``allow_any_domain`` skips the email domain check and is only honoured
    when the caller is an admin.

    Returns:
        201: user and clinic id
        400: code mismatch, email domain mismatch, validation error
        404: clinic not found
        409: code already used
    """
    permission_classes = [AllowAny]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = 'clinic_admin_registration'

    def post(self, request):
        serializer = ClinicAdminRegistrationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        user, clinic = register_clinic_admin(
            clinic_id=data['clinic_id'],
            registration_code=data['registration_code'],
            email=data['email'],
            password=data['password'],
            first_name=data['first_name'],
            last_name=data['last_name'],
            phone_number=data['phone_number'],
            allow_any_domain=data['allow_any_domain'] and _request_is_admin(request),
        )

        return Response(
            {
                'user': UserSerializer(user).data,
                'clinic_id': str(clinic.id),
                'clinic_name': clinic.name,
            },
            status=status.HTTP_201_CREATED
        )


class PatientRegistrationView(APIView):
    """
    POST /api/v1/patients/register/

    Public endpoint: creates the account, the patient profile and the
    patient role.

    Returns:
        201: user and patient id
        400: validation error (duplicate email, short password, ...)
    """
    permission_classes = [AllowAny]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = 'account_registration'

    def post(self, request):
        serializer = PatientRegistrationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        user, patient = register_patient(**serializer.validated_data)

        return Response(
            {
                'user': UserSerializer(user).data,
                'patient_id': str(patient.id),
            },
            status=status.HTTP_201_CREATED
        )


class DoctorRegistrationView(APIView):
    """
    POST /api/v1/doctors/register/

    Public endpoint: creates the account and a doctor profile pending
    verification. The doctor role is granted when an admin verifies it.

    Returns:
        201: user, doctor id and verification status
        400: validation error
        404: clinic not found or inactive
    """
    permission_classes = [AllowAny]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = 'account_registration'

    def post(self, request):
        serializer = DoctorRegistrationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        user, doctor = register_doctor(**serializer.validated_data)

        return Response(
            {
                'user': UserSerializer(user).data,
                'doctor_id': str(doctor.id),
                'clinic_id': str(doctor.clinic_id),
                'verification_status': doctor.verification_status,
            },
            status=status.HTTP_201_CREATED
        )
