"""
Global test fixtures for pytest.

Provides reusable fixtures for engine and API testing:
- Users with roles, and the matching Actor for engine calls
- Clinic, Doctor, Patient instances
- An appointment factory keyed on "hours from now"
- Authenticated API clients by role
"""
from datetime import datetime, timedelta, timezone as dt_timezone

import pytest
from django.utils import timezone
from rest_framework.test import APIClient

from apps.authz.guards import Actor
from apps.authz.models import RoleChoices, User, grant_role
from apps.clinical.models import (
    Appointment,
    AppointmentStatusChoices,
    AppointmentTypeChoices,
    Doctor,
    Patient,
    VerificationStatusChoices,
)
from apps.core.models import Clinic


# Fixed reference instant for window tests (settings_test uses UTC)
NOW = datetime(2030, 1, 15, 10, 0, tzinfo=dt_timezone.utc)


def slot(starts_at):
    """Split an aware datetime into (appointment_date, "HH:MM")."""
    local = timezone.localtime(starts_at)
    return local.date(), local.strftime('%H:%M')


def future_hour(hours):
    """Now plus ``hours``, truncated to the minute so it fits an HH:MM slot."""
    return (timezone.now() + timedelta(hours=hours)).replace(second=0, microsecond=0)


# ============================================================================
# Users
# ============================================================================

@pytest.fixture
def make_user(db):
    """Factory fixture: create a user, optionally granting a role."""
    def _make_user(email, role=None, clinic=None, **extra):
        user = User.objects.create_user(
            email=email,
            password='testpass123',
            is_active=True,
            **extra
        )
        if role:
            grant_role(user, role, clinic=clinic)
        return user
    return _make_user


@pytest.fixture
def admin_user(make_user):
    return make_user('admin@ncbs.test', RoleChoices.ADMIN, is_staff=True)


@pytest.fixture
def admin_actor(admin_user):
    return Actor.from_user(admin_user)


# ============================================================================
# Clinic / Doctor / Patient
# ============================================================================

@pytest.fixture
def clinic(db):
    return Clinic.objects.create(
        name='Sunrise Family Clinic',
        address='12 Long Street, Cape Town',
        contact_number='+27 21 555 0100',
        email='info@sunrise.co.za',
        operating_hours='Mon-Fri 08:00-17:00',
        registration_code='CLINIC-1893456000000-ABCDEF123',
        code_issued_at=NOW,
    )


@pytest.fixture
def other_clinic(db):
    return Clinic.objects.create(name='Harbour Medical Centre', email=None)


@pytest.fixture
def make_doctor(make_user, clinic):
    def _make_doctor(email='dr.naidoo@sunrise.co.za', display_name='Priya Naidoo',
                     verification_status=VerificationStatusChoices.VERIFIED, **extra):
        user = make_user(email, RoleChoices.DOCTOR)
        return Doctor.objects.create(
            user=user,
            clinic=extra.pop('clinic', clinic),
            display_name=display_name,
            specialty='General Practice',
            verification_status=verification_status,
            **extra
        )
    return _make_doctor


@pytest.fixture
def doctor(make_doctor):
    return make_doctor()


@pytest.fixture
def other_doctor(make_doctor):
    return make_doctor(email='dr.smith@sunrise.co.za', display_name='John Smith')


@pytest.fixture
def doctor_actor(doctor):
    return Actor.from_user(doctor.user)


@pytest.fixture
def make_patient(make_user):
    def _make_patient(email='lerato@example.com', first_name='Lerato', last_name='Dlamini'):
        user = make_user(email, RoleChoices.PATIENT)
        return Patient.objects.create(
            user=user,
            first_name=first_name,
            last_name=last_name,
            phone='+27 82 555 0199',
        )
    return _make_patient


@pytest.fixture
def patient(make_patient):
    return make_patient()


@pytest.fixture
def other_patient(make_patient):
    return make_patient(email='sipho@example.com', first_name='Sipho', last_name='Khumalo')


@pytest.fixture
def patient_actor(patient):
    return Actor.from_user(patient.user)


@pytest.fixture
def clinic_admin_user(make_user, clinic):
    return make_user('manager@sunrise.co.za', RoleChoices.CLINIC_ADMIN, clinic=clinic)


@pytest.fixture
def clinic_admin_actor(clinic_admin_user):
    return Actor.from_user(clinic_admin_user)


# ============================================================================
# Appointments
# ============================================================================

@pytest.fixture
def make_appointment(patient, doctor):
    """
    Factory fixture for appointments.

    ``starts_at`` is an aware datetime; it defaults to three days from now.
    """
    def _make_appointment(starts_at=None, status=AppointmentStatusChoices.PENDING,
                          appointment_type=AppointmentTypeChoices.IN_PERSON, **kwargs):
        starts_at = starts_at or future_hour(72)
        appointment_date, appointment_time = slot(starts_at)
        appointment_doctor = kwargs.pop('doctor', doctor)
        return Appointment.objects.create(
            patient=kwargs.pop('patient', patient),
            doctor=appointment_doctor,
            clinic=appointment_doctor.clinic,
            appointment_date=appointment_date,
            appointment_time=appointment_time,
            appointment_type=appointment_type,
            status=status,
            reason=kwargs.pop('reason', 'Persistent cough'),
            **kwargs
        )
    return _make_appointment


@pytest.fixture
def appointment(make_appointment):
    return make_appointment()


@pytest.fixture
def virtual_appointment(make_appointment):
    return make_appointment(
        status=AppointmentStatusChoices.CONFIRMED,
        appointment_type=AppointmentTypeChoices.VIRTUAL,
        meeting_room_id='ncbs-consult-1893456000000-abc123xyz',
        meeting_link='https://8x8.vc/ncbs/ncbs-consult-1893456000000-abc123xyz',
    )


# ============================================================================
# API Clients
# ============================================================================

@pytest.fixture
def api_client():
    """Unauthenticated DRF API client."""
    return APIClient()


@pytest.fixture
def client_for():
    """Factory fixture: API client authenticated as ``user``."""
    def _client_for(user):
        client = APIClient()
        client.force_authenticate(user=user)
        return client
    return _client_for
