"""
Account onboarding for patients, doctors and clinic administrators.

Patients get the patient role straight away. Doctors start as pending and
receive the doctor role only when an admin verifies them.
"""
from django.core.exceptions import ValidationError
from django.db import transaction

from apps.authz.models import RoleChoices, User, grant_role
from apps.clinical.models import Doctor, Patient, VerificationStatusChoices
from apps.core.exceptions import ClinicNotFound
from apps.core.models import Clinic
from apps.core.observability import log_domain_event
from apps.core.registration import redeem_code


def register_clinic_admin(clinic_id, registration_code, email, password,
                          first_name='', last_name='', phone_number='',
                          allow_any_domain=False):
    """
    Create the registrant's account and claim the clinic with its code.

    Both happen in one transaction: if the code is rejected the new user is
    rolled back as well.

    Returns:
        (user, clinic)
    """
    with transaction.atomic():
        user = User.objects.create_user(
            email=email,
            password=password,
            first_name=first_name,
            last_name=last_name,
            phone_number=phone_number,
        )
        clinic = redeem_code(
            clinic_id,
            registration_code,
            user,
            allow_any_domain=allow_any_domain,
        )

    log_domain_event(
        'clinic_admin_registered',
        entity_type='User',
        entity_id=str(user.id),
        entity_ids={'clinic_id': str(clinic.id)},
    )
    return user, clinic


def register_patient(email, password, first_name, last_name, phone_number=''):
    """
    Create a login user with a patient profile and the patient role.

    Returns:
        (user, patient)
    """
    with transaction.atomic():
        user = User.objects.create_user(
            email=email,
            password=password,
            first_name=first_name,
            last_name=last_name,
            phone_number=phone_number,
        )
        patient = Patient.objects.create(
            user=user,
            first_name=first_name,
            last_name=last_name,
            phone=phone_number or None,
        )
        grant_role(user, RoleChoices.PATIENT)

    log_domain_event(
        'patient_registered',
        entity_type='Patient',
        entity_id=str(patient.id),
        entity_ids={'user_id': str(user.id)},
    )
    return user, patient


def _active_clinic(clinic_id):
    try:
        return Clinic.objects.get(pk=clinic_id, is_active=True)
    except (Clinic.DoesNotExist, ValidationError, ValueError):
        raise ClinicNotFound(clinic_id=str(clinic_id))


def register_doctor(email, password, clinic_id, display_name, specialty='',
                    first_name='', last_name='', phone_number=''):
    """
    Create a login user with a doctor profile awaiting verification.

    No role is granted here; verify_doctor grants it. The doctor cannot
    accept bookings until then.

    Returns:
        (user, doctor)
    """
    clinic = _active_clinic(clinic_id)
    with transaction.atomic():
        user = User.objects.create_user(
            email=email,
            password=password,
            first_name=first_name,
            last_name=last_name,
            phone_number=phone_number,
        )
        doctor = Doctor.objects.create(
            user=user,
            clinic=clinic,
            display_name=display_name,
            specialty=specialty or 'General Practice',
            verification_status=VerificationStatusChoices.PENDING,
        )

    log_domain_event(
        'doctor_registered',
        entity_type='Doctor',
        entity_id=str(doctor.id),
        entity_ids={'user_id': str(user.id), 'clinic_id': str(clinic.id)},
        verification_status=doctor.verification_status,
    )
    return user, doctor
