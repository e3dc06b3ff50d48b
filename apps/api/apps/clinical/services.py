"""
Booking, messaging and doctor verification services.

Status changes of an existing appointment live in apps.clinical.lifecycle;
this module creates appointments and handles the records around them.
"""
import secrets
import string

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from apps.authz.guards import Action, authorize, require_role
from apps.authz.models import RoleChoices, grant_role, revoke_role
from apps.clinical import notifications
from apps.clinical.models import (
    Appointment,
    AppointmentMessage,
    AppointmentStatusChoices,
    AppointmentTypeChoices,
    Doctor,
    VerificationStatusChoices,
    combine_local,
    parse_time_of_day,
)
from apps.core.exceptions import AccessWindowClosed, DoctorUnavailable
from apps.core.observability import log_domain_event, metrics


_ROOM_ALPHABET = string.ascii_lowercase + string.digits


def normalize_time(value):
    """Return the ``HH:MM`` form of a time or time string."""
    return parse_time_of_day(value).strftime('%H:%M')


def generate_meeting_room(now=None):
    """
    Return ``(meeting_room_id, meeting_link)`` for a virtual consultation.

    Room ids look like ``ncbs-consult-<epoch millis>-<9 lowercase alnum>``.
    """
    now = now or timezone.now()
    suffix = ''.join(secrets.choice(_ROOM_ALPHABET) for _ in range(9))
    room_id = f"{settings.BOOKING['MEETING_ROOM_PREFIX']}-{int(now.timestamp() * 1000)}-{suffix}"
    link = f"{settings.BOOKING['MEETING_BASE_URL'].rstrip('/')}/{room_id}"
    return room_id, link


def book_appointment(patient, doctor, appointment_date, appointment_time,
                     appointment_type=AppointmentTypeChoices.IN_PERSON,
                     reason='', actor=None, now=None):
    """
    Create a pending appointment for ``patient`` with ``doctor``.

    BUSINESS RULES:
    - Only verified, active doctors accept bookings
    - The slot must be in the future
    - Virtual appointments get a meeting room at booking time

    Raises:
        Forbidden, DoctorUnavailable, AccessWindowClosed
    """
    now = now or timezone.now()
    if actor is not None:
        authorize(actor, Action.BOOK_APPOINTMENT, patient)

    doctor = Doctor.objects.select_related('clinic', 'user').get(pk=doctor.pk)
    if not doctor.is_bookable:
        raise DoctorUnavailable(doctor_id=str(doctor.pk))

    appointment_time = normalize_time(appointment_time)
    if combine_local(appointment_date, appointment_time) <= now:
        raise AccessWindowClosed('Appointments can only be booked for a future date and time')

    meeting_room_id = meeting_link = None
    if appointment_type == AppointmentTypeChoices.VIRTUAL:
        meeting_room_id, meeting_link = generate_meeting_room(now)

    appointment = Appointment.objects.create(
        patient=patient,
        doctor=doctor,
        clinic=doctor.clinic,
        appointment_date=appointment_date,
        appointment_time=appointment_time,
        appointment_type=appointment_type,
        status=AppointmentStatusChoices.PENDING,
        reason=reason or None,
        meeting_room_id=meeting_room_id,
        meeting_link=meeting_link,
    )

    metrics.appointment_bookings_total.labels(appointment_type=appointment_type).inc()
    log_domain_event(
        'appointment_booked',
        entity_type='Appointment',
        entity_id=str(appointment.id),
        entity_ids={
            'doctor_id': str(doctor.id),
            'clinic_id': str(doctor.clinic_id),
        },
        appointment_type=appointment_type,
    )
    notifications.deliver(notifications.for_patient('appointment_booked', appointment))
    return appointment


def post_message(appointment, actor, text):
    """Record a message from either party of the appointment."""
    authorize(actor, Action.SEND_MESSAGE, appointment)
    return AppointmentMessage.objects.create(
        appointment=appointment,
        sender_id=actor.user_id,
        sender_role=actor.role,
        message=text,
    )


def send_follow_up(appointment, actor, text):
    """
    Doctor follow-up after a completed appointment.

    The message is stored on the appointment thread and emailed to the
    patient. A failed email does not undo the stored message.
    """
    authorize(actor, Action.SEND_FOLLOW_UP, appointment)
    if appointment.status != AppointmentStatusChoices.COMPLETED:
        raise AccessWindowClosed(
            'Follow-ups can only be sent for completed appointments',
            status=appointment.status,
        )

    follow_up = AppointmentMessage.objects.create(
        appointment=appointment,
        sender_id=actor.user_id,
        sender_role=actor.role,
        message=text,
        is_follow_up=True,
    )
    log_domain_event(
        'follow_up_sent',
        entity_type='Appointment',
        entity_id=str(appointment.id),
        entity_ids={'message_id': str(follow_up.id)},
    )
    notifications.deliver(
        notifications.for_patient('follow_up', appointment, follow_up_message=text)
    )
    return follow_up


def mark_messages_read(appointment, actor):
    """Mark the other party's unread messages as read. Returns the count."""
    authorize(actor, Action.VIEW_APPOINTMENT, appointment)
    return (
        AppointmentMessage.objects
        .filter(appointment=appointment, is_read=False)
        .exclude(sender_id=actor.user_id)
        .update(is_read=True)
    )


def _set_verification(doctor, actor, verification_status, reason=None):
    require_role(actor, Action.VERIFY_DOCTOR)
    with transaction.atomic():
        Doctor.objects.filter(pk=doctor.pk).update(
            verification_status=verification_status,
            rejection_reason=reason,
            updated_at=timezone.now(),
        )
        if verification_status == VerificationStatusChoices.VERIFIED:
            grant_role(doctor.user, RoleChoices.DOCTOR)
        elif verification_status == VerificationStatusChoices.REJECTED:
            revoke_role(doctor.user, RoleChoices.DOCTOR)
    doctor.refresh_from_db()
    log_domain_event(
        'doctor_verification_changed',
        entity_type='Doctor',
        entity_id=str(doctor.id),
        verification_status=verification_status,
    )
    return doctor


def verify_doctor(doctor, actor):
    doctor = _set_verification(doctor, actor, VerificationStatusChoices.VERIFIED)
    notifications.deliver(notifications.doctor_account('doctor_verified', doctor))
    return doctor


def reject_doctor(doctor, actor, reason=''):
    doctor = _set_verification(doctor, actor, VerificationStatusChoices.REJECTED, reason or None)
    notifications.deliver(
        notifications.doctor_account('doctor_rejected', doctor, rejection_reason=reason)
    )
    return doctor
