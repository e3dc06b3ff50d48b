"""
Time windows that gate appointment actions.

All durations are measured in whole hours truncated toward zero, so an
appointment 23h59m away is 23 hours away and one 30 minutes in the past is
0 hours away.
"""
from datetime import timedelta

from django.conf import settings
from django.utils import timezone

from apps.clinical.models import Appointment, AppointmentStatusChoices

SECONDS_PER_HOUR = 3600


def hours_until(appointment, now=None):
    """Whole hours from ``now`` to the appointment's local date and time."""
    now = now or timezone.now()
    delta = appointment.scheduled_at - now
    return int(delta.total_seconds() / SECONDS_PER_HOUR)


def can_edit(appointment, now=None):
    """Patients may reschedule a pending appointment until the edit cutoff."""
    if appointment.status != AppointmentStatusChoices.PENDING:
        return False
    return hours_until(appointment, now) >= settings.BOOKING['EDIT_CUTOFF_HOURS']


def can_cancel(appointment):
    # No time limit on cancellation.
    return appointment.status in (
        AppointmentStatusChoices.PENDING,
        AppointmentStatusChoices.CONFIRMED,
    )


def in_reminder_window(appointment, now=None):
    hours = hours_until(appointment, now)
    return settings.BOOKING['REMINDER_MIN_HOURS'] <= hours <= settings.BOOKING['REMINDER_MAX_HOURS']


def is_upcoming(appointment, now=None):
    """Confirmed and starting within the banner horizon (exclusive of now)."""
    if appointment.status != AppointmentStatusChoices.CONFIRMED:
        return False
    hours = hours_until(appointment, now)
    return 0 < hours <= settings.BOOKING['UPCOMING_WINDOW_HOURS']


def can_join_virtual_session(appointment):
    return (
        appointment.is_virtual
        and appointment.virtual_session_started
        and not appointment.virtual_session_ended
        and appointment.status in (
            AppointmentStatusChoices.CONFIRMED,
            AppointmentStatusChoices.IN_PROGRESS,
        )
    )


def upcoming_appointments_for(patient, now=None):
    """
    Confirmed appointments of ``patient`` that qualify for the banner,
    soonest first.
    """
    now = now or timezone.now()
    horizon = now + timedelta(hours=settings.BOOKING['UPCOMING_WINDOW_HOURS'] + 1)
    candidates = Appointment.objects.select_related('doctor', 'clinic').filter(
        patient=patient,
        status=AppointmentStatusChoices.CONFIRMED,
        appointment_date__gte=timezone.localdate(now) - timedelta(days=1),
        appointment_date__lte=timezone.localdate(horizon) + timedelta(days=1),
    )
    upcoming = [appt for appt in candidates if is_upcoming(appt, now)]
    upcoming.sort(key=lambda appt: appt.scheduled_at)
    return upcoming
