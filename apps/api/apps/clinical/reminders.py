"""
Appointment reminder scan.

Runs every few minutes (Celery beat, or cron through the
send_appointment_reminders management command). Each confirmed appointment
whose start is 23 to 25 whole hours away gets one reminder to the patient and
one to the doctor. ``reminder_sent_at`` is claimed with a conditional update
before any email goes out, so overlapping scans never send twice.
"""
from datetime import timedelta

from django.conf import settings
from django.utils import timezone

from apps.clinical import notifications
from apps.clinical.models import Appointment, AppointmentStatusChoices
from apps.clinical.windows import in_reminder_window
from apps.core.observability import get_sanitized_logger, metrics
from apps.core.observability.events import log_reminder_sent

logger = get_sanitized_logger(__name__)


def _candidates(now):
    horizon = now + timedelta(hours=settings.BOOKING['REMINDER_MAX_HOURS'] + 1)
    return Appointment.objects.select_related(
        'patient__user', 'doctor__user', 'clinic'
    ).filter(
        status=AppointmentStatusChoices.CONFIRMED,
        reminder_sent_at__isnull=True,
        appointment_date__gte=timezone.localdate(now),
        appointment_date__lte=timezone.localdate(horizon),
    )


def claim_reminder(appointment, now):
    """Set ``reminder_sent_at`` if nobody has yet. Returns True when claimed."""
    return bool(
        Appointment.objects.filter(
            pk=appointment.pk,
            status=AppointmentStatusChoices.CONFIRMED,
            reminder_sent_at__isnull=True,
        ).update(reminder_sent_at=now)
    )


def send_reminder(appointment):
    """Email patient and doctor. Returns how many emails were accepted."""
    return notifications.deliver_all([
        notifications.for_patient('appointment_reminder_patient', appointment),
        notifications.for_doctor('appointment_reminder_doctor', appointment),
    ])


@metrics.track_duration(metrics.reminder_scan_duration_seconds)
def scan_appointment_reminders(now=None):
    """
    Claim and send due reminders.

    Returns a summary dict: scanned, sent, already_claimed, errors.
    """
    now = now or timezone.now()
    metrics.reminder_scans_total.inc()
    summary = {'scanned': 0, 'sent': 0, 'already_claimed': 0, 'errors': 0}

    for appointment in _candidates(now):
        summary['scanned'] += 1
        if not in_reminder_window(appointment, now):
            continue
        try:
            if not claim_reminder(appointment, now):
                summary['already_claimed'] += 1
                metrics.reminders_sent_total.labels(result='already_claimed').inc()
                continue
            recipients = send_reminder(appointment)
        except Exception as e:
            # One bad appointment must not stop the rest of the scan
            summary['errors'] += 1
            metrics.reminders_sent_total.labels(result='error').inc()
            logger.error(
                'Reminder processing failed',
                extra={
                    'event': 'appointment_reminder_failed',
                    'appointment_id': str(appointment.id),
                    'error': str(e),
                },
                exc_info=True,
            )
            continue

        summary['sent'] += 1
        metrics.reminders_sent_total.labels(result='sent').inc()
        log_reminder_sent(appointment, recipients)

    logger.info('Reminder scan finished', extra={'event': 'reminder_scan_finished', **summary})
    return summary
