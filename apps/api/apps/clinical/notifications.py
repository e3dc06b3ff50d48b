"""
Templated email notifications.

Notifications are built from the committed state of a record and delivered
after the transaction that changed it. Delivery is best-effort: a failed send
is logged and counted, never raised to the caller and never rolls back the
change that triggered it.
"""
from dataclasses import dataclass, field
from typing import Dict, List

from django.conf import settings
from django.core.mail import send_mail
from django.template.loader import render_to_string

from apps.core.exceptions import NotificationDeliveryFailed
from apps.core.observability import get_sanitized_logger, metrics
from apps.core.observability.events import log_notification_failed

logger = get_sanitized_logger(__name__)

TEMPLATE_DIR = 'clinical/emails'

SUBJECTS = {
    'appointment_booked': 'Appointment Request Received - {date} at {time}',
    'appointment_confirmed': 'Appointment Confirmed - {date} at {time}',
    'appointment_cancelled': 'Appointment Update - {date} at {time}',
    'virtual_session_started': 'Your doctor has started the virtual consultation',
    'appointment_reminder_patient': 'Reminder: Appointment Tomorrow at {time}',
    'appointment_reminder_doctor': 'Reminder: Appointment Tomorrow with {patient_name}',
    'follow_up': 'Follow-up from Dr. {doctor_name}',
    'doctor_verified': 'Your doctor account has been verified',
    'doctor_rejected': 'Update on your doctor account verification',
}


@dataclass
class Notification:
    kind: str
    recipient: str
    context: Dict = field(default_factory=dict)
    entity_id: str = None

    @property
    def subject(self):
        return SUBJECTS[self.kind].format(**self.context)

    def render(self):
        return render_to_string(f'{TEMPLATE_DIR}/{self.kind}.txt', self.context)


def _base_context():
    booking = settings.BOOKING
    return {
        'dashboard_url': booking['FRONTEND_URL'],
        'support_email': booking['SUPPORT_EMAIL'],
        'support_phone': booking['SUPPORT_PHONE'],
    }


def appointment_context(appointment):
    context = _base_context()
    context.update({
        'patient_name': appointment.patient.full_name,
        'doctor_name': appointment.doctor.display_name,
        'specialty': appointment.doctor.specialty,
        'clinic_name': appointment.clinic.name,
        'clinic_address': appointment.clinic.address,
        'clinic_phone': appointment.clinic.contact_number,
        'date': appointment.appointment_date.strftime('%A, %d %B %Y'),
        'time': appointment.appointment_time,
        'appointment_type': appointment.get_appointment_type_display(),
        'is_virtual': appointment.is_virtual,
        'meeting_link': appointment.meeting_link,
        'reason': appointment.reason or '',
        'status': appointment.get_status_display(),
    })
    return context


def for_patient(kind, appointment, **extra):
    context = appointment_context(appointment)
    context.update(extra)
    return Notification(
        kind=kind,
        recipient=appointment.patient.user.email,
        context=context,
        entity_id=str(appointment.id),
    )


def for_doctor(kind, appointment, **extra):
    context = appointment_context(appointment)
    context.update(extra)
    return Notification(
        kind=kind,
        recipient=appointment.doctor.user.email,
        context=context,
        entity_id=str(appointment.id),
    )


def doctor_account(kind, doctor, **extra):
    context = _base_context()
    context.update({
        'doctor_name': doctor.display_name,
        'clinic_name': doctor.clinic.name,
    })
    context.update(extra)
    return Notification(
        kind=kind,
        recipient=doctor.user.email,
        context=context,
        entity_id=str(doctor.id),
    )


def _send(notification):
    if not notification.recipient:
        raise NotificationDeliveryFailed(f'No recipient for {notification.kind}')
    try:
        sent = send_mail(
            notification.subject,
            notification.render(),
            settings.DEFAULT_FROM_EMAIL,
            [notification.recipient],
            fail_silently=False,
        )
    except Exception as exc:
        raise NotificationDeliveryFailed(str(exc)) from exc
    if not sent:
        raise NotificationDeliveryFailed(f'Mail backend accepted no message for {notification.kind}')


def deliver(notification):
    """
    Send one notification. Returns True when the mail backend accepted it.
    """
    try:
        _send(notification)
    except NotificationDeliveryFailed as exc:
        metrics.notifications_total.labels(kind=notification.kind, result='failed').inc()
        log_notification_failed(notification.kind, exc.__cause__ or exc, entity_id=notification.entity_id)
        return False

    metrics.notifications_total.labels(kind=notification.kind, result='sent').inc()
    logger.info(
        'Notification sent',
        extra={'event': 'notification_sent', 'notification_kind': notification.kind,
               'entity_id': notification.entity_id}
    )
    return True


def deliver_all(notifications: List[Notification]):
    """Send each notification independently; returns how many were accepted."""
    return sum(1 for notification in notifications if deliver(notification))
