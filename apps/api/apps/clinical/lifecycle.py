"""
Appointment lifecycle engine.

Every status change goes through this module. Writes are compare-and-swap
updates keyed on the status (and flags) the caller observed, so a
concurrent writer makes the loser fail instead of silently overwriting.

Status graph:
- pending -> confirmed | cancelled
- confirmed -> in_progress | completed | cancelled
- in_progress -> completed
- completed, cancelled are terminal states

Guard order for request_transition:
1. role may transition appointments at all     -> Forbidden
2. role may target this status                 -> Forbidden
3. edge exists in the graph                    -> InvalidTransition
   (virtual visits reach in_progress only through start_virtual_session)
4. actor owns the appointment                  -> Forbidden
"""
from django.db import transaction
from django.utils import timezone

from apps.authz.guards import Action, authorize, require_ownership, require_role
from apps.authz.models import RoleChoices
from apps.clinical import notifications
from apps.clinical.models import (
    Appointment,
    AppointmentStatusChoices,
    AppointmentTypeChoices,
    combine_local,
)
from apps.clinical.services import generate_meeting_room, normalize_time
from apps.clinical.windows import can_edit
from apps.core.exceptions import (
    AccessWindowClosed,
    BookingError,
    Forbidden,
    InvalidTransition,
)
from apps.core.observability import get_sanitized_logger, metrics
from apps.core.observability.events import log_appointment_transition

logger = get_sanitized_logger(__name__)

# Statuses a role may request; None means every status in the graph.
_ROLE_TARGETS = {
    RoleChoices.PATIENT: {AppointmentStatusChoices.CANCELLED},
    RoleChoices.DOCTOR: None,
    RoleChoices.ADMIN: None,
}

# Status changes the patient hears about by email.
_PATIENT_NOTIFICATIONS = {
    AppointmentStatusChoices.CONFIRMED: 'appointment_confirmed',
    AppointmentStatusChoices.CANCELLED: 'appointment_cancelled',
}

_RESULT_LABELS = {
    'invalid_transition': 'invalid',
    'forbidden': 'forbidden',
}


def _require_target_allowed(actor, target_status):
    allowed = _ROLE_TARGETS.get(actor.role, set())
    if allowed is not None and target_status not in allowed:
        raise Forbidden(
            f'Role "{actor.role}" cannot set status "{target_status}"',
            role=actor.role,
            target_status=target_status,
        )


def _require_edge(from_status, target_status):
    if target_status not in Appointment.allowed_transitions(from_status):
        raise InvalidTransition(
            f'Cannot change status from "{from_status}" to "{target_status}"',
            from_status=from_status,
            to_status=target_status,
        )


def _require_generic_path(appointment, target_status):
    if target_status == AppointmentStatusChoices.IN_PROGRESS and appointment.is_virtual:
        raise InvalidTransition(
            'Virtual appointments move to "in_progress" by starting the session',
            from_status=appointment.status,
            to_status=target_status,
        )


def _swap(appointment, observed, **changes):
    """
    Conditional update of one appointment.

    ``observed`` holds the field values the write depends on. Returns the
    number of rows changed (0 or 1).
    """
    changes.setdefault('updated_at', timezone.now())
    return Appointment.objects.filter(pk=appointment.pk, **observed).update(**changes)


def _load_fresh(appointment):
    return Appointment.objects.select_related(
        'patient__user', 'doctor__user', 'clinic'
    ).get(pk=appointment.pk)


def _record_failure(appointment, from_status, to_status, actor, exc):
    result = _RESULT_LABELS.get(exc.code, 'conflict')
    metrics.appointment_transitions_total.labels(
        from_status=from_status, to_status=to_status, result=result
    ).inc()
    log_appointment_transition(
        appointment, from_status, to_status, actor.role,
        result='blocked' if result == 'forbidden' else 'conflict',
        error=exc.code,
    )


def _notify_patient(appointment, status):
    kind = _PATIENT_NOTIFICATIONS.get(status)
    if kind:
        notifications.deliver(notifications.for_patient(kind, appointment))


def request_transition(appointment, actor, target_status):
    """
    Move ``appointment`` to ``target_status`` on behalf of ``actor``.

    Returns the refreshed appointment.

    Raises:
        Forbidden: role or ownership rejected
        InvalidTransition: edge not in the graph, or the status changed
            underneath the caller
    """
    from_status = appointment.status
    try:
        require_role(actor, Action.TRANSITION_APPOINTMENT)
        _require_target_allowed(actor, target_status)
        _require_edge(from_status, target_status)
        _require_generic_path(appointment, target_status)
        require_ownership(actor, appointment)

        with transaction.atomic():
            swapped = _swap(appointment, {'status': from_status}, status=target_status)
            if not swapped:
                current = Appointment.objects.get(pk=appointment.pk).status
                _require_edge(current, target_status)
                raise InvalidTransition(
                    f'Appointment status changed to "{current}" before this update',
                    from_status=current,
                    to_status=target_status,
                )
    except BookingError as exc:
        _record_failure(appointment, from_status, target_status, actor, exc)
        raise

    appointment = _load_fresh(appointment)
    metrics.appointment_transitions_total.labels(
        from_status=from_status, to_status=target_status, result='success'
    ).inc()
    log_appointment_transition(appointment, from_status, target_status, actor.role)

    _notify_patient(appointment, target_status)
    return appointment


def cancel_appointment(appointment, actor):
    return request_transition(appointment, actor, AppointmentStatusChoices.CANCELLED)


def reschedule_appointment(appointment, actor, new_date, new_time, now=None):
    """
    Change the date and time of a pending appointment.

    Only the owning patient (or an admin) may reschedule, and only while
    ``can_edit`` holds. The reminder marker is cleared so the new slot gets
    its own reminder.
    """
    now = now or timezone.now()
    authorize(actor, Action.RESCHEDULE_APPOINTMENT, appointment)

    if not can_edit(appointment, now):
        raise AccessWindowClosed(
            'Appointments can only be changed while pending and at least 24 hours ahead',
            status=appointment.status,
        )

    new_time = normalize_time(new_time)
    if combine_local(new_date, new_time) <= now:
        raise AccessWindowClosed('The new appointment time must be in the future')

    with transaction.atomic():
        swapped = _swap(
            appointment,
            {
                'status': AppointmentStatusChoices.PENDING,
                'appointment_date': appointment.appointment_date,
                'appointment_time': appointment.appointment_time,
            },
            appointment_date=new_date,
            appointment_time=new_time,
            reminder_sent_at=None,
        )
    if not swapped:
        raise AccessWindowClosed('The appointment changed before it could be rescheduled')

    previous = (str(appointment.appointment_date), appointment.appointment_time)
    appointment = _load_fresh(appointment)
    logger.info(
        'Appointment rescheduled',
        extra={
            'event': 'appointment_rescheduled',
            'appointment_id': str(appointment.id),
            'previous_date': previous[0],
            'previous_time': previous[1],
            'new_date': str(appointment.appointment_date),
            'new_time': appointment.appointment_time,
        }
    )
    return appointment


def start_virtual_session(appointment, actor, now=None):
    """
    Doctor starts the consultation of a confirmed virtual appointment.

    Sets the started flag and start time, moves the appointment to
    in_progress and emails the patient the meeting link.
    """
    now = now or timezone.now()
    from_status = appointment.status
    target = AppointmentStatusChoices.IN_PROGRESS
    try:
        authorize(actor, Action.RUN_VIRTUAL_SESSION, appointment)
        if appointment.appointment_type != AppointmentTypeChoices.VIRTUAL:
            raise InvalidTransition('Only virtual appointments have a consultation session')
        if appointment.virtual_session_started:
            raise InvalidTransition('The virtual session has already been started')
        _require_edge(from_status, target)
        if from_status != AppointmentStatusChoices.CONFIRMED:
            raise InvalidTransition('Only confirmed appointments can start a virtual session')

        changes = {
            'status': target,
            'virtual_session_started': True,
            'session_start_time': now,
        }
        if not appointment.meeting_link:
            changes['meeting_room_id'], changes['meeting_link'] = generate_meeting_room(now)

        with transaction.atomic():
            swapped = _swap(
                appointment,
                {'status': from_status, 'virtual_session_started': False},
                **changes
            )
            if not swapped:
                raise InvalidTransition('The appointment changed before the session could start')
    except BookingError as exc:
        _record_failure(appointment, from_status, target, actor, exc)
        raise

    appointment = _load_fresh(appointment)
    metrics.virtual_sessions_total.labels(event='started').inc()
    metrics.appointment_transitions_total.labels(
        from_status=from_status, to_status=target, result='success'
    ).inc()
    log_appointment_transition(appointment, from_status, target, actor.role, virtual_session='started')

    notifications.deliver(notifications.for_patient('virtual_session_started', appointment))
    return appointment


def end_virtual_session(appointment, actor, now=None):
    """Doctor ends a running virtual session; the appointment completes."""
    now = now or timezone.now()
    from_status = appointment.status
    target = AppointmentStatusChoices.COMPLETED
    try:
        authorize(actor, Action.RUN_VIRTUAL_SESSION, appointment)
        if not appointment.virtual_session_started:
            raise InvalidTransition('The virtual session has not been started')
        if appointment.virtual_session_ended:
            raise InvalidTransition('The virtual session has already ended')
        _require_edge(from_status, target)

        with transaction.atomic():
            swapped = _swap(
                appointment,
                {
                    'status': from_status,
                    'virtual_session_started': True,
                    'virtual_session_ended': False,
                },
                status=target,
                virtual_session_ended=True,
                session_end_time=now,
            )
            if not swapped:
                raise InvalidTransition('The appointment changed before the session could end')
    except BookingError as exc:
        _record_failure(appointment, from_status, target, actor, exc)
        raise

    appointment = _load_fresh(appointment)
    metrics.virtual_sessions_total.labels(event='ended').inc()
    metrics.appointment_transitions_total.labels(
        from_status=from_status, to_status=target, result='success'
    ).inc()
    log_appointment_transition(appointment, from_status, target, actor.role, virtual_session='ended')
    return appointment
