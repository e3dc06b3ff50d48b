"""
Domain events logging helpers.

Provides structured event logging for booking operations.
"""
from typing import Dict, Optional
from .logging import get_sanitized_logger, sanitize_dict

logger = get_sanitized_logger(__name__)


def log_domain_event(
    event_name: str,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    entity_ids: Optional[Dict[str, str]] = None,
    result: str = 'success',
    **extra_fields
):
    """
    Log a domain event with structured data.

    Args:
        event_name: Name of the event (e.g., 'appointment_transition', 'reminder_sent')
        entity_type: Type of entity (e.g., 'Appointment', 'Clinic')
        entity_id: ID of primary entity
        entity_ids: Dictionary of related entity IDs
        result: Result of operation (success, failure, etc.)
        **extra_fields: Additional fields to log (will be sanitized)

    Example:
        log_domain_event(
            'appointment_transition',
            entity_type='Appointment',
            entity_id=str(appointment.id),
            entity_ids={'doctor_id': str(appointment.doctor_id)},
            result='success',
            from_status='pending',
            to_status='confirmed'
        )
    """
    event_data = {
        'event': event_name,
        'result': result,
    }

    if entity_type:
        event_data['entity_type'] = entity_type

    if entity_id:
        event_data['entity_id'] = entity_id

    if entity_ids:
        event_data.update(entity_ids)

    # Sanitize extra fields
    sanitized_extra = sanitize_dict(extra_fields)
    event_data.update(sanitized_extra)

    # Log at appropriate level based on result
    if result in ['failure', 'error']:
        logger.error(f'Domain event: {event_name}', extra=event_data)
    elif result in ['warning', 'blocked', 'conflict', 'duplicate']:
        logger.warning(f'Domain event: {event_name}', extra=event_data)
    else:
        logger.info(f'Domain event: {event_name}', extra=event_data)


def log_appointment_transition(appointment, from_status, to_status, actor_role, result='success', **extra):
    """Log appointment status transition event."""
    log_domain_event(
        'appointment_transition',
        entity_type='Appointment',
        entity_id=str(appointment.id),
        entity_ids={
            'appointment_id': str(appointment.id),
            'doctor_id': str(appointment.doctor_id),
        },
        result=result,
        from_status=from_status,
        to_status=to_status,
        actor_role=actor_role,
        **extra
    )


def log_code_redemption(clinic_id, result, registrant_id=None, **extra):
    """Log a registration code redemption attempt (the code itself is never logged)."""
    entity_ids = {'clinic_id': str(clinic_id)}
    if registrant_id:
        entity_ids['registrant_id'] = str(registrant_id)
    log_domain_event(
        'registration_code_redeemed' if result == 'success' else 'registration_code_rejected',
        entity_type='Clinic',
        entity_id=str(clinic_id),
        entity_ids=entity_ids,
        result=result,
        **extra
    )


def log_reminder_sent(appointment, recipients_notified):
    """Log reminder dispatch for an appointment."""
    log_domain_event(
        'appointment_reminder_sent',
        entity_type='Appointment',
        entity_id=str(appointment.id),
        entity_ids={'appointment_id': str(appointment.id)},
        result='success',
        recipients_notified=recipients_notified,
    )


def log_notification_failed(kind, error, entity_id=None):
    """Log a best-effort notification that could not be delivered."""
    log_domain_event(
        'notification_delivery_failed',
        entity_type='Notification',
        entity_id=entity_id,
        result='failure',
        notification_kind=kind,
        error_type=error.__class__.__name__,
        error=str(error),
    )
