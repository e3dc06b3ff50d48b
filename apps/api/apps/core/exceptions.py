"""
Domain errors for the booking engine.

Every error carries a stable ``code`` (used in API payloads and log events)
and the HTTP status the API layer answers with. Views never need to know the
concrete subclass: ``booking_exception_handler`` maps any ``BookingError``.
"""
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler


class BookingError(Exception):
    """Base class for rule violations reported back to the caller."""
    code = 'booking_error'
    http_status = status.HTTP_400_BAD_REQUEST
    default_message = 'The requested operation is not allowed'

    def __init__(self, message=None, **context):
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)

    def as_dict(self):
        return {'error': self.code, 'detail': self.message}


class InvalidTransition(BookingError):
    """Illegal edge in the appointment status graph."""
    code = 'invalid_transition'
    http_status = status.HTTP_409_CONFLICT
    default_message = 'This status change is not allowed'


class Forbidden(BookingError):
    """Actor lacks the role (or ownership) for the requested action."""
    code = 'forbidden'
    http_status = status.HTTP_403_FORBIDDEN
    default_message = 'You are not allowed to perform this action'


class AccessWindowClosed(BookingError):
    """A time-gated action was requested outside its window."""
    code = 'access_window_closed'
    http_status = status.HTTP_409_CONFLICT
    default_message = 'This action is no longer available for the appointment'


class DoctorUnavailable(BookingError):
    code = 'doctor_unavailable'
    default_message = 'The selected doctor cannot accept bookings'


class ClinicNotFound(BookingError):
    code = 'clinic_not_found'
    http_status = status.HTTP_404_NOT_FOUND
    default_message = 'Clinic not found'


class CodeAlreadyUsed(BookingError):
    code = 'code_already_used'
    http_status = status.HTTP_409_CONFLICT
    default_message = 'This registration code has already been used'


class CodeMismatch(BookingError):
    code = 'code_mismatch'
    default_message = 'Invalid registration code for this clinic'


class EmailDomainMismatch(BookingError):
    """
    Registrant email does not look like it belongs to the clinic.

    Advisory only: the domain heuristic is trivially satisfiable and is not a
    proof of affiliation. Admin-driven registrations may skip it.
    """
    code = 'email_domain_mismatch'
    default_message = 'Please use your official clinic email address'


class NotificationDeliveryFailed(Exception):
    """
    Outbound email could not be delivered.

    Never propagated past the notification layer; it only names the failure
    in logs and metrics.
    """
    code = 'notification_delivery_failed'


def booking_exception_handler(exc, context):
    """DRF exception handler that renders BookingError subclasses."""
    if isinstance(exc, BookingError):
        return Response(exc.as_dict(), status=exc.http_status)
    return exception_handler(exc, context)
