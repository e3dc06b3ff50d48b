"""
Structured JSON logging that never writes patient details or secrets.

Booking logs carry ids and statuses only. Anything keyed by a name in
SENSITIVE_FIELDS is replaced with '[REDACTED]' before it is formatted.
"""
import logging
import json
from datetime import datetime, timezone
from .correlation import get_request_id, get_user_id, get_user_roles


REDACTED = '[REDACTED]'

# PHI/PII and secrets
SENSITIVE_FIELDS = {
    'password',
    'token',
    'secret',
    'api_key',
    'registration_code',
    'submitted_code',
    'reason',
    'message',
    'notes',
    'first_name',
    'last_name',
    'full_name',
    'email',
    'to',
    'phone',
    'phone_number',
    'address',
    'date_of_birth',
}

# LogRecord attributes that are not caller-supplied extra fields
_RECORD_ATTRS = set(vars(logging.LogRecord('', 0, '', 0, '', None, None))) | {'message', 'asctime'}


def _is_sensitive(key):
    return str(key).lower() in SENSITIVE_FIELDS


def sanitize_value(value):
    """Redact sensitive keys inside nested dicts and lists."""
    if isinstance(value, dict):
        return sanitize_dict(value)
    if isinstance(value, (list, tuple)):
        return [sanitize_value(v) for v in value]
    return value


def sanitize_dict(data):
    """Return a copy of ``data`` with sensitive keys redacted at any depth."""
    if not isinstance(data, dict):
        return data
    return {
        key: REDACTED if _is_sensitive(key) else sanitize_value(value)
        for key, value in data.items()
    }


class CorrelationFilter(logging.Filter):
    """Stamp the current request id and acting user onto every record."""

    def filter(self, record):
        record.request_id = get_request_id() or '-'
        record.user_id = get_user_id() or '-'
        record.user_roles = ','.join(get_user_roles()) or '-'
        return True


class SanitizedJSONFormatter(logging.Formatter):
    """One JSON object per line; extra fields are redacted like sanitize_dict."""

    def format(self, record):
        log_data = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'request_id': getattr(record, 'request_id', '-'),
            'user_id': getattr(record, 'user_id', '-'),
            'user_roles': getattr(record, 'user_roles', '-'),
        }

        extra = {
            key: value for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS and key not in log_data and not key.startswith('_')
        }
        log_data.update(sanitize_dict(extra))

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def get_sanitized_logger(name):
    """
    Module logger with the correlation filter attached.

    Usage:
        logger = get_sanitized_logger(__name__)
        logger.info('Appointment confirmed', extra={'event': 'appointment_confirmed', 'appointment_id': ...})
    """
    logger = logging.getLogger(name)
    if not any(isinstance(f, CorrelationFilter) for f in logger.filters):
        logger.addFilter(CorrelationFilter())
    return logger
