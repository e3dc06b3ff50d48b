"""
Tests for observability layer.

Validates that metrics, logs, and events are emitted correctly
without logging PHI/PII.
"""
import json
import logging
from datetime import timedelta
from unittest.mock import Mock, patch

import pytest
from django.http import HttpResponse
from prometheus_client import REGISTRY

from apps.clinical.lifecycle import request_transition
from apps.clinical.models import AppointmentStatusChoices as S
from apps.clinical.reminders import scan_appointment_reminders
from apps.core.observability.correlation import (
    RequestCorrelationMiddleware,
    clear_request_context,
    get_request_id,
)
from apps.core.observability.events import log_code_redemption, log_domain_event
from apps.core.observability.logging import CorrelationFilter, SanitizedJSONFormatter, sanitize_dict
from apps.core.exceptions import InvalidTransition

from .conftest import NOW


def sample(name, **labels):
    return REGISTRY.get_sample_value(name, labels) or 0


class TestRequestCorrelation:
    """Test request correlation middleware."""

    def setup_method(self):
        clear_request_context()

    def _request(self, **meta):
        request = Mock(META=meta, path='/api/v1/appointments/', method='GET')
        request.user = Mock(is_authenticated=False)
        return request

    def test_generates_request_id_if_missing(self):
        middleware = RequestCorrelationMiddleware(lambda r: HttpResponse())
        request = self._request()

        middleware.process_request(request)

        assert request.request_id
        assert get_request_id() == request.request_id

    def test_propagates_existing_request_id(self):
        middleware = RequestCorrelationMiddleware(lambda r: HttpResponse())
        request = self._request(HTTP_X_REQUEST_ID='req-123')

        middleware.process_request(request)

        assert request.request_id == 'req-123'

    def test_response_carries_request_id_and_counts(self):
        middleware = RequestCorrelationMiddleware(lambda r: HttpResponse())
        request = self._request(HTTP_X_REQUEST_ID='req-456')
        before = sample('http_requests_total', path='/api/v1/appointments/', method='GET', status='200')

        middleware.process_request(request)
        response = middleware.process_response(request, HttpResponse())

        assert response['X-Request-ID'] == 'req-456'
        after = sample('http_requests_total', path='/api/v1/appointments/', method='GET', status='200')
        assert after == before + 1


class TestSanitization:
    """Test PHI/PII sanitization."""

    def test_sanitize_dict_redacts_sensitive_fields(self):
        data = {
            'appointment_id': 'a-1',
            'email': 'lerato@example.com',
            'registration_code': 'CLINIC-1-ABC',
            'reason': 'Chest pain',
            'nested': {'phone': '+27 82 555 0199', 'status': 'pending'},
            'items': [{'message': 'hello'}, 'plain'],
        }

        result = sanitize_dict(data)

        assert result['appointment_id'] == 'a-1'
        assert result['email'] == '[REDACTED]'
        assert result['registration_code'] == '[REDACTED]'
        assert result['reason'] == '[REDACTED]'
        assert result['nested'] == {'phone': '[REDACTED]', 'status': 'pending'}
        assert result['items'] == [{'message': '[REDACTED]'}, 'plain']

    def test_json_formatter_redacts_extra(self):
        record = logging.LogRecord('test', logging.INFO, __file__, 1, 'Booked', None, None)
        record.event = 'appointment_booked'
        record.email = 'lerato@example.com'

        payload = json.loads(SanitizedJSONFormatter().format(record))

        assert payload['message'] == 'Booked'
        assert payload['event'] == 'appointment_booked'
        assert payload['email'] == '[REDACTED]'

    def test_json_formatter_redacts_nested_extra(self):
        record = logging.LogRecord('test', logging.INFO, __file__, 1, 'Sent', None, None)
        record.recipients = [{'to': 'lerato@example.com', 'kind': 'reminder'}]

        payload = json.loads(SanitizedJSONFormatter().format(record))

        assert payload['recipients'] == [{'to': '[REDACTED]', 'kind': 'reminder'}]
        assert 'lineno' not in payload

    def test_correlation_filter_stamps_request_context(self):
        clear_request_context()
        middleware = RequestCorrelationMiddleware(lambda r: HttpResponse())
        request = Mock(META={'HTTP_X_REQUEST_ID': 'req-789'}, path='/', method='GET')
        request.user = Mock(is_authenticated=False)
        middleware.process_request(request)
        record = logging.LogRecord('test', logging.INFO, __file__, 1, 'Hello', None, None)

        CorrelationFilter().filter(record)
        payload = json.loads(SanitizedJSONFormatter().format(record))

        assert payload['request_id'] == 'req-789'
        assert payload['user_id'] == '-'
        assert 'trace_id' not in payload
        clear_request_context()


class TestDomainEvents:
    """The 'apps' logger does not propagate, so the module logger is patched."""

    @pytest.mark.parametrize('result,method', [
        ('success', 'info'),
        ('blocked', 'warning'),
        ('conflict', 'warning'),
        ('failure', 'error'),
    ])
    def test_level_follows_result(self, result, method):
        with patch('apps.core.observability.events.logger') as logger:
            log_domain_event('something_happened', entity_type='Appointment', entity_id='a-1', result=result)

        log_call = getattr(logger, method)
        assert log_call.call_count == 1
        assert log_call.call_args.kwargs['extra']['event'] == 'something_happened'

    def test_extra_fields_are_sanitized(self):
        with patch('apps.core.observability.events.logger') as logger:
            log_domain_event('follow_up_sent', entity_id='a-1', reason='Chest pain')

        assert logger.info.call_args.kwargs['extra']['reason'] == '[REDACTED]'

    def test_code_redemption_never_logs_code(self):
        with patch('apps.core.observability.events.logger') as logger:
            log_code_redemption('c-1', 'code_mismatch', registrant_id='u-1')

        extra = logger.info.call_args.kwargs['extra']
        assert extra['event'] == 'registration_code_rejected'
        assert extra['registrant_id'] == 'u-1'
        assert 'registration_code' not in extra


@pytest.mark.django_db
class TestEngineMetrics:

    def test_successful_transition_is_counted(self, appointment, doctor_actor):
        before = sample('appointment_transitions_total', from_status='pending', to_status='confirmed', result='success')

        request_transition(appointment, doctor_actor, S.CONFIRMED)

        after = sample('appointment_transitions_total', from_status='pending', to_status='confirmed', result='success')
        assert after == before + 1

    def test_rejected_transition_is_counted(self, make_appointment, doctor_actor):
        appointment = make_appointment(status=S.COMPLETED)
        before = sample('appointment_transitions_total', from_status='completed', to_status='cancelled', result='invalid')

        with pytest.raises(InvalidTransition):
            request_transition(appointment, doctor_actor, S.CANCELLED)

        after = sample('appointment_transitions_total', from_status='completed', to_status='cancelled', result='invalid')
        assert after == before + 1

    def test_failed_notification_is_counted(self, appointment, doctor_actor):
        before = sample('notifications_total', kind='appointment_confirmed', result='failed')

        with patch('apps.clinical.notifications.send_mail', side_effect=ConnectionRefusedError()):
            request_transition(appointment, doctor_actor, S.CONFIRMED)

        after = sample('notifications_total', kind='appointment_confirmed', result='failed')
        assert after == before + 1

    def test_reminder_scan_is_counted(self, make_appointment):
        make_appointment(starts_at=NOW + timedelta(hours=24), status=S.CONFIRMED)
        scans_before = sample('reminder_scans_total')
        sent_before = sample('reminders_sent_total', result='sent')

        scan_appointment_reminders(now=NOW)

        assert sample('reminder_scans_total') == scans_before + 1
        assert sample('reminders_sent_total', result='sent') == sent_before + 1
