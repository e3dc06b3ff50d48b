"""
Health check endpoints.

Provides /healthz, /readyz and /metrics for monitoring.
"""
import logging
from django.http import HttpResponse, JsonResponse
from django.views import View
from django.db import connection
from django.conf import settings
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

logger = logging.getLogger(__name__)

REQUIRED_BOOKING_KEYS = (
    'EDIT_CUTOFF_HOURS',
    'REMINDER_MIN_HOURS',
    'REMINDER_MAX_HOURS',
    'UPCOMING_WINDOW_HOURS',
    'MEETING_BASE_URL',
)


class HealthzView(View):
    """
    Liveness endpoint.

    Returns 200 OK if the process is serving requests. Does not check
    dependencies.
    """

    def get(self, request):
        health_data = {
            'status': 'ok',
            'version': getattr(settings, 'VERSION', 'unknown'),
        }

        # Set by deployment
        commit_hash = getattr(settings, 'COMMIT_HASH', None)
        if commit_hash:
            health_data['commit'] = commit_hash

        return JsonResponse(health_data, status=200)


class ReadyzView(View):
    """
    Readiness endpoint.

    Ready means the database answers and the booking thresholds are
    configured coherently (a reminder band that cannot match anything would
    silently stop all reminders).
    """

    def get(self, request):
        checks = {
            'database': self._check_database(),
            'booking_config': self._check_booking_config(),
        }
        all_healthy = all(checks.values())
        return JsonResponse(
            {
                'status': 'ready' if all_healthy else 'not_ready',
                'checks': checks,
            },
            status=200 if all_healthy else 503
        )

    def _check_database(self):
        try:
            with connection.cursor() as cursor:
                cursor.execute('SELECT 1')
                return True
        except Exception as e:
            logger.error(
                'Database health check failed',
                extra={
                    'event': 'health_check_failed',
                    'check': 'database',
                    'error': str(e)
                }
            )
            return False

    def _check_booking_config(self):
        booking = getattr(settings, 'BOOKING', {})
        missing = [key for key in REQUIRED_BOOKING_KEYS if key not in booking]
        if missing or booking['REMINDER_MIN_HOURS'] > booking['REMINDER_MAX_HOURS']:
            logger.error(
                'Booking configuration check failed',
                extra={
                    'event': 'health_check_failed',
                    'check': 'booking_config',
                    'missing_keys': missing,
                }
            )
            return False
        return True


class MetricsView(View):
    """Prometheus exposition of the default registry."""

    def get(self, request):
        return HttpResponse(generate_latest(), content_type=CONTENT_TYPE_LATEST)
