"""
Metrics instrumentation (Prometheus client).

All counters live on one registry object so call sites read
``metrics.appointment_transitions_total.labels(...).inc()``.
"""
import time
from functools import wraps

from prometheus_client import Counter, Histogram


class MetricsRegistry:
    """
    Central metrics registry for the booking engine.

    Provides typed access to all application metrics.
    """

    def __init__(self):
        """Initialize metrics registry."""
        self._setup_metrics()

    def _setup_metrics(self):
        """Setup all application metrics."""

        # ===================================================================
        # HTTP Metrics
        # ===================================================================
        self.http_requests_total = Counter(
            'http_requests_total',
            'Total HTTP requests',
            ['path', 'method', 'status']
        )

        self.http_request_duration_seconds = Histogram(
            'http_request_duration_seconds',
            'HTTP request duration in seconds',
            ['path', 'method'],
            buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
        )

        # ===================================================================
        # Appointment Metrics
        # ===================================================================
        self.appointment_transitions_total = Counter(
            'appointment_transitions_total',
            'Appointment status transitions',
            ['from_status', 'to_status', 'result']  # result: success|invalid|forbidden|conflict
        )

        self.appointment_bookings_total = Counter(
            'appointment_bookings_total',
            'Appointments booked',
            ['appointment_type']
        )

        self.virtual_sessions_total = Counter(
            'virtual_sessions_total',
            'Virtual session lifecycle events',
            ['event']  # started|ended
        )

        # ===================================================================
        # Reminder Metrics
        # ===================================================================
        self.reminder_scans_total = Counter(
            'reminder_scans_total',
            'Reminder scan runs'
        )

        self.reminders_sent_total = Counter(
            'reminders_sent_total',
            'Appointment reminders claimed and dispatched',
            ['result']  # sent|already_claimed|error
        )

        self.reminder_scan_duration_seconds = Histogram(
            'reminder_scan_duration_seconds',
            'Duration of one reminder scan',
            buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0]
        )

        # ===================================================================
        # Registration Code Metrics
        # ===================================================================
        self.registration_codes_issued_total = Counter(
            'registration_codes_issued_total',
            'Clinic registration codes issued'
        )

        self.registration_code_redemptions_total = Counter(
            'registration_code_redemptions_total',
            'Clinic registration code redemption attempts',
            ['result']  # success|code_already_used|code_mismatch|...
        )

        # ===================================================================
        # Notification Metrics
        # ===================================================================
        self.notifications_total = Counter(
            'notifications_total',
            'Outbound notifications',
            ['kind', 'result']  # result: sent|failed
        )

    def track_duration(self, histogram_metric):
        """
        Decorator to track function duration.

        Usage:
            @metrics.track_duration(metrics.reminder_scan_duration_seconds)
            def scan_appointment_reminders(now=None):
                ...
        """
        def decorator(func):
            @wraps(func)
            def wrapper(*args, **kwargs):
                start_time = time.time()
                try:
                    return func(*args, **kwargs)
                finally:
                    duration = time.time() - start_time
                    histogram_metric.observe(duration)
            return wrapper
        return decorator


# Global metrics instance
metrics = MetricsRegistry()
