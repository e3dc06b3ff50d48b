"""
Request correlation middleware.

Generates or propagates X-Request-ID, keeps it with the acting user in
thread-local storage for CorrelationFilter, and records request metrics.
"""
import uuid
import time
import logging
from django.utils.deprecation import MiddlewareMixin
from threading import local

from .metrics import metrics

_request_context = local()

logger = logging.getLogger(__name__)


def get_request_id():
    return getattr(_request_context, 'request_id', None)


def get_user_id():
    return getattr(_request_context, 'user_id', None)


def get_user_roles():
    return getattr(_request_context, 'user_roles', [])


def clear_request_context():
    """Drop the thread-local request context (tests, worker reuse)."""
    for attr in ['request_id', 'user_id', 'user_roles']:
        if hasattr(_request_context, attr):
            delattr(_request_context, attr)


class RequestCorrelationMiddleware(MiddlewareMixin):
    """
    Tags each request with an id and times it.

    Session-authenticated users (admin site) are known here; API calls
    authenticated by JWT resolve their user inside the view, so their log
    lines carry the request id only.
    """

    REQUEST_ID_HEADER = 'HTTP_X_REQUEST_ID'

    def process_request(self, request):
        request_id = request.META.get(self.REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.request_id = request_id
        request.start_time = time.time()

        _request_context.request_id = request_id
        user = getattr(request, 'user', None)
        if user is not None and user.is_authenticated:
            _request_context.user_id = str(user.id)
            _request_context.user_roles = sorted(user.role_names())
        else:
            _request_context.user_id = None
            _request_context.user_roles = []

    def _duration_ms(self, request):
        if not hasattr(request, 'start_time'):
            return 0
        return (time.time() - request.start_time) * 1000

    def process_response(self, request, response):
        if hasattr(request, 'request_id'):
            response['X-Request-ID'] = request.request_id

        if hasattr(request, 'start_time'):
            duration_ms = self._duration_ms(request)
            metrics.http_requests_total.labels(
                path=request.path, method=request.method, status=response.status_code
            ).inc()
            metrics.http_request_duration_seconds.labels(
                path=request.path, method=request.method
            ).observe(duration_ms / 1000)

            logger.info(
                'Request completed',
                extra={
                    'event': 'http_request_completed',
                    'path': request.path,
                    'method': request.method,
                    'status_code': response.status_code,
                    'duration_ms': round(duration_ms, 2),
                }
            )

        return response

    def process_exception(self, request, exception):
        logger.error(
            f'Request failed: {exception.__class__.__name__}',
            exc_info=True,
            extra={
                'event': 'http_request_exception',
                'path': request.path,
                'method': request.method,
                'exception_type': exception.__class__.__name__,
                'duration_ms': round(self._duration_ms(request), 2),
            }
        )
