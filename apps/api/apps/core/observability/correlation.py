"""
Request correlation middleware.

Generates/propagates X-Request-ID and makes it available to log records.
"""
import uuid
import time
import logging
from threading import local

from django.utils.deprecation import MiddlewareMixin

from .metrics import metrics

# Thread-local storage for request context
_request_context = local()

_CONTEXT_ATTRS = ('request_id', 'trace_id', 'user_id')

logger = logging.getLogger(__name__)


def get_request_id():
    """Get current request ID from thread-local storage."""
    return getattr(_request_context, 'request_id', None)


def get_trace_id():
    """Get current trace ID from thread-local storage."""
    return getattr(_request_context, 'trace_id', None)


def get_user_id():
    """Get the acting user ID (identity provider) from thread-local storage."""
    return getattr(_request_context, 'user_id', None)


class RequestCorrelationMiddleware(MiddlewareMixin):
    """
    Middleware to handle request correlation.

    - Generates or propagates X-Request-ID
    - Picks up X-Trace-ID when an upstream proxy sets one
    - Stores context in thread-local storage for logging
    - Echoes correlation headers on the response
    - Logs request duration
    """

    REQUEST_ID_HEADER = 'HTTP_X_REQUEST_ID'
    TRACE_ID_HEADER = 'HTTP_X_TRACE_ID'

    def process_request(self, request):
        request_id = request.META.get(self.REQUEST_ID_HEADER) or str(uuid.uuid4())
        trace_id = request.META.get(self.TRACE_ID_HEADER)

        request.request_id = request_id
        request.trace_id = trace_id
        request.start_time = time.time()

        _request_context.request_id = request_id
        _request_context.trace_id = trace_id

        user = getattr(request, 'user', None)
        if user is not None and user.is_authenticated:
            _request_context.user_id = str(user.id)
        else:
            _request_context.user_id = None

    def process_response(self, request, response):
        if hasattr(request, 'request_id'):
            response['X-Request-ID'] = request.request_id

        if getattr(request, 'trace_id', None):
            response['X-Trace-ID'] = request.trace_id

        if hasattr(request, 'start_time'):
            duration = time.time() - request.start_time
            route = _route_label(request)
            metrics.http_requests_total.labels(
                path=route, method=request.method, status=str(getattr(response, 'status_code', ''))
            ).inc()
            metrics.http_request_duration_seconds.labels(path=route, method=request.method).observe(duration)
            logger.info(
                'Request completed',
                extra={
                    'event': 'http_request_completed',
                    'path': request.path,
                    'method': request.method,
                    'status_code': getattr(response, 'status_code', None),
                    'duration_ms': round(duration * 1000, 2),
                }
            )

        clear_request_context()
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
            }
        )


def clear_request_context():
    """Clear thread-local request context (useful for testing)."""
    for attr in _CONTEXT_ATTRS:
        if hasattr(_request_context, attr):
            delattr(_request_context, attr)


def _route_label(request):
    """URL pattern instead of the raw path, so IDs do not explode label cardinality."""
    match = getattr(request, 'resolver_match', None)
    route = getattr(match, 'route', None) if match is not None else None
    return route if isinstance(route, str) and route else 'unmatched'
