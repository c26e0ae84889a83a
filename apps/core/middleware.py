"""
Core middleware for request processing.
"""
import logging
import threading
import uuid
from django.utils.deprecation import MiddlewareMixin

logger = logging.getLogger(__name__)

_request_context = threading.local()


class RequestIDMiddleware(MiddlewareMixin):
    """
    Inject a unique request_id into each request for tracing.
    The request_id is added to the request object and to log records.
    """

    def process_request(self, request):
        request_id = request.META.get('HTTP_X_REQUEST_ID') or str(uuid.uuid4())
        request.request_id = request_id
        _request_context.request_id = request_id
        _request_context.tenant_id = request.META.get('HTTP_X_TENANT_ID')

    def process_response(self, request, response):
        if hasattr(request, 'request_id'):
            response['X-Request-ID'] = request.request_id
        _request_context.request_id = None
        _request_context.tenant_id = None
        return response


class LoggingFilter(logging.Filter):
    """
    Add request_id and tenant_id to log records from thread-local storage.
    """

    def filter(self, record):
        if not getattr(record, 'request_id', None):
            record.request_id = getattr(_request_context, 'request_id', None)
        if not getattr(record, 'tenant_id', None):
            record.tenant_id = getattr(_request_context, 'tenant_id', None)
        return True
