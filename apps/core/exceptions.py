"""
Bizdesk exception hierarchy and the DRF exception handler that renders it.
"""
import logging
from rest_framework.views import exception_handler
from rest_framework.response import Response
from rest_framework import status

logger = logging.getLogger(__name__)


class BizdeskException(Exception):
    """Base exception for Bizdesk-specific errors."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = 'ERROR'

    def __init__(self, message, details=None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self):
        return {
            'error': self.message,
            'code': self.code,
            'details': self.details,
        }


class NotFoundError(BizdeskException):
    """Raised when a referenced user, tenant or role does not exist."""
    status_code = status.HTTP_404_NOT_FOUND
    code = 'NOT_FOUND'


class PermissionDeniedError(BizdeskException):
    """Raised when the tenant access guard or an elevated-role check fails."""
    status_code = status.HTTP_403_FORBIDDEN
    code = 'FORBIDDEN'


class InvalidStateError(BizdeskException):
    """
    Raised when an operation cannot start from the current state.

    Consolidation with an unexpected candidate count, a merge target that
    has already disappeared, or deleting a role that is still referenced.
    Nothing has been mutated when this is raised.
    """
    status_code = status.HTTP_409_CONFLICT
    code = 'INVALID_STATE'


class PartialMergeError(BizdeskException):
    """
    Raised when a per-record save fails part way through a consolidation.

    Rewrites applied before ``step`` are kept; the merge record allows a
    retry to resume from ``step``.
    """
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = 'PARTIAL_MERGE'

    def __init__(self, message, step, details=None):
        self.step = step
        details = dict(details or {})
        details.setdefault('step', step)
        super().__init__(message, details)


def custom_exception_handler(exc, context):
    """
    Custom exception handler that logs errors and returns consistent format.
    """
    request = context.get('request')
    request_id = getattr(request, 'request_id', None) if request else None

    if isinstance(exc, BizdeskException):
        log = logger.error if exc.status_code >= 500 else logger.warning
        log(
            f"{exc.__class__.__name__}: {exc.message}",
            extra={
                'request_id': request_id,
                'path': request.path if request else None,
                'method': request.method if request else None,
                'details': exc.details,
            }
        )
        data = exc.to_dict()
        data['request_id'] = request_id
        return Response(data, status=exc.status_code)

    # Call DRF's default exception handler first
    response = exception_handler(exc, context)

    if response is None:
        logger.error(
            f"API Exception: {exc.__class__.__name__}",
            extra={
                'exception': str(exc),
                'request_id': request_id,
                'path': request.path if request else None,
                'method': request.method if request else None,
            },
            exc_info=True
        )
        return Response(
            {
                'error': 'Internal server error',
                'code': 'INTERNAL_ERROR',
                'request_id': request_id,
            },
            status=status.HTTP_500_INTERNAL_SERVER_ERROR
        )

    if request_id and isinstance(response.data, dict):
        response.data['request_id'] = request_id

    return response
