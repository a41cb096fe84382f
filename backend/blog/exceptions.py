"""
Error types and the DRF exception handler.

Services raise the BlogError subclasses below; they never build HTTP
responses. custom_exception_handler turns every failure into the response
envelope: {"success": false, "message": ..., "error": ...}.
"""
from rest_framework.views import exception_handler
from rest_framework.response import Response
from rest_framework import status
from django.db import IntegrityError
import logging

logger = logging.getLogger(__name__)


class BlogError(Exception):
    """Base class for errors raised by the service layer."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = 'Bad request'

    def __init__(self, message=None, details=None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class InvalidRequest(BlogError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = 'Validation Error'


class NotFoundError(BlogError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = 'Resource not found'


class ForbiddenError(BlogError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = 'You are not authorized to perform this action'


def _error_body(message, error=None):
    return {
        'success': False,
        'message': message,
        'error': error,
    }


def _drf_message(exc, data):
    """Pick a human readable message out of a DRF exception payload."""
    if isinstance(data, dict) and set(data) == {'detail'}:
        return str(data['detail'])
    if isinstance(data, (dict, list)):
        return 'Validation Error'
    return str(exc)


def custom_exception_handler(exc, context):
    """
    Custom exception handler that:
    1. Maps service errors to their status codes
    2. Wraps DRF errors in the response envelope
    3. Logs and hides anything unexpected behind a 500
    """
    if isinstance(exc, BlogError):
        if exc.status_code == status.HTTP_403_FORBIDDEN:
            logger.warning(f"Forbidden: {exc.message}")
        return Response(
            _error_body(exc.message, exc.details),
            status=exc.status_code
        )

    # Call DRF's default exception handler first
    response = exception_handler(exc, context)

    if response is not None:
        data = response.data
        message = _drf_message(exc, data)
        details = None if message != 'Validation Error' else data
        response.data = _error_body(message, details)
        return response

    if isinstance(exc, IntegrityError):
        logger.warning(f"IntegrityError: {exc}")
        return Response(
            _error_body('Data integrity error. This may be a duplicate entry.'),
            status=status.HTTP_409_CONFLICT
        )

    logger.exception(f"Unhandled exception: {exc}")

    return Response(
        _error_body('Internal Server Error'),
        status=status.HTTP_500_INTERNAL_SERVER_ERROR
    )
