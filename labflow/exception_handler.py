"""
Unified exception handler.

Registered as DRF's EXCEPTION_HANDLER. Every failure, whatever raised it,
reaches the client in one shape (success bodies never carry `code`):

Error body:
{
    "type":    "validation_error" | "not_found" | "forbidden" | "conflict",
    "code":    "INVALID_TRANSITION",
    "message": "Cannot advance a case that is already shipped.",
    "detail":  { ... }  // optional
}
"""

import logging

from django.http import JsonResponse
from rest_framework.exceptions import ValidationError as DRFValidationError
from rest_framework.views import exception_handler as drf_default_handler

from .exceptions import BaseAppException

logger = logging.getLogger(__name__)


def unified_exception_handler(exc, context):
    """
    DRF exception handler entry point.

    Order:
    1. BaseAppException and subclasses -> unified body
    2. DRF ValidationError (from parsers / serializers) -> unified body
    3. anything else -> DRF default handling
    """

    if isinstance(exc, BaseAppException):
        if exc.http_status >= 500:
            logger.error("[API] %s: %s", exc.code, exc.message)
        else:
            logger.info("[API] %s (%d): %s", exc.code, exc.http_status, exc.message)
        body = {
            'type': exc.type,
            'code': exc.code,
            'message': exc.message,
        }
        if exc.detail is not None:
            body['detail'] = exc.detail
        return JsonResponse(body, status=exc.http_status)

    if isinstance(exc, DRFValidationError):
        body = {
            'type': 'validation_error',
            'code': 'VALIDATION_ERROR',
            'message': 'Request validation failed',
            'detail': exc.detail,
        }
        return JsonResponse(body, status=400)

    return drf_default_handler(exc, context)
