"""
consultation/exceptions.py

Domain errors raised by the services, and the DRF exception handler that turns
every failure into a single `{"error": ..., "kind": ...}` body.
"""

import logging

from django.core.exceptions import PermissionDenied as DjangoPermissionDenied
from django.http import Http404
from rest_framework import exceptions as drf_exceptions
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)


class ConsultationError(drf_exceptions.APIException):
    """Base class; `kind` is the machine-checkable name clients switch on."""
    status_code    = status.HTTP_400_BAD_REQUEST
    default_detail = "Request could not be processed"
    kind           = "Error"


class NotFound(ConsultationError):
    status_code    = status.HTTP_404_NOT_FOUND
    default_detail = "Not found"
    kind           = "NotFound"


class Forbidden(ConsultationError):
    status_code    = status.HTTP_403_FORBIDDEN
    default_detail = "Not authorized"
    kind           = "Forbidden"


class InvalidState(ConsultationError):
    status_code    = status.HTTP_409_CONFLICT
    default_detail = "Operation not allowed in the current state"
    kind           = "InvalidState"


class ValidationError(ConsultationError):
    status_code    = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid input"
    kind           = "ValidationError"


class DoctorUnavailable(ConsultationError):
    status_code    = status.HTTP_409_CONFLICT
    default_detail = "Doctor is not available"
    kind           = "DoctorUnavailable"


class SchedulingConflict(ConsultationError):
    status_code    = status.HTTP_409_CONFLICT
    default_detail = "Doctor has a conflicting appointment at this time"
    kind           = "SchedulingConflict"


class AuthenticationError(ConsultationError):
    status_code    = status.HTTP_401_UNAUTHORIZED
    default_detail = "Authentication required"
    kind           = "AuthenticationError"


_DRF_KINDS = {
    Http404:                             "NotFound",
    DjangoPermissionDenied:              "Forbidden",
    drf_exceptions.NotAuthenticated:     "AuthenticationError",
    drf_exceptions.AuthenticationFailed: "AuthenticationError",
    drf_exceptions.PermissionDenied:     "Forbidden",
    drf_exceptions.NotFound:             "NotFound",
    drf_exceptions.ValidationError:      "ValidationError",
    drf_exceptions.ParseError:           "ValidationError",
    drf_exceptions.Throttled:            "Throttled",
    drf_exceptions.MethodNotAllowed:     "MethodNotAllowed",
}


def _kind_for(exc):
    if isinstance(exc, ConsultationError):
        return exc.kind
    for exc_class, kind in _DRF_KINDS.items():
        if isinstance(exc, exc_class):
            return kind
    return "Error"


def exception_handler(exc, context):
    response = drf_exception_handler(exc, context)

    if response is None:
        view = context.get("view")
        logger.exception("Unhandled error in %s", view.__class__.__name__ if view else "view")
        return Response(
            {"error": "Something went wrong", "kind": "ServerError"},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    kind = _kind_for(exc)
    body = {"kind": kind}
    if isinstance(exc, drf_exceptions.ValidationError):
        body["error"]   = "Invalid input"
        body["details"] = response.data
    else:
        body["error"] = str(response.data.get("detail", "")) if isinstance(response.data, dict) else str(response.data)
    response.data = body
    return response
