"""
Purpose: Maps marketplace errors to HTTP responses.
What it does:
Plugged in as REST_FRAMEWORK["EXCEPTION_HANDLER"]. Domain errors become
{"error": code, "detail": message}; everything else falls through to DRF.
"""

import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from common.errors import (
    AlreadyAssigned,
    AuthorizationError,
    DuplicatePayment,
    GatewayUnavailable,
    IllegalTransition,
    InsufficientQuantity,
    MarketplaceError,
    NotAssignedAgent,
    RecordNotFound,
    SignatureInvalid,
    ValidationError,
)

logger = logging.getLogger(__name__)

STATUS_BY_ERROR = [
    ((ValidationError, InsufficientQuantity, SignatureInvalid), status.HTTP_400_BAD_REQUEST),
    ((AuthorizationError, NotAssignedAgent), status.HTTP_403_FORBIDDEN),
    ((RecordNotFound,), status.HTTP_404_NOT_FOUND),
    ((IllegalTransition, AlreadyAssigned, DuplicatePayment), status.HTTP_409_CONFLICT),
    ((GatewayUnavailable,), status.HTTP_502_BAD_GATEWAY),
]


def status_for(exc):
    for types, code in STATUS_BY_ERROR:
        if isinstance(exc, types):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def marketplace_exception_handler(exc, context):
    if not isinstance(exc, MarketplaceError):
        return exception_handler(exc, context)

    body = {"error": exc.code, "detail": str(exc)}
    if isinstance(exc, IllegalTransition):
        body.update({"from": exc.current, "to": exc.target, "role": exc.role})
    if isinstance(exc, InsufficientQuantity):
        body.update({"productId": exc.product_id, "requested": exc.requested, "available": exc.available})
    if exc.retryable:
        body["retryable"] = True

    code = status_for(exc)
    if code >= 500:
        logger.warning("%s on %s: %s", type(exc).__name__, context.get("view").__class__.__name__, exc)
    return Response(body, status=code)
