"""
Typed, user-presentable failures shared by the ledgers and the after-sales engine.

Every failure is a DRF APIException so views can let it propagate and the
framework renders it with the right HTTP status. The exception handler below
adds the stable failure ``code`` next to ``detail`` in the response body.
"""

import logging

from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class ServiceError(APIException):
    """
    Base class for domain failures.

    ``status_code`` can be overridden per instance where the same condition
    maps to a different HTTP code depending on the operation.
    """
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'The request could not be processed.'
    default_code = 'service_error'

    def __init__(self, detail=None, code=None, status_code=None):
        super().__init__(detail=detail, code=code)
        if status_code is not None:
            self.status_code = status_code

    @property
    def code(self):
        return getattr(self.detail, 'code', self.default_code)


class NotFoundError(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Resource not found.'
    default_code = 'not_found'


class InvalidStateError(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Operation is not allowed in the current state.'
    default_code = 'invalid_state'


class ConflictError(ServiceError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'The request conflicts with the current state.'
    default_code = 'conflict'


class ServiceUnavailableError(ServiceError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = 'Service temporarily unavailable.'
    default_code = 'unavailable'


# Concrete conditions

class PaymentNotFound(ServiceError):
    default_detail = 'No completed payment found for this order. Cannot process refund.'
    default_code = 'payment_not_found'


class RefundCapExceeded(ConflictError):
    default_detail = 'Cumulative refund amount exceeds original payment.'
    default_code = 'refund_cap_exceeded'


class StockRecordMissing(ConflictError):
    default_detail = 'Stock record not found.'
    default_code = 'stock_record_missing'


class InsufficientStock(ConflictError):
    default_detail = 'Insufficient stock.'
    default_code = 'insufficient_stock'


class DuplicateOpenTicket(ConflictError):
    default_detail = 'An open ticket of this type already exists for this order item.'
    default_code = 'duplicate_open_ticket'


class PolicyUnavailable(ServiceUnavailableError):
    default_detail = 'This after-sales service is currently unavailable. Please contact support.'
    default_code = 'policy_unavailable'


class OperationCancelled(Exception):
    """Raised inside a transaction when the caller cancels; the transaction rolls back."""
    pass


def api_exception_handler(exc, context):
    """DRF exception handler that adds the failure code to service errors."""
    response = exception_handler(exc, context)
    if response is None:
        return response

    if isinstance(exc, ServiceError):
        view = context.get('view')
        logger.warning(
            f"{exc.__class__.__name__} ({exc.status_code}) in "
            f"{view.__class__.__name__ if view else 'unknown view'}: {exc.detail}"
        )
        if isinstance(response.data, dict):
            response.data['code'] = str(exc.code)
    return response
