"""
Core — Exception Handling

Domain exceptions raised by the stock services, and the DRF exception
handler that turns them (and every other API error) into the standard
error envelope.

Domain exceptions carry a message and a machine-readable code only; the
HTTP status they map to is decided here, at the API boundary.

@file core/exceptions.py
"""

import logging

from django.core.exceptions import PermissionDenied, ValidationError
from django.http import Http404
from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger('vaxtrack')


# ---------------------------------------------------------------------------
# Domain exceptions
# ---------------------------------------------------------------------------

class StockError(Exception):
    """Base class for rejected stock preconditions."""

    default_detail = 'Stock operation rejected.'
    default_code = 'STOCK_ERROR'

    def __init__(self, detail=None, code=None):
        self.detail = detail or self.default_detail
        self.code = code or self.default_code
        super().__init__(self.detail)


class InvalidExpiration(StockError):
    default_detail = 'Invalid expiration date.'
    default_code = 'INVALID_EXPIRATION'


class InvalidQuantity(StockError):
    default_detail = 'Quantity must be a positive integer.'
    default_code = 'INVALID_QUANTITY'


class InvalidAppointmentDate(StockError):
    default_detail = 'Invalid appointment date.'
    default_code = 'INVALID_APPOINTMENT_DATE'


class InsufficientStock(StockError):
    """Requested consumption or reservation exceeds the available stock."""
    default_detail = 'Insufficient stock for this operation.'
    default_code = 'INSUFFICIENT_STOCK'


class InvalidOwner(StockError):
    default_detail = 'Missing owner identifier for this stock level.'
    default_code = 'INVALID_OWNER'


class LotWillExpireBeforeAppointment(StockError):
    default_detail = 'Remaining stock will be expired before the appointment date.'
    default_code = 'LOT_WILL_EXPIRE_BEFORE_APPOINTMENT'


class AllLotsExpired(StockError):
    default_detail = 'All available lots for this vaccine are expired.'
    default_code = 'ALL_LOTS_EXPIRED'


class NoAvailableLot(StockError):
    default_detail = 'No lot is available to reserve this vaccine.'
    default_code = 'NO_AVAILABLE_LOT'


class TransferNotFound(StockError):
    default_detail = 'Pending transfer not found.'
    default_code = 'TRANSFER_NOT_FOUND'


class InvalidTransferState(StockError):
    """Raised when confirming or rejecting a transfer that is no longer PENDING."""
    default_detail = 'Transfer is not pending.'
    default_code = 'INVALID_TRANSFER_STATE'


class ResourceNotFoundError(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Resource not found.'
    default_code = 'RESOURCE_NOT_FOUND'


STOCK_ERROR_STATUS = {
    InsufficientStock: status.HTTP_409_CONFLICT,
    TransferNotFound: status.HTTP_404_NOT_FOUND,
    InvalidTransferState: status.HTTP_409_CONFLICT,
}


# ---------------------------------------------------------------------------
# Standard exception handler
# ---------------------------------------------------------------------------

def _stock_error_response(exc: StockError) -> Response:
    http_status = status.HTTP_400_BAD_REQUEST
    for exc_class, mapped in STOCK_ERROR_STATUS.items():
        if isinstance(exc, exc_class):
            http_status = mapped
            break
    return Response(
        {'success': False, 'errors': {'detail': [exc.detail]}, 'code': exc.code},
        status=http_status,
    )


def standard_exception_handler(exc, context):
    """
    Wraps every error response in the standard envelope:
      { "success": false, "errors": {...}, "code": "ERROR_CODE" }
    """
    if isinstance(exc, StockError):
        return _stock_error_response(exc)

    if isinstance(exc, Http404):
        exc = ResourceNotFoundError()
    elif isinstance(exc, PermissionDenied):
        exc = APIException(detail='Permission denied.', code='PERMISSION_DENIED')
        exc.status_code = status.HTTP_403_FORBIDDEN
    elif isinstance(exc, ValidationError):
        data = {
            'success': False,
            'errors': exc.message_dict if hasattr(exc, 'message_dict') else {'detail': exc.messages},
            'code': 'VALIDATION_ERROR',
        }
        return Response(data, status=status.HTTP_400_BAD_REQUEST)

    response = exception_handler(exc, context)

    if response is None:
        logger.exception('Unhandled exception in view: %s', exc)
        return Response(
            {'success': False, 'errors': {'detail': ['Internal server error.']}, 'code': 'INTERNAL_ERROR'},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    code = getattr(exc, 'default_code', 'ERROR')
    if isinstance(response.data, dict):
        errors = response.data
        code = errors.pop('code', code)
    elif isinstance(response.data, list):
        errors = {'detail': response.data}
    else:
        errors = {'detail': [str(response.data)]}

    response.data = {
        'success': False,
        'errors': errors,
        'code': code,
    }
    return response
