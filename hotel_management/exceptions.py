"""DRF exception handler mapping domain errors to HTTP responses."""

import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from .errors import BookingError, NotFound, RoomInUse

logger = logging.getLogger(__name__)


def _status_for(exc):
    if isinstance(exc, NotFound):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, RoomInUse):
        return status.HTTP_409_CONFLICT
    return status.HTTP_400_BAD_REQUEST


def booking_exception_handler(exc, context):
    response = exception_handler(exc, context)
    if response is not None:
        return response

    if isinstance(exc, BookingError):
        return Response({'error': exc.message, 'code': exc.code}, status=_status_for(exc))

    view = context.get('view')
    logger.exception("Unhandled error in %s", view.__class__.__name__ if view else 'view')
    return Response({'error': 'Internal server error'},
                    status=status.HTTP_500_INTERNAL_SERVER_ERROR)
