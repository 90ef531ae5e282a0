import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class MarketplaceError(Exception):
    """Base class for errors raised by the service layer"""
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class EntityNotFound(MarketplaceError):
    status_code = status.HTTP_404_NOT_FOUND


class PermissionDeniedError(MarketplaceError):
    status_code = status.HTTP_403_FORBIDDEN


class TaskTransitionError(MarketplaceError):
    pass


class InvoiceError(MarketplaceError):
    pass


class ProposalError(MarketplaceError):
    pass


class GigError(MarketplaceError):
    pass


class GigConflictError(GigError):
    status_code = status.HTTP_409_CONFLICT


def api_exception_handler(exc, context):
    """Turn service errors into the ``{"error": ...}`` responses the views use"""
    if isinstance(exc, MarketplaceError):
        view = context.get('view')
        logger.warning(f"{type(exc).__name__} in {type(view).__name__}: {exc.message}")
        return Response({"error": exc.message}, status=exc.status_code)
    return exception_handler(exc, context)
