"""
Custom exception handler for DRF to catch model validation, database and
other unhandled errors and return them as JSON.
"""
import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


def custom_exception_handler(exc, context):
    """
    Custom exception handler that converts errors DRF does not know about
    into JSON responses.
    """
    response = exception_handler(exc, context)

    if response is not None:
        return response

    # Model-level invariant violations (e.g. SurveyPermission.clean)
    if isinstance(exc, DjangoValidationError):
        if hasattr(exc, 'message_dict'):
            detail = exc.message_dict
        else:
            detail = {'detail': exc.messages}
        return Response(detail, status=status.HTTP_400_BAD_REQUEST)

    if isinstance(exc, IntegrityError):
        error_message = str(exc).lower()

        if 'unique' in error_message or 'duplicate key' in error_message:
            if 'order' in error_message:
                detail = "A record with this order already exists. Please use a different order value."
            else:
                detail = "A record with this value already exists. Please use a different value."
        elif 'foreign key' in error_message:
            detail = "Referenced record does not exist."
        elif 'not null' in error_message or 'not-null' in error_message:
            detail = "Required field is missing."
        else:
            detail = "Database constraint violation. Please check your data."

        logger.info("Integrity error in %s: %s", context.get('view').__class__.__name__, exc)
        return Response(
            {"detail": detail, "error_type": "integrity_error"},
            status=status.HTTP_400_BAD_REQUEST
        )

    logger.exception("Unhandled error in %s", context.get('view').__class__.__name__)
    return Response(
        {"detail": "An unexpected error occurred.", "error_type": "server_error"},
        status=status.HTTP_500_INTERNAL_SERVER_ERROR
    )
