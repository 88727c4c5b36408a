"""User-facing messages and HTTP statuses for access decisions."""
from django.utils.translation import gettext_lazy as _
from rest_framework import status

from .access import AccessReason

ACCESS_MESSAGES = {
    AccessReason.OK: _('You can take this survey.'),
    AccessReason.INACTIVE: _('This survey is not accepting responses.'),
    AccessReason.NOT_YET_STARTED: _('This survey has not opened yet.'),
    AccessReason.EXPIRED: _('This survey has closed.'),
    AccessReason.PASSWORD_REQUIRED: _('A password is required to access this survey.'),
    AccessReason.PASSWORD_INCORRECT: _('The password is incorrect.'),
    AccessReason.EMAIL_NOT_ALLOWLISTED: _('This email address is not allowed to access this survey.'),
    AccessReason.AUTHENTICATION_REQUIRED: _('Please sign in to access this survey.'),
}

ACCESS_STATUS_CODES = {
    AccessReason.OK: status.HTTP_200_OK,
    AccessReason.AUTHENTICATION_REQUIRED: status.HTTP_401_UNAUTHORIZED,
    AccessReason.PASSWORD_REQUIRED: status.HTTP_401_UNAUTHORIZED,
    AccessReason.PASSWORD_INCORRECT: status.HTTP_403_FORBIDDEN,
    AccessReason.EMAIL_NOT_ALLOWLISTED: status.HTTP_403_FORBIDDEN,
    AccessReason.INACTIVE: status.HTTP_403_FORBIDDEN,
    AccessReason.NOT_YET_STARTED: status.HTTP_403_FORBIDDEN,
    AccessReason.EXPIRED: status.HTTP_403_FORBIDDEN,
}

RESPONSE_LIMIT_REACHED = 'response_limit_reached'
RESPONSE_LIMIT_MESSAGE = _('This survey has reached its response limit.')


def access_message(reason: AccessReason) -> str:
    return str(ACCESS_MESSAGES[reason])


def access_status_code(reason: AccessReason) -> int:
    return ACCESS_STATUS_CODES[reason]
