"""
Service layer between the HTTP views and the pure access evaluator.

Views hand over the request and the credentials the respondent supplied; the
service resolves the stored permission, the signed-in identity and the
current time, then asks `evaluate_access` for a decision.
"""
import logging
from typing import Optional

from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework import status
from rest_framework.response import Response

from .access import AccessAttempt, AccessDecision, evaluate_access
from .messages import (
    RESPONSE_LIMIT_MESSAGE,
    RESPONSE_LIMIT_REACHED,
    access_message,
    access_status_code,
)
from .models import Survey, SurveyPermission

logger = logging.getLogger(__name__)


class SurveyAccessService:
    """Evaluate access attempts against a survey's stored permission."""

    def build_attempt(self, request, credentials: Optional[dict] = None, now=None) -> AccessAttempt:
        credentials = credentials or {}
        user = getattr(request, 'user', None)
        signed_in = bool(user and user.is_authenticated)

        return AccessAttempt(
            now=now or timezone.now(),
            supplied_email=credentials.get('email') or None,
            supplied_password=credentials.get('password') or None,
            supplied_access_token=credentials.get('access_token') or None,
            authenticated_user_id=str(user.id) if signed_in else None,
            authenticated_email=user.email if signed_in else None,
        )

    def get_permission(self, survey: Survey) -> SurveyPermission:
        try:
            return survey.permission
        except SurveyPermission.DoesNotExist:
            # Surveys created outside create_with_permission; treat as closed
            logger.warning("Survey %s has no access permission record", survey.id)
            return SurveyPermission(survey=survey, is_active=False)

    def check(self, survey: Survey, request, credentials: Optional[dict] = None) -> AccessDecision:
        return self.evaluate(survey, self.build_attempt(request, credentials))

    def evaluate(self, survey: Survey, attempt: AccessAttempt) -> AccessDecision:
        permission = self.get_permission(survey)
        decision = evaluate_access(permission.to_policy(), attempt)

        if not decision.allowed:
            logger.info(
                "Access to survey %s denied: %s (type=%s, signed_in=%s)",
                survey.id,
                decision.reason.value,
                permission.permission_type,
                attempt.is_authenticated,
            )
        return decision


def access_denied_response(decision: AccessDecision) -> Response:
    """Render a denial as `{allowed, detail, reason}` with the reason's status code."""
    return Response(
        {
            'allowed': False,
            'detail': access_message(decision.reason),
            'reason': decision.reason.value,
        },
        status=access_status_code(decision.reason),
    )


def response_limit_response() -> Response:
    return Response(
        {
            'allowed': False,
            'detail': str(RESPONSE_LIMIT_MESSAGE),
            'reason': RESPONSE_LIMIT_REACHED,
        },
        status=status.HTTP_403_FORBIDDEN,
    )


def get_open_survey(survey_pk) -> Survey:
    """Surveys respondents can reach: published or closed. Drafts stay hidden."""
    return get_object_or_404(
        Survey.objects.select_related('permission'),
        id=survey_pk,
        status__in=[Survey.Status.PUBLISHED, Survey.Status.CLOSED],
    )
