import logging

from rest_framework import viewsets, status
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.views import APIView
from rest_framework.exceptions import ValidationError
from django.db import transaction
from django.shortcuts import get_object_or_404
from drf_spectacular.utils import extend_schema, extend_schema_view, OpenApiResponse

from .models import Survey, Question, QuestionOption
from .serializers import (
    SurveyListSerializer,
    SurveyDetailSerializer,
    SurveyCreateSerializer,
    SurveyPermissionSerializer,
    QuestionSerializer,
    QuestionOptionSerializer,
    AccessCheckSerializer,
    AccessCheckResultSerializer,
)
from .messages import access_message
from .services import (
    SurveyAccessService,
    access_denied_response,
    get_open_survey,
    response_limit_response,
)
from audit.mixins import AuditLogMixin, snapshot, diff_snapshots
from audit.models import AuditLog
from users.permissions import (
    CanCreateSurvey,
    CanEditSurvey,
    CanDeleteSurvey,
    CanPublishSurvey,
    CanManageAccess,
    user_has_permission,
)

logger = logging.getLogger(__name__)


@extend_schema_view(
    list=extend_schema(
        tags=["Surveys"],
        summary="List surveys",
        description="""
        Retrieve a list of surveys based on user permissions.

        **Permission-based filtering:**
        - Users with `view_responses` permission can see all surveys
        - Other users only see surveys they created

        **Supports pagination** (default: 20 items per page)
        """
    ),
    create=extend_schema(
        tags=["Surveys"],
        summary="Create survey",
        description="""
        Create a new survey. Its access permission is created in the same
        transaction as `public` and inactive.

        **Required Permission:** `create_survey`

        **Next Steps:** After creation:
        1. Add questions (and options for choice questions)
        2. Configure access via `PUT /surveys/{id}/access/` (optional)
        3. Publish the survey to start accepting responses
        """
    ),
    retrieve=extend_schema(
        tags=["Surveys"],
        summary="Get survey details",
        description="Retrieve survey details including all questions and options."
    ),
    partial_update=extend_schema(
        tags=["Surveys"],
        summary="Update survey",
        description="""
        Update survey metadata (title, description, max_responses).

        **Required Permission:** `edit_survey` or be the survey creator

        **Note:** Use `publish` and `close` to change the status.
        """
    ),
    destroy=extend_schema(
        tags=["Surveys"],
        summary="Delete survey",
        description="""
        Permanently delete a survey with its questions, access policy and responses.

        **Required Permission:** `delete_survey` or be the survey creator
        """
    ),
)
class SurveyViewSet(AuditLogMixin, viewsets.ModelViewSet):
    """ViewSet for managing surveys."""
    permission_classes = [IsAuthenticated]
    http_method_names = ['get', 'post', 'put', 'patch', 'delete']

    def get_queryset(self):
        user = self.request.user
        queryset = Survey.objects.select_related('permission')

        if not user_has_permission(user, 'view_responses'):
            queryset = queryset.filter(created_by=user)

        return queryset

    def get_permissions(self):
        if self.action == 'create':
            return [IsAuthenticated(), CanCreateSurvey()]
        elif self.action in ('partial_update', 'close'):
            return [IsAuthenticated(), CanEditSurvey()]
        elif self.action == 'destroy':
            return [IsAuthenticated(), CanDeleteSurvey()]
        elif self.action == 'publish':
            return [IsAuthenticated(), CanPublishSurvey()]
        elif self.action == 'access':
            return [IsAuthenticated(), CanManageAccess()]
        return [IsAuthenticated()]

    def get_serializer_class(self):
        if self.action == 'list':
            return SurveyListSerializer
        elif self.action == 'create':
            return SurveyCreateSerializer
        elif self.action == 'access':
            return SurveyPermissionSerializer
        return SurveyDetailSerializer

    def update(self, request, *args, **kwargs):
        if not kwargs.get('partial'):
            return Response(
                {'detail': 'Use PATCH to update a survey.'},
                status=status.HTTP_405_METHOD_NOT_ALLOWED
            )
        return super().update(request, *args, **kwargs)

    def _set_status(self, survey, new_status, permission_active, audit_action):
        old_status = survey.status
        with transaction.atomic():
            survey.status = new_status
            survey.save(update_fields=['status', 'updated_at'])
            permission = SurveyAccessService().get_permission(survey)
            permission.is_active = permission_active
            permission.save()
        self._log_action(audit_action, survey, {'status': {'old': old_status, 'new': new_status}})
        logger.info("Survey %s is now %s", survey.id, new_status)

    @extend_schema(
        tags=["Surveys"],
        summary="Publish survey",
        description="""
        Change survey status to published and activate its access permission.

        **Required Permission:** `publish_survey` or be the survey creator

        **Prerequisites:** The survey needs at least one question.
        """,
        request=None,
    )
    @action(detail=True, methods=['post'])
    def publish(self, request, pk=None):
        survey = self.get_object()
        if survey.status == Survey.Status.PUBLISHED:
            return Response({'detail': 'Survey is already published'}, status=status.HTTP_400_BAD_REQUEST)
        if survey.status == Survey.Status.ARCHIVED:
            return Response({'detail': 'Archived surveys cannot be published'}, status=status.HTTP_400_BAD_REQUEST)
        if not survey.questions.exists():
            return Response({'detail': 'Add at least one question before publishing'}, status=status.HTTP_400_BAD_REQUEST)

        self._set_status(survey, Survey.Status.PUBLISHED, True, AuditLog.Action.PUBLISHED)
        return Response({'detail': 'Survey published successfully'})

    @extend_schema(
        tags=["Surveys"],
        summary="Close survey",
        description="""
        Change survey status to closed and deactivate its access permission.
        Existing responses remain accessible; new attempts are denied as `inactive`.

        **Required Permission:** `edit_survey` or be the survey creator
        """,
        request=None,
    )
    @action(detail=True, methods=['post'])
    def close(self, request, pk=None):
        survey = self.get_object()
        self._set_status(survey, Survey.Status.CLOSED, False, AuditLog.Action.CLOSED)
        return Response({'detail': 'Survey closed successfully'})

    @extend_schema(
        tags=["Survey Access"],
        summary="Get or replace the survey's access policy",
        description="""
        `GET` returns the current policy. `PUT` replaces it as a whole: fields that
        are omitted fall back to their defaults, except `password`, which keeps the
        stored password when omitted. Send `"password": null` to remove it.

        **Rules enforced:**
        - `restricted` requires a non-empty `allowed_emails`
        - `start_date` must be before `end_date`
        - emails are stored lowercased

        **Required Permission:** `manage_access` or be the survey creator
        """,
        request=SurveyPermissionSerializer,
        responses={200: SurveyPermissionSerializer},
    )
    @action(detail=True, methods=['get', 'put'])
    def access(self, request, pk=None):
        survey = self.get_object()
        permission = SurveyAccessService().get_permission(survey)

        if request.method == 'GET':
            return Response(SurveyPermissionSerializer(permission).data)

        if permission.pk is None:
            permission.save()

        before_state = snapshot(permission)
        serializer = SurveyPermissionSerializer(permission, data=request.data)
        serializer.is_valid(raise_exception=True)
        permission = serializer.save()

        changes = diff_snapshots(before_state, snapshot(permission))
        if changes:
            self._log_action(AuditLog.Action.UPDATED, permission, changes)
        logger.info(
            "Access policy of survey %s set to %s by user %s",
            survey.id, permission.permission_type, request.user.id
        )
        return Response(SurveyPermissionSerializer(permission).data)


class SurveyChildMixin(AuditLogMixin):
    """Shared lookup for viewsets nested under a survey."""
    permission_classes = [IsAuthenticated, CanEditSurvey]
    http_method_names = ['get', 'post', 'patch', 'delete']

    def get_survey(self):
        survey = get_object_or_404(Survey, id=self.kwargs['survey_pk'])
        # Non-owners without edit_survey get a 403 here
        self.check_object_permissions(self.request, survey)
        return survey

    def survey_filter(self, prefix):
        """Queryset filter kwargs limiting results to surveys the user may edit."""
        filters = {f'{prefix}survey_id': self.kwargs.get('survey_pk')}
        if not user_has_permission(self.request.user, 'edit_survey'):
            filters[f'{prefix}survey__created_by'] = self.request.user
        return filters


@extend_schema(tags=["Questions"])
class QuestionViewSet(SurveyChildMixin, viewsets.ModelViewSet):
    """ViewSet for managing questions within a survey."""
    serializer_class = QuestionSerializer

    def get_queryset(self):
        return Question.objects.filter(**self.survey_filter('')).prefetch_related('options')

    def perform_create(self, serializer):
        survey = self.get_survey()
        instance = serializer.save(survey=survey)
        self._log_action(AuditLog.Action.CREATED, instance)


@extend_schema(tags=["Questions"])
class QuestionOptionViewSet(SurveyChildMixin, viewsets.ModelViewSet):
    """ViewSet for managing options of a choice question."""
    serializer_class = QuestionOptionSerializer

    def get_queryset(self):
        return QuestionOption.objects.filter(
            question_id=self.kwargs.get('question_pk'),
            **self.survey_filter('question__')
        )

    def perform_create(self, serializer):
        survey = self.get_survey()
        question = get_object_or_404(Question, id=self.kwargs['question_pk'], survey=survey)
        if question.question_type not in Question.CHOICE_TYPES:
            raise ValidationError({'question': 'Only choice questions have options.'})

        instance = serializer.save(question=question)
        self._log_action(AuditLog.Action.CREATED, instance)


@extend_schema(
    tags=["Survey Access"],
    summary="Check access to a survey",
    description="""
    Evaluate the survey's access policy for the caller and, when allowed, return
    the survey with its questions.

    **Authentication**: optional. A JWT identifies the caller for `authenticated`
    and `restricted` surveys; anonymous callers of restricted surveys supply
    `email`. Password-protected surveys require `password`.

    **Denials** return `{allowed: false, reason, detail}`:
    - `401`: `authentication_required`, `password_required`
    - `403`: `inactive`, `not_yet_started`, `expired`, `password_incorrect`,
      `email_not_allowlisted`, `response_limit_reached`
    - `404`: survey does not exist or is a draft
    """,
    request=AccessCheckSerializer,
    responses={
        200: AccessCheckResultSerializer,
        401: OpenApiResponse(description="Authentication or password required"),
        403: OpenApiResponse(description="Access denied"),
        404: OpenApiResponse(description="Survey not found"),
    }
)
class SurveyAccessCheckView(APIView):
    permission_classes = [AllowAny]

    def post(self, request, survey_pk=None):
        survey = get_open_survey(survey_pk)

        serializer = AccessCheckSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        decision = SurveyAccessService().check(survey, request, serializer.validated_data)
        if not decision.allowed:
            return access_denied_response(decision)

        if survey.response_limit_reached():
            return response_limit_response()

        return Response({
            'allowed': True,
            'reason': decision.reason.value,
            'detail': access_message(decision.reason),
            'survey': SurveyDetailSerializer(survey).data,
        })
