import logging
import uuid
from datetime import timedelta
from rest_framework import viewsets, status, serializers, mixins
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.permissions import AllowAny, IsAuthenticated
from django.conf import settings
from django.db import transaction
from django.shortcuts import get_object_or_404
from django.utils import timezone
from django.utils.dateparse import parse_date
from drf_spectacular.utils import extend_schema, OpenApiParameter, OpenApiResponse
from drf_spectacular.types import OpenApiTypes

from .analytics import is_answered
from .charts import ChartType, validate_chart_config
from .models import SurveyResponse, Answer
from .serializers import (
    StartSubmissionSerializer,
    StartSubmissionResponseSerializer,
    SubmitAnswersSerializer,
    SubmitAnswersResponseSerializer,
    FinishSurveyResponseSerializer,
    SurveyResponseDetailSerializer,
    SurveyResponseListSerializer,
    SurveyAnalyticsSerializer,
    AnswerChartSerializer,
    InvitationRequestSerializer,
    InvitationResponseSerializer,
)
from .services import AnalyticsService
from .tasks import send_survey_invitations
from surveys.access import AccessDecision, AccessReason
from surveys.models import Survey, Question, SurveyPermission
from surveys.services import (
    SurveyAccessService,
    access_denied_response,
    get_open_survey,
    response_limit_response,
)
from users.permissions import CanViewResponses, CanViewAnalytics, CanPublishSurvey, user_has_permission
from users.views import get_client_ip

logger = logging.getLogger(__name__)

SESSION_TOKEN_PARAMETER = OpenApiParameter(
    name='X-Session-Token',
    type=OpenApiTypes.UUID,
    location=OpenApiParameter.HEADER,
    required=True,
    description='Session token obtained from starting a survey. Required for all submission endpoints.'
)


class SubmissionViewSet(viewsets.GenericViewSet):
    """
    ViewSet for handling survey submissions (public access).

    Flow:
    1. Start Survey -> access policy is evaluated, get session_token
    2. Submit Answers -> save answers using session_token
    3. Finish Survey -> complete submission
    """
    permission_classes = [AllowAny]

    def get_serializer_class(self):
        if self.action == 'submit_answers':
            return SubmitAnswersSerializer
        if self.action == 'start_survey':
            return StartSubmissionSerializer
        return serializers.Serializer

    def _get_in_progress_response(self, request):
        session_token = request.headers.get('X-Session-Token')
        if not session_token:
            return None, Response({'detail': 'X-Session-Token header required'}, status=status.HTTP_400_BAD_REQUEST)

        response = get_object_or_404(
            SurveyResponse.objects.select_related('survey'),
            session_token=session_token,
            status=SurveyResponse.Status.IN_PROGRESS
        )
        if response.survey.status != Survey.Status.PUBLISHED:
            return None, access_denied_response(AccessDecision.deny(AccessReason.INACTIVE))
        return response, None

    @extend_schema(
        tags=["Survey Submission"],
        summary="Start a new survey session",
        description="""
        **Step 1: Initialize Survey Session**

        Evaluates the survey's access policy with the supplied credentials and,
        when allowed, creates an `in_progress` response and returns its session token.

        **Authentication**: optional JWT. Restricted surveys accept either a signed-in
        user or an `email`; password-protected surveys require `password`.

        **Error Responses**:
        - `401` / `403`: access denied, body `{allowed, reason, detail}`
        - `403` with reason `response_limit_reached`: `max_responses` reached
        - `404`: survey not found or still a draft
        """,
        request=StartSubmissionSerializer,
        responses={
            201: StartSubmissionResponseSerializer,
            401: OpenApiResponse(description="Authentication or password required"),
            403: OpenApiResponse(description="Access denied"),
            404: OpenApiResponse(description="Survey not found"),
        }
    )
    @action(detail=False, methods=['post'], url_path='start')
    def start_survey(self, request, survey_pk=None):
        survey = get_open_survey(survey_pk)

        serializer = StartSubmissionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        access = SurveyAccessService()
        attempt = access.build_attempt(request, serializer.validated_data)
        decision = access.evaluate(survey, attempt)
        if not decision.allowed:
            return access_denied_response(decision)

        with transaction.atomic():
            # Lock the survey row so concurrent starts cannot overshoot max_responses
            Survey.objects.select_for_update().filter(id=survey.id).first()
            if survey.response_limit_reached():
                return response_limit_response()

            session_token = str(uuid.uuid4())
            response = SurveyResponse.objects.create(
                survey=survey,
                respondent=request.user if request.user.is_authenticated else None,
                respondent_email=(attempt.effective_email or '').lower(),
                session_token=session_token,
                status=SurveyResponse.Status.IN_PROGRESS,
                ip_address=get_client_ip(request),
                user_agent=request.META.get('HTTP_USER_AGENT', '')[:500],
                metadata=serializer.validated_data.get('metadata', {}),
            )

        AnalyticsService().invalidate_survey_cache(survey.id)

        return Response({
            'session_token': session_token,
            'response_id': str(response.id),
        }, status=status.HTTP_201_CREATED)

    def _validate_answer(self, question, value):
        """
        Validate answer value against question type.
        Returns (is_valid, error_message).
        """
        if not is_answered(value):
            return True, None  # Empty values handled by is_required check on finish

        question_type = question.question_type
        question_settings = question.settings or {}

        if question_type in (Question.QuestionType.TEXT, Question.QuestionType.TEXTAREA, Question.QuestionType.FILE):
            if not isinstance(value, str):
                return False, "Value must be a string"
            max_length = question_settings.get('max_length')
            if max_length and len(value) > max_length:
                return False, f"Value must be at most {max_length} characters"

        elif question_type == Question.QuestionType.SINGLE_CHOICE:
            if not isinstance(value, str) or not question.options.filter(value=value).exists():
                return False, f"Value '{value}' is not a valid option"

        elif question_type == Question.QuestionType.MULTIPLE_CHOICE:
            if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
                return False, "Value must be a list of option values"
            valid = set(question.options.values_list('value', flat=True))
            invalid = [v for v in value if v not in valid]
            if invalid:
                return False, f"Values {invalid} are not valid options"

        elif question_type == Question.QuestionType.RATING:
            low, high = question_settings.get('min', 1), question_settings.get('max', 5)
            if isinstance(value, bool) or not isinstance(value, int) or not low <= value <= high:
                return False, f"Value must be an integer between {low} and {high}"

        elif question_type == Question.QuestionType.DATE:
            try:
                parsed = parse_date(value) if isinstance(value, str) else None
            except ValueError:
                parsed = None
            if parsed is None:
                return False, f"Value '{value}' is not a valid date (YYYY-MM-DD)"

        elif question_type == Question.QuestionType.MATRIX:
            if not isinstance(value, dict):
                return False, "Value must be an object mapping rows to columns"

        return True, None

    @extend_schema(
        tags=["Survey Submission"],
        summary="Submit answers",
        description="""
        **Step 2: Save Answers**

        Validates and saves answers for questions of the survey. Answers can be
        submitted in several calls; re-submitting a question replaces its answer.

        **Validation**:
        1. Session token exists and the response is `in_progress`
        2. Every question belongs to the survey
        3. Values match the question type (options, rating range, ISO dates)

        Required questions are enforced when finishing, not here.
        """,
        parameters=[SESSION_TOKEN_PARAMETER],
        request=SubmitAnswersSerializer,
        responses={
            200: SubmitAnswersResponseSerializer,
            400: OpenApiResponse(description="Validation error, body `{status, errors}`"),
            404: OpenApiResponse(description="Session not found"),
        }
    )
    @action(detail=False, methods=['post'], url_path='answers')
    def submit_answers(self, request):
        response, error = self._get_in_progress_response(request)
        if error is not None:
            return error

        serializer = SubmitAnswersSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        answers_data = serializer.validated_data['answers']

        questions = {
            str(q.id): q
            for q in Question.objects.filter(survey=response.survey).prefetch_related('options')
        }

        validation_errors = {}
        for answer in answers_data:
            question_id = str(answer['question_id'])
            question = questions.get(question_id)
            if question is None:
                validation_errors[question_id] = "Question does not belong to this survey."
                continue

            is_valid, error_message = self._validate_answer(question, answer['value'])
            if not is_valid:
                validation_errors[question_id] = error_message

        if validation_errors:
            return Response({
                'status': 'error',
                'errors': validation_errors
            }, status=status.HTTP_400_BAD_REQUEST)

        with transaction.atomic():
            for answer in answers_data:
                Answer.objects.update_or_create(
                    response=response,
                    question_id=answer['question_id'],
                    defaults={
                        'value': answer['value'],
                        'time_spent_seconds': answer.get('time_spent_seconds'),
                    }
                )

        AnalyticsService().invalidate_survey_cache(response.survey_id)

        answered = sum(1 for a in response.answers.all() if is_answered(a.value))
        return Response({
            'status': 'success',
            'message': 'Answers saved successfully',
            'answered': answered,
            'total_questions': len(questions),
        }, status=status.HTTP_200_OK)

    @extend_schema(
        tags=["Survey Submission"],
        summary="Finish survey",
        description="""
        **Step 3: Complete Submission**

        Marks the response as completed. Fails with `400` and the missing
        question ids if a required question has no answer.
        """,
        parameters=[SESSION_TOKEN_PARAMETER],
        request=None,
        responses={
            200: FinishSurveyResponseSerializer,
            400: OpenApiResponse(description="Missing header or required questions unanswered"),
            404: OpenApiResponse(description="Session not found"),
        }
    )
    @action(detail=False, methods=['post'], url_path='finish')
    def finish_survey(self, request):
        response, error = self._get_in_progress_response(request)
        if error is not None:
            return error

        answered = {
            str(a.question_id) for a in response.answers.all() if is_answered(a.value)
        }
        missing = {
            str(q.id): "This question is required."
            for q in response.survey.questions.filter(is_required=True)
            if str(q.id) not in answered
        }
        if missing:
            return Response({
                'status': 'error',
                'errors': missing
            }, status=status.HTTP_400_BAD_REQUEST)

        response.status = SurveyResponse.Status.COMPLETED
        response.completed_at = timezone.now()
        response.save(update_fields=['status', 'completed_at'])

        AnalyticsService().invalidate_survey_cache(response.survey_id)

        return Response({
            'message': 'Survey completed successfully',
            'completed_at': response.completed_at
        })


class ResponseViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """
    ViewSet for viewing survey responses and analytics (requires RBAC permissions
    or survey ownership).

    Endpoints:
    - GET /surveys/{survey_id}/responses/ - List responses for a survey
    - GET /responses/{response_id}/ - Get single response details
    - GET /surveys/{survey_id}/responses/analytics/ - Aggregated analytics
    - GET /surveys/{survey_id}/responses/charts/{question_id}/ - Answer distribution chart
    - POST /surveys/{survey_id}/invitations/ - Queue invitation emails
    """
    permission_classes = [IsAuthenticated]
    serializer_class = SurveyResponseListSerializer

    def get_queryset(self):
        user = self.request.user
        queryset = SurveyResponse.objects.select_related('survey', 'respondent')

        if not user_has_permission(user, 'view_responses'):
            queryset = queryset.filter(survey__created_by=user)

        return queryset

    def get_serializer_class(self):
        if self.action == 'retrieve':
            return SurveyResponseDetailSerializer
        return SurveyResponseListSerializer

    def get_permissions(self):
        if self.action in ('analytics', 'charts'):
            return [IsAuthenticated(), CanViewAnalytics()]
        if self.action == 'send_invitations':
            return [IsAuthenticated(), CanPublishSurvey()]
        return [IsAuthenticated(), CanViewResponses()]

    def _get_survey(self, survey_pk):
        """Fetch the survey and run the object-level permission check on it."""
        survey = get_object_or_404(Survey.objects.select_related('permission'), id=survey_pk)
        self.check_object_permissions(self.request, survey)
        return survey

    @extend_schema(
        tags=["Response Management"],
        summary="List responses for a survey",
        parameters=[
            OpenApiParameter(
                name='status',
                type=OpenApiTypes.STR,
                location=OpenApiParameter.QUERY,
                required=False,
                description='Filter by status: in_progress or completed'
            ),
            OpenApiParameter(
                name='start_date',
                type=OpenApiTypes.DATE,
                location=OpenApiParameter.QUERY,
                required=False,
                description='Filter responses started on or after this date (YYYY-MM-DD)'
            ),
            OpenApiParameter(
                name='end_date',
                type=OpenApiTypes.DATE,
                location=OpenApiParameter.QUERY,
                required=False,
                description='Filter responses started on or before this date (YYYY-MM-DD)'
            ),
            OpenApiParameter(
                name='ordering',
                type=OpenApiTypes.STR,
                location=OpenApiParameter.QUERY,
                required=False,
                description='Order by: started_at, completed_at, -started_at, -completed_at'
            ),
        ],
        responses={
            200: SurveyResponseListSerializer(many=True),
            403: OpenApiResponse(description='Permission denied'),
            404: OpenApiResponse(description='Survey not found'),
        }
    )
    def list(self, request, survey_pk=None):
        survey = self._get_survey(survey_pk)
        queryset = SurveyResponse.objects.filter(survey=survey).select_related('survey', 'respondent')

        status_filter = request.query_params.get('status')
        if status_filter:
            if status_filter not in SurveyResponse.Status.values:
                return Response({'detail': f'Unknown status "{status_filter}"'}, status=status.HTTP_400_BAD_REQUEST)
            queryset = queryset.filter(status=status_filter)

        start_date, end_date, error = _parse_date_range(request)
        if error is not None:
            return error
        if start_date:
            queryset = queryset.filter(started_at__date__gte=start_date)
        if end_date:
            queryset = queryset.filter(started_at__date__lte=end_date)

        ordering = request.query_params.get('ordering', '-started_at')
        if ordering.lstrip('-') not in ('started_at', 'completed_at'):
            ordering = '-started_at'
        queryset = queryset.order_by(ordering)

        page = self.paginate_queryset(queryset)
        if page is not None:
            serializer = self.get_serializer(page, many=True)
            return self.get_paginated_response(serializer.data)

        serializer = self.get_serializer(queryset, many=True)
        return Response(serializer.data)

    @extend_schema(
        tags=["Response Management"],
        summary="Get single response details",
        responses={
            200: SurveyResponseDetailSerializer,
            403: OpenApiResponse(description='Permission denied'),
            404: OpenApiResponse(description='Response not found'),
        }
    )
    def retrieve(self, request, pk=None):
        response = get_object_or_404(self.get_queryset(), pk=pk)
        self.check_object_permissions(request, response)
        serializer = self.get_serializer(response)
        return Response(serializer.data)

    @extend_schema(
        tags=["Analytics"],
        summary="Get survey analytics",
        description="""
        Aggregated statistics for a survey: response counts, completion rate and
        times, response velocity, per-question response and drop-off rates,
        demographics (device, location, age) and daily trends of completed responses.

        Trends cover `start_date`..`end_date` (default: the last 30 days), one
        point per day including days without responses.
        Ranges longer than `ANALYTICS_MAX_TREND_DAYS` (default 366) are rejected.

        Results are cached briefly and refreshed whenever a response changes.
        """,
        parameters=[
            OpenApiParameter(
                name='start_date',
                type=OpenApiTypes.DATE,
                location=OpenApiParameter.QUERY,
                required=False,
                description='First day of the trend range (YYYY-MM-DD)'
            ),
            OpenApiParameter(
                name='end_date',
                type=OpenApiTypes.DATE,
                location=OpenApiParameter.QUERY,
                required=False,
                description='Last day of the trend range (YYYY-MM-DD)'
            ),
        ],
        responses={
            200: SurveyAnalyticsSerializer,
            400: OpenApiResponse(description='Invalid date range'),
            403: OpenApiResponse(description='Permission denied'),
            404: OpenApiResponse(description='Survey not found'),
        }
    )
    def analytics(self, request, survey_pk=None):
        survey = self._get_survey(survey_pk)

        start_date, end_date, error = _parse_date_range(request, max_days=settings.ANALYTICS_MAX_TREND_DAYS)
        if error is not None:
            return error

        analytics = AnalyticsService().get_survey_analytics(survey, start_date, end_date)
        return Response(analytics)

    @extend_schema(
        tags=["Analytics"],
        summary="Get the answer distribution chart of a question",
        description="""
        Counts of each answer value for one question, shaped for the requested
        chart `type` (line, bar, pie, scatter, funnel, likert, heatmap, wordcloud).

        Points are sanitized, validated for the chart type and then sorted and
        formatted (pie charts are ordered by value, largest first). Data that is
        not valid for the chart type yields an empty chart with `has_data: false`.
        """,
        parameters=[
            OpenApiParameter(
                name='type',
                type=OpenApiTypes.STR,
                location=OpenApiParameter.QUERY,
                required=False,
                description='Chart type (default: bar)'
            ),
        ],
        responses={
            200: AnswerChartSerializer,
            400: OpenApiResponse(description='Unknown chart type'),
            403: OpenApiResponse(description='Permission denied'),
            404: OpenApiResponse(description='Survey or question not found'),
        }
    )
    def charts(self, request, survey_pk=None, question_pk=None):
        survey = self._get_survey(survey_pk)
        question = get_object_or_404(Question, id=question_pk, survey=survey)

        config = {'type': request.query_params.get('type', ChartType.BAR.value)}
        if not validate_chart_config(config):
            return Response(
                {'detail': f'Unknown chart type "{config["type"]}"'},
                status=status.HTTP_400_BAD_REQUEST
            )

        chart = AnalyticsService().get_answer_chart(question, ChartType(config['type']))
        return Response(chart)

    @extend_schema(
        tags=["Response Management"],
        summary="Send batch survey invitations",
        description="""
        Send survey invitations to a list of email addresses.

        **Permission**: Requires `publish_survey` permission or survey ownership.

        **Features**:
        - Emails are sent asynchronously via Celery
        - Duplicate emails are removed, addresses are lowercased
        - Restricted surveys only accept addresses on their allowlist
        - Creates an Invitation record per email sent
        - Maximum 1000 recipients per request
        """,
        request=InvitationRequestSerializer,
        responses={
            202: InvitationResponseSerializer,
            400: OpenApiResponse(description='Invalid request body, survey not published or emails not allowlisted'),
            403: OpenApiResponse(description='Permission denied'),
            404: OpenApiResponse(description='Survey not found'),
        }
    )
    def send_invitations(self, request, survey_pk=None):
        survey = self._get_survey(survey_pk)
        if survey.status != Survey.Status.PUBLISHED:
            return Response(
                {'detail': 'Only published surveys can send invitations'},
                status=status.HTTP_400_BAD_REQUEST
            )

        serializer = InvitationRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        emails = serializer.validated_data['emails']

        permission = SurveyAccessService().get_permission(survey)
        if permission.permission_type == SurveyPermission.PermissionType.RESTRICTED:
            allowed = set(permission.allowed_emails)
            not_allowed = [email for email in emails if email not in allowed]
            if not_allowed:
                return Response(
                    {'emails': [f'{email} is not on the allowlist of this survey' for email in not_allowed]},
                    status=status.HTTP_400_BAD_REQUEST
                )

        send_survey_invitations.delay(
            survey_id=str(survey.id),
            emails=emails,
            sent_by_user_id=str(request.user.id)
        )
        logger.info("Queued %d invitations for survey %s", len(emails), survey.id)

        response_data = {
            'message': f'Sending invitations to {len(emails)} recipients',
            'survey': survey.title,
            'recipient_count': len(emails)
        }

        return Response(
            InvitationResponseSerializer(response_data).data,
            status=status.HTTP_202_ACCEPTED
        )


def _parse_date_range(request, max_days=None):
    """
    Read `start_date`/`end_date` query params. Returns (start, end, error_response).

    With `max_days`, a range longer than that many days is rejected; a missing
    bound counts as today.
    """
    values = {}
    for name in ('start_date', 'end_date'):
        raw = request.query_params.get(name)
        if not raw:
            values[name] = None
            continue
        try:
            values[name] = parse_date(raw)
        except ValueError:
            values[name] = None
        if values[name] is None:
            return None, None, Response(
                {name: 'Use the YYYY-MM-DD format.'},
                status=status.HTTP_400_BAD_REQUEST
            )

    start, end = values['start_date'], values['end_date']
    if start and end and start > end:
        return None, None, Response(
            {'end_date': 'The end date must not be before the start date.'},
            status=status.HTTP_400_BAD_REQUEST
        )
    today = timezone.localdate()
    if max_days and (start or end) and (end or today) - (start or today) >= timedelta(days=max_days):
        return None, None, Response(
            {'end_date': f'The date range must not exceed {max_days} days.'},
            status=status.HTTP_400_BAD_REQUEST
        )
    return start, end, None
