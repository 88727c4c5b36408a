from rest_framework import serializers
from drf_spectacular.utils import extend_schema_field

from .models import SurveyResponse, Answer


class StartSubmissionSerializer(serializers.Serializer):
    """
    Request serializer for starting a survey session.

    **Fields** (all optional):
    - `email`: identity for restricted surveys when not signed in
    - `password`: for password-protected surveys
    - `access_token`: link token, carried through but not checked
    - `metadata`: self-reported respondent data, e.g. `{"location": "FR", "age": 31}`
    """
    email = serializers.EmailField(required=False, allow_blank=True)
    password = serializers.CharField(required=False, allow_blank=True, trim_whitespace=False)
    access_token = serializers.CharField(required=False, allow_blank=True)
    metadata = serializers.DictField(required=False, default=dict)

    def validate_metadata(self, value):
        allowed = {'location', 'age', 'age_bracket'}
        unknown = set(value) - allowed
        if unknown:
            raise serializers.ValidationError(
                f"Unsupported metadata keys: {', '.join(sorted(unknown))}"
            )
        return value


class StartSubmissionResponseSerializer(serializers.Serializer):
    session_token = serializers.UUIDField()
    response_id = serializers.UUIDField()


class AnswerInputSerializer(serializers.Serializer):
    """
    A single answer.

    **Value format by question type**:
    - text / textarea / file: `"text"`
    - single_choice: `"option_value"`
    - multiple_choice: `["option1", "option2"]`
    - rating: `4`
    - date: `"2024-01-15"`
    - matrix: `{"row": "column"}`
    """
    question_id = serializers.UUIDField(help_text="UUID of the question being answered")
    value = serializers.JSONField(allow_null=True, help_text="Answer value (format depends on question type)")
    time_spent_seconds = serializers.FloatField(
        required=False,
        allow_null=True,
        min_value=0,
        help_text="Seconds the respondent spent on this question"
    )


class SubmitAnswersSerializer(serializers.Serializer):
    answers = AnswerInputSerializer(many=True, allow_empty=False)


class SubmitAnswersResponseSerializer(serializers.Serializer):
    status = serializers.CharField()
    message = serializers.CharField()
    answered = serializers.IntegerField()
    total_questions = serializers.IntegerField()


class FinishSurveyResponseSerializer(serializers.Serializer):
    """Response serializer for finish survey endpoint."""
    message = serializers.CharField()
    completed_at = serializers.DateTimeField()


# ============ RESPONSE MANAGEMENT SERIALIZERS ============

class AnswerDetailSerializer(serializers.ModelSerializer):
    question_id = serializers.UUIDField(source='question.id', read_only=True)
    question_text = serializers.CharField(source='question.text', read_only=True)
    question_type = serializers.CharField(source='question.question_type', read_only=True)

    class Meta:
        model = Answer
        fields = ['question_id', 'question_text', 'question_type', 'value', 'time_spent_seconds', 'answered_at']


class RespondentSerializer(serializers.Serializer):
    """Respondent information (if authenticated)."""
    id = serializers.UUIDField(help_text="User UUID")
    email = serializers.EmailField(help_text="User email")


class SurveyResponseListSerializer(serializers.ModelSerializer):
    """Lightweight serializer for list views with summary information."""
    respondent = serializers.SerializerMethodField(help_text="Respondent information (if authenticated)")
    answers_count = serializers.SerializerMethodField(help_text="Number of answers submitted")

    class Meta:
        model = SurveyResponse
        fields = [
            'id', 'survey', 'respondent', 'respondent_email', 'status',
            'started_at', 'completed_at', 'answers_count'
        ]

    @extend_schema_field(RespondentSerializer(allow_null=True))
    def get_respondent(self, obj):
        if obj.respondent:
            return RespondentSerializer({
                'id': obj.respondent.id,
                'email': obj.respondent.email
            }).data
        return None

    @extend_schema_field(serializers.IntegerField)
    def get_answers_count(self, obj):
        return obj.answers.count()


class SurveyResponseDetailSerializer(SurveyResponseListSerializer):
    """Response with every answer, in question order."""
    answers = serializers.SerializerMethodField()

    class Meta(SurveyResponseListSerializer.Meta):
        fields = SurveyResponseListSerializer.Meta.fields + ['user_agent', 'metadata', 'answers']

    @extend_schema_field(AnswerDetailSerializer(many=True))
    def get_answers(self, obj):
        answers = obj.answers.select_related('question').order_by('question__order')
        return AnswerDetailSerializer(answers, many=True).data


# ============ ANALYTICS SERIALIZERS ============

class QuestionMetricSerializer(serializers.Serializer):
    question_id = serializers.CharField()
    question_text = serializers.CharField()
    answered_count = serializers.IntegerField()
    skipped_count = serializers.IntegerField()
    response_rate = serializers.FloatField(help_text="Share of responses that answered this question (0-100)")
    drop_off_rate = serializers.FloatField(help_text="100 minus the next question's response rate; 0 for the last question")
    avg_time = serializers.FloatField(allow_null=True, help_text="Mean seconds spent, null without timings")


class TrendPointSerializer(serializers.Serializer):
    date = serializers.DateField()
    value = serializers.IntegerField()
    label = serializers.CharField()


class SurveyAnalyticsSerializer(serializers.Serializer):
    """
    Serializer for survey-level analytics.

    Documents the payload of the analytics endpoint; percentages are 0-100
    and durations are in seconds.
    """
    survey_id = serializers.UUIDField(help_text="UUID of the survey")
    survey_title = serializers.CharField(help_text="Survey title")
    total_responses = serializers.IntegerField(help_text="Total number of responses (completed + in progress)")
    completed_responses = serializers.IntegerField(help_text="Number of completed responses")
    in_progress_responses = serializers.IntegerField(help_text="Number of in-progress responses")
    completion_rate = serializers.FloatField(help_text="Completion rate percentage (0-100)")
    avg_completion_time = serializers.FloatField(help_text="Mean completion time of completed responses (0 if none)")
    median_completion_time = serializers.FloatField()
    response_velocity = serializers.FloatField(help_text="Completed responses per day")
    last_response_at = serializers.DateTimeField(
        allow_null=True,
        help_text="Timestamp of most recent response (null if no responses)"
    )
    question_metrics = QuestionMetricSerializer(many=True)
    demographics = serializers.DictField(
        child=serializers.DictField(child=serializers.IntegerField()),
        help_text="Counts per category for the device, location and age dimensions"
    )
    time_distribution = serializers.DictField(child=serializers.IntegerField())
    trends = TrendPointSerializer(many=True)


class ChartPointSerializer(serializers.Serializer):
    x = serializers.JSONField()
    y = serializers.FloatField()
    label = serializers.CharField(allow_null=True)


class ChartSeriesSerializer(serializers.Serializer):
    id = serializers.CharField()
    name = serializers.CharField()
    color = serializers.CharField(allow_null=True)
    data = ChartPointSerializer(many=True)


class AnswerChartSerializer(serializers.Serializer):
    type = serializers.CharField()
    has_data = serializers.BooleanField()
    title = serializers.CharField(allow_null=True)
    series = ChartSeriesSerializer(many=True)


# ============ INVITATION SERIALIZERS ============

class InvitationRequestSerializer(serializers.Serializer):
    """
    Request serializer for sending batch survey invitations.

    **Validation**:
    - At least one email must be provided
    - Maximum 1000 emails per request
    - All emails must be valid email format
    """
    emails = serializers.ListField(
        child=serializers.EmailField(),
        min_length=1,
        max_length=1000,
        help_text="List of email addresses to send invitations to (max 1000)"
    )

    def validate_emails(self, value):
        """Remove duplicates and normalize to lowercase, keeping the given order."""
        return list(dict.fromkeys(email.strip().lower() for email in value))


class InvitationResponseSerializer(serializers.Serializer):
    """
    Response serializer for batch invitation endpoint.

    Returned with 202 Accepted status when invitations are queued.
    """
    message = serializers.CharField(help_text="Status message")
    survey = serializers.CharField(help_text="Survey title")
    recipient_count = serializers.IntegerField(help_text="Number of recipients queued for invitation")
