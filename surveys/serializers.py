from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import serializers
from drf_spectacular.utils import extend_schema_field

from .models import Survey, Question, QuestionOption, SurveyPermission, validate_permission_config


class QuestionOptionSerializer(serializers.ModelSerializer):
    """Serializer for choice options."""

    class Meta:
        model = QuestionOption
        fields = ['id', 'label', 'value', 'order']
        read_only_fields = ['id']


class QuestionSerializer(serializers.ModelSerializer):
    """Serializer for survey questions."""
    options = QuestionOptionSerializer(many=True, read_only=True)

    class Meta:
        model = Question
        fields = ['id', 'text', 'question_type', 'is_required', 'order', 'settings', 'options']
        read_only_fields = ['id']

    def validate_settings(self, value):
        if not isinstance(value, dict):
            raise serializers.ValidationError('Settings must be an object.')
        return value

    def validate(self, attrs):
        question_type = attrs.get('question_type', getattr(self.instance, 'question_type', None))
        settings = attrs.get('settings', getattr(self.instance, 'settings', None)) or {}

        if question_type == Question.QuestionType.RATING:
            low = settings.get('min', 1)
            high = settings.get('max', 5)
            if not isinstance(low, int) or not isinstance(high, int) or low >= high:
                raise serializers.ValidationError(
                    {'settings': 'Rating questions need integer "min" < "max".'}
                )
        return attrs


class SurveyListSerializer(serializers.ModelSerializer):
    """Serializer for listing surveys (minimal data)."""
    questions_count = serializers.SerializerMethodField()
    responses_count = serializers.SerializerMethodField()
    permission_type = serializers.CharField(source='permission.permission_type', read_only=True, default=None)

    class Meta:
        model = Survey
        fields = [
            'id', 'title', 'description', 'status', 'permission_type',
            'created_at', 'updated_at', 'questions_count', 'responses_count'
        ]
        read_only_fields = fields

    @extend_schema_field(serializers.IntegerField)
    def get_questions_count(self, obj):
        return obj.questions.count()

    @extend_schema_field(serializers.IntegerField)
    def get_responses_count(self, obj):
        return obj.responses.count()


class SurveyDetailSerializer(serializers.ModelSerializer):
    """Survey with its questions and options embedded."""
    questions = QuestionSerializer(many=True, read_only=True)

    class Meta:
        model = Survey
        fields = [
            'id', 'title', 'description', 'status', 'max_responses',
            'created_at', 'updated_at', 'questions'
        ]
        read_only_fields = ['id', 'status', 'created_at', 'updated_at']


class SurveyCreateSerializer(serializers.ModelSerializer):
    """Creates the survey and its (inactive, public) permission together."""

    class Meta:
        model = Survey
        fields = ['id', 'title', 'description', 'max_responses']
        read_only_fields = ['id']

    def create(self, validated_data):
        validated_data['created_by'] = self.context['request'].user
        return Survey.objects.create_with_permission(**validated_data)


class SurveyPermissionSerializer(serializers.ModelSerializer):
    """
    Read/replace the access policy of a survey.

    `password` is write-only: omitted keeps the stored hash, null or an empty
    string removes the password gate. The hash itself is never returned.
    """
    password = serializers.CharField(
        write_only=True,
        required=False,
        allow_null=True,
        allow_blank=True,
        trim_whitespace=False,
        max_length=128,
    )
    allowed_emails = serializers.ListField(
        child=serializers.CharField(max_length=254),
        required=False,
        default=list,
    )
    requires_password = serializers.SerializerMethodField()

    class Meta:
        model = SurveyPermission
        fields = [
            'permission_type', 'allowed_emails', 'password', 'requires_password',
            'start_date', 'end_date', 'is_active', 'updated_at'
        ]
        read_only_fields = ['is_active', 'updated_at']
        extra_kwargs = {
            'permission_type': {'required': True},
            'start_date': {'required': False},
            'end_date': {'required': False},
        }

    @extend_schema_field(serializers.BooleanField)
    def get_requires_password(self, obj):
        return bool(obj.password_hash)

    def validate(self, attrs):
        try:
            attrs['allowed_emails'] = validate_permission_config(
                attrs.get('permission_type'),
                attrs.get('allowed_emails'),
                attrs.get('start_date'),
                attrs.get('end_date'),
            )
        except DjangoValidationError as exc:
            raise serializers.ValidationError(exc.message_dict)
        return attrs

    def update(self, instance, validated_data):
        # Replace semantics: anything not supplied falls back to its default
        instance.permission_type = validated_data['permission_type']
        instance.allowed_emails = validated_data['allowed_emails']
        instance.start_date = validated_data.get('start_date')
        instance.end_date = validated_data.get('end_date')
        if 'password' in validated_data:
            instance.set_password(validated_data['password'])
        instance.save()
        return instance


class AccessCheckSerializer(serializers.Serializer):
    """Credentials a respondent may supply when opening a survey."""
    email = serializers.EmailField(required=False, allow_blank=True)
    password = serializers.CharField(required=False, allow_blank=True, trim_whitespace=False)
    access_token = serializers.CharField(required=False, allow_blank=True)


class AccessCheckResultSerializer(serializers.Serializer):
    allowed = serializers.BooleanField()
    reason = serializers.CharField()
    detail = serializers.CharField()
    survey = SurveyDetailSerializer(required=False)
