import uuid
from django.db import models
from django.conf import settings
from surveys.models import Survey, Question


class SurveyResponse(models.Model):
    """
    A single respondent's submission (complete or partial) to a survey.
    Anonymous respondents are identified by `session_token`.
    """
    class Status(models.TextChoices):
        IN_PROGRESS = 'in_progress', 'In Progress'
        COMPLETED = 'completed', 'Completed'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    survey = models.ForeignKey(
        Survey,
        on_delete=models.CASCADE,
        related_name='responses'
    )
    respondent = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='survey_responses',
        help_text='Authenticated user (if logged in)'
    )
    respondent_email = models.EmailField(
        blank=True,
        help_text='Email the respondent was admitted with (restricted surveys)'
    )
    session_token = models.CharField(
        max_length=255,
        blank=True,
        null=True,
        db_index=True,
        help_text='For anonymous/resumable sessions'
    )
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.IN_PROGRESS,
        db_index=True
    )
    started_at = models.DateTimeField(auto_now_add=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.TextField(blank=True, null=True)
    metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text='Self-reported respondent data: location, age or age_bracket'
    )

    class Meta:
        db_table = 'survey_responses'
        ordering = ['-started_at']
        indexes = [
            models.Index(fields=['survey'], name='responses_survey_idx'),
            models.Index(fields=['respondent'], name='responses_respondent_idx'),
            models.Index(fields=['session_token'], name='responses_session_token_idx'),
            models.Index(fields=['status'], name='responses_status_idx'),
        ]
        constraints = [
            # At least one of respondent or session_token must be set
            models.CheckConstraint(
                condition=~models.Q(respondent__isnull=True, session_token__isnull=True),
                name='response_has_identifier'
            )
        ]

    def __str__(self):
        identifier = self.respondent.email if self.respondent else (self.session_token[:8] if self.session_token else 'unknown')
        return f'{self.survey.title} - {identifier}'


class Answer(models.Model):
    """
    Answer to one question within a response. `value` holds a string,
    number, list of option values or a matrix mapping depending on the
    question type.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    response = models.ForeignKey(
        SurveyResponse,
        on_delete=models.CASCADE,
        related_name='answers'
    )
    question = models.ForeignKey(
        Question,
        on_delete=models.CASCADE,
        related_name='answers'
    )
    value = models.JSONField(null=True, blank=True)
    time_spent_seconds = models.FloatField(
        null=True,
        blank=True,
        help_text='Time the respondent spent on this question, if the client reported it'
    )
    answered_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'answers'
        unique_together = ['response', 'question']
        indexes = [
            models.Index(fields=['response'], name='answers_response_idx'),
            models.Index(fields=['question'], name='answers_question_idx'),
        ]

    def __str__(self):
        return f'{self.question.text}: {self.value}'


class Invitation(models.Model):
    """
    Tracks survey invitations sent to recipients.
    Used for audit trail of batch invitation campaigns.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    survey = models.ForeignKey(
        Survey,
        on_delete=models.CASCADE,
        related_name='invitations'
    )
    email = models.EmailField(
        db_index=True,
        help_text='Email address invitation was sent to'
    )
    sent_at = models.DateTimeField(
        auto_now_add=True,
        help_text='When the invitation email was sent'
    )
    sent_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name='sent_invitations',
        help_text='User who triggered the invitation'
    )

    class Meta:
        db_table = 'invitations'
        ordering = ['-sent_at']
        indexes = [
            models.Index(fields=['survey'], name='invitations_survey_idx'),
            models.Index(fields=['email'], name='invitations_email_idx'),
            models.Index(fields=['sent_at'], name='invitations_sent_at_idx'),
        ]

    def __str__(self):
        return f'{self.survey.title} -> {self.email}'
