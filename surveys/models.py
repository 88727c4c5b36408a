import uuid
from django.conf import settings
from django.contrib.auth.hashers import make_password
from django.core.exceptions import ValidationError
from django.core.validators import validate_email
from django.db import models, transaction

from .access import (
    AccessPolicy,
    AuthenticatedRule,
    PublicRule,
    RestrictedRule,
    UrlAccessRule,
    normalize_email,
)


class SurveyManager(models.Manager):

    def create_with_permission(self, **fields):
        """
        Create a survey together with its access permission record.

        The permission starts as `public` and inactive; publishing the
        survey activates it.
        """
        with transaction.atomic():
            survey = self.create(**fields)
            SurveyPermission.objects.create(survey=survey)
        return survey


class Survey(models.Model):
    """
    A survey authored by a user: an ordered list of typed questions plus one
    access permission record.
    """
    class Status(models.TextChoices):
        DRAFT = 'draft', 'Draft'
        PUBLISHED = 'published', 'Published'
        CLOSED = 'closed', 'Closed'
        ARCHIVED = 'archived', 'Archived'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.DRAFT,
        db_index=True
    )
    max_responses = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text='Stop accepting new responses once this many have been started'
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name='surveys'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = SurveyManager()

    class Meta:
        db_table = 'surveys'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status'], name='surveys_status_idx'),
            models.Index(fields=['created_by'], name='surveys_created_by_idx'),
        ]

    def __str__(self):
        return self.title

    @property
    def is_published(self):
        return self.status == self.Status.PUBLISHED

    def response_limit_reached(self):
        if self.max_responses is None:
            return False
        return self.responses.count() >= self.max_responses


class Question(models.Model):
    """A single typed question. Questions are answered in `order`."""
    class QuestionType(models.TextChoices):
        TEXT = 'text', 'Short text'
        TEXTAREA = 'textarea', 'Long text'
        SINGLE_CHOICE = 'single_choice', 'Single choice'
        MULTIPLE_CHOICE = 'multiple_choice', 'Multiple choice'
        RATING = 'rating', 'Rating scale'
        DATE = 'date', 'Date'
        FILE = 'file', 'File upload'
        MATRIX = 'matrix', 'Matrix'

    CHOICE_TYPES = (QuestionType.SINGLE_CHOICE, QuestionType.MULTIPLE_CHOICE)

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    survey = models.ForeignKey(
        Survey,
        on_delete=models.CASCADE,
        related_name='questions'
    )
    text = models.CharField(max_length=1000)
    question_type = models.CharField(
        max_length=20,
        choices=QuestionType.choices
    )
    is_required = models.BooleanField(default=False)
    order = models.PositiveIntegerField()
    settings = models.JSONField(
        default=dict,
        blank=True,
        help_text='Type-specific settings (rating min/max, matrix rows/columns, placeholder)'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'questions'
        ordering = ['order']
        unique_together = ['survey', 'order']
        indexes = [
            models.Index(fields=['survey', 'order'], name='questions_survey_order_idx'),
        ]

    def __str__(self):
        return f'{self.survey.title} - {self.text}'


class QuestionOption(models.Model):
    """Predefined choice for single/multiple choice questions."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    question = models.ForeignKey(
        Question,
        on_delete=models.CASCADE,
        related_name='options'
    )
    label = models.CharField(max_length=255)
    value = models.CharField(max_length=255)
    order = models.PositiveIntegerField()

    class Meta:
        db_table = 'question_options'
        ordering = ['order']
        unique_together = ['question', 'value']

    def __str__(self):
        return f'{self.question.text} - {self.label}'


def validate_permission_config(permission_type, allowed_emails=None, start_date=None, end_date=None):
    """
    Check the invariants of a permission record before it is written.

    Returns the normalized (lowercased, de-duplicated, order-preserving)
    allowlist. Raises ValidationError keyed by field name.
    """
    errors = {}
    normalized = []

    if permission_type not in SurveyPermission.PermissionType.values:
        errors['permission_type'] = f'Unknown permission type "{permission_type}".'

    for email in allowed_emails or []:
        email = normalize_email(email)
        try:
            validate_email(email)
        except ValidationError:
            errors.setdefault('allowed_emails', []).append(f'"{email}" is not a valid email address.')
            continue
        if email not in normalized:
            normalized.append(email)

    if permission_type == SurveyPermission.PermissionType.RESTRICTED and not normalized:
        errors.setdefault('allowed_emails', []).append(
            'Restricted surveys need at least one allowed email address.'
        )

    if start_date and end_date and start_date >= end_date:
        errors['end_date'] = 'The end date must be after the start date.'

    if errors:
        raise ValidationError(errors)

    if permission_type != SurveyPermission.PermissionType.RESTRICTED:
        return []
    return normalized


class SurveyPermission(models.Model):
    """
    Access policy of a survey. Exactly one per survey, replaced as a whole
    on update. See surveys.access for how it is evaluated.
    """
    class PermissionType(models.TextChoices):
        PUBLIC = 'public', 'Public'
        URL_ACCESS = 'url_access', 'Anyone with the link'
        AUTHENTICATED = 'authenticated', 'Signed-in users'
        RESTRICTED = 'restricted', 'Allowlisted emails only'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    survey = models.OneToOneField(
        Survey,
        on_delete=models.CASCADE,
        related_name='permission'
    )
    permission_type = models.CharField(
        max_length=20,
        choices=PermissionType.choices,
        default=PermissionType.PUBLIC
    )
    allowed_emails = models.JSONField(
        default=list,
        blank=True,
        help_text='Lowercased email allowlist; only used by restricted surveys'
    )
    password_hash = models.CharField(max_length=128, blank=True, default='')
    start_date = models.DateTimeField(null=True, blank=True)
    end_date = models.DateTimeField(null=True, blank=True)
    is_active = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'survey_permissions'

    def __str__(self):
        return f'{self.survey.title} - {self.permission_type}'

    def clean(self):
        self.allowed_emails = validate_permission_config(
            self.permission_type,
            self.allowed_emails,
            self.start_date,
            self.end_date,
        )

    def set_password(self, raw_password):
        """Hash and store `raw_password`; a falsy value removes the password gate."""
        self.password_hash = make_password(raw_password) if raw_password else ''

    def to_policy(self) -> AccessPolicy:
        """Convert the stored row into the evaluator's tagged-union policy."""
        if self.permission_type == self.PermissionType.RESTRICTED:
            rule = RestrictedRule.from_emails(self.allowed_emails or [])
        elif self.permission_type == self.PermissionType.AUTHENTICATED:
            rule = AuthenticatedRule()
        elif self.permission_type == self.PermissionType.URL_ACCESS:
            rule = UrlAccessRule()
        else:
            rule = PublicRule()

        return AccessPolicy(
            rule=rule,
            is_active=self.is_active,
            password_hash=self.password_hash or None,
            start_date=self.start_date,
            end_date=self.end_date,
        )
