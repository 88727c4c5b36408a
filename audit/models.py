import uuid
from django.db import models
from django.conf import settings


class AuditLog(models.Model):
    """
    Who changed what: survey authoring, access policy changes and
    profile edits, with a field-level diff for updates.
    """
    class Action(models.TextChoices):
        CREATED = 'created', 'Created'
        UPDATED = 'updated', 'Updated'
        DELETED = 'deleted', 'Deleted'
        PUBLISHED = 'published', 'Published'
        CLOSED = 'closed', 'Closed'

    class ResourceType(models.TextChoices):
        SURVEY = 'survey', 'Survey'
        QUESTION = 'question', 'Question'
        OPTION = 'option', 'Question option'
        PERMISSION = 'permission', 'Survey permission'
        RESPONSE = 'response', 'Response'
        USER = 'user', 'User'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name='audit_logs',
        help_text='User who performed the action'
    )
    action = models.CharField(
        max_length=20,
        choices=Action.choices,
        db_index=True
    )
    resource_type = models.CharField(
        max_length=20,
        choices=ResourceType.choices
    )
    resource_id = models.UUIDField(
        help_text='ID of the affected resource'
    )
    changes = models.JSONField(
        blank=True,
        null=True,
        help_text='Changed fields. Format: {"field": {"old": ..., "new": ...}}'
    )
    ip_address = models.GenericIPAddressField(blank=True, null=True)
    user_agent = models.CharField(max_length=500, blank=True)
    timestamp = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        db_table = 'audit_logs'
        ordering = ['-timestamp']
        indexes = [
            models.Index(fields=['user'], name='audit_logs_user_idx'),
            models.Index(fields=['resource_type', 'resource_id'], name='audit_logs_resource_idx'),
            models.Index(fields=['action'], name='audit_logs_action_idx'),
        ]

    def __str__(self):
        user_str = self.user.email if self.user else 'System'
        return f'{user_str} {self.action} {self.resource_type} {self.resource_id}'
