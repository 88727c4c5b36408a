import django.db.models.deletion
import uuid
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='AuditLog',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('action', models.CharField(choices=[('created', 'Created'), ('updated', 'Updated'), ('deleted', 'Deleted'), ('published', 'Published'), ('closed', 'Closed')], db_index=True, max_length=20)),
                ('resource_type', models.CharField(choices=[('survey', 'Survey'), ('question', 'Question'), ('option', 'Question option'), ('permission', 'Survey permission'), ('response', 'Response'), ('user', 'User')], max_length=20)),
                ('resource_id', models.UUIDField(help_text='ID of the affected resource')),
                ('changes', models.JSONField(blank=True, help_text='Changed fields. Format: {"field": {"old": ..., "new": ...}}', null=True)),
                ('ip_address', models.GenericIPAddressField(blank=True, null=True)),
                ('user_agent', models.CharField(blank=True, max_length=500)),
                ('timestamp', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('user', models.ForeignKey(help_text='User who performed the action', null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='audit_logs', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'audit_logs',
                'ordering': ['-timestamp'],
                'indexes': [
                    models.Index(fields=['user'], name='audit_logs_user_idx'),
                    models.Index(fields=['resource_type', 'resource_id'], name='audit_logs_resource_idx'),
                    models.Index(fields=['action'], name='audit_logs_action_idx'),
                ],
            },
        ),
    ]
