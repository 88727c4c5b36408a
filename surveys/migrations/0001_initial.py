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
            name='Survey',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('title', models.CharField(max_length=255)),
                ('description', models.TextField(blank=True)),
                ('status', models.CharField(choices=[('draft', 'Draft'), ('published', 'Published'), ('closed', 'Closed'), ('archived', 'Archived')], db_index=True, default='draft', max_length=20)),
                ('max_responses', models.PositiveIntegerField(blank=True, help_text='Stop accepting new responses once this many have been started', null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('created_by', models.ForeignKey(null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='surveys', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'surveys',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['status'], name='surveys_status_idx'),
                    models.Index(fields=['created_by'], name='surveys_created_by_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Question',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('text', models.CharField(max_length=1000)),
                ('question_type', models.CharField(choices=[('text', 'Short text'), ('textarea', 'Long text'), ('single_choice', 'Single choice'), ('multiple_choice', 'Multiple choice'), ('rating', 'Rating scale'), ('date', 'Date'), ('file', 'File upload'), ('matrix', 'Matrix')], max_length=20)),
                ('is_required', models.BooleanField(default=False)),
                ('order', models.PositiveIntegerField()),
                ('settings', models.JSONField(blank=True, default=dict, help_text='Type-specific settings (rating min/max, matrix rows/columns, placeholder)')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('survey', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='questions', to='surveys.survey')),
            ],
            options={
                'db_table': 'questions',
                'ordering': ['order'],
                'indexes': [models.Index(fields=['survey', 'order'], name='questions_survey_order_idx')],
                'unique_together': {('survey', 'order')},
            },
        ),
        migrations.CreateModel(
            name='QuestionOption',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('label', models.CharField(max_length=255)),
                ('value', models.CharField(max_length=255)),
                ('order', models.PositiveIntegerField()),
                ('question', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='options', to='surveys.question')),
            ],
            options={
                'db_table': 'question_options',
                'ordering': ['order'],
                'unique_together': {('question', 'value')},
            },
        ),
        migrations.CreateModel(
            name='SurveyPermission',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('permission_type', models.CharField(choices=[('public', 'Public'), ('url_access', 'Anyone with the link'), ('authenticated', 'Signed-in users'), ('restricted', 'Allowlisted emails only')], default='public', max_length=20)),
                ('allowed_emails', models.JSONField(blank=True, default=list, help_text='Lowercased email allowlist; only used by restricted surveys')),
                ('password_hash', models.CharField(blank=True, default='', max_length=128)),
                ('start_date', models.DateTimeField(blank=True, null=True)),
                ('end_date', models.DateTimeField(blank=True, null=True)),
                ('is_active', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('survey', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name='permission', to='surveys.survey')),
            ],
            options={
                'db_table': 'survey_permissions',
            },
        ),
    ]
