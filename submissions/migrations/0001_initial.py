import django.db.models.deletion
import uuid
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('surveys', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='SurveyResponse',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('respondent_email', models.EmailField(blank=True, help_text='Email the respondent was admitted with (restricted surveys)', max_length=254)),
                ('session_token', models.CharField(blank=True, db_index=True, help_text='For anonymous/resumable sessions', max_length=255, null=True)),
                ('status', models.CharField(choices=[('in_progress', 'In Progress'), ('completed', 'Completed')], db_index=True, default='in_progress', max_length=20)),
                ('started_at', models.DateTimeField(auto_now_add=True)),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
                ('ip_address', models.GenericIPAddressField(blank=True, null=True)),
                ('user_agent', models.TextField(blank=True, null=True)),
                ('metadata', models.JSONField(blank=True, default=dict, help_text='Self-reported respondent data: location, age or age_bracket')),
                ('respondent', models.ForeignKey(blank=True, help_text='Authenticated user (if logged in)', null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='survey_responses', to=settings.AUTH_USER_MODEL)),
                ('survey', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='responses', to='surveys.survey')),
            ],
            options={
                'db_table': 'survey_responses',
                'ordering': ['-started_at'],
                'indexes': [
                    models.Index(fields=['survey'], name='responses_survey_idx'),
                    models.Index(fields=['respondent'], name='responses_respondent_idx'),
                    models.Index(fields=['session_token'], name='responses_session_token_idx'),
                    models.Index(fields=['status'], name='responses_status_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('respondent__isnull', True), ('session_token__isnull', True), _negated=True), name='response_has_identifier'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Answer',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('value', models.JSONField(blank=True, null=True)),
                ('time_spent_seconds', models.FloatField(blank=True, help_text='Time the respondent spent on this question, if the client reported it', null=True)),
                ('answered_at', models.DateTimeField(auto_now=True)),
                ('question', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='answers', to='surveys.question')),
                ('response', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='answers', to='submissions.surveyresponse')),
            ],
            options={
                'db_table': 'answers',
                'indexes': [
                    models.Index(fields=['response'], name='answers_response_idx'),
                    models.Index(fields=['question'], name='answers_question_idx'),
                ],
                'unique_together': {('response', 'question')},
            },
        ),
        migrations.CreateModel(
            name='Invitation',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('email', models.EmailField(db_index=True, help_text='Email address invitation was sent to', max_length=254)),
                ('sent_at', models.DateTimeField(auto_now_add=True, help_text='When the invitation email was sent')),
                ('sent_by', models.ForeignKey(help_text='User who triggered the invitation', null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='sent_invitations', to=settings.AUTH_USER_MODEL)),
                ('survey', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='invitations', to='surveys.survey')),
            ],
            options={
                'db_table': 'invitations',
                'ordering': ['-sent_at'],
                'indexes': [
                    models.Index(fields=['survey'], name='invitations_survey_idx'),
                    models.Index(fields=['email'], name='invitations_email_idx'),
                    models.Index(fields=['sent_at'], name='invitations_sent_at_idx'),
                ],
            },
        ),
    ]
