"""
Celery tasks for asynchronous operations.

Invitation emails are sent in the background so that large recipient lists
do not block the request that queued them.
"""
import logging
from typing import Optional
from celery import shared_task
from django.conf import settings
from django.core.mail import EmailMessage

from .models import Invitation
from surveys.models import Survey, SurveyPermission
from users.models import User

logger = logging.getLogger(__name__)


@shared_task(bind=True, name='submissions.send_survey_invitations')
def send_survey_invitations(
    self,
    survey_id: str,
    emails: list,
    sent_by_user_id: Optional[str] = None,
    batch_size: int = 50
):
    """
    Send batch survey invitations via email.

    Processes emails in batches and creates an Invitation record for every
    email that was sent.

    Args:
        survey_id: UUID of the survey to invite users to
        emails: List of email addresses to send invitations to
        sent_by_user_id: UUID of the user who triggered the invitations
        batch_size: Number of emails to process per batch (default: 50)

    Returns:
        dict: Task result with success/failure counts
    """
    try:
        survey = Survey.objects.select_related('permission').get(id=survey_id)
    except Survey.DoesNotExist:
        logger.warning("Invitations not sent: survey %s not found", survey_id)
        return {
            'status': 'FAILED',
            'error': f'Survey with ID {survey_id} not found'
        }

    sent_by = User.objects.filter(id=sent_by_user_id).first() if sent_by_user_id else None
    survey_url = _build_survey_url(survey)
    requires_password = _requires_password(survey)

    total_emails = len(emails)
    sent_count = 0
    failed_emails = []

    for batch_start in range(0, total_emails, batch_size):
        batch_end = min(batch_start + batch_size, total_emails)

        for email in emails[batch_start:batch_end]:
            try:
                _send_invitation_email(email, survey, survey_url, requires_password)
            except Exception as exc:  # SMTP and backend errors vary by backend
                logger.warning("Invitation to %s for survey %s failed: %s", email, survey.id, exc)
                failed_emails.append({'email': email, 'error': str(exc)})
                continue

            Invitation.objects.create(survey=survey, email=email, sent_by=sent_by)
            sent_count += 1

        self.update_state(
            state='PROCESSING',
            meta={
                'progress': int((batch_end / total_emails) * 100),
                'sent': sent_count,
                'failed': len(failed_emails),
                'total': total_emails
            }
        )

    logger.info(
        "Sent %d of %d invitations for survey %s",
        sent_count, total_emails, survey.id
    )
    return {
        'status': 'SUCCESS',
        'survey_id': str(survey_id),
        'survey_title': survey.title,
        'total_recipients': total_emails,
        'sent_count': sent_count,
        'failed_count': len(failed_emails),
        'failed_emails': failed_emails[:10]  # Limit for payload size
    }


def _requires_password(survey: Survey) -> bool:
    try:
        return bool(survey.permission.password_hash)
    except SurveyPermission.DoesNotExist:
        return False


def _build_survey_url(survey: Survey) -> str:
    """Build the public URL for a survey."""
    base_url = getattr(settings, 'SURVEY_BASE_URL', 'https://surveys.example.com')
    return f"{base_url.rstrip('/')}/survey/{survey.id}"


def _send_invitation_email(recipient_email: str, survey: Survey, survey_url: str, requires_password: bool = False):
    """Send an invitation email to a single recipient."""
    from_email = getattr(settings, 'DEFAULT_FROM_EMAIL', 'noreply@surveyplatform.com')
    password_note = '\nThe survey organiser will share the access password with you separately.\n' if requires_password else ''

    subject = f"You're invited: {survey.title}"
    message = f"""
Hello,

You have been invited to participate in a survey.

Survey: {survey.title}
{f'Description: {survey.description}' if survey.description else ''}

Click the link below to start the survey:
{survey_url}
{password_note}
Thank you for your participation!
"""

    email = EmailMessage(
        subject=subject,
        body=message,
        from_email=from_email,
        to=[recipient_email]
    )
    email.send()
