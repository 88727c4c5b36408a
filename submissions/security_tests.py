"""
Security Tests for Survey Submission API.

Tests for common vulnerabilities:
- SQL Injection
- Authentication Bypass
- Access Policy Bypass
- Authorization Bypass (RBAC)
- Mass Assignment
"""
import pytest
import uuid
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient
from surveys.models import Survey, Question
from submissions.models import SurveyResponse, Answer
from users.models import User


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def user(db):
    user = User.objects.create_user(email='test@example.com', password='testpass123')
    user.assign_role('author')
    return user


@pytest.fixture
def other_user(db):
    user = User.objects.create_user(email='other@example.com', password='testpass123')
    user.assign_role('author')
    return user


@pytest.fixture
def survey(user):
    survey = Survey.objects.create_with_permission(
        title='Security Test Survey',
        status=Survey.Status.PUBLISHED,
        created_by=user
    )
    survey.permission.is_active = True
    survey.permission.save()
    return survey


@pytest.fixture
def text_question(survey):
    return Question.objects.create(
        survey=survey,
        text='Text Input',
        question_type=Question.QuestionType.TEXT,
        is_required=True,
        order=1
    )


@pytest.fixture
def session_token(api_client, survey):
    """Create a valid session and return the token."""
    url = reverse('survey-submissions-start', kwargs={'survey_pk': survey.id})
    response = api_client.post(url)
    return response.data['session_token']


def submit_text(client, token, question, value):
    client.credentials(HTTP_X_SESSION_TOKEN=token)
    return client.post(reverse('submissions-submit-answers'), {
        'answers': [{'question_id': str(question.id), 'value': value}]
    }, format='json')


# =============================================================================
# SQL INJECTION TESTS
# =============================================================================


@pytest.mark.django_db
class TestSQLInjection:
    """Test that SQL injection attacks are properly prevented."""

    SQL_INJECTION_PAYLOADS = [
        "'; DROP TABLE surveys; --",
        "1; DELETE FROM users WHERE 1=1; --",
        "' OR '1'='1",
        "1 UNION SELECT * FROM users --",
        "admin'--",
    ]

    def test_sql_injection_in_answer_value(self, api_client, survey, text_question, session_token):
        """Payloads in answer values are stored as literal strings."""
        for payload in self.SQL_INJECTION_PAYLOADS:
            response = submit_text(api_client, session_token, text_question, payload)

            assert response.status_code == status.HTTP_200_OK
            answer = Answer.objects.get(response__session_token=session_token, question=text_question)
            assert answer.value == payload

        assert Survey.objects.filter(id=survey.id).exists()

    def test_sql_injection_in_survey_id(self, api_client):
        """Non-UUID survey ids never reach a view."""
        for payload in ["'; DROP TABLE surveys; --", "1 OR 1=1"]:
            response = api_client.post(f"/api/v1/surveys/{payload}/submissions/start/")
            assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_sql_injection_in_allowlist_email(self, api_client, survey):
        """An injected email cannot match a restricted allowlist."""
        survey.permission.permission_type = 'restricted'
        survey.permission.allowed_emails = ['alice@example.com']
        survey.permission.save()

        url = reverse('survey-access-check', kwargs={'survey_pk': survey.id})
        response = api_client.post(url, {'email': "' OR '1'='1"}, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_sql_injection_in_query_params(self, api_client, user, survey):
        api_client.force_authenticate(user=user)

        url = reverse('survey-responses-list', kwargs={'survey_pk': survey.id})
        response = api_client.get(url, {
            'status': "'; DROP TABLE survey_responses; --",
            'start_date': "2024-01-01'; DELETE FROM users; --",
        })

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert Survey.objects.filter(id=survey.id).exists()


# =============================================================================
# AUTHENTICATION BYPASS TESTS
# =============================================================================


@pytest.mark.django_db
class TestAuthenticationBypass:
    """Test that authentication cannot be bypassed."""

    def test_invalid_session_token_format(self, api_client, text_question):
        invalid_tokens = [
            'invalid-token',
            'null',
            '<script>alert(1)</script>',
            '../../../etc/passwd',
        ]

        for token in invalid_tokens:
            response = submit_text(api_client, token, text_question, 'test')
            assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_nonexistent_session_token(self, api_client, text_question):
        response = submit_text(api_client, str(uuid.uuid4()), text_question, 'test')

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_jwt_token_tampering(self, api_client, user):
        """Tampered JWT tokens should be rejected."""
        from rest_framework_simplejwt.tokens import RefreshToken

        valid_token = str(RefreshToken.for_user(user).access_token)
        tampered_tokens = [
            valid_token[:-5] + 'XXXXX',
            valid_token.split('.')[0] + '.TAMPERED.' + valid_token.split('.')[2],
        ]

        for token in tampered_tokens:
            api_client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')
            response = api_client.get(reverse('profile'))
            assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_token_without_session_rejected(self, api_client, user):
        """Tokens not tied to a login session are refused."""
        from rest_framework_simplejwt.tokens import RefreshToken

        token = str(RefreshToken.for_user(user).access_token)
        api_client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')

        assert api_client.get(reverse('profile')).status_code == status.HTTP_401_UNAUTHORIZED


# =============================================================================
# ACCESS POLICY BYPASS TESTS
# =============================================================================


@pytest.mark.django_db
class TestAccessPolicyBypass:
    """Submission endpoints enforce the same policy as the access check."""

    def test_start_enforces_password(self, api_client, survey):
        survey.permission.set_password('letmein')
        survey.permission.save()
        url = reverse('survey-submissions-start', kwargs={'survey_pk': survey.id})

        response = api_client.post(url, {}, format='json')

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert not SurveyResponse.objects.exists()

    def test_access_token_grants_nothing_extra(self, api_client, survey):
        survey.permission.permission_type = 'authenticated'
        survey.permission.save()
        url = reverse('survey-submissions-start', kwargs={'survey_pk': survey.id})

        response = api_client.post(url, {'access_token': 'guessed'}, format='json')

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_password_never_echoed(self, api_client, user, survey):
        api_client.force_authenticate(user=user)
        url = reverse('survey-access', kwargs={'pk': survey.id})

        response = api_client.put(url, {'permission_type': 'public', 'password': 'letmein'}, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert 'letmein' not in str(response.data)
        assert 'password_hash' not in response.data


# =============================================================================
# AUTHORIZATION BYPASS TESTS (RBAC)
# =============================================================================


@pytest.mark.django_db
class TestAuthorizationBypass:
    """Test that authorization/RBAC cannot be bypassed."""

    def test_access_other_users_responses(self, api_client, survey, session_token, other_user):
        api_client.credentials()
        api_client.force_authenticate(user=other_user)

        url = reverse('survey-responses-list', kwargs={'survey_pk': survey.id})
        response = api_client.get(url)

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_change_other_users_access_policy(self, api_client, survey, other_user):
        api_client.force_authenticate(user=other_user)

        url = reverse('survey-access', kwargs={'pk': survey.id})
        response = api_client.put(url, {'permission_type': 'public'}, format='json')

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_horizontal_privilege_escalation(self, api_client, survey, user, other_user):
        """A signed-in respondent is recorded as themselves."""
        api_client.force_authenticate(user=other_user)

        url = reverse('survey-submissions-start', kwargs={'survey_pk': survey.id})
        response = api_client.post(url, {'email': user.email}, format='json')

        survey_response = SurveyResponse.objects.get(session_token=response.data['session_token'])
        assert survey_response.respondent == other_user
        assert survey_response.respondent_email == other_user.email


# =============================================================================
# MASS ASSIGNMENT TESTS
# =============================================================================


@pytest.mark.django_db
class TestMassAssignment:
    """Read-only fields are ignored on write."""

    def test_cannot_set_status_on_start(self, api_client, survey):
        url = reverse('survey-submissions-start', kwargs={'survey_pk': survey.id})
        response = api_client.post(url, {'status': 'completed', 'respondent': str(uuid.uuid4())}, format='json')

        survey_response = SurveyResponse.objects.get(id=response.data['response_id'])
        assert survey_response.status == SurveyResponse.Status.IN_PROGRESS
        assert survey_response.respondent is None

    def test_cannot_activate_permission_directly(self, api_client, user):
        draft = Survey.objects.create_with_permission(title='Draft', created_by=user)
        api_client.force_authenticate(user=user)

        url = reverse('survey-access', kwargs={'pk': draft.id})
        api_client.put(url, {'permission_type': 'public', 'is_active': True}, format='json')

        draft.permission.refresh_from_db()
        assert draft.permission.is_active is False

    def test_cannot_reassign_survey_owner(self, api_client, user, other_user, survey):
        api_client.force_authenticate(user=user)

        url = reverse('survey-detail', kwargs={'pk': survey.id})
        api_client.patch(url, {'created_by': str(other_user.id)}, format='json')

        survey.refresh_from_db()
        assert survey.created_by == user
