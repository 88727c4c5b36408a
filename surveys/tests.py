import pytest
from datetime import timedelta
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient
from users.models import User
from surveys.models import Survey, Question, QuestionOption, SurveyPermission
from submissions.models import SurveyResponse
from audit.models import AuditLog


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def user(db):
    user = User.objects.create_user(
        email='test@example.com',
        password='TestPass123!',
    )
    user.assign_role('author')
    return user


@pytest.fixture
def other_user(db):
    user = User.objects.create_user(email='other@example.com', password='TestPass123!')
    user.assign_role('author')
    return user


@pytest.fixture
def manager_user(db):
    user = User.objects.create_user(email='manager@example.com', password='TestPass123!')
    user.assign_role('manager')
    return user


@pytest.fixture
def viewer_user(db):
    user = User.objects.create_user(email='viewer@example.com', password='TestPass123!')
    user.assign_role('viewer')
    return user


@pytest.fixture
def auth_client(api_client, user):
    """Authenticated API client."""
    from users.models import UserSession
    from users.serializers import get_tokens_for_user_with_session

    session = UserSession.objects.create(user=user)
    tokens = get_tokens_for_user_with_session(user, session)
    api_client.credentials(HTTP_AUTHORIZATION=f'Bearer {tokens["access"]}')
    return api_client


@pytest.fixture
def survey(user):
    return Survey.objects.create_with_permission(
        title='Test Survey',
        description='A test survey',
        created_by=user,
    )


@pytest.fixture
def question(survey):
    return Question.objects.create(
        survey=survey,
        text='What is your name?',
        question_type=Question.QuestionType.TEXT,
        order=1,
    )


@pytest.fixture
def published_survey(survey, question):
    survey.status = Survey.Status.PUBLISHED
    survey.save()
    survey.permission.is_active = True
    survey.permission.save()
    return survey


def configure_access(survey, password=None, **fields):
    permission = survey.permission
    for name, value in fields.items():
        setattr(permission, name, value)
    if password is not None:
        permission.set_password(password)
    permission.save()
    return permission


# ============ SURVEY TESTS ============

@pytest.mark.django_db
class TestSurvey:
    """Tests for survey endpoints."""

    def test_create_survey(self, auth_client, user):
        """Creating a survey also creates its inactive public permission."""
        url = reverse('survey-list')
        response = auth_client.post(url, {
            'title': 'My Survey',
            'description': 'A description',
        }, format='json')

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['title'] == 'My Survey'
        survey = Survey.objects.get(title='My Survey')
        assert survey.created_by == user
        assert survey.status == Survey.Status.DRAFT
        assert survey.permission.permission_type == SurveyPermission.PermissionType.PUBLIC
        assert survey.permission.is_active is False

    def test_create_survey_requires_create_permission(self, api_client):
        no_role = User.objects.create_user(email='norole@example.com', password='pass')
        api_client.force_authenticate(user=no_role)

        response = api_client.post(reverse('survey-list'), {'title': 'Nope'}, format='json')

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_list_surveys(self, auth_client, survey):
        """Test listing surveys."""
        url = reverse('survey-list')
        response = auth_client.get(url)

        assert response.status_code == status.HTTP_200_OK
        assert len(response.data['results']) == 1
        assert response.data['results'][0]['permission_type'] == 'public'

    def test_list_hides_other_authors_surveys(self, auth_client, other_user):
        Survey.objects.create_with_permission(title='Not mine', created_by=other_user)

        response = auth_client.get(reverse('survey-list'))

        assert response.status_code == status.HTTP_200_OK
        assert response.data['results'] == []

    def test_manager_lists_all_surveys(self, api_client, manager_user, survey, other_user):
        Survey.objects.create_with_permission(title='Another', created_by=other_user)
        api_client.force_authenticate(user=manager_user)

        response = api_client.get(reverse('survey-list'))

        assert response.status_code == status.HTTP_200_OK
        assert len(response.data['results']) == 2

    def test_get_survey_detail(self, auth_client, survey, question):
        """Test getting survey with questions embedded."""
        url = reverse('survey-detail', kwargs={'pk': survey.id})
        response = auth_client.get(url)

        assert response.status_code == status.HTTP_200_OK
        assert response.data['title'] == survey.title
        assert len(response.data['questions']) == 1
        assert response.data['questions'][0]['text'] == question.text

    def test_update_survey(self, auth_client, survey):
        """Test updating a survey."""
        url = reverse('survey-detail', kwargs={'pk': survey.id})
        response = auth_client.patch(url, {
            'title': 'Updated Title',
            'max_responses': 10,
        }, format='json')

        assert response.status_code == status.HTTP_200_OK
        survey.refresh_from_db()
        assert survey.title == 'Updated Title'
        assert survey.max_responses == 10

    def test_status_is_not_writable(self, auth_client, survey):
        url = reverse('survey-detail', kwargs={'pk': survey.id})
        auth_client.patch(url, {'status': 'published'}, format='json')

        survey.refresh_from_db()
        assert survey.status == Survey.Status.DRAFT

    def test_put_not_allowed(self, auth_client, survey):
        url = reverse('survey-detail', kwargs={'pk': survey.id})
        response = auth_client.put(url, {'title': 'Replaced'}, format='json')

        assert response.status_code == status.HTTP_405_METHOD_NOT_ALLOWED

    def test_delete_survey(self, auth_client, survey):
        """Deleting a survey removes its permission record too."""
        url = reverse('survey-detail', kwargs={'pk': survey.id})
        response = auth_client.delete(url)

        assert response.status_code == status.HTTP_204_NO_CONTENT
        assert not Survey.objects.filter(id=survey.id).exists()
        assert not SurveyPermission.objects.filter(survey_id=survey.id).exists()

    def test_surveys_require_auth(self, api_client):
        """Test that surveys require authentication."""
        url = reverse('survey-list')
        response = api_client.get(url)

        assert response.status_code == status.HTTP_401_UNAUTHORIZED


# ============ STATUS TESTS ============

@pytest.mark.django_db
class TestSurveyStatus:
    """Publishing and closing toggle the access permission."""

    def test_publish_survey(self, auth_client, survey, question):
        url = reverse('survey-publish', kwargs={'pk': survey.id})
        response = auth_client.post(url)

        assert response.status_code == status.HTTP_200_OK
        survey.refresh_from_db()
        assert survey.status == Survey.Status.PUBLISHED
        assert survey.permission.is_active is True

        log = AuditLog.objects.get(resource_id=survey.id, action=AuditLog.Action.PUBLISHED)
        assert log.changes == {'status': {'old': 'draft', 'new': 'published'}}

    def test_publish_requires_questions(self, auth_client, survey):
        url = reverse('survey-publish', kwargs={'pk': survey.id})
        response = auth_client.post(url)

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        survey.refresh_from_db()
        assert survey.status == Survey.Status.DRAFT

    def test_publish_twice(self, auth_client, published_survey):
        url = reverse('survey-publish', kwargs={'pk': published_survey.id})
        response = auth_client.post(url)

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_other_author_cannot_publish(self, api_client, other_user, survey, question):
        api_client.force_authenticate(user=other_user)

        response = api_client.post(reverse('survey-publish', kwargs={'pk': survey.id}))

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_manager_can_publish_any_survey(self, api_client, manager_user, survey, question):
        api_client.force_authenticate(user=manager_user)

        response = api_client.post(reverse('survey-publish', kwargs={'pk': survey.id}))

        assert response.status_code == status.HTTP_200_OK

    def test_close_survey(self, auth_client, published_survey):
        url = reverse('survey-close', kwargs={'pk': published_survey.id})
        response = auth_client.post(url)

        assert response.status_code == status.HTTP_200_OK
        published_survey.refresh_from_db()
        assert published_survey.status == Survey.Status.CLOSED
        assert SurveyPermission.objects.get(survey=published_survey).is_active is False


# ============ QUESTION TESTS ============

@pytest.mark.django_db
class TestQuestion:
    """Tests for question and option endpoints."""

    def test_create_question(self, auth_client, survey):
        url = reverse('survey-questions-list', kwargs={'survey_pk': str(survey.id)})
        response = auth_client.post(url, {
            'text': 'How satisfied are you?',
            'question_type': 'rating',
            'is_required': True,
            'order': 1,
            'settings': {'min': 1, 'max': 10},
        }, format='json')

        assert response.status_code == status.HTTP_201_CREATED
        assert survey.questions.count() == 1
        assert AuditLog.objects.filter(
            resource_type=AuditLog.ResourceType.QUESTION,
            action=AuditLog.Action.CREATED,
        ).exists()

    def test_rating_settings_validated(self, auth_client, survey):
        url = reverse('survey-questions-list', kwargs={'survey_pk': str(survey.id)})
        response = auth_client.post(url, {
            'text': 'Rate us',
            'question_type': 'rating',
            'order': 1,
            'settings': {'min': 5, 'max': 1},
        }, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'settings' in response.data

    def test_other_author_cannot_add_questions(self, api_client, other_user, survey):
        api_client.force_authenticate(user=other_user)
        url = reverse('survey-questions-list', kwargs={'survey_pk': str(survey.id)})

        response = api_client.post(url, {
            'text': 'Sneaky',
            'question_type': 'text',
            'order': 1,
        }, format='json')

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert survey.questions.count() == 0

    def test_update_question(self, auth_client, survey, question):
        url = reverse('survey-questions-detail', kwargs={'survey_pk': str(survey.id), 'pk': str(question.id)})
        response = auth_client.patch(url, {'text': 'Your full name?'}, format='json')

        assert response.status_code == status.HTTP_200_OK
        question.refresh_from_db()
        assert question.text == 'Your full name?'

    def test_create_option(self, auth_client, survey):
        choice = Question.objects.create(
            survey=survey,
            text='Favourite colour',
            question_type=Question.QuestionType.SINGLE_CHOICE,
            order=1,
        )
        url = reverse('question-options-list', kwargs={
            'survey_pk': str(survey.id),
            'question_pk': str(choice.id),
        })
        response = auth_client.post(url, {'label': 'Red', 'value': 'red', 'order': 1}, format='json')

        assert response.status_code == status.HTTP_201_CREATED
        assert QuestionOption.objects.filter(question=choice, value='red').exists()

    def test_options_only_for_choice_questions(self, auth_client, survey, question):
        url = reverse('question-options-list', kwargs={
            'survey_pk': str(survey.id),
            'question_pk': str(question.id),
        })
        response = auth_client.post(url, {'label': 'Red', 'value': 'red', 'order': 1}, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert not QuestionOption.objects.exists()


# ============ ACCESS POLICY TESTS ============

@pytest.mark.django_db
class TestAccessPolicy:
    """Tests for reading and replacing a survey's access policy."""

    def test_get_default_policy(self, auth_client, survey):
        url = reverse('survey-access', kwargs={'pk': survey.id})
        response = auth_client.get(url)

        assert response.status_code == status.HTTP_200_OK
        assert response.data['permission_type'] == 'public'
        assert response.data['requires_password'] is False
        assert response.data['is_active'] is False
        assert 'password' not in response.data
        assert 'password_hash' not in response.data

    def test_restricted_emails_normalized(self, auth_client, survey):
        url = reverse('survey-access', kwargs={'pk': survey.id})
        response = auth_client.put(url, {
            'permission_type': 'restricted',
            'allowed_emails': ['Alice@Example.com', 'alice@example.com', 'bob@example.org'],
        }, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['allowed_emails'] == ['alice@example.com', 'bob@example.org']
        survey.permission.refresh_from_db()
        assert survey.permission.allowed_emails == ['alice@example.com', 'bob@example.org']

    def test_restricted_requires_emails(self, auth_client, survey):
        url = reverse('survey-access', kwargs={'pk': survey.id})
        response = auth_client.put(url, {
            'permission_type': 'restricted',
            'allowed_emails': [],
        }, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'allowed_emails' in response.data
        survey.permission.refresh_from_db()
        assert survey.permission.permission_type == 'public'

    def test_invalid_email_rejected(self, auth_client, survey):
        url = reverse('survey-access', kwargs={'pk': survey.id})
        response = auth_client.put(url, {
            'permission_type': 'restricted',
            'allowed_emails': ['not-an-email'],
        }, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'allowed_emails' in response.data

    def test_window_must_be_ordered(self, auth_client, survey):
        now = timezone.now()
        url = reverse('survey-access', kwargs={'pk': survey.id})
        response = auth_client.put(url, {
            'permission_type': 'public',
            'start_date': (now + timedelta(days=2)).isoformat(),
            'end_date': (now + timedelta(days=1)).isoformat(),
        }, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'end_date' in response.data

    def test_unknown_permission_type(self, auth_client, survey):
        url = reverse('survey-access', kwargs={'pk': survey.id})
        response = auth_client.put(url, {'permission_type': 'secret'}, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_put_replaces_whole_policy(self, auth_client, survey):
        url = reverse('survey-access', kwargs={'pk': survey.id})
        auth_client.put(url, {
            'permission_type': 'authenticated',
            'end_date': (timezone.now() + timedelta(days=7)).isoformat(),
        }, format='json')

        response = auth_client.put(url, {'permission_type': 'url_access'}, format='json')

        assert response.status_code == status.HTTP_200_OK
        survey.permission.refresh_from_db()
        assert survey.permission.permission_type == 'url_access'
        assert survey.permission.end_date is None

    def test_password_kept_when_omitted_and_removed_with_null(self, auth_client, survey):
        url = reverse('survey-access', kwargs={'pk': survey.id})

        response = auth_client.put(url, {'permission_type': 'public', 'password': 'letmein'}, format='json')
        assert response.data['requires_password'] is True

        response = auth_client.put(url, {'permission_type': 'url_access'}, format='json')
        assert response.data['requires_password'] is True

        response = auth_client.put(url, {'permission_type': 'url_access', 'password': None}, format='json')
        assert response.data['requires_password'] is False

    def test_policy_change_is_audited_without_secrets(self, auth_client, survey):
        url = reverse('survey-access', kwargs={'pk': survey.id})
        auth_client.put(url, {
            'permission_type': 'restricted',
            'allowed_emails': ['a@example.com'],
            'password': 'letmein',
        }, format='json')

        log = AuditLog.objects.get(
            resource_type=AuditLog.ResourceType.PERMISSION,
            action=AuditLog.Action.UPDATED,
        )
        assert log.changes['permission_type'] == {'old': 'public', 'new': 'restricted'}
        assert log.changes['password_hash'] == {'old': None, 'new': '[set]'}
        assert 'letmein' not in str(log.changes)

    def test_viewer_cannot_change_policy(self, api_client, viewer_user, survey):
        api_client.force_authenticate(user=viewer_user)
        url = reverse('survey-access', kwargs={'pk': survey.id})

        response = api_client.put(url, {'permission_type': 'authenticated'}, format='json')

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_other_author_cannot_see_policy(self, api_client, other_user, survey):
        api_client.force_authenticate(user=other_user)

        response = api_client.get(reverse('survey-access', kwargs={'pk': survey.id}))

        assert response.status_code == status.HTTP_404_NOT_FOUND


# ============ ACCESS CHECK TESTS ============

@pytest.mark.django_db
class TestAccessCheck:
    """Tests for the respondent-facing access check."""

    def check(self, client, survey, **data):
        url = reverse('survey-access-check', kwargs={'survey_pk': survey.id})
        return client.post(url, data, format='json')

    def test_public_survey_allowed(self, api_client, published_survey):
        response = self.check(api_client, published_survey)

        assert response.status_code == status.HTTP_200_OK
        assert response.data['allowed'] is True
        assert response.data['reason'] == 'ok'
        assert len(response.data['survey']['questions']) == 1

    def test_draft_survey_not_found(self, api_client, survey):
        response = self.check(api_client, survey)

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_closed_survey_inactive(self, api_client, published_survey):
        published_survey.status = Survey.Status.CLOSED
        published_survey.save()
        configure_access(published_survey, is_active=False)

        response = self.check(api_client, published_survey)

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.data == {
            'allowed': False,
            'reason': 'inactive',
            'detail': 'This survey is not accepting responses.',
        }

    def test_authenticated_survey(self, api_client, auth_client, published_survey):
        configure_access(published_survey, permission_type='authenticated')

        response = self.check(APIClient(), published_survey)
        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.data['reason'] == 'authentication_required'

        response = self.check(auth_client, published_survey)
        assert response.status_code == status.HTTP_200_OK

    def test_restricted_survey_by_email(self, api_client, published_survey):
        configure_access(published_survey, permission_type='restricted', allowed_emails=['alice@example.com'])

        response = self.check(api_client, published_survey, email='ALICE@example.com')
        assert response.status_code == status.HTTP_200_OK

        response = self.check(api_client, published_survey, email='mallory@example.com')
        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.data['reason'] == 'email_not_allowlisted'

        response = self.check(api_client, published_survey)
        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.data['reason'] == 'authentication_required'

    def test_restricted_survey_uses_signed_in_email(self, auth_client, user, published_survey):
        configure_access(published_survey, permission_type='restricted', allowed_emails=[user.email])

        response = self.check(auth_client, published_survey, email='someone-else@example.com')

        assert response.status_code == status.HTTP_200_OK

    def test_password_protected_survey(self, api_client, published_survey):
        configure_access(published_survey, password='letmein')

        response = self.check(api_client, published_survey)
        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.data['reason'] == 'password_required'

        response = self.check(api_client, published_survey, password='guess')
        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.data['reason'] == 'password_incorrect'

        response = self.check(api_client, published_survey, password='letmein')
        assert response.status_code == status.HTTP_200_OK

    def test_restricted_with_correct_password_but_wrong_email(self, api_client, published_survey):
        configure_access(
            published_survey,
            password='letmein',
            permission_type='restricted',
            allowed_emails=['alice@example.com'],
        )

        response = self.check(api_client, published_survey, email='bob@example.com', password='letmein')

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.data['reason'] == 'email_not_allowlisted'

    def test_time_window(self, api_client, published_survey):
        now = timezone.now()

        configure_access(published_survey, start_date=now + timedelta(days=1))
        response = self.check(api_client, published_survey)
        assert response.data['reason'] == 'not_yet_started'

        configure_access(published_survey, start_date=now - timedelta(days=2), end_date=now - timedelta(days=1))
        response = self.check(api_client, published_survey)
        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.data['reason'] == 'expired'

    def test_expired_wins_over_authentication(self, api_client, published_survey):
        configure_access(
            published_survey,
            permission_type='authenticated',
            end_date=timezone.now() - timedelta(days=1),
        )

        response = self.check(api_client, published_survey)

        assert response.data['reason'] == 'expired'

    def test_response_limit_reached(self, api_client, published_survey):
        published_survey.max_responses = 1
        published_survey.save()
        SurveyResponse.objects.create(survey=published_survey, session_token='existing')

        response = self.check(api_client, published_survey)

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.data['reason'] == 'response_limit_reached'
