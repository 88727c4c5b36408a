import uuid
import pytest
from datetime import datetime, timedelta
from unittest.mock import patch
from django.core import mail
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient
from users.models import User
from surveys.models import Survey, Question, QuestionOption
from submissions.models import SurveyResponse, Answer, Invitation


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def user(db):
    user = User.objects.create_user(email='test@example.com', password='pass')
    user.assign_role('author')
    return user


@pytest.fixture
def other_user(db):
    user = User.objects.create_user(email='other@example.com', password='pass')
    user.assign_role('author')
    return user


@pytest.fixture
def viewer_user(db):
    user = User.objects.create_user(email='viewer@example.com', password='pass')
    user.assign_role('viewer')
    return user


@pytest.fixture
def owner_client(user):
    client = APIClient()
    client.force_authenticate(user=user)
    return client


@pytest.fixture
def survey(user):
    survey = Survey.objects.create_with_permission(
        title='Customer Feedback',
        status=Survey.Status.PUBLISHED,
        created_by=user
    )
    survey.permission.is_active = True
    survey.permission.save()
    return survey


@pytest.fixture
def question(survey):
    return Question.objects.create(
        survey=survey,
        text='Name',
        question_type=Question.QuestionType.TEXT,
        is_required=True,
        order=1
    )


@pytest.fixture
def choice_question(survey):
    question = Question.objects.create(
        survey=survey,
        text='Favourite plan',
        question_type=Question.QuestionType.SINGLE_CHOICE,
        order=2
    )
    for order, (value, label) in enumerate([('a', 'Alpha'), ('b', 'Beta'), ('c', 'Gamma')], start=1):
        QuestionOption.objects.create(question=question, value=value, label=label, order=order)
    return question


@pytest.fixture
def rating_question(survey):
    return Question.objects.create(
        survey=survey,
        text='How likely are you to recommend us?',
        question_type=Question.QuestionType.RATING,
        settings={'min': 0, 'max': 10},
        order=3
    )


def start(client, survey, **data):
    url = reverse('survey-submissions-start', kwargs={'survey_pk': survey.id})
    return client.post(url, data, format='json')


def submit(client, token, answers):
    client.credentials(HTTP_X_SESSION_TOKEN=token)
    return client.post(reverse('submissions-submit-answers'), {'answers': answers}, format='json')


def finish(client, token):
    client.credentials(HTTP_X_SESSION_TOKEN=token)
    return client.post(reverse('submissions-finish-survey'))


# ============ SUBMISSION TESTS ============

@pytest.mark.django_db
class TestSubmissionFlow:

    def test_full_submission_flow(self, api_client, survey, question):
        """Start, answer and finish a survey anonymously."""
        response = start(api_client, survey)
        assert response.status_code == status.HTTP_201_CREATED
        token = response.data['session_token']

        response = submit(api_client, token, [
            {'question_id': str(question.id), 'value': 'Ada', 'time_spent_seconds': 4.5}
        ])
        assert response.status_code == status.HTTP_200_OK
        assert response.data['answered'] == 1
        assert response.data['total_questions'] == 1

        response = finish(api_client, token)
        assert response.status_code == status.HTTP_200_OK

        survey_response = SurveyResponse.objects.get(session_token=token)
        assert survey_response.status == SurveyResponse.Status.COMPLETED
        assert survey_response.completed_at is not None
        answer = Answer.objects.get(response=survey_response, question=question)
        assert answer.value == 'Ada'
        assert answer.time_spent_seconds == 4.5

    def test_start_survey_invalid_id(self, api_client):
        url = reverse('survey-submissions-start', kwargs={'survey_pk': uuid.uuid4()})
        response = api_client.post(url)

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_start_draft_survey(self, api_client, survey):
        survey.status = Survey.Status.DRAFT
        survey.save()

        response = start(api_client, survey)

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_start_denied_creates_no_response(self, api_client, survey):
        survey.permission.permission_type = 'restricted'
        survey.permission.allowed_emails = ['alice@example.com']
        survey.permission.save()

        response = start(api_client, survey, email='mallory@example.com')

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.data['reason'] == 'email_not_allowlisted'
        assert not SurveyResponse.objects.filter(survey=survey).exists()

    def test_start_records_identity_and_metadata(self, api_client, survey):
        survey.permission.permission_type = 'restricted'
        survey.permission.allowed_emails = ['alice@example.com']
        survey.permission.save()

        response = start(
            api_client, survey,
            email='Alice@Example.com',
            metadata={'location': 'FR', 'age': 31},
        )

        assert response.status_code == status.HTTP_201_CREATED
        survey_response = SurveyResponse.objects.get(id=response.data['response_id'])
        assert survey_response.respondent is None
        assert survey_response.respondent_email == 'alice@example.com'
        assert survey_response.metadata == {'location': 'FR', 'age': 31}

    def test_start_links_signed_in_respondent(self, api_client, survey, other_user):
        survey.permission.permission_type = 'authenticated'
        survey.permission.save()
        api_client.force_authenticate(user=other_user)

        response = start(api_client, survey)

        assert response.status_code == status.HTTP_201_CREATED
        survey_response = SurveyResponse.objects.get(id=response.data['response_id'])
        assert survey_response.respondent == other_user
        assert survey_response.respondent_email == other_user.email

    def test_unknown_metadata_rejected(self, api_client, survey):
        response = start(api_client, survey, metadata={'income': 100000})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'metadata' in response.data

    def test_max_responses(self, api_client, survey):
        survey.max_responses = 1
        survey.save()

        assert start(api_client, survey).status_code == status.HTTP_201_CREATED

        response = start(api_client, survey)
        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.data['reason'] == 'response_limit_reached'
        assert survey.responses.count() == 1

    def test_submit_without_token(self, api_client, question):
        response = api_client.post(reverse('submissions-submit-answers'), {
            'answers': [{'question_id': str(question.id), 'value': 'x'}]
        }, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_submit_invalid_token(self, api_client, question):
        response = submit(api_client, str(uuid.uuid4()), [{'question_id': str(question.id), 'value': 'x'}])

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_answer_validation(self, api_client, survey, question, choice_question, rating_question):
        date_question = Question.objects.create(
            survey=survey, text='Visit date', question_type=Question.QuestionType.DATE, order=4
        )
        token = start(api_client, survey).data['session_token']

        response = submit(api_client, token, [
            {'question_id': str(question.id), 'value': 42},
            {'question_id': str(choice_question.id), 'value': 'z'},
            {'question_id': str(rating_question.id), 'value': 11},
            {'question_id': str(date_question.id), 'value': '2024-02-30'},
        ])

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['status'] == 'error'
        assert set(response.data['errors']) == {
            str(question.id), str(choice_question.id), str(rating_question.id), str(date_question.id)
        }
        assert 'not a valid date' in response.data['errors'][str(date_question.id)]
        assert not Answer.objects.exists()

    def test_question_from_other_survey_rejected(self, api_client, survey, user):
        other_survey = Survey.objects.create_with_permission(title='Other', created_by=user)
        foreign = Question.objects.create(
            survey=other_survey, text='Elsewhere', question_type='text', order=1
        )
        token = start(api_client, survey).data['session_token']

        response = submit(api_client, token, [{'question_id': str(foreign.id), 'value': 'x'}])

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert str(foreign.id) in response.data['errors']

    def test_resubmitting_replaces_answer(self, api_client, survey, question):
        token = start(api_client, survey).data['session_token']

        submit(api_client, token, [{'question_id': str(question.id), 'value': 'first'}])
        submit(api_client, token, [{'question_id': str(question.id), 'value': 'second'}])

        answers = Answer.objects.filter(question=question)
        assert answers.count() == 1
        assert answers.get().value == 'second'

    def test_finish_requires_required_answers(self, api_client, survey, question, choice_question):
        token = start(api_client, survey).data['session_token']
        submit(api_client, token, [{'question_id': str(choice_question.id), 'value': 'a'}])

        response = finish(api_client, token)
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert list(response.data['errors']) == [str(question.id)]

        submit(api_client, token, [{'question_id': str(question.id), 'value': 'Ada'}])
        assert finish(api_client, token).status_code == status.HTTP_200_OK

    def test_blank_answer_does_not_satisfy_required(self, api_client, survey, question):
        token = start(api_client, survey).data['session_token']
        submit(api_client, token, [{'question_id': str(question.id), 'value': '   '}])

        assert finish(api_client, token).status_code == status.HTTP_400_BAD_REQUEST

    def test_completed_session_rejected(self, api_client, survey, question):
        token = start(api_client, survey).data['session_token']
        submit(api_client, token, [{'question_id': str(question.id), 'value': 'Ada'}])
        finish(api_client, token)

        response = submit(api_client, token, [{'question_id': str(question.id), 'value': 'again'}])

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_survey_closed_mid_session(self, api_client, survey, question):
        token = start(api_client, survey).data['session_token']
        survey.status = Survey.Status.CLOSED
        survey.save()

        response = submit(api_client, token, [{'question_id': str(question.id), 'value': 'late'}])

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.data['reason'] == 'inactive'


# ============ RESPONSE MANAGEMENT TESTS ============

@pytest.fixture
def survey_response(survey, question):
    response = SurveyResponse.objects.create(
        survey=survey,
        session_token='viewing-token',
        status=SurveyResponse.Status.COMPLETED,
        completed_at=timezone.now(),
        metadata={'location': 'DE'},
    )
    Answer.objects.create(response=response, question=question, value='Test Answer')
    return response


@pytest.mark.django_db
class TestResponseViewing:
    """Tests for response viewing endpoints with RBAC."""

    def test_owner_can_list_responses(self, owner_client, survey, survey_response):
        url = reverse('survey-responses-list', kwargs={'survey_pk': survey.id})
        response = owner_client.get(url)

        assert response.status_code == status.HTTP_200_OK
        assert response.data['count'] == 1
        assert response.data['results'][0]['answers_count'] == 1

    def test_viewer_can_list_responses(self, api_client, viewer_user, survey, survey_response):
        api_client.force_authenticate(user=viewer_user)
        url = reverse('survey-responses-list', kwargs={'survey_pk': survey.id})

        assert api_client.get(url).status_code == status.HTTP_200_OK

    def test_other_author_cannot_view_responses(self, api_client, other_user, survey, survey_response):
        api_client.force_authenticate(user=other_user)
        url = reverse('survey-responses-list', kwargs={'survey_pk': survey.id})

        assert api_client.get(url).status_code == status.HTTP_403_FORBIDDEN

    def test_list_responses_filtering(self, owner_client, survey, survey_response):
        SurveyResponse.objects.create(survey=survey, session_token='open-token')
        url = reverse('survey-responses-list', kwargs={'survey_pk': survey.id})

        response = owner_client.get(url, {'status': 'in_progress'})
        assert response.data['count'] == 1
        assert response.data['results'][0]['status'] == 'in_progress'

        today = timezone.localdate()
        response = owner_client.get(url, {'start_date': (today + timedelta(days=1)).isoformat()})
        assert response.data['count'] == 0

        assert owner_client.get(url, {'status': 'deleted'}).status_code == status.HTTP_400_BAD_REQUEST
        assert owner_client.get(url, {'start_date': '01/02/2024'}).status_code == status.HTTP_400_BAD_REQUEST

    def test_retrieve_response(self, owner_client, survey_response, question):
        url = reverse('responses-detail', kwargs={'pk': survey_response.id})
        response = owner_client.get(url)

        assert response.status_code == status.HTTP_200_OK
        assert response.data['metadata'] == {'location': 'DE'}
        assert response.data['answers'][0]['question_id'] == str(question.id)
        assert response.data['answers'][0]['value'] == 'Test Answer'

    def test_retrieve_other_authors_response(self, api_client, other_user, survey_response):
        api_client.force_authenticate(user=other_user)
        url = reverse('responses-detail', kwargs={'pk': survey_response.id})

        assert api_client.get(url).status_code == status.HTTP_404_NOT_FOUND

    def test_list_responses_requires_authentication(self, api_client, survey):
        url = reverse('survey-responses-list', kwargs={'survey_pk': survey.id})

        assert api_client.get(url).status_code == status.HTTP_401_UNAUTHORIZED


# ============ ANALYTICS TESTS ============

DAY = datetime(2024, 3, 10, 9, 0)


@pytest.fixture
def survey_with_responses(survey, question, choice_question):
    """5 completed responses (5-9 minutes each) and 3 in progress, all on DAY."""
    base = timezone.make_aware(DAY)
    for i in range(5):
        response = SurveyResponse.objects.create(
            survey=survey,
            session_token=f'completed-token-{i}',
            status=SurveyResponse.Status.COMPLETED,
            user_agent='Mozilla/5.0 (Windows NT 10.0; Win64; x64)' if i % 2 == 0 else
                       'Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) Mobile/15E148',
            metadata={'location': 'FR', 'age': 31} if i < 2 else {},
        )
        started = base + timedelta(minutes=10 * i)
        SurveyResponse.objects.filter(id=response.id).update(
            started_at=started,
            completed_at=started + timedelta(minutes=5 + i),
        )
        Answer.objects.create(response=response, question=question, value=f'Answer {i}', time_spent_seconds=10)
        if i < 2:
            Answer.objects.create(response=response, question=choice_question, value='a')

    for i in range(3):
        response = SurveyResponse.objects.create(survey=survey, session_token=f'in-progress-token-{i}')
        SurveyResponse.objects.filter(id=response.id).update(started_at=base + timedelta(hours=2))

    return survey


@pytest.mark.django_db
class TestSurveyAnalytics:
    """Tests for survey-specific analytics endpoint."""

    def analytics_url(self, survey):
        return reverse('survey-responses-analytics', kwargs={'survey_pk': survey.id})

    def test_get_survey_analytics(self, owner_client, survey_with_responses, question, choice_question):
        response = owner_client.get(self.analytics_url(survey_with_responses), {
            'start_date': '2024-03-09',
            'end_date': '2024-03-11',
        })

        assert response.status_code == status.HTTP_200_OK
        data = response.data
        assert data['survey_id'] == str(survey_with_responses.id)
        assert data['survey_title'] == survey_with_responses.title
        assert data['total_responses'] == 8
        assert data['completed_responses'] == 5
        assert data['in_progress_responses'] == 3
        assert data['completion_rate'] == 62.5
        assert data['avg_completion_time'] == 420.0
        assert data['median_completion_time'] == 420.0
        assert data['response_velocity'] == 5.0
        assert data['time_distribution']['5_to_10min'] == 5
        assert data['demographics']['device'] == {'desktop': 3, 'mobile': 2}
        assert data['demographics']['location'] == {'FR': 2}
        assert data['demographics']['age'] == {'25-34': 2}

        first, second = data['question_metrics']
        assert first['question_id'] == str(question.id)
        assert first['response_rate'] == 62.5
        assert first['drop_off_rate'] == 75.0
        assert first['avg_time'] == 10.0
        assert second['question_id'] == str(choice_question.id)
        assert second['response_rate'] == 25.0
        assert second['drop_off_rate'] == 0.0
        assert second['avg_time'] is None

        assert [(p['label'], p['value']) for p in data['trends']] == [
            ('Mar 09', 0), ('Mar 10', 5), ('Mar 11', 0)
        ]

    def test_default_trend_range(self, owner_client, survey):
        response = owner_client.get(self.analytics_url(survey))

        assert response.status_code == status.HTTP_200_OK
        assert len(response.data['trends']) == 30
        assert response.data['trends'][-1]['date'] == timezone.localdate()

    def test_analytics_empty_survey(self, owner_client, survey):
        response = owner_client.get(self.analytics_url(survey))

        assert response.status_code == status.HTTP_200_OK
        assert response.data['total_responses'] == 0
        assert response.data['completion_rate'] == 0.0
        assert response.data['avg_completion_time'] == 0.0
        assert response.data['response_velocity'] == 0.0
        assert response.data['last_response_at'] is None

    def test_invalid_date_range(self, owner_client, survey):
        response = owner_client.get(self.analytics_url(survey), {
            'start_date': '2024-03-11',
            'end_date': '2024-03-09',
        })

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_date_range_longer_than_maximum(self, owner_client, survey, settings):
        settings.ANALYTICS_MAX_TREND_DAYS = 7
        url = self.analytics_url(survey)

        assert owner_client.get(url, {
            'start_date': '2024-03-01', 'end_date': '2024-03-07',
        }).status_code == status.HTTP_200_OK
        assert owner_client.get(url, {
            'start_date': '2024-03-01', 'end_date': '2024-03-08',
        }).status_code == status.HTTP_400_BAD_REQUEST
        assert owner_client.get(url, {'start_date': '2024-03-01'}).status_code == status.HTTP_400_BAD_REQUEST
        assert owner_client.get(url, {'end_date': '9999-12-31'}).status_code == status.HTTP_400_BAD_REQUEST

    def test_extreme_date_range_rejected(self, owner_client, survey):
        response = owner_client.get(self.analytics_url(survey), {
            'start_date': '1000-01-01',
            'end_date': '9999-12-31',
        })

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'end_date' in response.data

    def test_analytics_requires_authentication(self, api_client, survey):
        assert api_client.get(self.analytics_url(survey)).status_code == status.HTTP_401_UNAUTHORIZED

    def test_analytics_requires_permission(self, api_client, other_user, survey):
        api_client.force_authenticate(user=other_user)

        assert api_client.get(self.analytics_url(survey)).status_code == status.HTTP_403_FORBIDDEN

    def test_viewer_can_see_analytics(self, api_client, viewer_user, survey):
        api_client.force_authenticate(user=viewer_user)

        assert api_client.get(self.analytics_url(survey)).status_code == status.HTTP_200_OK

    def test_analytics_not_found(self, owner_client):
        url = reverse('survey-responses-analytics', kwargs={'survey_pk': uuid.uuid4()})

        assert owner_client.get(url).status_code == status.HTTP_404_NOT_FOUND

    def test_new_submission_refreshes_analytics(self, owner_client, api_client, survey, question):
        assert owner_client.get(self.analytics_url(survey)).data['total_responses'] == 0

        token = start(api_client, survey).data['session_token']
        assert owner_client.get(self.analytics_url(survey)).data['total_responses'] == 1

        submit(api_client, token, [{'question_id': str(question.id), 'value': 'Ada'}])
        finish(api_client, token)
        data = owner_client.get(self.analytics_url(survey)).data
        assert data['completed_responses'] == 1
        assert data['trends'][-1]['value'] == 1


@pytest.mark.django_db
class TestAnalyticsService:
    """Tests for the AnalyticsService class."""

    def test_results_are_cached_until_invalidated(self, survey):
        from submissions.services import AnalyticsService

        service = AnalyticsService()
        first = service.get_survey_analytics(survey)
        assert first['total_responses'] == 0

        # Written behind the service's back: the cached result is served
        SurveyResponse.objects.create(survey=survey, session_token='sneaky')
        assert service.get_survey_analytics(survey)['total_responses'] == 0

        service.invalidate_survey_cache(survey.id)
        assert service.get_survey_analytics(survey)['total_responses'] == 1

    def test_bypass_cache(self, survey):
        from submissions.services import AnalyticsService

        service = AnalyticsService()
        service.get_survey_analytics(survey)
        SurveyResponse.objects.create(survey=survey, session_token='fresh')

        assert service.get_survey_analytics(survey, use_cache=False)['total_responses'] == 1

    def test_invalidate_without_cached_version(self, survey):
        from django.core.cache import cache
        from submissions.services import AnalyticsService

        service = AnalyticsService()
        cache.delete(service._version_key(survey.id))

        service.invalidate_survey_cache(survey.id)

        assert cache.get(service._version_key(survey.id)) == 2


# ============ CHART TESTS ============

@pytest.mark.django_db
class TestAnswerCharts:

    @pytest.fixture
    def answered_choice(self, survey, choice_question):
        for i, value in enumerate(['c'] * 6 + ['a'] * 3 + ['b']):
            response = SurveyResponse.objects.create(survey=survey, session_token=f'chart-{i}')
            Answer.objects.create(response=response, question=choice_question, value=value)
        return choice_question

    def chart_url(self, survey, question):
        return reverse('survey-responses-chart', kwargs={'survey_pk': survey.id, 'question_pk': question.id})

    def test_pie_chart_sorted_by_value(self, owner_client, survey, answered_choice):
        response = owner_client.get(self.chart_url(survey, answered_choice), {'type': 'pie'})

        assert response.status_code == status.HTTP_200_OK
        assert response.data['type'] == 'pie'
        assert response.data['has_data'] is True
        points = response.data['series'][0]['data']
        assert [(p['x'], p['y'], p['label']) for p in points] == [
            ('c', 6, 'Gamma'), ('a', 3, 'Alpha'), ('b', 1, 'Beta')
        ]

    def test_bar_chart_keeps_option_order(self, owner_client, survey, answered_choice):
        response = owner_client.get(self.chart_url(survey, answered_choice))

        assert response.data['type'] == 'bar'
        assert [p['x'] for p in response.data['series'][0]['data']] == ['a', 'b', 'c']

    def test_no_answers(self, owner_client, survey, choice_question):
        response = owner_client.get(self.chart_url(survey, choice_question))

        assert response.status_code == status.HTTP_200_OK
        assert response.data['has_data'] is False
        assert response.data['series'] == []

    def test_unknown_chart_type(self, owner_client, survey, answered_choice):
        response = owner_client.get(self.chart_url(survey, answered_choice), {'type': 'radar'})

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_question_of_other_survey(self, owner_client, survey, user):
        other_survey = Survey.objects.create_with_permission(title='Other', created_by=user)
        foreign = Question.objects.create(survey=other_survey, text='Elsewhere', question_type='text', order=1)

        assert owner_client.get(self.chart_url(survey, foreign)).status_code == status.HTTP_404_NOT_FOUND


# ============ INVITATION TESTS ============

@pytest.mark.django_db
class TestInvitationEndpoint:
    """Tests for the batch invitation endpoint."""

    def invitations_url(self, survey):
        return reverse('survey-invitations', kwargs={'survey_pk': survey.id})

    def test_send_invitations_success(self, owner_client, survey, user):
        with patch('submissions.views.send_survey_invitations.delay') as mock_task:
            response = owner_client.post(self.invitations_url(survey), {
                'emails': ['user1@example.com', 'User2@Example.com', 'user1@example.com']
            }, format='json')

        assert response.status_code == status.HTTP_202_ACCEPTED
        assert response.data['recipient_count'] == 2
        assert response.data['survey'] == survey.title

        mock_task.assert_called_once()
        call_kwargs = mock_task.call_args[1]
        assert call_kwargs['survey_id'] == str(survey.id)
        assert call_kwargs['emails'] == ['user1@example.com', 'user2@example.com']
        assert call_kwargs['sent_by_user_id'] == str(user.id)

    def test_draft_survey_cannot_invite(self, owner_client, survey):
        survey.status = Survey.Status.DRAFT
        survey.save()

        with patch('submissions.views.send_survey_invitations.delay') as mock_task:
            response = owner_client.post(self.invitations_url(survey), {'emails': ['a@example.com']}, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        mock_task.assert_not_called()

    def test_restricted_survey_only_invites_allowlist(self, owner_client, survey):
        survey.permission.permission_type = 'restricted'
        survey.permission.allowed_emails = ['alice@example.com']
        survey.permission.save()

        with patch('submissions.views.send_survey_invitations.delay') as mock_task:
            response = owner_client.post(self.invitations_url(survey), {
                'emails': ['ALICE@example.com', 'bob@example.com']
            }, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert len(response.data['emails']) == 1
        assert 'bob@example.com' in response.data['emails'][0]
        mock_task.assert_not_called()

    def test_send_invitations_requires_permission(self, api_client, other_user, survey):
        api_client.force_authenticate(user=other_user)

        response = api_client.post(self.invitations_url(survey), {'emails': ['a@example.com']}, format='json')

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_send_invitations_invalid_emails(self, owner_client, survey):
        response = owner_client.post(self.invitations_url(survey), {'emails': ['not-an-email']}, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_send_invitations_empty_emails(self, owner_client, survey):
        response = owner_client.post(self.invitations_url(survey), {'emails': []}, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST


@pytest.mark.django_db
class TestInvitationTask:
    """Tests for the batch invitation Celery task."""

    def test_send_survey_invitations_task(self, survey, user):
        from submissions.tasks import send_survey_invitations

        emails = ['user1@example.com', 'user2@example.com']

        with patch.object(send_survey_invitations, 'update_state'):
            result = send_survey_invitations(
                survey_id=str(survey.id),
                emails=emails,
                sent_by_user_id=str(user.id)
            )

        assert result['status'] == 'SUCCESS'
        assert result['sent_count'] == 2
        assert result['failed_count'] == 0

        invitations = Invitation.objects.filter(survey=survey)
        assert set(invitations.values_list('email', flat=True)) == set(emails)
        assert all(inv.sent_by == user for inv in invitations)

        assert len(mail.outbox) == 2
        assert mail.outbox[0].subject == f"You're invited: {survey.title}"
        assert f'/survey/{survey.id}' in mail.outbox[0].body
        assert 'password' not in mail.outbox[0].body

    def test_password_note_in_invitation(self, survey):
        from submissions.tasks import send_survey_invitations

        survey.permission.set_password('letmein')
        survey.permission.save()

        with patch.object(send_survey_invitations, 'update_state'):
            send_survey_invitations(survey_id=str(survey.id), emails=['a@example.com'])

        assert 'access password' in mail.outbox[0].body
        assert 'letmein' not in mail.outbox[0].body

    def test_send_survey_invitations_handles_failures(self, survey, user):
        from submissions.tasks import send_survey_invitations

        emails = ['good@example.com', 'bad@example.com', 'good2@example.com']

        def mock_send(email, *args, **kwargs):
            if 'bad' in email:
                raise Exception('Email delivery failed')

        with patch('submissions.tasks._send_invitation_email', side_effect=mock_send):
            with patch.object(send_survey_invitations, 'update_state'):
                result = send_survey_invitations(
                    survey_id=str(survey.id),
                    emails=emails,
                    sent_by_user_id=str(user.id)
                )

        assert result['status'] == 'SUCCESS'
        assert result['sent_count'] == 2
        assert result['failed_count'] == 1
        assert result['failed_emails'][0]['email'] == 'bad@example.com'
        assert Invitation.objects.filter(survey=survey).count() == 2

    def test_send_survey_invitations_survey_not_found(self):
        from submissions.tasks import send_survey_invitations

        with patch.object(send_survey_invitations, 'update_state'):
            result = send_survey_invitations(
                survey_id=str(uuid.uuid4()),
                emails=['user@example.com'],
                sent_by_user_id=None
            )

        assert result['status'] == 'FAILED'
        assert 'not found' in result['error']
