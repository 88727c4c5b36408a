import pytest
from rest_framework.test import APIClient
from django.urls import reverse
from rest_framework import status
from surveys.models import Question
from audit.models import AuditLog
from audit.mixins import diff_snapshots, snapshot
from users.models import User


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def user(db):
    user = User.objects.create_user(email='audit_tester@example.com', password='pass')
    user.assign_role('author')
    return user


@pytest.fixture
def auth_client(api_client, user):
    api_client.force_authenticate(user=user)
    return api_client


@pytest.mark.django_db
class TestAuditLog:
    """Test audit logging via SurveyViewSet."""

    def test_audit_logs_lifecycle(self, auth_client, user):
        # 1. CREATE Survey
        url = reverse('survey-list')
        response = auth_client.post(url, {
            'title': 'Audit Survey',
            'description': 'Testing logs',
        })
        assert response.status_code == status.HTTP_201_CREATED
        survey_id = response.data['id']

        log = AuditLog.objects.filter(resource_id=survey_id, action=AuditLog.Action.CREATED).first()
        assert log is not None
        assert log.user == user
        assert log.resource_type == AuditLog.ResourceType.SURVEY

        # 2. UPDATE Survey
        detail_url = reverse('survey-detail', kwargs={'pk': survey_id})
        response = auth_client.patch(detail_url, {
            'title': 'Audit Survey Updated'
        })
        assert response.status_code == status.HTTP_200_OK

        log = AuditLog.objects.filter(resource_id=survey_id, action=AuditLog.Action.UPDATED).first()
        assert log is not None
        assert log.changes['title'] == {'old': 'Audit Survey', 'new': 'Audit Survey Updated'}

        # 3. PUBLISH and CLOSE Survey
        Question.objects.create(survey_id=survey_id, text='Q1', question_type='text', order=1)
        auth_client.post(reverse('survey-publish', kwargs={'pk': survey_id}))
        auth_client.post(reverse('survey-close', kwargs={'pk': survey_id}))

        actions = set(AuditLog.objects.filter(resource_id=survey_id).values_list('action', flat=True))
        assert {AuditLog.Action.PUBLISHED, AuditLog.Action.CLOSED} <= actions

        # 4. DELETE Survey
        response = auth_client.delete(detail_url)
        assert response.status_code == status.HTTP_204_NO_CONTENT

        log = AuditLog.objects.filter(resource_id=survey_id, action=AuditLog.Action.DELETED).first()
        assert log is not None

    def test_unchanged_update_is_not_logged(self, auth_client):
        response = auth_client.post(reverse('survey-list'), {'title': 'Same'})
        survey_id = response.data['id']

        auth_client.patch(reverse('survey-detail', kwargs={'pk': survey_id}), {'title': 'Same'})

        assert not AuditLog.objects.filter(resource_id=survey_id, action=AuditLog.Action.UPDATED).exists()

    def test_profile_update_logged(self, auth_client, user):
        auth_client.patch(reverse('profile'), {'first_name': 'Audrey'}, format='json')

        log = AuditLog.objects.get(resource_id=user.id, action=AuditLog.Action.UPDATED)
        assert log.resource_type == AuditLog.ResourceType.USER
        assert log.changes['first_name'] == {'old': '', 'new': 'Audrey'}


@pytest.mark.django_db
def test_snapshot_redacts_password_hashes(user):
    before = snapshot(user)
    user.set_password('another-pass')
    user.save()

    changes = diff_snapshots(before, snapshot(user))

    assert before['password'] == '[set]'
    assert 'password' not in changes
