import pytest
from types import SimpleNamespace
from django.contrib.auth.models import AnonymousUser
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient
from surveys.models import Survey, Question, QuestionOption
from users.models import User, UserSession, Role, Permission, RolePermission
from users.permissions import CanEditSurvey, CanCreateSurvey, owning_survey, user_has_permission
from users.roles import ROLES, seed_roles

PASSWORD = 'ExistingPass123!'


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def user_data():
    return {
        'email': 'test@example.com',
        'password': 'TestPass123!',
        'first_name': 'Test',
        'last_name': 'User',
    }


@pytest.fixture
def created_user(db):
    user = User.objects.create_user(
        email='existing@example.com',
        password=PASSWORD,
        first_name='Existing',
        last_name='User',
    )
    user.assign_role('author')
    return user


def login(client, email='existing@example.com', password=PASSWORD):
    """Log in and attach the access token to `client`. Returns the token pair."""
    response = client.post(reverse('login'), {'email': email, 'password': password}, format='json')
    assert response.status_code == status.HTTP_200_OK
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")
    return response.data


@pytest.mark.django_db
class TestRegistration:

    def test_register_success(self, api_client, user_data):
        response = api_client.post(reverse('register'), user_data, format='json')

        assert response.status_code == status.HTTP_201_CREATED
        assert {'user', 'access', 'refresh'} <= set(response.data)
        assert response.data['user']['email'] == user_data['email']
        user = User.objects.get(email=user_data['email'])
        assert UserSession.objects.filter(user=user, is_active=True).exists()

    def test_register_assigns_author_role(self, api_client, user_data):
        """New accounts can create surveys but hold no survey-wide permissions."""
        response = api_client.post(reverse('register'), user_data, format='json')

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['user']['roles'] == ['author']
        user = User.objects.get(email=user_data['email'])
        assert user.has_permission('create_survey')
        assert not user.has_permission('view_responses')

    def test_register_without_seeded_roles(self, api_client, user_data):
        Role.objects.filter(name='author').delete()

        response = api_client.post(reverse('register'), user_data, format='json')

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['user']['roles'] == []

    def test_register_duplicate_email(self, api_client, user_data, created_user):
        user_data['email'] = created_user.email
        response = api_client.post(reverse('register'), user_data, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_register_weak_password(self, api_client, user_data):
        user_data['password'] = '123'
        response = api_client.post(reverse('register'), user_data, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'password' in response.data


@pytest.mark.django_db
class TestSessions:
    """Login opens a session; logout closes it and kills its tokens."""

    def test_login_creates_session(self, api_client, created_user):
        tokens = login(api_client)

        assert tokens['user']['roles'] == ['author']
        assert UserSession.objects.filter(user=created_user, is_active=True).count() == 1

    def test_login_wrong_password(self, api_client, created_user):
        response = api_client.post(reverse('login'), {
            'email': created_user.email,
            'password': 'WrongPassword!',
        }, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_login_disabled_account(self, api_client, created_user):
        created_user.is_active = False
        created_user.save()

        response = api_client.post(reverse('login'), {
            'email': created_user.email, 'password': PASSWORD,
        }, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_logout_invalidates_access_token(self, api_client, created_user):
        login(api_client)

        response = api_client.post(reverse('logout'))

        assert response.status_code == status.HTTP_200_OK
        session = UserSession.objects.get(user=created_user)
        assert session.is_active is False
        assert session.logged_out_at is not None
        assert api_client.get(reverse('profile')).status_code == status.HTTP_401_UNAUTHORIZED

    def test_logout_keeps_other_sessions(self, created_user):
        first, second = APIClient(), APIClient()
        login(first)
        login(second)

        first.post(reverse('logout'))

        assert second.get(reverse('profile')).status_code == status.HTTP_200_OK

    def test_refresh_token(self, api_client, created_user):
        tokens = login(api_client)
        api_client.credentials()

        response = api_client.post(reverse('token-refresh'), {'refresh': tokens['refresh']}, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert 'access' in response.data

    def test_refresh_fails_after_logout(self, api_client, created_user):
        tokens = login(api_client)
        api_client.post(reverse('logout'))
        api_client.credentials()

        response = api_client.post(reverse('token-refresh'), {'refresh': tokens['refresh']}, format='json')

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_refresh_garbage_token(self, api_client):
        response = api_client.post(reverse('token-refresh'), {'refresh': 'not-a-token'}, format='json')

        assert response.status_code == status.HTTP_401_UNAUTHORIZED


@pytest.mark.django_db
class TestProfile:

    def test_get_profile(self, api_client, created_user):
        login(api_client)

        response = api_client.get(reverse('profile'))

        assert response.status_code == status.HTTP_200_OK
        assert response.data['email'] == created_user.email

    def test_update_profile(self, api_client, created_user):
        login(api_client)

        response = api_client.patch(reverse('profile'), {
            'first_name': 'Updated',
            'email': 'hijack@example.com',
        }, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['first_name'] == 'Updated'
        assert response.data['email'] == created_user.email

    def test_profile_requires_auth(self, api_client):
        assert api_client.get(reverse('profile')).status_code == status.HTTP_401_UNAUTHORIZED


@pytest.mark.django_db
class TestSignedInRespondent:
    """The JWT identity is what restricted surveys check against their allowlist."""

    @pytest.fixture
    def restricted_survey(self, db):
        owner = User.objects.create_user(email='owner@example.com', password='pass')
        survey = Survey.objects.create_with_permission(
            title='Staff only', status=Survey.Status.PUBLISHED, created_by=owner
        )
        survey.permission.permission_type = 'restricted'
        survey.permission.allowed_emails = ['existing@example.com']
        survey.permission.is_active = True
        survey.permission.save()
        return survey

    def test_allowlisted_user_gets_in(self, api_client, created_user, restricted_survey):
        login(api_client)

        url = reverse('survey-access-check', kwargs={'survey_pk': restricted_survey.id})
        response = api_client.post(url, {}, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['allowed'] is True

    def test_logged_out_token_is_rejected(self, api_client, created_user, restricted_survey):
        login(api_client)
        api_client.post(reverse('logout'))

        url = reverse('survey-access-check', kwargs={'survey_pk': restricted_survey.id})
        response = api_client.post(url, {}, format='json')

        assert response.status_code == status.HTTP_401_UNAUTHORIZED


@pytest.mark.django_db
class TestRoles:

    def test_seeded_roles(self):
        for name, (_, codenames) in ROLES.items():
            role = Role.objects.get(name=name)
            granted = set(role.role_permissions.values_list('permission__codename', flat=True))
            assert granted == set(codenames)

    def test_seed_roles_is_idempotent(self):
        before = RolePermission.objects.count()

        seed_roles(Role, Permission, RolePermission)

        assert RolePermission.objects.count() == before

    def test_assign_unknown_role(self, created_user):
        with pytest.raises(Role.DoesNotExist):
            created_user.assign_role('owner')

    def test_user_has_permission(self, created_user):
        viewer = User.objects.create_user(email='viewer@example.com', password='pass')
        viewer.assign_role('viewer')
        admin = User.objects.create_superuser(email='root@example.com', password='pass')

        assert user_has_permission(viewer, 'view_analytics')
        assert not user_has_permission(viewer, 'edit_survey')
        assert user_has_permission(admin, 'manage_users')
        assert not user_has_permission(AnonymousUser(), 'create_survey')
        assert not user_has_permission(created_user, 'manage_access')


@pytest.mark.django_db
class TestSurveyOwnership:

    @pytest.fixture
    def survey(self, created_user):
        return Survey.objects.create_with_permission(title='Mine', created_by=created_user)

    def test_owning_survey_walks_up(self, survey):
        question = Question.objects.create(survey=survey, text='Pick', question_type='single_choice', order=1)
        option = QuestionOption.objects.create(question=question, label='A', value='a', order=1)

        assert owning_survey(option) == survey
        assert owning_survey(question) == survey
        assert owning_survey(survey.permission) == survey
        assert owning_survey(survey) == survey

    def test_owner_allowed_on_own_survey_only(self, created_user, survey):
        stranger = User.objects.create_user(email='stranger@example.com', password='pass')
        permission = CanEditSurvey()

        assert permission.has_object_permission(SimpleNamespace(user=created_user), None, survey)
        assert not permission.has_object_permission(SimpleNamespace(user=stranger), None, survey)

    def test_role_permission_without_ownership(self, created_user):
        anonymous = SimpleNamespace(user=AnonymousUser())
        viewer = User.objects.create_user(email='viewer@example.com', password='pass')
        viewer.assign_role('viewer')

        assert CanCreateSurvey().has_permission(SimpleNamespace(user=created_user), None)
        assert not CanCreateSurvey().has_permission(SimpleNamespace(user=viewer), None)
        assert not CanEditSurvey().has_permission(anonymous, None)
