"""
Load Testing for Survey Platform API.

Usage:
    1. Start Django: python manage.py runserver
    2. Run Locust:   locust -f load_tests/locustfile.py --host=http://localhost:8000
    3. Open:         http://localhost:8089

A test survey is auto-created on startup and cleaned up on shutdown.
"""
import os
import sys
import random

from locust import HttpUser, task, between, events

# =============================================================================
# DJANGO SETUP
# =============================================================================

project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')

import django
django.setup()

from surveys.models import Survey, Question, QuestionOption
from users.models import User

# =============================================================================
# CONFIGURATION
# =============================================================================

# Use existing survey ID, or leave empty to auto-create one
TEST_SURVEY_ID = os.getenv("TEST_SURVEY_ID", "")

# Task weights: higher = more frequent
WEIGHT_CHECK_ACCESS = 2      # Opening the survey link
WEIGHT_START_SURVEY = 3      # Starting new sessions
WEIGHT_SUBMIT_ANSWERS = 5    # Submitting answers and finishing

# Wait time between tasks (seconds)
WAIT_TIME_MIN = 1
WAIT_TIME_MAX = 3

# Internal state
_created_survey_id = None

# =============================================================================
# TEST SURVEY SETUP & CLEANUP
# =============================================================================


def create_test_survey():
    """Create a published public survey with a few questions."""
    global _created_survey_id

    user, _ = User.objects.get_or_create(
        email='loadtest@example.com',
        defaults={'is_active': True}
    )

    survey = Survey.objects.filter(title='Load Test Survey', created_by=user).first()
    if survey is None:
        survey = Survey.objects.create_with_permission(
            title='Load Test Survey',
            description='Auto-generated for load testing',
            status=Survey.Status.PUBLISHED,
            created_by=user
        )
        survey.permission.is_active = True
        survey.permission.save()
        _create_survey_questions(survey)
        print(f"✓ Created test survey: {survey.id}")
    else:
        print(f"✓ Using existing test survey: {survey.id}")

    _created_survey_id = str(survey.id)
    return _created_survey_id


def _create_survey_questions(survey):
    Question.objects.create(
        survey=survey, text='Name', question_type=Question.QuestionType.TEXT,
        is_required=True, order=1
    )
    Question.objects.create(
        survey=survey, text='How likely are you to recommend us?',
        question_type=Question.QuestionType.RATING,
        is_required=True, order=2, settings={'min': 0, 'max': 10}
    )
    choice = Question.objects.create(
        survey=survey, text='Preference', question_type=Question.QuestionType.SINGLE_CHOICE,
        is_required=True, order=3
    )
    for i, label in enumerate(['Option A', 'Option B', 'Option C'], 1):
        QuestionOption.objects.create(
            question=choice, label=label, value=f'option{i}', order=i
        )
    Question.objects.create(
        survey=survey, text='Comments', question_type=Question.QuestionType.TEXTAREA,
        is_required=False, order=4
    )


def cleanup_test_survey():
    """Delete the auto-created test survey."""
    global _created_survey_id

    if not _created_survey_id:
        return

    survey = Survey.objects.filter(id=_created_survey_id, title='Load Test Survey').first()
    if survey:
        survey.delete()
        print(f"✓ Cleaned up test survey: {_created_survey_id}")
    _created_survey_id = None


def get_survey_id():
    """Get the survey ID for testing (env var or auto-created)."""
    return TEST_SURVEY_ID or _created_survey_id


# =============================================================================
# LOCUST EVENT HANDLERS
# =============================================================================


@events.init.add_listener
def on_init(environment, **kwargs):
    """Set up test survey when Locust starts."""
    if TEST_SURVEY_ID:
        print(f"\n{'='*50}")
        print(f"Using survey: {TEST_SURVEY_ID}")
        print(f"{'='*50}\n")
        return

    survey_id = create_test_survey()
    print(f"\n{'='*50}")
    print(f"Test Survey ID: {survey_id}")
    print(f"{'='*50}\n")


@events.test_stop.add_listener
def on_stop(environment, **kwargs):
    """Clean up test survey when Locust stops (only if auto-created)."""
    if not TEST_SURVEY_ID:
        cleanup_test_survey()


# =============================================================================
# ANSWER GENERATION
# =============================================================================


def generate_answer(question):
    """Generate a random test answer based on question type."""
    options = [opt['value'] for opt in question.get('options', [])]
    settings = question.get('settings') or {}
    generators = {
        'text': lambda: f"Answer {random.randint(1, 1000)}",
        'textarea': lambda: "Load test comment",
        'date': lambda: "2024-01-15",
        'rating': lambda: random.randint(settings.get('min', 1), settings.get('max', 5)),
        'single_choice': lambda: random.choice(options) if options else None,
        'multiple_choice': lambda: options[:2],
    }
    return generators.get(question.get('question_type'), lambda: None)()


# =============================================================================
# LOAD TEST USER
# =============================================================================


class SurveyUser(HttpUser):
    """
    Simulates a respondent completing a survey.

    Flow: Check access -> Start survey -> Submit answers -> Finish -> Repeat
    """
    wait_time = between(WAIT_TIME_MIN, WAIT_TIME_MAX)

    def on_start(self):
        self.survey_id = get_survey_id()
        self.session_token = None
        self.questions = []

    @task(WEIGHT_CHECK_ACCESS)
    def check_access(self):
        """Open the survey link and load its questions."""
        if not self.survey_id:
            return

        response = self.client.post(
            f"/api/v1/surveys/{self.survey_id}/access/check/",
            json={},
            name="Check Access"
        )

        if response.status_code == 200:
            self.questions = response.json()['survey']['questions']
        elif response.status_code == 404:
            self.survey_id = None

    @task(WEIGHT_START_SURVEY)
    def start_survey(self):
        """Start a new survey session."""
        if not self.survey_id:
            return

        response = self.client.post(
            f"/api/v1/surveys/{self.survey_id}/submissions/start/",
            json={'metadata': {'location': random.choice(['FR', 'US', 'NG'])}},
            name="Start Survey"
        )

        if response.status_code == 201:
            self.session_token = response.json().get('session_token')
        elif response.status_code == 404:
            self.survey_id = None

    @task(WEIGHT_SUBMIT_ANSWERS)
    def submit_and_finish(self):
        """Answer every question, then finish the session."""
        if not self._ensure_session():
            return

        answers = self._build_answers()
        if not answers:
            return

        with self.client.post(
            "/api/v1/submissions/answers/",
            json={"answers": answers},
            headers={"X-Session-Token": self.session_token},
            name="Submit Answers",
            catch_response=True
        ) as response:
            if response.status_code == 200:
                response.success()
            elif response.status_code == 400:
                response.failure(f"Validation: {self._extract_error(response)}")
                return
            else:
                response.failure(f"HTTP {response.status_code}")
                self.session_token = None
                return

        self.client.post(
            "/api/v1/submissions/finish/",
            headers={"X-Session-Token": self.session_token},
            name="Finish Survey"
        )
        self.session_token = None

    # -------------------------------------------------------------------------
    # Helper Methods
    # -------------------------------------------------------------------------

    def _ensure_session(self):
        """Ensure we have questions and a valid session, starting one if needed."""
        if not self.survey_id:
            return False
        if not self.questions:
            self.check_access()
        if not self.session_token:
            self.start_survey()
        return bool(self.session_token and self.questions)

    def _build_answers(self):
        answers = []
        for question in self.questions:
            value = generate_answer(question)
            if value is None:
                continue
            answers.append({"question_id": str(question['id']), "value": value})
        return answers

    def _extract_error(self, response):
        """Extract error message from validation response."""
        try:
            errors = response.json().get('errors', {})
        except ValueError:
            return "unknown"
        if errors:
            key, val = next(iter(errors.items()))
            return f"{key}: {val}"
        return "unknown"
