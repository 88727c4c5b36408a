from django.urls import path, include
from rest_framework.routers import DefaultRouter
from rest_framework_nested import routers

from .views import (
    SurveyViewSet,
    QuestionViewSet,
    QuestionOptionViewSet,
    SurveyAccessCheckView,
)

# Main router for surveys
router = DefaultRouter()
router.register(r'surveys', SurveyViewSet, basename='survey')

# Nested router for questions under surveys
surveys_router = routers.NestedDefaultRouter(router, r'surveys', lookup='survey')
surveys_router.register(r'questions', QuestionViewSet, basename='survey-questions')

# Nested router for options under questions
questions_router = routers.NestedDefaultRouter(surveys_router, r'questions', lookup='question')
questions_router.register(r'options', QuestionOptionViewSet, basename='question-options')

urlpatterns = [
    path('surveys/<uuid:survey_pk>/access/check/', SurveyAccessCheckView.as_view(), name='survey-access-check'),
    path('', include(router.urls)),
    path('', include(surveys_router.urls)),
    path('', include(questions_router.urls)),
]
