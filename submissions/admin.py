from django.contrib import admin
from .models import SurveyResponse, Answer, Invitation


class AnswerInline(admin.TabularInline):
    model = Answer
    extra = 0
    readonly_fields = ('question', 'value', 'time_spent_seconds', 'answered_at')
    can_delete = False


@admin.register(SurveyResponse)
class SurveyResponseAdmin(admin.ModelAdmin):
    list_display = ('survey', 'respondent', 'respondent_email', 'status', 'started_at', 'completed_at')
    list_filter = ('status', 'survey', 'started_at')
    search_fields = ('survey__title', 'respondent__email', 'respondent_email', 'session_token')
    date_hierarchy = 'started_at'
    readonly_fields = ('started_at', 'completed_at')
    inlines = [AnswerInline]


@admin.register(Answer)
class AnswerAdmin(admin.ModelAdmin):
    list_display = ('question', 'response', 'value', 'time_spent_seconds', 'answered_at')
    list_filter = ('response__survey', 'question__question_type')
    search_fields = ('question__text',)
    readonly_fields = ('answered_at',)


@admin.register(Invitation)
class InvitationAdmin(admin.ModelAdmin):
    list_display = ('survey', 'email', 'sent_by', 'sent_at')
    list_filter = ('survey',)
    search_fields = ('email', 'survey__title')
    readonly_fields = ('sent_at',)
