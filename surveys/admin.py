from django.contrib import admin
from .models import Survey, Question, QuestionOption, SurveyPermission


class QuestionInline(admin.TabularInline):
    model = Question
    extra = 1
    ordering = ('order',)


class QuestionOptionInline(admin.TabularInline):
    model = QuestionOption
    extra = 3
    ordering = ('order',)


class SurveyPermissionInline(admin.StackedInline):
    model = SurveyPermission
    can_delete = False
    exclude = ('password_hash',)


@admin.register(Survey)
class SurveyAdmin(admin.ModelAdmin):
    list_display = ('title', 'status', 'created_by', 'max_responses', 'created_at', 'updated_at')
    list_filter = ('status', 'created_at')
    search_fields = ('title', 'description')
    date_hierarchy = 'created_at'
    inlines = [SurveyPermissionInline, QuestionInline]
    readonly_fields = ('created_at', 'updated_at')


@admin.register(Question)
class QuestionAdmin(admin.ModelAdmin):
    list_display = ('text', 'survey', 'question_type', 'is_required', 'order')
    list_filter = ('question_type', 'is_required')
    search_fields = ('text', 'survey__title')
    inlines = [QuestionOptionInline]


@admin.register(SurveyPermission)
class SurveyPermissionAdmin(admin.ModelAdmin):
    list_display = ('survey', 'permission_type', 'is_active', 'start_date', 'end_date')
    list_filter = ('permission_type', 'is_active')
    search_fields = ('survey__title',)
    exclude = ('password_hash',)
