"""
Service layer for response analytics and answer charts.

Loads responses from the database, flattens them into the plain records the
pure aggregators in `submissions.analytics` and `submissions.charts` work on,
and caches the results.
"""
import logging
from datetime import date, timedelta
from typing import Dict, Optional

from django.conf import settings
from django.core.cache import cache
from django.utils import timezone

from surveys.models import Question, Survey
from .analytics import QuestionRecord, ResponseRecord, compute_analytics
from .charts import (
    ChartConfig,
    ChartType,
    answer_distribution_chart,
    empty_chart,
    process_chart_data,
    sanitize_chart_data,
    validate_chart_data,
)
from .models import Answer, SurveyResponse

logger = logging.getLogger(__name__)


def to_record(response: SurveyResponse) -> ResponseRecord:
    """Flatten a response (with prefetched answers) into a ResponseRecord."""
    answers = {}
    answer_times = {}
    for answer in response.answers.all():
        question_id = str(answer.question_id)
        answers[question_id] = answer.value
        if answer.time_spent_seconds is not None:
            answer_times[question_id] = answer.time_spent_seconds

    return ResponseRecord(
        status=response.status,
        started_at=timezone.localtime(response.started_at),
        completed_at=timezone.localtime(response.completed_at) if response.completed_at else None,
        answers=answers,
        answer_times=answer_times,
        user_agent=response.user_agent,
        metadata=response.metadata or {},
    )


class AnalyticsService:
    """
    Service for computing survey analytics and answer charts.

    Results are cached per survey and trend range. Each survey has a cache
    version number; `invalidate_survey_cache` bumps it, which orphans every
    cached range of that survey at once.
    """

    @property
    def cache_ttl(self) -> int:
        return getattr(settings, 'ANALYTICS_CACHE_TTL', 60)

    @property
    def trend_days(self) -> int:
        return getattr(settings, 'ANALYTICS_TREND_DAYS', 30)

    def _version_key(self, survey_id) -> str:
        return f"survey_analytics_version_{survey_id}"

    def _cache_version(self, survey_id) -> int:
        key = self._version_key(survey_id)
        version = cache.get(key)
        if version is None:
            cache.add(key, 1, None)
            version = cache.get(key, 1)
        return version

    def default_trend_range(self):
        end = timezone.localdate()
        return end - timedelta(days=self.trend_days - 1), end

    def get_survey_analytics(
        self,
        survey: Survey,
        start: Optional[date] = None,
        end: Optional[date] = None,
        use_cache: bool = True,
    ) -> Dict:
        """
        Analytics for `survey` with daily trends from `start` to `end`.

        Without a range the trends cover the last ANALYTICS_TREND_DAYS days,
        ending today.
        """
        if start is None or end is None:
            default_start, default_end = self.default_trend_range()
            start = start or default_start
            end = end or default_end

        cache_key = (
            f"survey_analytics_{survey.id}_v{self._cache_version(survey.id)}"
            f"_{start.isoformat()}_{end.isoformat()}"
        )
        if use_cache:
            cached = cache.get(cache_key)
            if cached is not None:
                return cached

        responses = SurveyResponse.objects.filter(survey=survey).prefetch_related('answers')
        records = [to_record(response) for response in responses]
        questions = [
            QuestionRecord(id=str(q.id), text=q.text, order=q.order)
            for q in survey.questions.all()
        ]

        analytics = compute_analytics(records, questions, trend_start=start, trend_end=end)
        result = {
            'survey_id': str(survey.id),
            'survey_title': survey.title,
            **analytics.to_dict(),
        }

        cache.set(cache_key, result, self.cache_ttl)
        logger.debug("Computed analytics for survey %s (%d responses)", survey.id, len(records))
        return result

    def get_answer_chart(self, question: Question, chart_type: ChartType) -> Dict:
        """
        Distribution of the answers to `question` as a chart of `chart_type`.

        Data that fails validation for the chart type is replaced by an empty
        chart with `has_data` false.
        """
        values = Answer.objects.filter(question=question).values_list('value', flat=True)
        options = [(option.value, option.label) for option in question.options.all()]

        chart = answer_distribution_chart(values, str(question.id), question.text, options)
        chart = sanitize_chart_data(chart)

        if not validate_chart_data(chart, chart_type):
            logger.debug("No chartable data for question %s as %s", question.id, chart_type.value)
            return {'type': chart_type.value, 'has_data': False, **empty_chart(question.text).to_dict()}

        chart = process_chart_data(chart, ChartConfig(type=chart_type, title=question.text))
        return {'type': chart_type.value, 'has_data': True, **chart.to_dict()}

    def invalidate_survey_cache(self, survey_id) -> None:
        """
        Invalidate cached analytics for a specific survey.

        Call this when a new response is submitted or a response status changes.
        """
        key = self._version_key(survey_id)
        try:
            cache.incr(key)
        except ValueError:
            # Version key expired or never set
            cache.set(key, 2, None)
