"""
Tests for the pure aggregation and chart helpers. No database involved.
"""
import math
from datetime import date, datetime, timedelta, timezone

import pytest

from submissions.analytics import (
    QuestionRecord,
    ResponseRecord,
    age_bracket,
    build_trends,
    classify_device,
    compute_analytics,
    is_answered,
    percentage,
)
from submissions.charts import (
    ChartConfig,
    ChartData,
    ChartType,
    DataPoint,
    DataSeries,
    answer_distribution_chart,
    calculate_percentages,
    process_chart_data,
    sanitize_chart_data,
    validate_chart_config,
    validate_chart_data,
)

START = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)


def completed(minutes, day_offset=0, **kwargs):
    started = START + timedelta(days=day_offset)
    return ResponseRecord(
        status='completed',
        started_at=started,
        completed_at=started + timedelta(minutes=minutes),
        **kwargs
    )


def in_progress(day_offset=0, **kwargs):
    return ResponseRecord(status='in_progress', started_at=START + timedelta(days=day_offset), **kwargs)


def series(*points):
    return ChartData(series=[DataSeries(id='s1', name='Series', data=list(points))])


class TestHelpers:

    @pytest.mark.parametrize('value,expected', [
        (None, False), ('', False), ('  ', False), ([], False), ({}, False),
        ('x', True), (0, True), (False, True), (['a'], True), ({'row': 'col'}, True),
    ])
    def test_is_answered(self, value, expected):
        assert is_answered(value) is expected

    def test_percentage(self):
        assert percentage(7, 10) == 70.0
        assert percentage(1, 3) == 33.33
        assert percentage(5, 0) == 0.0

    @pytest.mark.parametrize('user_agent,expected', [
        ('Mozilla/5.0 (iPad; CPU OS 16_0 like Mac OS X) Mobile', 'tablet'),
        ('Mozilla/5.0 (Linux; Android 13; Pixel 7) Mobile', 'mobile'),
        ('Mozilla/5.0 (Macintosh; Intel Mac OS X 14_0)', 'desktop'),
        ('curl/8.0', 'unknown'),
        ('', None),
        (None, None),
    ])
    def test_classify_device(self, user_agent, expected):
        assert classify_device(user_agent) == expected

    @pytest.mark.parametrize('metadata,expected', [
        ({'age': 17}, 'under_18'),
        ({'age': 18}, '18-24'),
        ({'age': 64}, '55-64'),
        ({'age': 65}, '65+'),
        ({'age_bracket': '35-44', 'age': 20}, '35-44'),
        ({'age': 'thirty'}, None),
        ({}, None),
    ])
    def test_age_bracket(self, metadata, expected):
        assert age_bracket(metadata) == expected


class TestComputeAnalytics:

    def test_empty_survey(self):
        data = compute_analytics([], [QuestionRecord(id='q1')])

        assert data.total_responses == 0
        assert data.completion_rate == 0.0
        assert data.avg_completion_time == 0.0
        assert data.median_completion_time == 0.0
        assert data.response_velocity == 0.0
        assert data.last_response_at is None
        assert data.trends == []
        assert data.question_metrics[0].response_rate == 0.0
        assert data.question_metrics[0].drop_off_rate == 0.0
        assert all(count == 0 for count in data.time_distribution.values())

    def test_completion_rate(self):
        responses = [completed(5) for _ in range(7)] + [in_progress() for _ in range(3)]

        data = compute_analytics(responses, [])

        assert data.total_responses == 10
        assert data.completed_responses == 7
        assert data.in_progress_responses == 3
        assert data.completion_rate == 70.0

    def test_completion_times(self):
        responses = [completed(1), completed(2), completed(12), in_progress()]

        data = compute_analytics(responses, [])

        assert data.avg_completion_time == 300.0
        assert data.median_completion_time == 120.0
        assert data.time_distribution == {
            'under_1min': 0,
            '1_to_3min': 2,
            '3_to_5min': 0,
            '5_to_10min': 0,
            'over_10min': 1,
        }

    def test_response_velocity_counts_days_inclusively(self):
        responses = [completed(5, day_offset=0), completed(5, day_offset=2), in_progress(day_offset=3)]

        data = compute_analytics(responses, [])

        # two completions over four calendar days
        assert data.response_velocity == 0.5
        assert data.last_response_at == START + timedelta(days=3)

    def test_question_metrics_and_drop_off(self):
        questions = [QuestionRecord(id='q2', text='Second', order=2), QuestionRecord(id='q1', text='First', order=1)]
        responses = [
            completed(5, answers={'q1': 'a', 'q2': 'b'}, answer_times={'q1': 4.0}),
            completed(5, answers={'q1': 'a', 'q2': ''}, answer_times={'q1': 6.0}),
            in_progress(answers={'q1': 'a'}),
            in_progress(),
        ]

        first, second = compute_analytics(responses, questions).question_metrics

        assert first.question_id == 'q1'
        assert first.answered_count == 3
        assert first.skipped_count == 1
        assert first.response_rate == 75.0
        assert first.drop_off_rate == 75.0
        assert first.avg_time == 5.0
        assert second.question_id == 'q2'
        assert second.response_rate == 25.0
        assert second.drop_off_rate == 0.0
        assert second.avg_time is None

    def test_demographics(self):
        responses = [
            completed(5, user_agent='Mozilla/5.0 (Windows NT 10.0)', metadata={'location': 'FR', 'age': 30}),
            completed(5, user_agent='Mozilla/5.0 (iPhone) Mobile', metadata={'location': 'FR'}),
            in_progress(user_agent=None, metadata={'location': ' ', 'age_bracket': '65+'}),
        ]

        demographics = compute_analytics(responses, []).demographics

        assert demographics['device'] == {'desktop': 1, 'mobile': 1}
        assert demographics['location'] == {'FR': 2}
        assert demographics['age'] == {'25-34': 1, '65+': 1}

    def test_to_dict_is_plain(self):
        payload = compute_analytics([completed(5)], [QuestionRecord(id='q1', text='Q')]).to_dict()

        assert payload['question_metrics'][0]['question_id'] == 'q1'
        assert payload['trends'][0]['value'] == 1


class TestTrends:

    def test_zero_filled_range(self):
        trends = build_trends(
            [completed(5, day_offset=1), completed(5, day_offset=1), in_progress(day_offset=2)],
            date(2024, 5, 1),
            date(2024, 5, 4),
        )

        assert [(p.date, p.value) for p in trends] == [
            (date(2024, 5, 1), 0),
            (date(2024, 5, 2), 2),
            (date(2024, 5, 3), 0),
            (date(2024, 5, 4), 0),
        ]
        assert trends[1].label == 'May 02'

    def test_range_from_data(self):
        trends = build_trends([completed(5, day_offset=0), completed(5, day_offset=2)])

        assert [p.value for p in trends] == [1, 0, 1]

    def test_no_completions_without_range(self):
        assert build_trends([in_progress()]) == []

    def test_counts_by_completion_day(self):
        late = ResponseRecord(
            status='completed',
            started_at=datetime(2024, 5, 1, 23, 50, tzinfo=timezone.utc),
            completed_at=datetime(2024, 5, 2, 0, 10, tzinfo=timezone.utc),
        )

        trends = build_trends([late], date(2024, 5, 1), date(2024, 5, 2))

        assert [p.value for p in trends] == [0, 1]

    def test_range_ending_on_last_representable_day(self):
        trends = build_trends([], date.max - timedelta(days=1), date.max)

        assert [p.date for p in trends] == [date.max - timedelta(days=1), date.max]
        assert all(p.value == 0 for p in trends)


class TestChartValidation:

    def test_valid_bar_data(self):
        assert validate_chart_data(series(DataPoint(x='a', y=1)), ChartType.BAR) is True

    def test_empty_series_invalid(self):
        assert validate_chart_data(ChartData(series=[]), ChartType.BAR) is False
        assert validate_chart_data(series(), ChartType.BAR) is False

    def test_non_numeric_y_invalid(self):
        assert validate_chart_data(series(DataPoint(x='a', y='3')), ChartType.LINE) is False
        assert validate_chart_data(series(DataPoint(x='a', y=math.nan)), ChartType.BAR) is False
        assert validate_chart_data(series(DataPoint(x='a', y=True)), ChartType.BAR) is False

    def test_pie_values_must_not_be_negative(self):
        assert validate_chart_data(series(DataPoint(x='a', y=-1)), ChartType.PIE) is False
        assert validate_chart_data(series(DataPoint(x='a', y=0)), ChartType.PIE) is True
        assert validate_chart_data(
            series(DataPoint(x='a', y=0), DataPoint(x='b', y=3.5)), ChartType.PIE
        ) is True
        assert validate_chart_data(
            series(DataPoint(x='a', y=2), DataPoint(x='b', y=-0.5)), ChartType.PIE
        ) is False
        assert validate_chart_data(series(DataPoint(x='a', y=-1)), ChartType.BAR) is True

    def test_scatter_needs_numeric_x(self):
        assert validate_chart_data(series(DataPoint(x='a', y=1)), ChartType.SCATTER) is False
        assert validate_chart_data(series(DataPoint(x=2.5, y=1)), ChartType.SCATTER) is True

    def test_wordcloud_accepts_text_values(self):
        assert validate_chart_data(series(DataPoint(x='great', y='many')), ChartType.WORDCLOUD) is True

    def test_never_raises(self):
        assert validate_chart_data(None, ChartType.BAR) is False
        assert validate_chart_data({'series': []}, 'bar') is False
        assert validate_chart_data(series(DataPoint(x='a', y=1)), 'radar') is False

    def test_validate_chart_config(self):
        assert validate_chart_config({'type': 'pie', 'width': 400, 'height': '100%'}) is True
        assert validate_chart_config({'type': 'radar'}) is False
        assert validate_chart_config({'type': 'bar', 'width': [1]}) is False
        assert validate_chart_config('bar') is False


class TestChartProcessing:

    def test_sanitize_drops_unusable_points(self):
        data = series(
            DataPoint(x='a', y=1),
            DataPoint(x=None, y=2),
            DataPoint(x='b', y='3'),
            DataPoint(x='c', y=math.inf),
        )

        sanitized = sanitize_chart_data(data)

        assert [p.x for p in sanitized.series[0].data] == ['a']
        assert sanitize_chart_data(sanitized) == sanitized

    def test_pie_sorted_by_value(self):
        data = series(DataPoint(x='A', y=30), DataPoint(x='B', y=10), DataPoint(x='C', y=60))

        processed = process_chart_data(data, ChartConfig(type=ChartType.PIE))

        assert [(p.x, p.y) for p in processed.series[0].data] == [('C', 60), ('A', 30), ('B', 10)]

    def test_line_sorted_by_date_with_labels(self):
        data = series(
            DataPoint(x=date(2024, 5, 3), y=1.234),
            DataPoint(x=date(2024, 5, 1), y=2),
        )

        points = process_chart_data(data, ChartConfig(type=ChartType.LINE)).series[0].data

        assert [p.x for p in points] == [date(2024, 5, 1), date(2024, 5, 3)]
        assert [p.label for p in points] == ['May 01', 'May 03']
        assert points[1].y == 1.23

    def test_line_with_mixed_aware_and_naive_datetimes(self):
        aware = datetime(2024, 5, 2, 9, 0, tzinfo=timezone.utc)
        naive = datetime(2024, 5, 1, 9, 0)
        data = series(DataPoint(x=aware, y=1), DataPoint(x=naive, y=2))

        points = process_chart_data(data, ChartConfig(type=ChartType.LINE)).series[0].data

        assert sorted(p.y for p in points) == [1, 2]

    def test_bar_keeps_order_without_domain(self):
        data = series(DataPoint(x='a', y=1), DataPoint(x='b', y=5))

        unsorted = process_chart_data(data, ChartConfig(type=ChartType.BAR))
        ranked = process_chart_data(data, ChartConfig(type=ChartType.BAR, y_domain=(0, 10)))

        assert [p.x for p in unsorted.series[0].data] == ['a', 'b']
        assert [p.x for p in ranked.series[0].data] == ['b', 'a']

    def test_existing_label_kept(self):
        data = series(DataPoint(x='a', y=1, label='Alpha'))

        point = process_chart_data(data, ChartConfig(type=ChartType.BAR)).series[0].data[0]

        assert point.label == 'Alpha'

    def test_calculate_percentages(self):
        assert calculate_percentages([1, 1, 2]) == [25.0, 25.0, 50.0]
        assert calculate_percentages([0, 0]) == [0.0, 0.0]


class TestAnswerDistribution:

    def test_options_first_including_zero_counts(self):
        chart = answer_distribution_chart(
            ['b', ['b', 'x'], None, ''],
            'q1',
            'Pick some',
            options=[('a', 'Alpha'), ('b', 'Beta')],
        )

        points = chart.series[0].data
        assert [(p.x, p.y, p.label) for p in points] == [
            ('a', 0, 'Alpha'),
            ('b', 2, 'Beta'),
            ('x', 1, None),
        ]
        assert chart.series[0].name == 'Pick some'

    def test_no_answers(self):
        chart = answer_distribution_chart([], 'q1', options=[('a', 'Alpha')])

        assert chart.series[0].data == []
        assert chart.series[0].name == 'q1'
        assert validate_chart_data(chart, ChartType.BAR) is False

    def test_numeric_answers_are_counted_as_text(self):
        chart = answer_distribution_chart([4, 5, 4], 'q1')

        assert {p.x: p.y for p in chart.series[0].data} == {'4': 2, '5': 1}
