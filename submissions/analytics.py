"""
Response analytics aggregation.

`compute_analytics` turns plain response records into summary statistics. It
performs no queries and never reads the clock; `AnalyticsService` in
`submissions.services` loads the records and caches the result.

Every rate and average over an empty collection is 0, never NaN or an error.
"""
import statistics
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional, Sequence

COMPLETED = 'completed'
IN_PROGRESS = 'in_progress'

TREND_LABEL_FORMAT = '%b %d'

# (upper bound in seconds, bucket name); the last bucket is open-ended
TIME_BUCKETS = [
    (60, 'under_1min'),
    (180, '1_to_3min'),
    (300, '3_to_5min'),
    (600, '5_to_10min'),
]
TIME_BUCKET_OPEN = 'over_10min'

AGE_BRACKETS = [
    (18, 'under_18'),
    (25, '18-24'),
    (35, '25-34'),
    (45, '35-44'),
    (55, '45-54'),
    (65, '55-64'),
]
AGE_BRACKET_OPEN = '65+'


@dataclass(frozen=True)
class QuestionRecord:
    id: str
    text: str = ''
    order: int = 0


@dataclass(frozen=True)
class ResponseRecord:
    """
    One stored response flattened for aggregation.

    `answers` maps question id to the answer value; `answer_times` maps
    question id to seconds spent, for the questions the client timed.
    """
    status: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    answers: Mapping[str, Any] = field(default_factory=dict)
    answer_times: Mapping[str, float] = field(default_factory=dict)
    user_agent: Optional[str] = None
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @property
    def is_completed(self) -> bool:
        return self.status == COMPLETED

    @property
    def completion_seconds(self) -> Optional[float]:
        if not self.is_completed or self.completed_at is None:
            return None
        seconds = (self.completed_at - self.started_at).total_seconds()
        return seconds if seconds >= 0 else None


@dataclass(frozen=True)
class QuestionMetric:
    question_id: str
    question_text: str
    answered_count: int
    skipped_count: int
    response_rate: float
    drop_off_rate: float
    avg_time: Optional[float] = None


@dataclass(frozen=True)
class TrendPoint:
    date: date
    value: int
    label: str


@dataclass(frozen=True)
class AnalyticsData:
    total_responses: int
    completed_responses: int
    in_progress_responses: int
    completion_rate: float
    avg_completion_time: float
    median_completion_time: float
    response_velocity: float
    last_response_at: Optional[datetime]
    question_metrics: List[QuestionMetric]
    demographics: Dict[str, Dict[str, int]]
    time_distribution: Dict[str, int]
    trends: List[TrendPoint]

    def to_dict(self) -> dict:
        return {
            'total_responses': self.total_responses,
            'completed_responses': self.completed_responses,
            'in_progress_responses': self.in_progress_responses,
            'completion_rate': self.completion_rate,
            'avg_completion_time': self.avg_completion_time,
            'median_completion_time': self.median_completion_time,
            'response_velocity': self.response_velocity,
            'last_response_at': self.last_response_at,
            'question_metrics': [vars(metric).copy() for metric in self.question_metrics],
            'demographics': self.demographics,
            'time_distribution': self.time_distribution,
            'trends': [
                {'date': point.date, 'value': point.value, 'label': point.label}
                for point in self.trends
            ],
        }


def is_answered(value) -> bool:
    """None, blank strings and empty collections count as skipped."""
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) > 0
    return True


def percentage(part, whole) -> float:
    if not whole:
        return 0.0
    return round(part / whole * 100, 2)


def classify_device(user_agent: Optional[str]) -> Optional[str]:
    """Coarse device class from a user agent; None when there is no user agent."""
    if not user_agent or not user_agent.strip():
        return None
    ua = user_agent.lower()
    if 'ipad' in ua or 'tablet' in ua:
        return 'tablet'
    if 'mobile' in ua or 'android' in ua or 'iphone' in ua:
        return 'mobile'
    if 'windows' in ua or 'mac' in ua or 'linux' in ua:
        return 'desktop'
    return 'unknown'


def age_bracket(metadata: Mapping[str, Any]) -> Optional[str]:
    bracket = metadata.get('age_bracket')
    if isinstance(bracket, str) and bracket.strip():
        return bracket.strip()

    age = metadata.get('age')
    if isinstance(age, bool) or not isinstance(age, (int, float)) or age < 0:
        return None
    for upper, name in AGE_BRACKETS:
        if age < upper:
            return name
    return AGE_BRACKET_OPEN


def _location(metadata: Mapping[str, Any]) -> Optional[str]:
    location = metadata.get('location')
    if isinstance(location, str) and location.strip():
        return location.strip()
    return None


def _time_bucket(seconds: float) -> str:
    for upper, name in TIME_BUCKETS:
        if seconds < upper:
            return name
    return TIME_BUCKET_OPEN


def _question_metrics(responses: Sequence[ResponseRecord], questions: Sequence[QuestionRecord]) -> List[QuestionMetric]:
    total = len(responses)
    ordered = sorted(questions, key=lambda q: q.order)

    answered = [
        sum(1 for r in responses if is_answered(r.answers.get(q.id)))
        for q in ordered
    ]
    rates = [percentage(count, total) for count in answered]

    metrics = []
    for index, question in enumerate(ordered):
        if index + 1 < len(ordered):
            drop_off = min(100.0, max(0.0, round(100 - rates[index + 1], 2)))
        else:
            drop_off = 0.0
        if total == 0:
            drop_off = 0.0

        times = [
            r.answer_times[question.id] for r in responses
            if r.answer_times.get(question.id) is not None
        ]
        metrics.append(QuestionMetric(
            question_id=question.id,
            question_text=question.text,
            answered_count=answered[index],
            skipped_count=total - answered[index],
            response_rate=rates[index],
            drop_off_rate=drop_off,
            avg_time=round(statistics.fmean(times), 2) if times else None,
        ))
    return metrics


def _demographics(responses: Sequence[ResponseRecord]) -> Dict[str, Dict[str, int]]:
    dimensions = {
        'device': Counter(),
        'location': Counter(),
        'age': Counter(),
    }
    for response in responses:
        metadata = response.metadata or {}
        for name, value in (
            ('device', classify_device(response.user_agent)),
            ('location', _location(metadata)),
            ('age', age_bracket(metadata)),
        ):
            if value is not None:
                dimensions[name][value] += 1

    return {name: dict(counter.most_common()) for name, counter in dimensions.items()}


def _response_velocity(responses: Sequence[ResponseRecord], completed: int) -> float:
    if not responses:
        return 0.0
    days = [r.started_at.date() for r in responses]
    span = (max(days) - min(days)).days + 1
    return round(completed / span, 2)


def build_trends(responses: Sequence[ResponseRecord], start: Optional[date] = None, end: Optional[date] = None) -> List[TrendPoint]:
    """
    Completed responses per calendar day from `start` to `end` inclusive, one
    point per day. Without explicit bounds the range spans the first and last
    completion; with no completions and no bounds the result is empty.
    """
    counts = Counter(
        (r.completed_at or r.started_at).date()
        for r in responses if r.is_completed
    )

    if start is None or end is None:
        if not counts:
            return []
        start = start or min(counts)
        end = end or max(counts)

    trends = []
    for offset in range((end - start).days + 1):
        day = start + timedelta(days=offset)
        trends.append(TrendPoint(date=day, value=counts.get(day, 0), label=day.strftime(TREND_LABEL_FORMAT)))
    return trends


def compute_analytics(
    responses: Sequence[ResponseRecord],
    questions: Sequence[QuestionRecord],
    *,
    trend_start: Optional[date] = None,
    trend_end: Optional[date] = None,
) -> AnalyticsData:
    total = len(responses)
    completed = sum(1 for r in responses if r.is_completed)

    durations = [
        seconds for seconds in (r.completion_seconds for r in responses)
        if seconds is not None
    ]
    time_distribution = {name: 0 for _, name in TIME_BUCKETS}
    time_distribution[TIME_BUCKET_OPEN] = 0
    for seconds in durations:
        time_distribution[_time_bucket(seconds)] += 1

    return AnalyticsData(
        total_responses=total,
        completed_responses=completed,
        in_progress_responses=total - completed,
        completion_rate=percentage(completed, total),
        avg_completion_time=round(statistics.fmean(durations), 2) if durations else 0.0,
        median_completion_time=round(statistics.median(durations), 2) if durations else 0.0,
        response_velocity=_response_velocity(responses, completed),
        last_response_at=max((r.started_at for r in responses), default=None),
        question_metrics=_question_metrics(responses, questions),
        demographics=_demographics(responses),
        time_distribution=time_distribution,
        trends=build_trends(responses, trend_start, trend_end),
    )
