"""
Chart series validation, sanitizing and processing.

Validation reports problems as a boolean so callers can fall back to a
"no data" chart instead of failing the request.
"""
import math
from collections import Counter
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple


class ChartType(str, Enum):
    LINE = 'line'
    BAR = 'bar'
    PIE = 'pie'
    SCATTER = 'scatter'
    FUNNEL = 'funnel'
    LIKERT = 'likert'
    HEATMAP = 'heatmap'
    WORDCLOUD = 'wordcloud'


NUMERIC_Y_TYPES = {ChartType.LINE, ChartType.BAR, ChartType.PIE, ChartType.SCATTER}

DATE_LABEL_FORMAT = '%b %d'


@dataclass(frozen=True)
class DataPoint:
    x: Any
    y: Any
    label: Optional[str] = None


@dataclass(frozen=True)
class DataSeries:
    id: str
    name: str
    data: List[DataPoint] = field(default_factory=list)
    color: Optional[str] = None


@dataclass(frozen=True)
class ChartData:
    series: List[DataSeries] = field(default_factory=list)
    title: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'title': self.title,
            'series': [
                {
                    'id': s.id,
                    'name': s.name,
                    'color': s.color,
                    'data': [
                        {
                            'x': p.x.isoformat() if isinstance(p.x, date) else p.x,
                            'y': p.y,
                            'label': p.label,
                        }
                        for p in s.data
                    ],
                }
                for s in self.series
            ],
        }


@dataclass(frozen=True)
class ChartConfig:
    type: ChartType
    title: Optional[str] = None
    width: Any = None
    height: Any = None
    # (min, max) of the value axis; when set, bar charts are ordered by value
    y_domain: Optional[Tuple[float, float]] = None


def is_number(value) -> bool:
    """Finite int or float; booleans are not numbers here."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def _valid_point(point, chart_type: ChartType) -> bool:
    if not isinstance(point, DataPoint):
        return False
    if point.x is None or point.y is None:
        return False
    if chart_type in NUMERIC_Y_TYPES and not is_number(point.y):
        return False
    if chart_type == ChartType.PIE and point.y < 0:
        return False
    if chart_type == ChartType.SCATTER and not is_number(point.x):
        return False
    return True


def validate_chart_data(data, chart_type) -> bool:
    """Structural check of `data` for `chart_type`. Never raises."""
    try:
        chart_type = ChartType(chart_type)
    except ValueError:
        return False

    if not isinstance(data, ChartData) or not data.series:
        return False

    for series in data.series:
        if not isinstance(series, DataSeries):
            return False
        if not series.id or not series.name or not series.data:
            return False
        if not all(_valid_point(point, chart_type) for point in series.data):
            return False
    return True


def validate_chart_config(config) -> bool:
    """
    Check a chart configuration mapping, e.g. one built from query
    parameters: a known `type`, and `width`/`height` that are numbers or
    strings when present.
    """
    if not isinstance(config, Mapping):
        return False

    try:
        ChartType(config.get('type'))
    except ValueError:
        return False

    for key in ('width', 'height'):
        value = config.get(key)
        if value is not None and not isinstance(value, (int, float, str)):
            return False
        if isinstance(value, bool):
            return False
    return True


def sanitize_chart_data(data: ChartData) -> ChartData:
    """Drop points without `x` or without a finite numeric `y`, per series."""
    return replace(data, series=[
        replace(series, data=[
            point for point in series.data
            if point.x is not None and is_number(point.y)
        ])
        for series in data.series
    ])


def _line_sort_key(points: Sequence[DataPoint]):
    xs = [p.x for p in points]
    if all(is_number(x) for x in xs):
        return lambda p: p.x
    if all(isinstance(x, datetime) for x in xs):
        # Aware and naive datetimes do not compare
        if len({x.utcoffset() is None for x in xs}) == 1:
            return lambda p: p.x
        return lambda p: str(p.x)
    if all(isinstance(x, date) and not isinstance(x, datetime) for x in xs):
        return lambda p: p.x
    return lambda p: str(p.x)


def _by_value(point: DataPoint):
    return point.y if is_number(point.y) else 0


def _sort_points(points: List[DataPoint], config: ChartConfig) -> List[DataPoint]:
    if config.type == ChartType.LINE:
        return sorted(points, key=_line_sort_key(points))
    if config.type == ChartType.BAR and config.y_domain:
        return sorted(points, key=_by_value, reverse=True)
    if config.type == ChartType.PIE:
        return sorted(points, key=_by_value, reverse=True)
    return list(points)


def _format_point(point: DataPoint) -> DataPoint:
    label = point.label
    if not label and isinstance(point.x, date):
        label = point.x.strftime(DATE_LABEL_FORMAT)
    if not label:
        label = str(point.x)

    y = round(point.y, 2) if is_number(point.y) else point.y
    return replace(point, y=y, label=label)


def _aggregate_points(points: List[DataPoint], config: ChartConfig) -> List[DataPoint]:
    # Reserved for bucketing; currently returns the points unchanged
    return points


def process_chart_data(data: ChartData, config: ChartConfig) -> ChartData:
    """Sort, then format, then aggregate every series of `data`."""
    processed = []
    for series in data.series:
        points = _sort_points(list(series.data), config)
        points = [_format_point(point) for point in points]
        points = _aggregate_points(points, config)
        processed.append(replace(series, data=points))
    return replace(data, series=processed)


def calculate_percentages(values: Sequence[float]) -> List[float]:
    """Each value's share of the total, in percent. All zeros when the total is 0."""
    total = sum(values)
    if total == 0:
        return [0.0 for _ in values]
    return [value / total * 100 for value in values]


def _answer_values(value) -> Iterable[str]:
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value if item not in (None, '')]
    if value is None or value == '' or isinstance(value, dict):
        return []
    return [str(value)]


def answer_distribution_chart(
    answers: Iterable[Any],
    question_id: str,
    question_text: str = '',
    options: Optional[Sequence[Tuple[str, str]]] = None,
) -> ChartData:
    """
    Count how often each answer value was given to one question.

    Multi-select answers count every chosen value. `options` is a sequence of
    `(value, label)` pairs; they come first, in order, including zero counts,
    followed by any other values seen in the answers.
    """
    counts = Counter()
    for value in answers:
        counts.update(_answer_values(value))

    points = []
    labels = dict(options or [])
    for option_value, label in options or []:
        points.append(DataPoint(x=option_value, y=counts.get(option_value, 0), label=label))
    for value, count in counts.items():
        if value not in labels:
            points.append(DataPoint(x=value, y=count))

    if not counts:
        points = []

    return ChartData(
        title=question_text or None,
        series=[DataSeries(id=str(question_id), name=question_text or str(question_id), data=points)],
    )


def empty_chart(title: Optional[str] = None) -> ChartData:
    return ChartData(series=[], title=title)
