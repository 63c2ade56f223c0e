"""Fixed-width glyph encodings for utilization sequences.

Both encoders are pure: the same input sequence always yields the same
string. Values are percentages on a 0-100 scale and are clamped before
encoding. Input order is preserved; callers pass the most recent value
first, which is also the order charts are stored in.
"""

import math
from collections.abc import Iterable, Sequence

from thrud.core.errors import NonFiniteValueError, ValidationError
from thrud.core.models import Chart, ChartType
from thrud.core.utilization import clamp_percent

BAR_GLYPHS = (" ", "▁", "▂", "▃", "▄", "▅", "▆", "▇", "█")

# Rows are the left level, columns the right level.
BRAILLE_GLYPHS = (
    (" ", "⢀", "⢠", "⢰", "⢸"),
    ("⣀", "⣀", "⣠", "⣰", "⣸"),
    ("⣄", "⣄", "⣤", "⣴", "⣼"),
    ("⣆", "⣆", "⣦", "⣶", "⣾"),
    ("⣇", "⣇", "⣧", "⣷", "⣿"),
)

END_OF_DATA = "|"

COMPACT_PREFIXES = {
    "performance_cores_utilization": "P:",
    "efficiency_cores_utilization": "E:",
    "gpu_utilization": "G:",
}


def _clamped(values: Iterable[float]) -> list[float]:
    result = []
    for value in values:
        if not math.isfinite(value):
            raise NonFiniteValueError("chart value", value)
        result.append(clamp_percent(float(value)))
    if not result:
        raise ValidationError("cannot encode an empty sequence")
    return result


def bar_index(value: float) -> int:
    """Map a clamped percentage to a bar glyph index in 0..8.

    Any non-zero value lights at least the lowest bar; each further bar
    covers one eighth of the scale, upper bound inclusive (12.5 -> 1).
    """
    if value == 0:
        return 0
    return max(1, min(8, math.ceil(value / 100 * 8)))


def braille_level(value: float) -> int:
    """Quantize a clamped percentage to a braille level in 0..4."""
    if value == 0:
        return 0
    if value <= 25:
        return 1
    if value <= 50:
        return 2
    if value <= 75:
        return 3
    return 4


def braille_glyph(left: int, right: int) -> str:
    """Return the glyph for a (left, right) level pair."""
    return BRAILLE_GLYPHS[left][right]


def average_annotation(values: Sequence[float]) -> str:
    """Format the average as ``..NN%`` followed by the end-of-data marker."""
    average = sum(values) / len(values)
    return f"..{average:>2.0f}%{END_OF_DATA}"


def encode_bar(values: Iterable[float]) -> str:
    """Encode one bar glyph per value, then the average annotation.

    >>> encode_bar([0, 12.5, 50, 100])
    ' ▁▄█..41%|'
    """
    clamped = _clamped(values)
    glyphs = "".join(BAR_GLYPHS[bar_index(v)] for v in clamped)
    return glyphs + average_annotation(clamped)


def encode_braille(values: Iterable[float]) -> str:
    """Encode values in (left, right) pairs, then the average annotation.

    An odd trailing value is paired with 0.
    """
    clamped = _clamped(values)
    glyphs = []
    for start in range(0, len(clamped), 2):
        left = clamped[start]
        right = clamped[start + 1] if start + 1 < len(clamped) else 0.0
        glyphs.append(braille_glyph(braille_level(left), braille_level(right)))
    return "".join(glyphs) + average_annotation(clamped)


def glyph_count(chart_type: ChartType, value_count: int) -> int:
    """Number of glyphs an encoding of value_count values contains."""
    if chart_type is ChartType.BRAILLE:
        return (value_count + 1) // 2
    return value_count


def encode_chart(values: Sequence[float], chart_type: ChartType) -> str:
    """Encode values with the requested chart type."""
    if chart_type is ChartType.BRAILLE:
        return encode_braille(values)
    return encode_bar(values)


def render_compact(
    charts: Iterable[Chart],
    metric_names: Sequence[str] = tuple(COMPACT_PREFIXES),
) -> str:
    """Render charts of one round as ``P:<chart>E:<chart>G:<chart>``.

    Metrics without a chart are left out; the final end-of-data marker is
    stripped.
    """
    by_metric = {chart.metric_name: chart for chart in charts}
    parts = []
    for metric in metric_names:
        chart = by_metric.get(metric)
        if chart is not None:
            parts.append(f"{COMPACT_PREFIXES.get(metric, '')}{chart.data}")
    return "".join(parts).rstrip(END_OF_DATA)
