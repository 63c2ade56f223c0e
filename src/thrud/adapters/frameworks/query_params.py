"""Query parameter parsing for the ASGI adapter.

Invalid or missing values fall back to defaults instead of failing the
request.
"""

from thrud.config import UTILIZATION_CHART_METRICS
from thrud.core.models import DEFAULT_WINDOW_SECONDS, ChartType, UtilizationWindow

DEFAULT_CHART_LIMIT = 1
MAX_CHART_LIMIT = 100


def _first(params: dict[str, list[str]], name: str) -> str | None:
    values = params.get(name)
    return values[0] if values else None


def _parse_window_param(
    params: dict[str, list[str]],
    default: UtilizationWindow | None = None,
) -> UtilizationWindow:
    """Parse the 'window' query parameter (seconds).

    Args:
        params: Parsed query string parameters (as returned by urllib.parse.parse_qs).
        default: Window used when the parameter is unusable (default 60 seconds).

    Returns:
        The requested window, or the default window if the value is missing,
        not an integer or not positive.
    """
    default = default or UtilizationWindow(DEFAULT_WINDOW_SECONDS)
    raw = _first(params, "window")
    if raw is None:
        return default
    try:
        seconds = int(raw)
    except ValueError:
        return default
    if seconds <= 0:
        return default
    return UtilizationWindow(seconds)


def _parse_chart_type_param(params: dict[str, list[str]]) -> ChartType:
    """Parse the 'type' query parameter, defaulting to bar charts."""
    raw = _first(params, "type")
    try:
        return ChartType(raw.lower()) if raw else ChartType.BAR
    except ValueError:
        return ChartType.BAR


def _parse_limit_param(params: dict[str, list[str]]) -> int:
    """Parse the 'limit' query parameter.

    Returns:
        A round count in 1..MAX_CHART_LIMIT; DEFAULT_CHART_LIMIT when the value
        is missing, not an integer or below 1.
    """
    raw = _first(params, "limit")
    try:
        limit = int(raw) if raw is not None else DEFAULT_CHART_LIMIT
    except ValueError:
        return DEFAULT_CHART_LIMIT
    if limit < 1:
        return DEFAULT_CHART_LIMIT
    return min(limit, MAX_CHART_LIMIT)


def _parse_metric_param(params: dict[str, list[str]]) -> tuple[str, ...]:
    """Parse 'metric' query parameters.

    Accepts repeated parameters and comma separated lists. Unknown names are
    kept; they simply match no stored charts.

    Returns:
        Requested metric names in order without duplicates, or the
        utilization chart metrics when none are given.
    """
    names: list[str] = []
    for raw in params.get("metric", []):
        for name in raw.split(","):
            name = name.strip()
            if name and name not in names:
                names.append(name)
    return tuple(names) or UTILIZATION_CHART_METRICS
