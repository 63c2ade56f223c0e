"""Explicit configuration values passed to thrud components."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from thrud.core.errors import ValidationError
from thrud.core.models import DEFAULT_WINDOW_SECONDS, UtilizationWindow

DEFAULT_CHART_POINTS = 20

UTILIZATION_CHART_METRICS = (
    "performance_cores_utilization",
    "efficiency_cores_utilization",
    "gpu_utilization",
)


def default_db_path() -> str:
    """Return the conventional database location, ~/.thrud/thrud.db."""
    return str(Path.home() / ".thrud" / "thrud.db")


def ensure_db_directory(db_path: str) -> None:
    """Create the parent directory of a file database if it is missing."""
    if db_path == ":memory:":
        return
    Path(db_path).expanduser().parent.mkdir(parents=True, exist_ok=True)


class ChartRetention(str, Enum):
    """What happens when a chart is stored twice for the same round.

    OVERWRITE keeps one row per (round, metric, chart type); APPEND keeps
    every generation.
    """

    OVERWRITE = "overwrite"
    APPEND = "append"


@dataclass(frozen=True)
class SampleRetention:
    """Age limit for stored samples.

    Attributes:
        max_age_seconds: Samples older than this are deleted.
    """

    max_age_seconds: int

    def __post_init__(self) -> None:
        if self.max_age_seconds <= 0:
            raise ValidationError("max_age_seconds must be > 0")

    def cutoff(self, now: int) -> int:
        """Return the epoch-millisecond timestamp before which samples expire."""
        return now - self.max_age_seconds * 1000


@dataclass(frozen=True)
class ThrudConfig:
    """Configuration for storage, rate windows and chart generation.

    Attributes:
        db_path: SQLite database path, or ":memory:".
        window_seconds: Default trailing window for rate queries.
        chart_points: Number of utilization values per chart.
        chart_metrics: Utilization metrics charts are generated for.
        chart_retention: Retention policy of the chart cache.
        sample_retention: Optional age limit applied after each round.
    """

    db_path: str
    window_seconds: int = DEFAULT_WINDOW_SECONDS
    chart_points: int = DEFAULT_CHART_POINTS
    chart_metrics: tuple[str, ...] = field(default=UTILIZATION_CHART_METRICS)
    chart_retention: ChartRetention = ChartRetention.OVERWRITE
    sample_retention: SampleRetention | None = None

    def __post_init__(self) -> None:
        if self.window_seconds <= 0:
            raise ValidationError("window_seconds must be > 0")
        if self.chart_points <= 0:
            raise ValidationError("chart_points must be > 0")

    @property
    def window(self) -> UtilizationWindow:
        """Default trailing window for rate queries."""
        return UtilizationWindow(self.window_seconds)
