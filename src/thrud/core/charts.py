"""Per-round utilization series and chart construction."""

from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime

from thrud.core.encoding.charts import encode_chart, glyph_count
from thrud.core.models import Chart, ChartType, CollectionRound, CoreType, Sample
from thrud.core.rates import Rate, aggregate_by_core_type, rates_by_round
from thrud.core.samples import GPU_UTILIZATION
from thrud.core.utilization import clamp_percent

PERFORMANCE_UTILIZATION = "performance_cores_utilization"
EFFICIENCY_UTILIZATION = "efficiency_cores_utilization"
GPU_UTILIZATION_CHART = GPU_UTILIZATION

_CORE_TYPE_METRICS = {
    PERFORMANCE_UTILIZATION: CoreType.PERFORMANCE,
    EFFICIENCY_UTILIZATION: CoreType.EFFICIENCY,
}


def _core_type_value(rates: Iterable[Rate], core_type: CoreType) -> float | None:
    for aggregate in aggregate_by_core_type(rates):
        if aggregate.key == core_type.value:
            return aggregate.utilization_percent
    return None


def _gpu_index(sample: Sample) -> int:
    try:
        return int(sample.metadata.get("gpu_index", "0"))
    except ValueError:
        return 1 << 16  # unindexed readings sort last


def _gpu_value(samples: Iterable[Sample]) -> float | None:
    readings = [s for s in samples if s.name == GPU_UTILIZATION and s.is_numeric]
    if not readings:
        return None
    first = min(readings, key=_gpu_index)
    return clamp_percent(float(first.value) * 100.0)


def utilization_series(
    samples: Iterable[Sample],
    rounds: Sequence[CollectionRound],
) -> dict[str, list[float]]:
    """Compute one utilization value per round for every chart metric.

    Args:
        samples: Samples of the given rounds (round_id set).
        rounds: Rounds most recent first; the last one is only the baseline
            the first deltas are taken against.

    Returns:
        Values per metric, most recent first. Rounds without data for a
        metric contribute no value to that metric.
    """
    samples = list(samples)
    by_round_rates = rates_by_round(samples)
    by_round_samples: dict[str, list[Sample]] = {}
    for sample in samples:
        if sample.round_id is not None:
            by_round_samples.setdefault(sample.round_id, []).append(sample)

    series: dict[str, list[float]] = {
        PERFORMANCE_UTILIZATION: [],
        EFFICIENCY_UTILIZATION: [],
        GPU_UTILIZATION_CHART: [],
    }
    for round_ in rounds[:-1]:
        round_rates = by_round_rates.get(round_.id, [])
        for metric, core_type in _CORE_TYPE_METRICS.items():
            value = _core_type_value(round_rates, core_type)
            if value is not None:
                series[metric].append(value)
        gpu = _gpu_value(by_round_samples.get(round_.id, []))
        if gpu is not None:
            series[GPU_UTILIZATION_CHART].append(gpu)
    return series


def build_charts(
    series: Mapping[str, Sequence[float]],
    round_id: str,
    points: int,
    timestamp: datetime,
    chart_types: Sequence[ChartType] = (ChartType.BAR, ChartType.BRAILLE),
) -> list[Chart]:
    """Encode up to `points` values of every series with each chart type.

    Series without values produce no chart.
    """
    charts: list[Chart] = []
    for metric, values in series.items():
        window = list(values[:points])
        if not window:
            continue
        for chart_type in chart_types:
            charts.append(
                Chart(
                    round_id=round_id,
                    metric_name=metric,
                    chart_type=chart_type,
                    data=encode_chart(window, chart_type),
                    point_count=glyph_count(chart_type, len(window)),
                    timestamp=timestamp,
                )
            )
    return charts


def group_latest(charts: Iterable[Chart], metric_names: Sequence[str]) -> list[Chart]:
    """Order charts by round and requested metric order.

    Args:
        charts: Candidate charts, newest first.
        metric_names: Requested metrics; fixes the order within a round.

    Returns:
        One chart per (round, metric), rounds most recent first. When a round
        holds several charts for a metric only the newest one is kept.
    """
    rank = {name: i for i, name in enumerate(metric_names)}
    rounds: dict[str, dict[str, Chart]] = {}
    for chart in charts:
        rounds.setdefault(chart.round_id, {}).setdefault(chart.metric_name, chart)
    return [
        chart
        for by_metric in rounds.values()
        for chart in sorted(by_metric.values(), key=lambda c: rank[c.metric_name])
    ]
