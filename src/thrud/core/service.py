"""Read-only query services and chart generation over the storage ports."""

import logging
from collections.abc import Sequence
from datetime import datetime

from thrud.config import DEFAULT_CHART_POINTS, UTILIZATION_CHART_METRICS
from thrud.core.aggregations import AggregationRegistry, AggregationResult
from thrud.core.charts import build_charts, utilization_series
from thrud.core.models import Chart, ChartType, UtilizationWindow, now_ms, utc_now
from thrud.core.ports import ChartStoragePort, SampleStoragePort
from thrud.core.rates import RateReport, compute_cpu_rates
from thrud.core.samples import CPU_TICK_METRICS, GPU_UTILIZATION

logger = logging.getLogger(__name__)


async def latest_utilization(
    storage: SampleStoragePort,
    window: UtilizationWindow | None = None,
    now: int | None = None,
) -> RateReport:
    """Return the latest CPU rates and utilization for a trailing window.

    The samples are read once at the start of the call; rounds written while
    the computation runs are simply not visible yet.
    """
    window = window or UtilizationWindow()
    end = now_ms() if now is None else now
    start, _ = window.bounds(end)
    samples = [s async for s in storage.read(names=CPU_TICK_METRICS, since=start)]
    logger.debug("Read %d tick samples for a %ds window", len(samples), window.seconds)
    return compute_cpu_rates(samples, window, end)


async def run_aggregation(
    registry: AggregationRegistry,
    storage: SampleStoragePort,
    name: str,
    window: UtilizationWindow | None = None,
    now: int | None = None,
) -> AggregationResult:
    """Execute a registered aggregation over the samples of a window.

    Raises:
        UnknownAggregationError: name is not registered.
    """
    aggregation = registry.get(name)
    window = window or UtilizationWindow()
    end = now_ms() if now is None else now
    start, _ = window.bounds(end)
    samples = [s async for s in storage.read(names=aggregation.metrics, since=start)]
    return aggregation.execute(samples, window, end)


async def latest_charts(
    storage: ChartStoragePort,
    metric_names: Sequence[str] = UTILIZATION_CHART_METRICS,
    chart_type: ChartType = ChartType.BAR,
    limit: int = 1,
) -> list[Chart]:
    """Return the charts of the latest `limit` rounds, most recent first."""
    if limit <= 0 or not metric_names:
        return []
    return await storage.get_latest(metric_names, chart_type, limit)


async def generate_charts(
    sample_storage: SampleStoragePort,
    chart_storage: ChartStoragePort,
    round_id: str,
    points: int = DEFAULT_CHART_POINTS,
    metric_names: Sequence[str] = UTILIZATION_CHART_METRICS,
    timestamp: datetime | None = None,
) -> list[Chart]:
    """Generate and store bar and braille charts for a collection round.

    Uses the latest points + 1 rounds: the oldest one is the baseline for the
    first delta. With fewer than two rounds there is nothing to difference
    and the call is a no-op.

    Returns:
        The charts that were stored.
    """
    rounds = await sample_storage.read_rounds(points + 1)
    if len(rounds) < 2:
        logger.debug(
            "Skipping chart generation for round %s: %d round(s) stored",
            round_id,
            len(rounds),
        )
        return []

    samples = await sample_storage.read_round_samples(
        [r.id for r in rounds], names=CPU_TICK_METRICS + (GPU_UTILIZATION,)
    )
    series = utilization_series(samples, rounds)
    selected = {m: series[m] for m in metric_names if m in series}
    charts = build_charts(selected, round_id, points, timestamp or utc_now())
    if charts:
        await chart_storage.store_many(charts)
    logger.debug("Stored %d charts for round %s", len(charts), round_id)
    return charts
