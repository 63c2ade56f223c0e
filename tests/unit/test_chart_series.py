"""Tests for per-round utilization series and chart construction."""

from datetime import UTC, datetime

import pytest

from thrud.core.charts import (
    EFFICIENCY_UTILIZATION,
    GPU_UTILIZATION_CHART,
    PERFORMANCE_UTILIZATION,
    build_charts,
    group_latest,
    utilization_series,
)
from thrud.core.models import Chart, ChartType, CollectionRound, CoreType, Sample

pytestmark = [pytest.mark.tier(0), pytest.mark.core]

GENERATED = datetime(2024, 1, 1, tzinfo=UTC)


def _round(round_id: str, second: int) -> CollectionRound:
    return CollectionRound(
        id=round_id,
        timestamp=datetime(2024, 1, 1, 0, 0, second, tzinfo=UTC),
        sample_count=1,
    )


def _gpu(value: float, round_id: str, index: int = 0) -> Sample:
    return Sample(
        name="gpu_utilization",
        value=value,
        timestamp=1000,
        metadata={"gpu_name": "gpu", "gpu_index": str(index)},
        round_id=round_id,
    )


class TestUtilizationSeries:
    """Tests for utilization_series()."""

    @pytest.mark.tra("Core.Charts.Series")
    def test_core_type_values_most_recent_first(self, tick) -> None:
        """Each round after the baseline gets one value per core type."""
        rounds = [_round("r3", 3), _round("r2", 2), _round("r1", 1)]
        samples = []
        for core_type, core_id in ((CoreType.PERFORMANCE, 0), (CoreType.EFFICIENCY, 1)):
            for ts, (user, idle), rid in (
                (1000, (0, 0), "r1"),
                (2000, (50, 50), "r2"),
                (3000, (125, 75), "r3"),
            ):
                samples.append(
                    tick("cpu_user_ticks", user, ts, core_id, core_type, round_id=rid)
                )
                samples.append(
                    tick("cpu_idle_ticks", idle, ts, core_id, core_type, round_id=rid)
                )

        series = utilization_series(samples, rounds)

        assert series[PERFORMANCE_UTILIZATION] == [75.0, 50.0]
        assert series[EFFICIENCY_UTILIZATION] == [75.0, 50.0]
        assert series[GPU_UTILIZATION_CHART] == []

    @pytest.mark.tra("Core.Charts.GpuSeries")
    def test_gpu_uses_lowest_index_scaled_to_percent(self) -> None:
        rounds = [_round("r2", 2), _round("r1", 1)]
        samples = [
            _gpu(0.9, "r2", index=1),
            _gpu(0.5, "r2", index=0),
            _gpu(0.1, "r1"),
        ]

        series = utilization_series(samples, rounds)

        assert series[GPU_UTILIZATION_CHART] == [50.0]

    def test_baseline_round_alone_gives_no_values(self, tick) -> None:
        rounds = [_round("r1", 1)]
        samples = [tick("cpu_user_ticks", 10, 1000, round_id="r1")]

        series = utilization_series(samples, rounds)

        assert all(values == [] for values in series.values())


class TestBuildCharts:
    """Tests for build_charts()."""

    def test_bar_and_braille_per_metric(self) -> None:
        charts = build_charts(
            {PERFORMANCE_UTILIZATION: [100.0, 0.0, 50.0]}, "r9", 20, GENERATED
        )

        assert [(c.chart_type, c.point_count) for c in charts] == [
            (ChartType.BAR, 3),
            (ChartType.BRAILLE, 2),
        ]
        assert charts[0].data == "█ ▄..50%|"
        assert all(c.round_id == "r9" for c in charts)

    @pytest.mark.tra("Core.Charts.PointLimit")
    def test_only_first_points_values_used(self) -> None:
        charts = build_charts(
            {GPU_UTILIZATION_CHART: [100.0, 100.0, 0.0, 0.0]},
            "r1",
            2,
            GENERATED,
            chart_types=(ChartType.BAR,),
        )

        assert charts[0].data == "██..100%|"

    def test_empty_series_produce_no_chart(self) -> None:
        assert build_charts({EFFICIENCY_UTILIZATION: []}, "r1", 20, GENERATED) == []


def _cached(round_id: str, metric: str, data: str) -> Chart:
    return Chart(round_id, metric, ChartType.BAR, data, 1, GENERATED)


class TestGroupLatest:
    """Tests for ordering cached charts by round and metric."""

    @pytest.mark.tra("Core.Charts.GroupLatest")
    def test_rounds_newest_first_metrics_in_requested_order(self) -> None:
        charts = [
            _cached("r2", GPU_UTILIZATION_CHART, "▄..50%|"),
            _cached("r2", PERFORMANCE_UTILIZATION, "█..99%|"),
            _cached("r1", EFFICIENCY_UTILIZATION, "▂..20%|"),
        ]

        order = [PERFORMANCE_UTILIZATION, EFFICIENCY_UTILIZATION, GPU_UTILIZATION_CHART]

        grouped = group_latest(charts, order)

        assert [(c.round_id, c.metric_name) for c in grouped] == [
            ("r2", PERFORMANCE_UTILIZATION),
            ("r2", GPU_UTILIZATION_CHART),
            ("r1", EFFICIENCY_UTILIZATION),
        ]

    def test_first_chart_per_metric_wins(self) -> None:
        charts = [
            _cached("r1", GPU_UTILIZATION_CHART, "█..99%|"),
            _cached("r1", GPU_UTILIZATION_CHART, "▁..10%|"),
        ]

        assert [c.data for c in group_latest(charts, [GPU_UTILIZATION_CHART])] == [
            "█..99%|"
        ]
