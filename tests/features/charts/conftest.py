"""BDD step definitions for chart_encoding.feature."""

import asyncio
from dataclasses import dataclass, field
from typing import Any

import pytest
from pytest_bdd import given, parsers, then, when

from thrud.adapters.storage.in_memory import InMemoryChartStorage, InMemorySampleStorage
from thrud.core.encoding.charts import bar_index, encode_bar, encode_braille
from thrud.core.models import CoreTag, CoreType, Sample
from thrud.core.rates import ClassAggregate, compute_cpu_rates, counter_rate
from thrud.core.service import generate_charts


@dataclass
class ChartScenarioContext:
    series: list[float] = field(default_factory=list)
    chart: str = ""
    samples: list[Sample] = field(default_factory=list)
    rate: float | None = None
    aggregate: ClassAggregate | None = None
    sample_storage: InMemorySampleStorage = field(default_factory=InMemorySampleStorage)
    chart_storage: InMemoryChartStorage = field(default_factory=InMemoryChartStorage)
    round_id: str = ""
    generated: list[Any] = field(default_factory=list)


@pytest.fixture
def ctx() -> ChartScenarioContext:
    """Fresh scenario context for each test."""
    return ChartScenarioContext()


def _numbers(text: str) -> list[float]:
    return [float(part) for part in text.split(",")]


def _efficiency_ticks(core_id: int, name: str, value: int, timestamp: int) -> Sample:
    tag = CoreTag(core_id=core_id, core_type=CoreType.EFFICIENCY, cluster_id=0)
    return Sample(name, value, timestamp, tag.to_metadata())


# === Encoding ===
@given(parsers.parse('the utilization series "{values}"'))
def given_series(ctx: ChartScenarioContext, values: str) -> None:
    ctx.series = _numbers(values)


@when("the series is encoded as a bar chart")
def when_bar(ctx: ChartScenarioContext) -> None:
    ctx.chart = encode_bar(ctx.series)


@when("the series is encoded as a braille chart")
def when_braille(ctx: ChartScenarioContext) -> None:
    ctx.chart = encode_braille(ctx.series)


@then(parsers.parse('the glyph indices are "{indices}"'))
def then_indices(ctx: ChartScenarioContext, indices: str) -> None:
    assert [bar_index(v) for v in ctx.series] == [int(i) for i in _numbers(indices)]


@then(parsers.parse('the chart reads "{expected}"'))
def then_chart(ctx: ChartScenarioContext, expected: str) -> None:
    assert ctx.chart == expected


# === Rates ===
@given(parsers.parse('"{name}" for core {core_id:d} is {value:d} at {timestamp:d} ms'))
def given_counter(
    ctx: ChartScenarioContext, name: str, core_id: int, value: int, timestamp: int
) -> None:
    ctx.samples.append(Sample(name, value, timestamp, {"core_id": str(core_id)}))


@when("the rate is computed")
def when_rate(ctx: ChartScenarioContext) -> None:
    previous, current = ctx.samples
    ctx.rate = counter_rate(previous, current)


@then(parsers.parse("the rate is {expected:f} ticks per second"))
def then_rate(ctx: ChartScenarioContext, expected: float) -> None:
    assert ctx.rate == pytest.approx(expected)


# === Aggregates ===
@given(
    parsers.parse(
        "efficiency core {core_id:d} has active rate {active:d} and idle rate {idle:d}"
    )
)
def given_core_rates(
    ctx: ChartScenarioContext, core_id: int, active: int, idle: int
) -> None:
    # Counters advance by the rate over one second.
    for name, delta in (("cpu_user_ticks", active), ("cpu_idle_ticks", idle)):
        ctx.samples.append(_efficiency_ticks(core_id, name, 0, 1000))
        ctx.samples.append(_efficiency_ticks(core_id, name, delta, 2000))


@when("the core type aggregates are computed")
def when_aggregates(ctx: ChartScenarioContext) -> None:
    report = compute_cpu_rates(ctx.samples, now=2000)
    ctx.aggregate = report.core_type(CoreType.EFFICIENCY)


@then(parsers.parse("the efficiency aggregate has active {active:d} and idle {idle:d}"))
def then_aggregate_sums(ctx: ChartScenarioContext, active: int, idle: int) -> None:
    assert ctx.aggregate is not None
    assert ctx.aggregate.core_count == 2
    assert ctx.aggregate.total_active_rate == pytest.approx(active)
    assert ctx.aggregate.total_idle_rate == pytest.approx(idle)


@then(parsers.parse("the efficiency utilization is {percent:f} percent"))
def then_utilization(ctx: ChartScenarioContext, percent: float) -> None:
    assert ctx.aggregate is not None
    assert ctx.aggregate.utilization_percent == pytest.approx(percent, abs=0.005)


# === Generation ===
@given("a sample store holding a single collection round")
def given_single_round(ctx: ChartScenarioContext) -> None:
    round_ = asyncio.run(
        ctx.sample_storage.store_round(
            [
                _efficiency_ticks(4, "cpu_user_ticks", 10, 1000),
                _efficiency_ticks(4, "cpu_idle_ticks", 30, 1000),
            ]
        )
    )
    ctx.round_id = round_.id


@when("charts are generated for that round")
def when_generate(ctx: ChartScenarioContext) -> None:
    ctx.generated = asyncio.run(
        generate_charts(ctx.sample_storage, ctx.chart_storage, ctx.round_id)
    )


@then("no charts are generated")
def then_none_generated(ctx: ChartScenarioContext) -> None:
    assert ctx.generated == []


@then("the chart cache is empty")
def then_cache_empty(ctx: ChartScenarioContext) -> None:
    assert asyncio.run(ctx.chart_storage.count()) == 0
