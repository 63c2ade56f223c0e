"""Rate engine for cumulative counters.

Cumulative tick counters are turned into per-second rates with an explicit
two-pass algorithm:

1. ``partition_samples`` groups samples by partition key (metric, core id)
   and sorts every partition by timestamp.
2. ``fold_pairs`` walks consecutive samples of one partition and emits a
   rate for every valid pair. Pairs whose value decreased (counter reset or
   wraparound) or whose timestamps are identical are skipped and reported
   as ``CounterAnomaly`` records.

Samples of different partitions are never differenced against each other.
Per-partition rates are then combined per core (``per_core_rates``) and
summed per classification (``aggregate_by_core_type`` and
``aggregate_by_cluster``).
"""

from collections import defaultdict
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from itertools import pairwise

from thrud.core.errors import MetadataError
from thrud.core.models import (
    CoreTag,
    CoreType,
    PartitionKey,
    Sample,
    UtilizationWindow,
    now_ms,
)
from thrud.core.samples import (
    ACTIVE_TICK_METRICS,
    CPU_NICE_TICKS,
    CPU_SYSTEM_TICKS,
    CPU_TICK_METRICS,
    CPU_USER_TICKS,
    IDLE_TICK_METRICS,
)
from thrud.core.utilization import utilization_percent


class AnomalyKind(str, Enum):
    """Why a consecutive sample pair produced no rate."""

    RESET = "reset"
    DUPLICATE_TIMESTAMP = "duplicate_timestamp"


@dataclass(frozen=True)
class Rate:
    """Rate of one partition between two consecutive samples.

    Attributes:
        partition: Counter stream the rate belongs to.
        tag: Classification of the core.
        rate: Units per second.
        computed_at: Timestamp (ms) of the later sample of the pair.
        round_id: Collection round of the later sample.
    """

    partition: PartitionKey
    tag: CoreTag
    rate: float
    computed_at: int
    round_id: str | None = None


@dataclass(frozen=True)
class CounterAnomaly:
    """A skipped sample pair, attributable to one partition and instant."""

    partition: PartitionKey
    kind: AnomalyKind
    timestamp: int
    previous_value: float
    value: float

    def to_dict(self) -> dict[str, object]:
        return {
            "metric": self.partition.metric,
            "core_id": self.partition.core_id,
            "kind": self.kind.value,
            "timestamp": self.timestamp,
            "previous_value": self.previous_value,
            "value": self.value,
        }


@dataclass(frozen=True)
class RejectedSample:
    """A sample that could not be assigned to a partition."""

    metric: str
    timestamp: int
    reason: str

    def to_dict(self) -> dict[str, object]:
        return {
            "metric": self.metric,
            "timestamp": self.timestamp,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class PartitionSeries:
    """Time-ordered samples of one partition."""

    key: PartitionKey
    tag: CoreTag
    samples: tuple[Sample, ...]


def classify_pair(previous: Sample, current: Sample) -> AnomalyKind | None:
    """Return the anomaly of a consecutive pair, or None when it is valid."""
    if current.timestamp <= previous.timestamp:
        return AnomalyKind.DUPLICATE_TIMESTAMP
    if current.value < previous.value:  # type: ignore[operator]
        return AnomalyKind.RESET
    return None


def counter_rate(previous: Sample, current: Sample) -> float | None:
    """Return units per second between two samples of the same counter.

    ``rate = (value[t] - value[t-1]) / ((timestamp[t] - timestamp[t-1]) / 1000)``

    Returns:
        The rate, or None when the pair is invalid (reset or same instant).
    """
    if classify_pair(previous, current) is not None:
        return None
    return _pair_rate(previous, current)


def _pair_rate(previous: Sample, current: Sample) -> float:
    delta = current.value - previous.value  # type: ignore[operator]
    elapsed_ms = current.timestamp - previous.timestamp
    return float(delta) * 1000.0 / elapsed_ms


def partition_samples(
    samples: Iterable[Sample],
    metrics: Iterable[str] = CPU_TICK_METRICS,
) -> tuple[dict[PartitionKey, PartitionSeries], list[RejectedSample]]:
    """Group counter samples by partition key and sort each group by time.

    Samples with non-numeric values or without a usable core_id are
    returned as rejected instead of being dropped silently.

    Returns:
        Tuple of (series keyed by partition, rejected samples).
    """
    wanted = frozenset(metrics)
    grouped: dict[PartitionKey, list[tuple[Sample, CoreTag]]] = defaultdict(list)
    rejected: list[RejectedSample] = []

    for sample in samples:
        if sample.name not in wanted:
            continue
        if not sample.is_numeric:
            rejected.append(
                RejectedSample(
                    sample.name,
                    sample.timestamp,
                    f"non-numeric value type {sample.value_type.value}",
                )
            )
            continue
        try:
            tag = CoreTag.from_metadata(sample.name, sample.metadata)
        except MetadataError as exc:
            rejected.append(RejectedSample(sample.name, sample.timestamp, str(exc)))
            continue
        grouped[PartitionKey(core_id=tag.core_id, metric=sample.name)].append(
            (sample, tag)
        )

    series: dict[PartitionKey, PartitionSeries] = {}
    for key in sorted(grouped):
        ordered = sorted(grouped[key], key=lambda item: item[0].timestamp)
        series[key] = PartitionSeries(
            key=key,
            # a partition keeps one classification; the newest sample wins
            tag=ordered[-1][1],
            samples=tuple(sample for sample, _ in ordered),
        )
    return series, rejected


def fold_pairs(series: PartitionSeries) -> tuple[list[Rate], list[CounterAnomaly]]:
    """Compute a rate for every valid consecutive pair of a partition."""
    rates: list[Rate] = []
    anomalies: list[CounterAnomaly] = []
    for previous, current in pairwise(series.samples):
        kind = classify_pair(previous, current)
        if kind is not None:
            anomalies.append(
                CounterAnomaly(
                    partition=series.key,
                    kind=kind,
                    timestamp=current.timestamp,
                    previous_value=float(previous.value),
                    value=float(current.value),
                )
            )
            continue
        rates.append(
            Rate(
                partition=series.key,
                tag=series.tag,
                rate=_pair_rate(previous, current),
                computed_at=current.timestamp,
                round_id=current.round_id,
            )
        )
    return rates, anomalies


@dataclass
class LatestRates:
    """Most recent rate of every partition that has one."""

    rates: list[Rate] = field(default_factory=list)
    anomalies: list[CounterAnomaly] = field(default_factory=list)
    rejected: list[RejectedSample] = field(default_factory=list)


def latest_rates(
    samples: Iterable[Sample],
    window: UtilizationWindow | None = None,
    now: int | None = None,
    metrics: Iterable[str] = CPU_TICK_METRICS,
) -> LatestRates:
    """Return the most recent rate per partition inside a trailing window.

    Partitions with fewer than two samples in the window, or without any
    valid pair, yield no rate. Output is ordered by partition key.
    """
    window = window or UtilizationWindow()
    end = now_ms() if now is None else now
    in_window = [s for s in samples if window.contains(s.timestamp, end)]
    partitions, rejected = partition_samples(in_window, metrics)

    result = LatestRates(rejected=rejected)
    for series in partitions.values():
        rates, anomalies = fold_pairs(series)
        result.anomalies.extend(anomalies)
        if rates:
            result.rates.append(rates[-1])
    return result


@dataclass(frozen=True)
class CoreRate:
    """Rates of all tick counters of one core."""

    tag: CoreTag
    user_rate: float = 0.0
    system_rate: float = 0.0
    nice_rate: float = 0.0
    idle_rate: float = 0.0
    computed_at: int = 0

    @property
    def core_id(self) -> int:
        return self.tag.core_id

    @property
    def total_active_rate(self) -> float:
        return self.user_rate + self.system_rate + self.nice_rate

    @property
    def utilization_percent(self) -> float:
        return utilization_percent(self.total_active_rate, self.idle_rate)

    def to_dict(self) -> dict[str, object]:
        return {
            "core_id": self.tag.core_id,
            "core_type": self.tag.core_type.value,
            "cluster_id": self.tag.cluster_id,
            "user_rate": self.user_rate,
            "system_rate": self.system_rate,
            "nice_rate": self.nice_rate,
            "idle_rate": self.idle_rate,
            "total_active_rate": self.total_active_rate,
            "utilization_percent": self.utilization_percent,
            "computed_at": self.computed_at,
        }


_CORE_RATE_FIELDS = {
    CPU_USER_TICKS: "user_rate",
    CPU_SYSTEM_TICKS: "system_rate",
    CPU_NICE_TICKS: "nice_rate",
    IDLE_TICK_METRICS[0]: "idle_rate",
}


def per_core_rates(rates: Iterable[Rate]) -> list[CoreRate]:
    """Combine per-partition rates into one record per core, ordered by core id.

    Counters without a rate contribute 0.0.
    """
    tags: dict[int, CoreTag] = {}
    values: dict[int, dict[str, float]] = defaultdict(dict)
    latest: dict[int, int] = defaultdict(int)
    for rate in rates:
        core_id = rate.partition.core_id
        tags[core_id] = rate.tag
        column = _CORE_RATE_FIELDS.get(rate.partition.metric)
        if column is None:
            continue
        values[core_id][column] = rate.rate
        latest[core_id] = max(latest[core_id], rate.computed_at)
    return [
        CoreRate(tag=tags[core_id], computed_at=latest[core_id], **values[core_id])
        for core_id in sorted(tags)
    ]


@dataclass(frozen=True)
class ClassAggregate:
    """Summed rates of all cores sharing one classification value.

    Attributes:
        classification: "core_type" or "cluster".
        key: Classification value (core type name or cluster id).
        core_count: Distinct cores contributing to the active sum.
        total_active_rate: Sum of user + system + nice rates.
        total_idle_rate: Sum of idle rates.
    """

    classification: str
    key: str | int
    core_count: int
    total_active_rate: float
    total_idle_rate: float

    @property
    def utilization_percent(self) -> float:
        return utilization_percent(self.total_active_rate, self.total_idle_rate)

    def to_dict(self) -> dict[str, object]:
        return {
            "classification": self.classification,
            "key": self.key,
            "core_count": self.core_count,
            "total_active_rate": self.total_active_rate,
            "total_idle_rate": self.total_idle_rate,
            "utilization_percent": self.utilization_percent,
        }


def aggregate(
    rates: Iterable[Rate],
    classification: str,
    classify: Callable[[CoreTag], str | int | None],
) -> list[ClassAggregate]:
    """Sum active and idle rates per classification value.

    Rates whose tag classifies to None are left out of every aggregate.
    """
    active: dict[str | int, float] = defaultdict(float)
    idle: dict[str | int, float] = defaultdict(float)
    active_cores: dict[str | int, set[int]] = defaultdict(set)

    for rate in rates:
        key = classify(rate.tag)
        if key is None:
            continue
        if rate.partition.metric in ACTIVE_TICK_METRICS:
            active[key] += rate.rate
            active_cores[key].add(rate.partition.core_id)
        elif rate.partition.metric in IDLE_TICK_METRICS:
            idle[key] += rate.rate

    return [
        ClassAggregate(
            classification=classification,
            key=key,
            core_count=len(active_cores[key]),
            total_active_rate=active[key],
            total_idle_rate=idle[key],
        )
        for key in sorted(set(active) | set(idle))  # type: ignore[type-var]
    ]


def aggregate_by_core_type(rates: Iterable[Rate]) -> list[ClassAggregate]:
    """Aggregate rates per core type; cores of unknown type are excluded."""
    return aggregate(
        rates,
        "core_type",
        lambda tag: None if tag.core_type is CoreType.UNKNOWN else tag.core_type.value,
    )


def aggregate_by_cluster(rates: Iterable[Rate]) -> list[ClassAggregate]:
    """Aggregate rates per cluster id; cores without a cluster are excluded."""
    return aggregate(rates, "cluster", lambda tag: tag.cluster_id)


@dataclass
class RateReport:
    """Latest CPU rates and utilization for one trailing window."""

    window_seconds: int
    computed_at: int
    per_core: list[CoreRate] = field(default_factory=list)
    core_types: list[ClassAggregate] = field(default_factory=list)
    clusters: list[ClassAggregate] = field(default_factory=list)
    anomalies: list[CounterAnomaly] = field(default_factory=list)
    rejected: list[RejectedSample] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        """True when no partition produced a rate in the window."""
        return not self.per_core

    def core_type(self, core_type: CoreType) -> ClassAggregate | None:
        """Return the aggregate of one core type, if present."""
        for item in self.core_types:
            if item.key == core_type.value:
                return item
        return None

    def to_dict(self) -> dict[str, object]:
        return {
            "window_seconds": self.window_seconds,
            "computed_at": self.computed_at,
            "per_core_rates": [c.to_dict() for c in self.per_core],
            "core_type_aggregates": [a.to_dict() for a in self.core_types],
            "cluster_aggregates": [a.to_dict() for a in self.clusters],
            "anomalies": [a.to_dict() for a in self.anomalies],
            "rejected": [r.to_dict() for r in self.rejected],
        }


def compute_cpu_rates(
    samples: Iterable[Sample],
    window: UtilizationWindow | None = None,
    now: int | None = None,
) -> RateReport:
    """Compute per-core rates and classification aggregates for a window.

    Args:
        samples: Snapshot of tick samples (any order, any metrics).
        window: Trailing window (default 60 seconds).
        now: Window end in epoch milliseconds (default: current time).

    Returns:
        RateReport; an empty report means there was no data in the window.
    """
    window = window or UtilizationWindow()
    end = now_ms() if now is None else now
    latest = latest_rates(samples, window, end)
    return RateReport(
        window_seconds=window.seconds,
        computed_at=end,
        per_core=per_core_rates(latest.rates),
        core_types=aggregate_by_core_type(latest.rates),
        clusters=aggregate_by_cluster(latest.rates),
        anomalies=latest.anomalies,
        rejected=latest.rejected,
    )


def rates_by_round(
    samples: Iterable[Sample],
    metrics: Iterable[str] = CPU_TICK_METRICS,
) -> dict[str, list[Rate]]:
    """Return every valid pair rate keyed by the round of its later sample.

    Rates of samples that were never stored with a round are ignored.
    """
    partitions, _ = partition_samples(samples, metrics)
    grouped: dict[str, list[Rate]] = defaultdict(list)
    for series in partitions.values():
        rates, _ = fold_pairs(series)
        for rate in rates:
            if rate.round_id is not None:
                grouped[rate.round_id].append(rate)
    return dict(grouped)
