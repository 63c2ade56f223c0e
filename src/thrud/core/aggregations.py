"""Registry of named aggregations over stored samples."""

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from thrud.core.errors import UnknownAggregationError
from thrud.core.models import Sample, UtilizationWindow
from thrud.core.rates import compute_cpu_rates
from thrud.core.samples import CPU_TICK_METRICS


@dataclass(frozen=True)
class AggregationResult:
    """Named, JSON-serializable aggregation output."""

    name: str
    data: dict[str, Any]


@runtime_checkable
class Aggregation(Protocol):
    """An aggregation computed from a snapshot of samples."""

    name: str
    description: str
    metrics: tuple[str, ...]

    def execute(
        self,
        samples: Iterable[Sample],
        window: UtilizationWindow,
        now: int,
    ) -> AggregationResult:
        """Compute the aggregation for the window ending at now."""
        ...


class CpuUtilizationAggregation:
    """Per-core rates plus core-type and cluster utilization."""

    name = "cpu_utilization"
    description = (
        "CPU tick rates per core with core-type and cluster utilization aggregates"
    )
    metrics = CPU_TICK_METRICS

    def execute(
        self,
        samples: Iterable[Sample],
        window: UtilizationWindow,
        now: int,
    ) -> AggregationResult:
        report = compute_cpu_rates(samples, window, now)
        return AggregationResult(name=self.name, data=report.to_dict())


class AggregationRegistry:
    """Lookup table of aggregations by name.

    Built-in aggregations are registered on construction.
    """

    def __init__(self) -> None:
        self._aggregations: dict[str, Aggregation] = {}
        self.register(CpuUtilizationAggregation())

    def register(self, aggregation: Aggregation) -> None:
        """Register an aggregation, replacing any with the same name."""
        self._aggregations[aggregation.name] = aggregation

    def get(self, name: str) -> Aggregation:
        """Return the aggregation registered under name.

        Raises:
            UnknownAggregationError: Nothing is registered under name.
        """
        try:
            return self._aggregations[name]
        except KeyError:
            raise UnknownAggregationError(name) from None

    def execute(
        self,
        name: str,
        samples: Iterable[Sample],
        window: UtilizationWindow,
        now: int,
    ) -> AggregationResult:
        return self.get(name).execute(samples, window, now)

    def list(self) -> list[tuple[str, str]]:
        """Return (name, description) pairs sorted by name."""
        return sorted((a.name, a.description) for a in self._aggregations.values())
