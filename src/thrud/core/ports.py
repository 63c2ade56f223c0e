"""Port interfaces for storage adapters and the counter bridge.

These protocols define the contracts that adapters must implement.
The core domain depends only on these interfaces, not concrete implementations.
"""

from collections.abc import AsyncIterable, Iterable, Sequence
from typing import Protocol, runtime_checkable

from thrud.core.models import Chart, ChartType, CollectionRound, Sample, StorageStats
from thrud.core.samples import CpuSnapshot, GpuSnapshot


@runtime_checkable
class SampleStoragePort(Protocol):
    """Port for the append-only sample store.

    Examples: InMemorySampleStorage, SQLiteSampleStorage.
    """

    async def store_round(self, samples: Sequence[Sample]) -> CollectionRound:
        """Store samples as one collection round, all-or-nothing."""
        ...

    def read(
        self,
        names: Iterable[str] | None = None,
        since: int = 0,
    ) -> AsyncIterable[Sample]:
        """Read samples with timestamp > since, ordered by timestamp ascending.

        Args:
            names: Restrict to these metric names. None reads every metric.
            since: Epoch milliseconds. Default 0 returns all samples.
        """
        ...

    async def read_rounds(self, limit: int) -> list[CollectionRound]:
        """Return up to limit rounds, most recent first."""
        ...

    async def read_round_samples(
        self,
        round_ids: Sequence[str],
        names: Iterable[str] | None = None,
    ) -> list[Sample]:
        """Return the samples of the given rounds, ordered by timestamp."""
        ...

    async def delete_before(self, timestamp: int) -> int:
        """Delete samples with timestamp < given value, returning the count."""
        ...

    async def stats(self) -> StorageStats:
        """Return sample and round counts plus the latest round."""
        ...


@runtime_checkable
class ChartStoragePort(Protocol):
    """Port for the chart cache.

    Examples: InMemoryChartStorage, SQLiteChartStorage.
    """

    async def store(self, chart: Chart) -> None:
        """Persist one encoder result."""
        ...

    async def store_many(self, charts: Sequence[Chart]) -> None:
        """Persist the charts of one generation pass together."""
        ...

    async def get_latest(
        self,
        metric_names: Sequence[str],
        chart_type: ChartType,
        limit: int = 1,
    ) -> list[Chart]:
        """Return charts of the latest `limit` rounds, most recent first."""
        ...


@runtime_checkable
class CounterBridgePort(Protocol):
    """Port for the native hardware counter bridge."""

    def collect_cpu(self) -> CpuSnapshot | None:
        """Return the current CPU tick counters, None when unavailable."""
        ...

    def collect_gpu(self) -> list[GpuSnapshot]:
        """Return the current GPU readings (empty when no GPU is visible)."""
        ...
