"""In-memory storage adapters for samples and charts."""

import uuid
from collections.abc import AsyncIterable, Iterable, Sequence
from dataclasses import replace

from thrud.config import ChartRetention
from thrud.core.charts import group_latest
from thrud.core.errors import EmptyRoundError
from thrud.core.models import (
    Chart,
    ChartType,
    CollectionRound,
    Sample,
    StorageStats,
    utc_now,
)


class InMemorySampleStorage:
    """In-memory implementation of SampleStoragePort.

    Stores samples in a list. Suitable for testing and
    low-volume applications where persistence is not required.
    """

    def __init__(self) -> None:
        self._samples: list[Sample] = []
        self._rounds: list[CollectionRound] = []

    async def store_round(self, samples: Sequence[Sample]) -> CollectionRound:
        """Store samples as one collection round."""
        samples = list(samples)
        if not samples:
            raise EmptyRoundError("a collection round needs at least one sample")
        round_ = CollectionRound(
            id=str(uuid.uuid4()), timestamp=utc_now(), sample_count=len(samples)
        )
        self._samples.extend(replace(s, round_id=round_.id) for s in samples)
        self._rounds.append(round_)
        return round_

    async def read(
        self,
        names: Iterable[str] | None = None,
        since: int = 0,
    ) -> AsyncIterable[Sample]:
        """Read samples since the given timestamp.

        Returns samples with timestamp > since, ordered by timestamp ascending.
        """
        wanted = None if names is None else set(names)
        filtered = [
            s
            for s in self._samples
            if s.timestamp > since and (wanted is None or s.name in wanted)
        ]
        for sample in sorted(filtered, key=lambda s: s.timestamp):
            yield sample

    async def read_rounds(self, limit: int) -> list[CollectionRound]:
        """Return up to limit rounds, most recent first."""
        if limit <= 0:
            return []
        return self._rounds[::-1][:limit]

    async def read_round_samples(
        self,
        round_ids: Sequence[str],
        names: Iterable[str] | None = None,
    ) -> list[Sample]:
        """Return the samples of the given rounds, ordered by timestamp."""
        ids = set(round_ids)
        wanted = None if names is None else set(names)
        selected = [
            s
            for s in self._samples
            if s.round_id in ids and (wanted is None or s.name in wanted)
        ]
        return sorted(selected, key=lambda s: s.timestamp)

    async def delete_before(self, timestamp: int) -> int:
        """Delete samples with timestamp < given value."""
        kept = [s for s in self._samples if s.timestamp >= timestamp]
        deleted = len(self._samples) - len(kept)
        self._samples = kept
        live = {s.round_id for s in kept}
        self._rounds = [r for r in self._rounds if r.id in live]
        return deleted

    async def count(self) -> int:
        """Return total number of samples in storage."""
        return len(self._samples)

    async def stats(self) -> StorageStats:
        """Return sample and round counts plus the latest round."""
        return StorageStats(
            total_samples=len(self._samples),
            total_rounds=len(self._rounds),
            latest_round=self._rounds[-1] if self._rounds else None,
        )


class InMemoryChartStorage:
    """In-memory implementation of ChartStoragePort."""

    def __init__(self, retention: ChartRetention = ChartRetention.OVERWRITE) -> None:
        self._charts: list[Chart] = []
        self._retention = retention

    async def store(self, chart: Chart) -> None:
        """Persist one chart."""
        if self._retention is ChartRetention.OVERWRITE:
            key = (chart.round_id, chart.metric_name, chart.chart_type)
            self._charts = [
                c
                for c in self._charts
                if (c.round_id, c.metric_name, c.chart_type) != key
            ]
        self._charts.append(chart)

    async def store_many(self, charts: Sequence[Chart]) -> None:
        """Persist the charts of one generation pass."""
        for chart in charts:
            await self.store(chart)

    async def get_latest(
        self,
        metric_names: Sequence[str],
        chart_type: ChartType,
        limit: int = 1,
    ) -> list[Chart]:
        """Return charts of the latest `limit` rounds, most recent first."""
        wanted = set(metric_names)
        if limit <= 0 or not wanted:
            return []
        # Newest first; stable on ties so later inserts win.
        candidates = sorted(
            (
                (c.timestamp, i, c)
                for i, c in enumerate(self._charts)
                if c.metric_name in wanted and c.chart_type is chart_type
            ),
            key=lambda t: (t[0], t[1]),
            reverse=True,
        )
        charts = group_latest((c for _, _, c in candidates), list(metric_names))
        round_ids: list[str] = []
        for chart in charts:
            if chart.round_id not in round_ids:
                round_ids.append(chart.round_id)
        keep = set(round_ids[:limit])
        return [c for c in charts if c.round_id in keep]

    async def count(self) -> int:
        """Return total number of stored charts."""
        return len(self._charts)
