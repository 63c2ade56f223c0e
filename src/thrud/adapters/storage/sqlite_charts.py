"""SQLite storage adapter for the chart cache."""

from collections.abc import Sequence
from typing import Any

from thrud.adapters.storage.sqlite_base import SQLiteStorageBase, _placeholders
from thrud.config import ChartRetention
from thrud.core.charts import group_latest
from thrud.core.models import Chart, ChartType, format_instant, parse_instant

_INSERT_CHART = """
INSERT INTO charts (
    round_id, metric_name, chart_type, chart_data, data_points, timestamp
) VALUES (?, ?, ?, ?, ?, ?)
"""

_DELETE_CHART = """
DELETE FROM charts WHERE round_id = ? AND metric_name = ? AND chart_type = ?
"""

_COUNT_CHARTS = """
SELECT COUNT(*) FROM charts
"""

_DELETE_ALL_CHARTS = """
DELETE FROM charts
"""


def _select_latest(metric_count: int) -> str:
    """Query for the charts of the latest rounds holding any requested metric.

    Parameters: metric names, chart type, metric names, chart type, limit.
    """
    names = _placeholders(metric_count)
    return f"""
    SELECT round_id, metric_name, chart_type, chart_data, data_points, timestamp
    FROM charts
    WHERE metric_name IN ({names}) AND chart_type = ?
      AND round_id IN (
          SELECT round_id FROM charts
          WHERE metric_name IN ({names}) AND chart_type = ?
          GROUP BY round_id
          ORDER BY MAX(timestamp) DESC, MAX(id) DESC
          LIMIT ?
      )
    ORDER BY timestamp DESC, id DESC
    """


def _latest_params(
    metric_names: Sequence[str], chart_type: ChartType, limit: int
) -> list[Any]:
    return [*metric_names, chart_type.value, *metric_names, chart_type.value, limit]


def _to_row(chart: Chart) -> tuple[Any, ...]:
    return (
        chart.round_id,
        chart.metric_name,
        chart.chart_type.value,
        chart.data,
        chart.point_count,
        format_instant(chart.timestamp),
    )


def _from_row(row: Sequence[Any]) -> Chart:
    return Chart(
        round_id=row[0],
        metric_name=row[1],
        chart_type=ChartType(row[2]),
        data=row[3],
        point_count=row[4],
        timestamp=parse_instant(row[5]),
    )


class SQLiteChartStorage(SQLiteStorageBase):
    """SQLite implementation of ChartStoragePort.

    With ChartRetention.OVERWRITE (the default) storing a chart replaces any
    chart with the same round, metric and chart type. With APPEND every
    generation is kept and reads return the newest one.

    Sync methods (store_sync, get_latest_sync, clear_sync) use the standard
    sqlite3 module for non-async contexts.
    """

    def __init__(
        self,
        db_path: str,
        retention: ChartRetention = ChartRetention.OVERWRITE,
    ) -> None:
        super().__init__(db_path)
        self._retention = retention

    @property
    def retention(self) -> ChartRetention:
        return self._retention

    def _statements(self, chart: Chart) -> list[tuple[str, tuple[Any, ...]]]:
        row = _to_row(chart)
        statements = [(_INSERT_CHART, row)]
        if self._retention is ChartRetention.OVERWRITE:
            statements.insert(0, (_DELETE_CHART, row[:3]))
        return statements

    async def store(self, chart: Chart) -> None:
        """Persist one chart."""
        await self.store_many([chart])

    async def store_many(self, charts: Sequence[Chart]) -> None:
        """Persist the charts of one generation pass in a single transaction."""
        if not charts:
            return
        async with self.async_transaction() as db:
            for chart in charts:
                for query, params in self._statements(chart):
                    await db.execute(query, params)

    async def get_latest(
        self,
        metric_names: Sequence[str],
        chart_type: ChartType,
        limit: int = 1,
    ) -> list[Chart]:
        """Return charts of the latest `limit` rounds, most recent first.

        Rounds are ordered by their newest chart; within a round charts follow
        the order of metric_names.
        """
        metric_names = list(metric_names)
        if limit <= 0 or not metric_names:
            return []
        query = _select_latest(len(metric_names))
        params = _latest_params(metric_names, chart_type, limit)
        async with self.async_connection() as db:
            async with db.execute(query, params) as cursor:
                rows = await cursor.fetchall()
        return group_latest((_from_row(r) for r in rows), metric_names)

    async def count(self) -> int:
        """Return total number of stored charts."""
        async with self.async_connection() as db:
            async with db.execute(_COUNT_CHARTS) as cursor:
                row = await cursor.fetchone()
                return row[0] if row else 0

    async def clear(self) -> None:
        """Remove all charts."""
        async with self.async_transaction() as db:
            await db.execute(_DELETE_ALL_CHARTS)

    # --- Sync methods using standard sqlite3 module ---

    def store_sync(self, chart: Chart) -> None:
        """Synchronous store for non-async contexts."""
        with self.sync_transaction() as conn:
            for query, params in self._statements(chart):
                conn.execute(query, params)

    def get_latest_sync(
        self,
        metric_names: Sequence[str],
        chart_type: ChartType,
        limit: int = 1,
    ) -> list[Chart]:
        """Synchronous get_latest for non-async contexts."""
        metric_names = list(metric_names)
        if limit <= 0 or not metric_names:
            return []
        query = _select_latest(len(metric_names))
        params = _latest_params(metric_names, chart_type, limit)
        with self.sync_connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return group_latest((_from_row(r) for r in rows), metric_names)

    def clear_sync(self) -> None:
        """Synchronous clear for non-async contexts."""
        with self.sync_transaction() as conn:
            conn.execute(_DELETE_ALL_CHARTS)
