"""SQLite storage adapter for counter samples and collection rounds."""

import json
import logging
import uuid
from collections.abc import AsyncIterable, Iterable, Sequence
from typing import Any

from thrud.adapters.storage.sqlite_base import (
    SQLiteStorageBase,
    _placeholders,
    _safe_json_loads,
)
from thrud.core.errors import EmptyRoundError
from thrud.core.models import (
    CollectionRound,
    Sample,
    StorageStats,
    ValueType,
    format_instant,
    parse_instant,
    utc_now,
)

logger = logging.getLogger(__name__)

_INSERT_ROUND = """
INSERT INTO collection_rounds (id, timestamp, sample_count) VALUES (?, ?, ?)
"""

_INSERT_SAMPLE = """
INSERT INTO samples (
    round_id, name, timestamp, value_type,
    value_int, value_float, value_text, value_bool, metadata
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
"""

_SAMPLE_COLUMNS = """
SELECT round_id, name, timestamp, value_type,
       value_int, value_float, value_text, value_bool, metadata
FROM samples
"""

_SELECT_ROUNDS = """
SELECT id, timestamp, sample_count FROM collection_rounds
ORDER BY timestamp DESC, rowid DESC
LIMIT ?
"""

_COUNT_SAMPLES = """
SELECT COUNT(*) FROM samples
"""

_COUNT_ROUNDS = """
SELECT COUNT(*) FROM collection_rounds
"""

_DELETE_SAMPLES_BEFORE = """
DELETE FROM samples WHERE timestamp < ?
"""

_DELETE_EMPTY_ROUNDS = """
DELETE FROM collection_rounds
WHERE id NOT IN (SELECT DISTINCT round_id FROM samples WHERE round_id IS NOT NULL)
"""

_DELETE_ALL_SAMPLES = """
DELETE FROM samples
"""

_DELETE_ALL_ROUNDS = """
DELETE FROM collection_rounds
"""


def _select_samples(
    names: Sequence[str] | None,
    since: int | None = None,
    round_ids: Sequence[str] | None = None,
) -> tuple[str, list[Any]]:
    """Build the sample SELECT for the given filters.

    Returns:
        The query text and its parameters.
    """
    clauses: list[str] = []
    params: list[Any] = []
    if since is not None:
        clauses.append("timestamp > ?")
        params.append(since)
    if round_ids is not None:
        clauses.append(f"round_id IN ({_placeholders(len(round_ids))})")
        params.extend(round_ids)
    if names is not None:
        clauses.append(f"name IN ({_placeholders(len(names))})")
        params.extend(names)
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    return f"{_SAMPLE_COLUMNS} {where} ORDER BY timestamp ASC, id ASC", params


def _to_row(sample: Sample, round_id: str) -> tuple[Any, ...]:
    """Flatten a sample into the typed value columns."""
    value_type = sample.value_type
    return (
        round_id,
        sample.name,
        sample.timestamp,
        value_type.value,
        sample.value if value_type is ValueType.INTEGER else None,
        sample.value if value_type is ValueType.FLOAT else None,
        sample.value if value_type is ValueType.STRING else None,
        int(sample.value) if value_type is ValueType.BOOLEAN else None,
        json.dumps(dict(sample.metadata), sort_keys=True),
    )


def _metadata_from_json(text: str) -> dict[str, str]:
    """Decode stored metadata; non-string values are kept as their JSON text."""
    return {
        str(key): value if isinstance(value, str) else json.dumps(value)
        for key, value in _safe_json_loads(text).items()
    }


def _from_row(row: Sequence[Any]) -> Sample:
    """Rebuild a sample from a row selected with _SAMPLE_COLUMNS."""
    value_type = ValueType(row[3])
    if value_type is ValueType.INTEGER:
        value = int(row[4])
    elif value_type is ValueType.FLOAT:
        value = float(row[5])
    elif value_type is ValueType.STRING:
        value = row[6]
    else:
        value = bool(row[7])
    return Sample(
        name=row[1],
        value=value,
        timestamp=row[2],
        metadata=_metadata_from_json(row[8]),
        round_id=row[0],
    )


def _round_from_row(row: Sequence[Any]) -> CollectionRound:
    return CollectionRound(
        id=row[0], timestamp=parse_instant(row[1]), sample_count=row[2]
    )


def _new_round(samples: Sequence[Sample]) -> CollectionRound:
    if not samples:
        raise EmptyRoundError("a collection round needs at least one sample")
    return CollectionRound(
        id=str(uuid.uuid4()), timestamp=utc_now(), sample_count=len(samples)
    )


def _listed(names: Iterable[str] | None) -> list[str] | None:
    return None if names is None else list(names)


class SQLiteSampleStorage(SQLiteStorageBase):
    """SQLite implementation of SampleStoragePort.

    Every round is written in one transaction: its round record and all of
    its samples become visible together or not at all. Values are kept in
    typed columns (integer, float, text, boolean) selected by value_type.

    Sync methods (store_round_sync, read_sync, read_rounds_sync, stats_sync,
    clear_sync) use the standard sqlite3 module for non-async contexts like
    CLI tools or testing.
    """

    async def store_round(self, samples: Sequence[Sample]) -> CollectionRound:
        """Store samples as one collection round.

        Raises:
            EmptyRoundError: samples is empty.
        """
        samples = list(samples)
        round_ = _new_round(samples)
        async with self.async_transaction() as db:
            await db.execute(
                _INSERT_ROUND,
                (round_.id, format_instant(round_.timestamp), round_.sample_count),
            )
            rows = [_to_row(s, round_.id) for s in samples]
            await db.executemany(_INSERT_SAMPLE, rows)
        logger.debug("Stored round %s with %d samples", round_.id, round_.sample_count)
        return round_

    async def read(
        self,
        names: Iterable[str] | None = None,
        since: int = 0,
    ) -> AsyncIterable[Sample]:
        """Read samples since the given timestamp.

        Returns samples with timestamp > since, ordered by timestamp ascending.
        """
        query, params = _select_samples(_listed(names), since=since)
        async with self.async_connection() as db:
            async with db.execute(query, params) as cursor:
                async for row in cursor:
                    yield _from_row(row)

    async def read_rounds(self, limit: int) -> list[CollectionRound]:
        """Return up to limit rounds, most recent first."""
        if limit <= 0:
            return []
        async with self.async_connection() as db:
            async with db.execute(_SELECT_ROUNDS, (limit,)) as cursor:
                rows = await cursor.fetchall()
        return [_round_from_row(row) for row in rows]

    async def read_round_samples(
        self,
        round_ids: Sequence[str],
        names: Iterable[str] | None = None,
    ) -> list[Sample]:
        """Return the samples of the given rounds, ordered by timestamp."""
        if not round_ids:
            return []
        query, params = _select_samples(_listed(names), round_ids=list(round_ids))
        async with self.async_connection() as db:
            async with db.execute(query, params) as cursor:
                rows = await cursor.fetchall()
        return [_from_row(row) for row in rows]

    async def count(self) -> int:
        """Return total number of samples in storage."""
        async with self.async_connection() as db:
            async with db.execute(_COUNT_SAMPLES) as cursor:
                row = await cursor.fetchone()
                return row[0] if row else 0

    async def delete_before(self, timestamp: int) -> int:
        """Delete samples with timestamp < given value.

        Rounds left without samples are removed as well.
        """
        async with self.async_transaction() as db:
            cursor = await db.execute(_DELETE_SAMPLES_BEFORE, (timestamp,))
            deleted = cursor.rowcount
            await db.execute(_DELETE_EMPTY_ROUNDS)
        return deleted

    async def stats(self) -> StorageStats:
        """Return sample and round counts plus the latest round."""
        async with self.async_connection() as db:
            async with db.execute(_COUNT_SAMPLES) as cursor:
                samples = await cursor.fetchone()
            async with db.execute(_COUNT_ROUNDS) as cursor:
                rounds = await cursor.fetchone()
            async with db.execute(_SELECT_ROUNDS, (1,)) as cursor:
                latest = await cursor.fetchone()
        return StorageStats(
            total_samples=samples[0] if samples else 0,
            total_rounds=rounds[0] if rounds else 0,
            latest_round=_round_from_row(latest) if latest else None,
            database_size_bytes=self.database_size(),
        )

    async def clear(self) -> None:
        """Remove all samples and rounds."""
        async with self.async_transaction() as db:
            await db.execute(_DELETE_ALL_SAMPLES)
            await db.execute(_DELETE_ALL_ROUNDS)

    # --- Sync methods using standard sqlite3 module ---

    def store_round_sync(self, samples: Sequence[Sample]) -> CollectionRound:
        """Synchronous store_round for non-async contexts."""
        samples = list(samples)
        round_ = _new_round(samples)
        with self.sync_transaction() as conn:
            conn.execute(
                _INSERT_ROUND,
                (round_.id, format_instant(round_.timestamp), round_.sample_count),
            )
            conn.executemany(_INSERT_SAMPLE, [_to_row(s, round_.id) for s in samples])
        return round_

    def read_sync(
        self,
        names: Iterable[str] | None = None,
        since: int = 0,
    ) -> list[Sample]:
        """Synchronous read for non-async contexts."""
        query, params = _select_samples(_listed(names), since=since)
        with self.sync_connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [_from_row(row) for row in rows]

    def read_rounds_sync(self, limit: int) -> list[CollectionRound]:
        """Synchronous read_rounds for non-async contexts."""
        if limit <= 0:
            return []
        with self.sync_connection() as conn:
            rows = conn.execute(_SELECT_ROUNDS, (limit,)).fetchall()
        return [_round_from_row(row) for row in rows]

    def stats_sync(self) -> StorageStats:
        """Synchronous stats for non-async contexts."""
        with self.sync_connection() as conn:
            samples = conn.execute(_COUNT_SAMPLES).fetchone()
            rounds = conn.execute(_COUNT_ROUNDS).fetchone()
            latest = conn.execute(_SELECT_ROUNDS, (1,)).fetchone()
        return StorageStats(
            total_samples=samples[0] if samples else 0,
            total_rounds=rounds[0] if rounds else 0,
            latest_round=_round_from_row(latest) if latest else None,
            database_size_bytes=self.database_size(),
        )

    def clear_sync(self) -> None:
        """Synchronous clear for non-async contexts."""
        with self.sync_transaction() as conn:
            conn.execute(_DELETE_ALL_SAMPLES)
            conn.execute(_DELETE_ALL_ROUNDS)
