"""Core domain models for counter samples, rates and charts."""

import math
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from types import MappingProxyType

from thrud.core.errors import MetadataError, NonFiniteValueError, ValidationError

SampleValue = int | float | str | bool

DEFAULT_WINDOW_SECONDS = 60


def now_ms() -> int:
    """Return the current wall-clock time as epoch milliseconds."""
    return int(time.time() * 1000)


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime (millisecond precision)."""
    now = datetime.now(UTC)
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


def format_instant(value: datetime) -> str:
    """Format an aware datetime as the ISO-8601 text stored in the database."""
    return value.astimezone(UTC).isoformat(timespec="milliseconds")


def parse_instant(text: str) -> datetime:
    """Parse ISO-8601 text written by format_instant()."""
    return datetime.fromisoformat(text).astimezone(UTC)


class ValueType(str, Enum):
    """Storage type of a sample value."""

    INTEGER = "integer"
    FLOAT = "float"
    STRING = "string"
    BOOLEAN = "boolean"

    @classmethod
    def of(cls, value: SampleValue) -> "ValueType":
        """Return the value type for a Python value (bool before int)."""
        if isinstance(value, bool):
            return cls.BOOLEAN
        if isinstance(value, int):
            return cls.INTEGER
        if isinstance(value, float):
            return cls.FLOAT
        if isinstance(value, str):
            return cls.STRING
        raise ValidationError(f"unsupported sample value type: {type(value).__name__}")


@dataclass(frozen=True)
class Sample:
    """A single immutable metric measurement.

    Attributes:
        name: Metric name (e.g., cpu_idle_ticks).
        value: Integer, float, text or boolean value.
        timestamp: Unix timestamp in milliseconds.
        metadata: Free-form string tags (core_id, core_type, gpu_name, ...),
            held as a read-only copy.
        round_id: Collection round the sample was stored with, if any.
    """

    name: str
    value: SampleValue
    timestamp: int
    metadata: Mapping[str, str] = field(default_factory=dict)
    round_id: str | None = None

    def __post_init__(self) -> None:
        if not self.name:
            raise ValidationError("sample name must not be empty")
        if not isinstance(self.metadata, Mapping):
            raise MetadataError(self.name, "metadata", self.metadata)
        for key, value in self.metadata.items():
            if not isinstance(key, str) or not isinstance(value, str):
                raise MetadataError(self.name, str(key), self.metadata)
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))
        if isinstance(self.timestamp, bool) or not isinstance(self.timestamp, int):
            raise ValidationError(
                f"{self.name}: timestamp must be integer milliseconds"
            )
        if self.timestamp < 0:
            raise ValidationError(f"{self.name}: timestamp must not be negative")
        ValueType.of(self.value)
        if isinstance(self.value, float) and not math.isfinite(self.value):
            raise NonFiniteValueError(self.name, self.value)

    def __hash__(self) -> int:
        return hash(
            (
                self.name,
                self.value,
                self.timestamp,
                frozenset(self.metadata.items()),
                self.round_id,
            )
        )

    @property
    def value_type(self) -> ValueType:
        """Storage type of this sample's value."""
        return ValueType.of(self.value)

    @property
    def is_numeric(self) -> bool:
        """True for integer and float values (booleans excluded)."""
        return self.value_type in (ValueType.INTEGER, ValueType.FLOAT)


class CoreType(str, Enum):
    """Classification of a CPU core."""

    EFFICIENCY = "efficiency"
    PERFORMANCE = "performance"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, text: object) -> "CoreType":
        """Parse a metadata value, mapping anything unrecognized to UNKNOWN."""
        if not isinstance(text, str):
            return cls.UNKNOWN
        try:
            return cls(text.strip().lower())
        except ValueError:
            return cls.UNKNOWN


def _parse_int(raw: object) -> int | None:
    if not isinstance(raw, str):
        return None
    try:
        return int(raw)
    except ValueError:
        return None


@dataclass(frozen=True)
class CoreTag:
    """Typed classification attached to every CPU tick sample.

    Attributes:
        core_id: Stable identity of the core; the partition key.
        core_type: Efficiency / performance classification.
        cluster_id: Cluster the core belongs to, None when not reported.
    """

    core_id: int
    core_type: CoreType = CoreType.UNKNOWN
    cluster_id: int | None = None

    def to_metadata(self) -> dict[str, str]:
        """Render the tag as sample metadata."""
        return {
            "core_id": str(self.core_id),
            "core_type": self.core_type.value,
            "cluster_id": str(self.cluster_id if self.cluster_id is not None else -1),
        }

    @classmethod
    def from_metadata(cls, metric: str, metadata: Mapping[str, str]) -> "CoreTag":
        """Build a tag from sample metadata.

        Raises:
            MetadataError: core_id is missing or not an integer.
        """
        core_id = _parse_int(metadata.get("core_id"))
        if core_id is None:
            raise MetadataError(metric, "core_id", metadata)

        cluster_id = _parse_int(metadata.get("cluster_id"))
        if cluster_id is not None and cluster_id < 0:
            cluster_id = None

        return cls(
            core_id=core_id,
            core_type=CoreType.parse(metadata.get("core_type")),
            cluster_id=cluster_id,
        )


@dataclass(frozen=True, order=True)
class PartitionKey:
    """Identity of one independent counter stream.

    Ordered by core id first so per-partition output sorts numerically.
    """

    core_id: int
    metric: str


@dataclass(frozen=True)
class UtilizationWindow:
    """Trailing time span over which rates are computed."""

    seconds: int = DEFAULT_WINDOW_SECONDS

    def __post_init__(self) -> None:
        if isinstance(self.seconds, bool) or not isinstance(self.seconds, int):
            raise ValidationError("window seconds must be an integer")
        if self.seconds <= 0:
            raise ValidationError(f"window seconds must be > 0, got {self.seconds}")

    def bounds(self, now: int) -> tuple[int, int]:
        """Return (exclusive start, inclusive end) in epoch milliseconds."""
        return now - self.seconds * 1000, now

    def contains(self, timestamp: int, now: int) -> bool:
        """True if timestamp falls inside the window ending at now."""
        start, end = self.bounds(now)
        return start < timestamp <= end


@dataclass(frozen=True)
class CollectionRound:
    """One atomic batch of samples gathered in a single sampling pass.

    Attributes:
        id: Unique identifier (UUID4 text).
        timestamp: When the round was stored (aware UTC datetime).
        sample_count: Number of samples inserted with the round.
    """

    id: str
    timestamp: datetime
    sample_count: int


class ChartType(str, Enum):
    """Visual encoding of a stored chart."""

    BAR = "bar"
    BRAILLE = "braille"


@dataclass(frozen=True)
class Chart:
    """A pre-computed utilization chart.

    Attributes:
        round_id: Collection round the chart was generated for.
        metric_name: Utilization metric the chart shows.
        chart_type: Bar or braille encoding.
        data: Encoded glyphs plus the average annotation.
        point_count: Number of glyphs in the encoding.
        timestamp: Generation time (aware UTC datetime).
    """

    round_id: str
    metric_name: str
    chart_type: ChartType
    data: str
    point_count: int
    timestamp: datetime


@dataclass(frozen=True)
class StorageStats:
    """Summary of the sample store contents."""

    total_samples: int
    total_rounds: int
    latest_round: CollectionRound | None
    database_size_bytes: int | None = None
