"""Exception types raised by the thrud core."""

from typing import Any


class ThrudError(Exception):
    """Base class for all thrud errors."""


class ValidationError(ThrudError, ValueError):
    """Input rejected at the boundary of the core."""


class NonFiniteValueError(ValidationError):
    """A numeric input was NaN or infinite.

    Attributes:
        field: Name of the offending input (metric name, "active", ...).
        value: The rejected value.
    """

    def __init__(self, field: str, value: Any) -> None:
        super().__init__(f"{field} must be finite, got {value!r}")
        self.field = field
        self.value = value


class MetadataError(ValidationError):
    """Sample metadata is missing a required key or holds a malformed value.

    Attributes:
        metric: Name of the sample whose metadata was rejected.
        key: The missing or malformed metadata key.
        metadata: The metadata mapping as received.
    """

    def __init__(self, metric: str, key: str, metadata: Any) -> None:
        super().__init__(f"{metric}: invalid or missing metadata key {key!r}")
        self.metric = metric
        self.key = key
        self.metadata = metadata


class EmptyRoundError(ValidationError):
    """A collection round was submitted without any samples."""


class UnknownAggregationError(ThrudError, KeyError):
    """No aggregation is registered under the requested name."""

    def __init__(self, name: str) -> None:
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"unknown aggregation: {self.name!r}"
