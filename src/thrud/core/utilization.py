"""Utilization percentage from active and idle rates."""

import math

from thrud.core.errors import NonFiniteValueError


def _require_finite(field: str, value: float) -> float:
    if not math.isfinite(value):
        raise NonFiniteValueError(field, value)
    return float(value)


def clamp_percent(value: float) -> float:
    """Clamp a percentage into [0, 100]."""
    return min(100.0, max(0.0, value))


def utilization_percent(active: float, idle: float) -> float:
    """Return 100 * active / (active + idle), clamped to [0, 100].

    Args:
        active: Sum of active (user + system + nice) rates.
        idle: Sum of idle rates.

    Returns:
        Utilization percentage, 0.0 when there was no activity at all.

    Raises:
        NonFiniteValueError: Either input is NaN or infinite.
    """
    a = _require_finite("active", active)
    i = _require_finite("idle", idle)
    total = a + i
    if total <= 0:
        return 0.0
    return clamp_percent(100.0 * a / total)
