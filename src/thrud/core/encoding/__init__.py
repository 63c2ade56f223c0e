"""Encoders for charts and query results."""

from thrud.core.encoding.charts import (
    encode_bar,
    encode_braille,
    encode_chart,
    render_compact,
)
from thrud.core.encoding.ndjson import encode_charts, encode_report, encode_stats

__all__ = [
    "encode_bar",
    "encode_braille",
    "encode_chart",
    "encode_charts",
    "encode_report",
    "encode_stats",
    "render_compact",
]
