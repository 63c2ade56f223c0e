"""NDJSON and JSON encoders for query results."""

import json
from collections.abc import Iterable
from typing import Any

from thrud.core.models import Chart, CollectionRound, StorageStats, format_instant
from thrud.core.rates import RateReport


def chart_to_dict(chart: Chart) -> dict[str, Any]:
    return {
        "round_id": chart.round_id,
        "metric_name": chart.metric_name,
        "chart_type": chart.chart_type.value,
        "chart_data": chart.data,
        "data_points": chart.point_count,
        "timestamp": format_instant(chart.timestamp),
    }


def round_to_dict(round_: CollectionRound) -> dict[str, Any]:
    return {
        "id": round_.id,
        "timestamp": format_instant(round_.timestamp),
        "sample_count": round_.sample_count,
    }


def _encode_lines(objects: Iterable[dict[str, Any]]) -> str:
    lines = [json.dumps(obj, ensure_ascii=False) for obj in objects]
    if not lines:
        return ""
    return "\n".join(lines) + "\n"


def encode_charts(charts: Iterable[Chart]) -> str:
    """Encode charts to newline-delimited JSON.

    Returns:
        NDJSON string with one JSON object per line.
        Empty string if no charts.
    """
    return _encode_lines(chart_to_dict(chart) for chart in charts)


def encode_stats(stats: StorageStats) -> str:
    """Encode storage statistics as a single JSON document."""
    return json.dumps(
        {
            "total_samples": stats.total_samples,
            "total_rounds": stats.total_rounds,
            "latest_round": (
                round_to_dict(stats.latest_round) if stats.latest_round else None
            ),
            "database_size_bytes": stats.database_size_bytes,
        }
    )


def encode_report(report: RateReport) -> str:
    """Encode a rate report as a single JSON document."""
    return json.dumps(report.to_dict())
