"""ASGI adapter exposing read-only utilization and chart endpoints.

This adapter provides a framework-agnostic ASGI application that can be used
with any ASGI server (uvicorn, hypercorn, daphne).
"""

import json
import logging
from collections.abc import Callable, Coroutine
from typing import Any
from urllib.parse import parse_qs

from thrud.adapters.frameworks.query_params import (
    _parse_chart_type_param,
    _parse_limit_param,
    _parse_metric_param,
    _parse_window_param,
)
from thrud.config import UTILIZATION_CHART_METRICS
from thrud.core.aggregations import AggregationRegistry
from thrud.core.encoding import (
    encode_charts,
    encode_report,
    encode_stats,
    render_compact,
)
from thrud.core.errors import UnknownAggregationError
from thrud.core.models import UtilizationWindow
from thrud.core.ports import ChartStoragePort, SampleStoragePort
from thrud.core.service import latest_charts, latest_utilization, run_aggregation

logger = logging.getLogger(__name__)

# ASGI type aliases
Scope = dict[str, Any]
Receive = Callable[[], Coroutine[Any, Any, dict[str, Any]]]
Send = Callable[[dict[str, Any]], Coroutine[Any, Any, None]]
ASGIApp = Callable[[Scope, Receive, Send], Coroutine[Any, Any, None]]

_AGGREGATIONS_PREFIX = "/aggregations/"


def _parse_query_params(scope: Scope) -> dict[str, list[str]]:
    """Parse query string from ASGI scope into parameter dictionary.

    Args:
        scope: ASGI scope dictionary containing request metadata.

    Returns:
        Dictionary mapping parameter names to lists of values.
        Returns empty dict if query_string is missing or empty.
    """
    query_string = scope.get("query_string", b"").decode(errors="replace")
    return parse_qs(query_string)


async def _send_response(send: Send, status: int, content_type: str, body: str) -> None:
    """Send an HTTP response with headers and body.

    Args:
        send: ASGI send callable for writing response.
        status: HTTP status code.
        content_type: Content-Type header value.
        body: Response body as string (will be encoded to bytes).
    """
    headers = [(b"content-type", content_type.encode())]
    await send({"type": "http.response.start", "status": status, "headers": headers})
    await send({"type": "http.response.body", "body": body.encode()})


async def _send_error(send: Send, status: int, message: str) -> None:
    body = json.dumps({"error": message})
    await _send_response(send, status, "application/json", body)


async def _handle_endpoint(
    send: Send,
    endpoint_func: Callable[[], Coroutine[Any, Any, str]],
    content_type: str,
    log_message: str,
) -> None:
    """Execute an endpoint function with error handling and send response.

    Args:
        send: ASGI send callable for writing response.
        endpoint_func: Async function that returns response body.
        content_type: Content-Type header for success response.
        log_message: Message to log on error.
    """
    try:
        body = await endpoint_func()
    except Exception:
        logger.exception(log_message)
        await _send_error(send, 500, "Internal Server Error")
        return
    await _send_response(send, 200, content_type, body)


def create_asgi_app(
    sample_storage: SampleStoragePort,
    chart_storage: ChartStoragePort,
    registry: AggregationRegistry | None = None,
    default_window: UtilizationWindow | None = None,
) -> ASGIApp:
    """Create an ASGI app serving utilization, aggregation, chart and stats queries.

    Endpoints:
        /utilization?window=SECONDS        Rate report as JSON.
        /aggregations                      Registered aggregations as JSON.
        /aggregations/<name>?window=       One aggregation result as JSON.
        /charts?metric=&type=&limit=       Latest charts as NDJSON.
        /charts/compact?type=              ``P:..E:..G:..`` line as text.
        /stats                             Storage statistics as JSON.

    Args:
        sample_storage: Storage adapter implementing SampleStoragePort.
        chart_storage: Storage adapter implementing ChartStoragePort.
        registry: Aggregations to expose. Defaults to the built-in ones.
        default_window: Window used when a request gives none or an invalid
            one (e.g. ThrudConfig.window). Defaults to 60 seconds.

    Returns:
        ASGI application callable.
    """
    registry = registry or AggregationRegistry()

    async def utilization(params: dict[str, list[str]]) -> str:
        window = _parse_window_param(params, default_window)
        return encode_report(await latest_utilization(sample_storage, window))

    async def aggregations() -> str:
        return json.dumps(
            [{"name": n, "description": d} for n, d in registry.list()]
        )

    async def aggregation(name: str, params: dict[str, list[str]]) -> str:
        window = _parse_window_param(params, default_window)
        result = await run_aggregation(registry, sample_storage, name, window)
        return json.dumps({"name": result.name, "data": result.data})

    async def charts(params: dict[str, list[str]]) -> str:
        found = await latest_charts(
            chart_storage,
            _parse_metric_param(params),
            _parse_chart_type_param(params),
            _parse_limit_param(params),
        )
        return encode_charts(found)

    async def compact(params: dict[str, list[str]]) -> str:
        found = await latest_charts(
            chart_storage, UTILIZATION_CHART_METRICS, _parse_chart_type_param(params)
        )
        return render_compact(found)

    async def stats() -> str:
        return encode_stats(await sample_storage.stats())

    async def app(scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            return

        path = scope["path"]
        params = _parse_query_params(scope)

        if path == "/utilization":
            await _handle_endpoint(
                send,
                lambda: utilization(params),
                "application/json",
                "Error computing utilization",
            )
        elif path == "/aggregations":
            await _handle_endpoint(
                send, aggregations, "application/json", "Error listing aggregations"
            )
        elif path.startswith(_AGGREGATIONS_PREFIX):
            name = path[len(_AGGREGATIONS_PREFIX) :]
            try:
                registry.get(name)
            except UnknownAggregationError as exc:
                await _send_error(send, 404, str(exc))
                return
            await _handle_endpoint(
                send,
                lambda: aggregation(name, params),
                "application/json",
                f"Error executing aggregation {name}",
            )
        elif path == "/charts":
            await _handle_endpoint(
                send,
                lambda: charts(params),
                "application/x-ndjson",
                "Error reading charts",
            )
        elif path == "/charts/compact":
            await _handle_endpoint(
                send,
                lambda: compact(params),
                "text/plain; charset=utf-8",
                "Error rendering compact charts",
            )
        elif path == "/stats":
            await _handle_endpoint(
                send, stats, "application/json", "Error reading storage stats"
            )
        else:
            await _send_response(send, 404, "text/plain", "Not Found")

    return app
