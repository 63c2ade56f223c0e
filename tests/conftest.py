"""Shared test fixtures for all test modules."""

from collections.abc import AsyncGenerator, Callable
from pathlib import Path

import pytest

try:
    import httpx
except ImportError:
    httpx = None

from thrud.core.models import CoreTag, CoreType, Sample

TickFactory = Callable[..., Sample]


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    """Provide a temporary database path shared by sample and chart storage."""
    return str(tmp_path / "thrud.db")


@pytest.fixture
def tick() -> TickFactory:
    """Factory fixture for CPU tick samples tagged with a core classification.

    Usage:
        def test_something(tick):
            sample = tick("cpu_idle_ticks", 8500, 1000, core_id=0)
    """

    def _tick(
        name: str,
        value: int | float,
        timestamp: int,
        core_id: int = 0,
        core_type: CoreType = CoreType.PERFORMANCE,
        cluster_id: int | None = 0,
        round_id: str | None = None,
    ) -> Sample:
        tag = CoreTag(core_id=core_id, core_type=core_type, cluster_id=cluster_id)
        return Sample(
            name=name,
            value=value,
            timestamp=timestamp,
            metadata=tag.to_metadata(),
            round_id=round_id,
        )

    return _tick


# === ASGI Test Fixtures ===


@pytest.fixture
def asgi_test_client():
    """Factory fixture that creates an httpx.AsyncClient for ASGI testing.

    Returns a callable that accepts an ASGI app and yields a client
    with ASGITransport configured.

    Usage:
        async def test_something(asgi_test_client):
            app = create_asgi_app(sample_storage, chart_storage)
            async with asgi_test_client(app) as client:
                response = await client.get("/endpoint")
    """
    if httpx is None:
        pytest.skip("httpx not installed")

    def _get_client(app):
        """Return an AsyncClient context manager for the given app."""
        return httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://test"
        )

    return _get_client


# === Shared Storage Fixtures ===


@pytest.fixture
async def sample_storage():
    """Fixture providing an empty in-memory sample storage."""
    from thrud.adapters.storage.in_memory import InMemorySampleStorage

    return InMemorySampleStorage()


@pytest.fixture
async def chart_storage():
    """Fixture providing an empty in-memory chart storage."""
    from thrud.adapters.storage.in_memory import InMemoryChartStorage

    return InMemoryChartStorage()


@pytest.fixture
async def sqlite_sample_storage(db_path: str) -> AsyncGenerator:
    """Fixture providing a file-backed SQLite sample storage."""
    from thrud.adapters.storage.sqlite_samples import SQLiteSampleStorage

    storage = SQLiteSampleStorage(db_path)
    yield storage
    await storage.close()


@pytest.fixture
async def sqlite_chart_storage(db_path: str) -> AsyncGenerator:
    """Fixture providing a SQLite chart storage on the same database file."""
    from thrud.adapters.storage.sqlite_charts import SQLiteChartStorage

    storage = SQLiteChartStorage(db_path)
    yield storage
    await storage.close()


@pytest.fixture
async def asgi_client_with_storage(
    sample_storage,
    chart_storage,
    asgi_test_client,
):
    """Fixture combining storage and ASGI test client.

    Returns a tuple of (client, sample_storage, chart_storage).
    """
    from thrud.adapters.frameworks.asgi import create_asgi_app

    app = create_asgi_app(sample_storage, chart_storage)
    async with asgi_test_client(app) as client:
        yield client, sample_storage, chart_storage
