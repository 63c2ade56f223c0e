"""Storage adapters implementing core ports."""

from thrud.adapters.storage.in_memory import (
    InMemoryChartStorage,
    InMemorySampleStorage,
)
from thrud.adapters.storage.sqlite_charts import SQLiteChartStorage
from thrud.adapters.storage.sqlite_samples import SQLiteSampleStorage

__all__ = [
    "InMemoryChartStorage",
    "InMemorySampleStorage",
    "SQLiteChartStorage",
    "SQLiteSampleStorage",
]
