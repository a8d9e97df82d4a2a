from __future__ import annotations

from src.config.load_config import AppConfig, ConfigError
from src.storage.dataset_store import DatasetStore


def build_store(config: AppConfig) -> DatasetStore:
    """Construct the configured backend. Callers own the returned store."""
    storage = config.storage
    if storage.backend == "memory":
        from src.storage.memory_store import InMemoryDatasetStore

        return InMemoryDatasetStore()
    if storage.backend == "sqlite":
        from src.storage.sqlite_store import SQLiteStore

        return SQLiteStore(storage.sqlite_path)
    if storage.backend == "dynamodb":
        from src.storage.dynamodb_store import DynamoDBStore

        return DynamoDBStore(
            storage.table_name,
            region=storage.region,
            endpoint_url=storage.endpoint_url,
        )
    raise ConfigError(f"Unsupported storage.backend: {storage.backend!r}")
