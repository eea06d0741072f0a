"""Key-value storage backends for the item catalogue."""

from ..config import CatalogSettings, resolve_db_path
from ..errors import StorageUnavailable
from .base import (
    AUXILIARY_INDEXES,
    DESCRIPTIONS_INDEX,
    EMBEDDING_FIELDS,
    ITEM_KEY_PATTERN,
    ITEM_KEY_PREFIX,
    REPOSITORIES_INDEX,
    ItemRecord,
    KeyValueStore,
    parse_embedding,
)
from .duckdb import DuckDBKeyValueStore
from .redis import RedisKeyValueStore


def open_store(settings: CatalogSettings) -> KeyValueStore:
    """Open a connection to the configured backend and verify it responds."""
    if settings.store_backend == "redis":
        store: KeyValueStore = RedisKeyValueStore(settings.redis_url)
    elif settings.store_backend == "duckdb":
        store = DuckDBKeyValueStore(resolve_db_path(settings.db_path))
    else:
        raise StorageUnavailable(
            f"Unknown store backend '{settings.store_backend}'. "
            "Use 'redis' or 'duckdb'."
        )
    try:
        store.ping()
    except StorageUnavailable:
        store.close()
        raise
    return store


__all__ = [
    "AUXILIARY_INDEXES",
    "DESCRIPTIONS_INDEX",
    "EMBEDDING_FIELDS",
    "ITEM_KEY_PATTERN",
    "ITEM_KEY_PREFIX",
    "REPOSITORIES_INDEX",
    "ItemRecord",
    "KeyValueStore",
    "parse_embedding",
    "DuckDBKeyValueStore",
    "RedisKeyValueStore",
    "open_store",
]
