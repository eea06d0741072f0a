"""
Item repository: CRUD over key-value hashes.
"""

from __future__ import annotations

import logging
import secrets
import string
import time

from .errors import NotFound
from .storage import (
    AUXILIARY_INDEXES,
    ITEM_KEY_PATTERN,
    ITEM_KEY_PREFIX,
    ItemRecord,
    KeyValueStore,
)

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.ascii_lowercase + string.digits
_ID_SUFFIX_LENGTH = 9


def new_item_id(now_ms: int | None = None) -> str:
    """Return ``item:<epoch-ms>:<random base36 suffix>``."""
    timestamp = now_ms if now_ms is not None else int(time.time() * 1000)
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(_ID_SUFFIX_LENGTH))
    return f"{ITEM_KEY_PREFIX}{timestamp}:{suffix}"


class ItemRepository:
    """Translate ``ItemRecord`` objects to and from store hashes."""

    def __init__(self, store: KeyValueStore, *, scan_count: int = 100) -> None:
        self.store = store
        self.scan_count = scan_count

    def allocate_id(self) -> str:
        """Return a fresh id that no stored item uses."""
        while True:
            item_id = new_item_id()
            if not self.store.hgetall(item_id):
                return item_id

    def create(self, item: ItemRecord) -> ItemRecord:
        self.store.hset(item.id, item.to_hash())
        try:
            for index_name in AUXILIARY_INDEXES:
                self.store.sadd(index_name, item.id)
        except Exception as exc:
            logger.warning("Could not update search indexes for %s: %s", item.id, exc)
        logger.info("Stored item %s (%s)", item.id, item.github_repository_name)
        return item

    def fetch_record(self, key: str) -> dict[str, str]:
        """Return the raw hash for *key* (empty when missing)."""
        return self.store.hgetall(key)

    def get(self, item_id: str) -> ItemRecord:
        if not item_id.startswith(ITEM_KEY_PREFIX):
            raise NotFound(f"Item with ID '{item_id}' not found")
        data = self.store.hgetall(item_id)
        if not data:
            raise NotFound(f"Item with ID '{item_id}' not found")
        return ItemRecord.from_hash(item_id, data)

    def delete(self, item_id: str) -> ItemRecord:
        """Delete an item and return the record as it was before deletion."""
        existing = self.get(item_id)
        if self.store.delete(item_id) == 0:
            raise NotFound(f"Item with ID '{item_id}' not found")

        # The primary record is authoritative; index cleanup is best effort.
        try:
            for index_name in AUXILIARY_INDEXES:
                self.store.srem(index_name, item_id)
        except Exception as exc:
            logger.warning("Could not clean up search indexes for %s: %s", item_id, exc)

        logger.info("Deleted item %s (%s)", item_id, existing.github_repository_name)
        return existing

    def list_all_keys(self, pattern: str = ITEM_KEY_PATTERN) -> list[str]:
        """Enumerate every key matching *pattern* with a paged cursor scan."""
        keys: list[str] = []
        seen: set[str] = set()
        cursor = 0
        while True:
            cursor, page = self.store.scan(cursor, match=pattern, count=self.scan_count)
            for key in page:
                # Redis SCAN may return a key more than once.
                if key not in seen:
                    seen.add(key)
                    keys.append(key)
            if cursor == 0:
                break
        return keys

    def ensure_indexes(self) -> tuple[bool, int]:
        """
        Make sure every stored item is a member of the auxiliary index sets.

        Returns ``(already_present, indexed_count)`` where ``already_present``
        is True when no item had to be added.
        """
        added = 0
        item_keys = self.list_all_keys(ITEM_KEY_PATTERN)
        for index_name in AUXILIARY_INDEXES:
            if item_keys:
                added += self.store.sadd(index_name, *item_keys)
        if added:
            logger.info("Backfilled %d search index entries", added)
        return added == 0, len(item_keys)
