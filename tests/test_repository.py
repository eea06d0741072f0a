"""Tests for the item repository storage contract."""

from __future__ import annotations

import logging
import re

import pytest

from conftest import make_item
from repo_catalog.errors import NotFound
from repo_catalog.repository import ItemRepository, new_item_id
from repo_catalog.storage import DESCRIPTIONS_INDEX, REPOSITORIES_INDEX, DuckDBKeyValueStore


def test_new_item_id_format() -> None:
    item_id = new_item_id(now_ms=1700000000000)

    assert re.fullmatch(r"item:1700000000000:[a-z0-9]{9}", item_id)


def test_allocate_id_skips_existing_ids(repository: ItemRepository, monkeypatch) -> None:
    repository.create(make_item("item:1:taken0000"))
    candidates = iter(["item:1:taken0000", "item:1:fresh0000"])
    monkeypatch.setattr("repo_catalog.repository.new_item_id", lambda: next(candidates))

    assert repository.allocate_id() == "item:1:fresh0000"


def test_create_then_get_returns_record(repository: ItemRepository) -> None:
    item = make_item("item:1:aaaaaaaaa")

    repository.create(item)

    assert repository.get(item.id) == item


def test_create_adds_id_to_auxiliary_indexes(
    repository: ItemRepository, store: DuckDBKeyValueStore
) -> None:
    repository.create(make_item("item:1:aaaaaaaaa"))

    assert store.scard(DESCRIPTIONS_INDEX) == 1
    assert store.scard(REPOSITORIES_INDEX) == 1


def test_get_missing_or_foreign_key_is_not_found(
    repository: ItemRepository, store: DuckDBKeyValueStore
) -> None:
    store.sadd(DESCRIPTIONS_INDEX, "item:1")

    with pytest.raises(NotFound):
        repository.get("item:404:nothing")
    with pytest.raises(NotFound):
        repository.get(DESCRIPTIONS_INDEX)


def test_delete_returns_prior_record_and_cleans_indexes(
    repository: ItemRepository, store: DuckDBKeyValueStore
) -> None:
    item = make_item("item:1:aaaaaaaaa")
    repository.create(item)

    deleted = repository.delete(item.id)

    assert deleted == item
    assert store.hgetall(item.id) == {}
    assert store.scard(DESCRIPTIONS_INDEX) == 0
    assert store.scard(REPOSITORIES_INDEX) == 0
    with pytest.raises(NotFound):
        repository.get(item.id)


def test_delete_nonexistent_is_not_found(repository: ItemRepository) -> None:
    with pytest.raises(NotFound):
        repository.delete("item:404:nothing")


class _BrokenIndexStore:
    """Delegates to a real store but fails every set removal."""

    def __init__(self, inner: DuckDBKeyValueStore) -> None:
        self._inner = inner

    def __getattr__(self, name):
        return getattr(self._inner, name)

    def srem(self, key: str, *members: str) -> int:
        raise RuntimeError("index backend offline")


def test_delete_survives_index_cleanup_failure(
    store: DuckDBKeyValueStore, caplog
) -> None:
    repository = ItemRepository(_BrokenIndexStore(store))
    item = make_item("item:1:aaaaaaaaa")
    repository.create(item)

    with caplog.at_level(logging.WARNING, logger="repo_catalog.repository"):
        deleted = repository.delete(item.id)

    assert deleted.id == item.id
    assert store.hgetall(item.id) == {}
    assert "Could not clean up search indexes" in caplog.text


def test_list_all_keys_spans_many_pages(repository: ItemRepository, store) -> None:
    expected = {f"item:{i}:key{i:05d}" for i in range(7)}
    for key in expected:
        store.hset(key, {"id": key})
    store.sadd(DESCRIPTIONS_INDEX, "item:0:key00000")

    keys = repository.list_all_keys("item:*")

    # scan_count=2 forces four pages; every key appears exactly once.
    assert len(keys) == len(expected)
    assert set(keys) == expected


def test_list_all_keys_deduplicates_repeated_scan_results() -> None:
    class _RepeatingStore:
        def __init__(self) -> None:
            self.pages = iter([(5, ["item:1", "item:2"]), (0, ["item:2", "item:3"])])

        def scan(self, cursor=0, *, match="*", count=100):
            return next(self.pages)

    repository = ItemRepository(_RepeatingStore())

    assert repository.list_all_keys() == ["item:1", "item:2", "item:3"]


def test_ensure_indexes_backfills_then_reports_present(
    repository: ItemRepository, store: DuckDBKeyValueStore
) -> None:
    store.hset("item:1:legacy0000", make_item("item:1:legacy0000").to_hash())
    store.hset("item:2:legacy0000", make_item("item:2:legacy0000").to_hash())

    assert repository.ensure_indexes() == (False, 2)
    assert store.scard(DESCRIPTIONS_INDEX) == 2
    assert repository.ensure_indexes() == (True, 2)


def test_ensure_indexes_on_empty_store(repository: ItemRepository) -> None:
    assert repository.ensure_indexes() == (True, 0)
