"""Tests for similarity search ranking and tenant listing."""

from __future__ import annotations

import pytest

from conftest import SEARCH_CATEGORY, FakeEmbeddingProvider, make_item
from repo_catalog.errors import EmbeddingFailure, ValidationError
from repo_catalog.repository import ItemRepository
from repo_catalog.search import SimilaritySearchEngine, list_items_by_url, scan_items
from repo_catalog.storage import DuckDBKeyValueStore


@pytest.fixture()
def engine(repository: ItemRepository, embedder: FakeEmbeddingProvider) -> SimilaritySearchEngine:
    return SimilaritySearchEngine(repository, embedder, eligible_category=SEARCH_CATEGORY)


def _seed(repository: ItemRepository, embedder: FakeEmbeddingProvider) -> None:
    repository.create(
        make_item("item:1:widgets00", description="fast widget framework", embedder=embedder)
    )
    repository.create(
        make_item(
            "item:2:gadgets00",
            name="acme/gadgets",
            description="gadget toolkit for robots",
            embedder=embedder,
        )
    )
    repository.create(
        make_item(
            "item:3:parsers00",
            name="acme/parsers",
            description="widget parser collection",
            embedder=embedder,
        )
    )


def test_search_ranks_by_description_similarity(
    engine: SimilaritySearchEngine, repository, embedder
) -> None:
    _seed(repository, embedder)

    results = engine.search("widget framework", limit=5, search_type="description")

    assert results[0].item.github_repository_name == "acme/widgets"
    assert results[0].score > 0.9
    scores = [result.score for result in results]
    assert scores == sorted(scores, reverse=True)


def test_fake_embedders_keep_separate_vocabularies() -> None:
    first = FakeEmbeddingProvider()
    second = FakeEmbeddingProvider()
    first.embed_query("alpha beta")

    assert second.vocabulary == {}
    assert second.embed_query("gamma") == first.embed_query("alpha")


def test_search_respects_limit(engine: SimilaritySearchEngine, repository, embedder) -> None:
    _seed(repository, embedder)

    assert len(engine.search("widget", limit=2)) == 2
    assert len(engine.search("widget", limit=1)) == 1
    assert len(engine.search("widget", limit=50)) == 3


def test_search_includes_non_positive_scores(
    engine: SimilaritySearchEngine, repository, embedder
) -> None:
    _seed(repository, embedder)

    results = engine.search("zebra", limit=10)

    # Filtering out zero scores is left to the caller.
    assert len(results) == 3
    assert all(result.score == 0.0 for result in results)


def test_search_uses_selected_embedding_field(
    engine: SimilaritySearchEngine, repository, embedder
) -> None:
    _seed(repository, embedder)

    by_repository = engine.search("acme gadgets", limit=1, search_type="repository")
    by_description = engine.search("robots toolkit", limit=1, search_type="description")

    assert by_repository[0].item.github_repository_name == "acme/gadgets"
    assert by_repository[0].score == pytest.approx(1.0)
    assert by_description[0].item.github_repository_name == "acme/gadgets"


def test_search_only_returns_eligible_category(
    engine: SimilaritySearchEngine, repository, embedder
) -> None:
    repository.create(
        make_item("item:1:eligible0", description="widget framework", embedder=embedder)
    )
    repository.create(
        make_item(
            "item:2:otherctg0",
            description="widget framework",
            category="internal tools",
            embedder=embedder,
        )
    )

    results = engine.search("widget framework", limit=10, search_type="description")

    assert [result.item.id for result in results] == ["item:1:eligible0"]


def test_eligible_category_is_configurable(repository, embedder) -> None:
    repository.create(
        make_item("item:1:tools0000", category="internal tools", embedder=embedder)
    )
    engine = SimilaritySearchEngine(repository, embedder, eligible_category="internal tools")

    assert [r.item.id for r in engine.search("widget")] == ["item:1:tools0000"]


def test_malformed_or_missing_embeddings_are_skipped(
    engine: SimilaritySearchEngine,
    repository: ItemRepository,
    store: DuckDBKeyValueStore,
    embedder,
) -> None:
    repository.create(make_item("item:1:good00000", embedder=embedder))
    broken = make_item("item:2:broken000", embedder=embedder).to_hash()
    broken["combinedEmbeddings"] = "{not json"
    store.hset("item:2:broken000", broken)
    missing = make_item("item:3:missing00", embedder=embedder).to_hash()
    del missing["combinedEmbeddings"]
    store.hset("item:3:missing00", missing)
    wrong_type = make_item("item:4:wrongtyp0", embedder=embedder).to_hash()
    wrong_type["combinedEmbeddings"] = '["a", "b"]'
    store.hset("item:4:wrongtyp0", wrong_type)
    for index, raw in enumerate(("[NaN, 1]", "[Infinity]"), start=5):
        key = f"item:{index}:nonfinite"
        record = make_item(key, embedder=embedder).to_hash()
        record["combinedEmbeddings"] = raw
        store.hset(key, record)

    results = engine.search("widget framework", limit=10)

    assert [result.item.id for result in results] == ["item:1:good00000"]


def test_non_finite_scores_are_skipped(
    repository: ItemRepository, store: DuckDBKeyValueStore
) -> None:
    class _HugeQueryEmbedder:
        def embed_query(self, query: str) -> list[float]:
            return [1e200, 1e200]

    record = make_item("item:1:overflow0").to_hash()
    record["combinedEmbeddings"] = "[1e200, 1e200]"
    store.hset("item:1:overflow0", record)
    small = make_item("item:2:ordinary0").to_hash()
    small["combinedEmbeddings"] = "[1.0, 0.0]"
    store.hset("item:2:ordinary0", small)

    engine = SimilaritySearchEngine(
        repository, _HugeQueryEmbedder(), eligible_category=SEARCH_CATEGORY
    )
    results = engine.search("anything", limit=10)

    assert [result.item.id for result in results] == ["item:2:ordinary0"]


def test_vanished_records_are_skipped(repository: ItemRepository, embedder) -> None:
    repository.create(make_item("item:1:present00", embedder=embedder))

    class _RacingRepository:
        def list_all_keys(self, pattern):
            return ["item:0:deleted00", "item:1:present00"]

        def fetch_record(self, key):
            return repository.fetch_record(key)

    engine = SimilaritySearchEngine(
        _RacingRepository(), embedder, eligible_category=SEARCH_CATEGORY
    )

    assert [r.item.id for r in engine.search("widget")] == ["item:1:present00"]


@pytest.mark.parametrize("query", ["", "   ", "\n\t"])
def test_blank_query_is_validation_error(engine: SimilaritySearchEngine, query: str) -> None:
    with pytest.raises(ValidationError, match="Query parameter is required"):
        engine.search(query)


def test_invalid_search_type_and_limit(engine: SimilaritySearchEngine) -> None:
    with pytest.raises(ValidationError, match="searchType"):
        engine.search("widget", search_type="readme")
    with pytest.raises(ValidationError, match="limit"):
        engine.search("widget", limit=0)


def test_embedding_failure_aborts_search(
    engine: SimilaritySearchEngine, repository, embedder
) -> None:
    _seed(repository, embedder)
    embedder.fail = True

    with pytest.raises(EmbeddingFailure):
        engine.search("widget")


def test_query_is_embedded_before_scanning(repository, embedder) -> None:
    scanned: list[str] = []

    class _TrackingRepository:
        def list_all_keys(self, pattern):
            scanned.append(pattern)
            return []

    embedder.fail = True
    engine = SimilaritySearchEngine(
        _TrackingRepository(), embedder, eligible_category=SEARCH_CATEGORY
    )

    with pytest.raises(EmbeddingFailure):
        engine.search("widget")
    assert scanned == []


# ---------------------------------------------------------------------------
# Listing by tenant
# ---------------------------------------------------------------------------


def test_list_items_by_url_filters_and_sorts_newest_first(
    repository: ItemRepository, embedder
) -> None:
    repository.create(
        make_item("item:1:old000000", url="a.test", created_at="2024-01-01T00:00:00.000Z")
    )
    repository.create(
        make_item("item:2:new000000", url="a.test", created_at="2024-03-01T00:00:00.000Z")
    )
    repository.create(
        make_item("item:3:mid000000", url="a.test", created_at="2024-02-01T00:00:00.000Z")
    )
    repository.create(
        make_item("item:4:otherten0", url="b.test", created_at="2024-04-01T00:00:00.000Z")
    )

    items = list_items_by_url(repository, "a.test", limit=50)

    assert [item.id for item in items] == [
        "item:2:new000000",
        "item:3:mid000000",
        "item:1:old000000",
    ]
    assert [item.id for item in list_items_by_url(repository, "a.test", limit=2)] == [
        "item:2:new000000",
        "item:3:mid000000",
    ]


def test_list_items_by_url_ignores_category(repository: ItemRepository) -> None:
    repository.create(make_item("item:1:anyctg000", category="unlisted", url="a.test"))

    assert len(list_items_by_url(repository, "a.test")) == 1


def test_list_items_unparseable_timestamps_sort_last(repository: ItemRepository) -> None:
    repository.create(make_item("item:1:bad000000", url="a.test", created_at="yesterday"))
    repository.create(
        make_item("item:2:good00000", url="a.test", created_at="2024-01-01T00:00:00.000Z")
    )

    assert [i.id for i in list_items_by_url(repository, "a.test")] == [
        "item:2:good00000",
        "item:1:bad000000",
    ]


def test_list_items_requires_url(repository: ItemRepository) -> None:
    with pytest.raises(ValidationError):
        list_items_by_url(repository, "  ")


def test_scan_items_rejects_non_positive_limit(repository: ItemRepository) -> None:
    with pytest.raises(ValidationError):
        scan_items(repository, select=lambda key, record: record, sort_key=len, limit=0)
