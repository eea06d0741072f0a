from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterator

import pytest
from fastapi import Depends
from fastapi.testclient import TestClient

from repo_catalog import server
from repo_catalog.auth import AuthenticatedUser
from repo_catalog.catalog import CatalogService
from repo_catalog.config import CatalogSettings
from repo_catalog.errors import AuthError, EmbeddingFailure, UpstreamFailure
from repo_catalog.github import RepositoryMetadata, parse_github_url
from repo_catalog.repository import ItemRepository
from repo_catalog.storage import DuckDBKeyValueStore, ItemRecord


VALID_TOKEN = "valid-token"
SEARCH_CATEGORY = "my awesome boilerplate"


class FakeEmbeddingProvider:
    """Length-weighted bag-of-words vectors.

    Each distinct word seen by this instance gets its own dimension, so texts
    that share their long words produce nearly identical vectors. Items and
    queries must be embedded by the same instance to be comparable.
    """

    def __init__(self, dim: int = 2048) -> None:
        self.dim = dim
        self.vocabulary: dict[str, int] = {}
        self.calls: list[list[str]] = []
        self.fail = False

    def _vector(self, text: str) -> list[float]:
        vector = [0.0] * self.dim
        for word in re.findall(r"[a-z0-9]+", text.lower()):
            index = self.vocabulary.setdefault(word, len(self.vocabulary) % self.dim)
            vector[index] += float(len(word) ** 2)
        return vector

    def embed_texts(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        if self.fail:
            raise EmbeddingFailure("Failed to generate embeddings: provider offline")
        return [self._vector(text) for text in texts]

    def embed_query(self, query: str) -> list[float]:
        return self.embed_texts([query])[0]


class FakeGitHub:
    """Serves repository metadata from an in-memory mapping."""

    def __init__(self, repositories: dict[str, dict] | None = None) -> None:
        self.repositories = repositories or {}

    def lookup(self, github_url: str) -> RepositoryMetadata:
        owner, repo = parse_github_url(github_url)
        data = self.repositories.get(f"{owner}/{repo}")
        if data is None:
            raise UpstreamFailure(
                "Failed to fetch repository information from GitHub: 404 Not Found",
                status_code=400,
            )
        return RepositoryMetadata.from_api(owner, repo, data)


class FakeVerifier:
    def verify_session(self, token: str) -> AuthenticatedUser:
        if token != VALID_TOKEN:
            raise AuthError("Invalid or expired session token")
        return AuthenticatedUser(user_id="user_1", username="operator", email="op@example.com")


def make_item(
    item_id: str,
    *,
    name: str = "acme/widgets",
    description: str = "fast widget framework",
    url: str = "a.test",
    category: str = SEARCH_CATEGORY,
    created_at: str = "2024-01-01T00:00:00.000Z",
    embedder: FakeEmbeddingProvider | None = None,
) -> ItemRecord:
    embedder = embedder or FakeEmbeddingProvider()
    description_vec, repository_vec, combined_vec = embedder.embed_texts(
        [description, name, f"{description} {name}"]
    )
    return ItemRecord(
        id=item_id,
        github_repository_name=name,
        github_description=description,
        homepage_url="",
        url=url,
        is_template=False,
        category=category,
        created_at=created_at,
        updated_at=created_at,
        description_embeddings=description_vec,
        repository_embeddings=repository_vec,
        combined_embeddings=combined_vec,
    )


@pytest.fixture()
def store(tmp_path: Path) -> Iterator[DuckDBKeyValueStore]:
    kv_store = DuckDBKeyValueStore(str(tmp_path / "catalog.duckdb"))
    yield kv_store
    kv_store.close()


@pytest.fixture()
def repository(store: DuckDBKeyValueStore) -> ItemRepository:
    # A tiny page size makes every multi-item test exercise paged scans.
    return ItemRepository(store, scan_count=2)


@pytest.fixture()
def embedder() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture()
def github() -> FakeGitHub:
    return FakeGitHub(
        {
            "acme/widgets": {
                "full_name": "acme/widgets",
                "description": "fast widget framework",
                "homepage": "https://widgets.acme.test",
                "is_template": True,
            },
            "acme/gadgets": {
                "full_name": "acme/gadgets",
                "description": "gadget toolkit for robots",
                "homepage": None,
                "is_template": False,
            },
            "acme/sprockets": {
                "full_name": "acme/sprockets",
                "description": None,
            },
        }
    )


@pytest.fixture()
def settings() -> CatalogSettings:
    return CatalogSettings(search_category=SEARCH_CATEGORY, scan_count=2)


@pytest.fixture()
def client(
    settings: CatalogSettings,
    store: DuckDBKeyValueStore,
    embedder: FakeEmbeddingProvider,
    github: FakeGitHub,
) -> Iterator[TestClient]:
    app = server.create_app(settings)
    ticks = iter(range(10_000))
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def clock() -> datetime:
        return start + timedelta(seconds=next(ticks))

    def shared_store():
        yield store

    def catalog_service(
        repository: ItemRepository = Depends(server.get_repository),
    ) -> CatalogService:
        return CatalogService(
            repository,
            embedder,
            github,
            default_category=SEARCH_CATEGORY,
            clock=clock,
        )

    app.dependency_overrides[server.get_store] = shared_store
    app.dependency_overrides[server.get_embedding_provider] = lambda: embedder
    app.dependency_overrides[server.get_github_client] = lambda: github
    app.dependency_overrides[server.get_session_verifier] = lambda: FakeVerifier()
    app.dependency_overrides[server.get_catalog_service] = catalog_service

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def auth_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {VALID_TOKEN}"}
