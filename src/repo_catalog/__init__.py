"""
repo-catalog - semantic catalogue of GitHub repositories.

This package registers GitHub repositories into a key-value store together
with text embeddings of their name and description, and serves retrieval,
tenant listing, and cosine-similarity search over them through a FastAPI
application and a Typer CLI.

Example usage:
    >>> from repo_catalog import ItemRepository, SimilaritySearchEngine
    >>> from repo_catalog.storage import DuckDBKeyValueStore
    >>> repository = ItemRepository(DuckDBKeyValueStore("catalog.duckdb"))
    >>> engine = SimilaritySearchEngine(repository, provider, eligible_category="tools")
    >>> results = engine.search("widget framework", search_type="description")
"""

from .catalog import CatalogService
from .errors import (
    AuthError,
    CatalogError,
    EmbeddingFailure,
    MethodNotAllowed,
    NotFound,
    StorageUnavailable,
    UpstreamFailure,
    ValidationError,
)
from .repository import ItemRepository
from .search import SearchResult, SimilaritySearchEngine, cosine_similarity
from .storage import ItemRecord

__all__ = [
    # Services
    "CatalogService",
    "ItemRepository",
    "SimilaritySearchEngine",
    "SearchResult",
    "cosine_similarity",
    # Records
    "ItemRecord",
    # Errors
    "AuthError",
    "CatalogError",
    "EmbeddingFailure",
    "MethodNotAllowed",
    "NotFound",
    "StorageUnavailable",
    "UpstreamFailure",
    "ValidationError",
]
