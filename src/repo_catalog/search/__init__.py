"""Similarity search and listing helpers for the item catalogue."""

from .engine import (
    DEFAULT_LIST_LIMIT,
    DEFAULT_SEARCH_LIMIT,
    SearchResult,
    SearchType,
    SimilaritySearchEngine,
    list_items_by_url,
    parse_timestamp,
)
from .scan import scan_items
from .similarity import cosine_similarity

__all__ = [
    "DEFAULT_LIST_LIMIT",
    "DEFAULT_SEARCH_LIMIT",
    "SearchResult",
    "SearchType",
    "SimilaritySearchEngine",
    "list_items_by_url",
    "parse_timestamp",
    "scan_items",
    "cosine_similarity",
]
