"""
Vector-based semantic search and tenant listing over the item store.

There is no persistent vector index: every query embeds the search text,
scans all items, and ranks eligible ones by cosine similarity against the
selected embedding field.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Literal, Protocol, TypeAlias

from ..errors import ValidationError
from ..repository import ItemRepository
from ..storage import EMBEDDING_FIELDS, ItemRecord, parse_embedding
from .scan import scan_items
from .similarity import cosine_similarity

SearchType: TypeAlias = Literal["description", "repository", "combined"]

DEFAULT_SEARCH_LIMIT = 5
DEFAULT_LIST_LIMIT = 50

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


class QueryEmbedder(Protocol):
    def embed_query(self, query: str) -> list[float]:
        """Return the embedding vector for a search query."""


@dataclass(frozen=True)
class SearchResult:
    """An item annotated with its similarity to the query."""

    item: ItemRecord
    score: float

    def public_fields(self) -> dict[str, Any]:
        fields = self.item.public_fields()
        fields["score"] = self.score
        return fields


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp; unparseable values sort as oldest."""
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return _OLDEST
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class SimilaritySearchEngine:
    """Embed a query and rank eligible items by cosine similarity."""

    def __init__(
        self,
        repository: ItemRepository,
        embedding_provider: QueryEmbedder,
        *,
        eligible_category: str,
    ) -> None:
        self.repository = repository
        self.embedding_provider = embedding_provider
        self.eligible_category = eligible_category

    def search(
        self,
        query: str,
        *,
        limit: int = DEFAULT_SEARCH_LIMIT,
        search_type: str = "combined",
    ) -> list[SearchResult]:
        """Return at most ``limit`` items ordered by non-increasing score."""
        if not query or not query.strip():
            raise ValidationError("Query parameter is required.")
        if search_type not in EMBEDDING_FIELDS:
            raise ValidationError(
                f"Invalid searchType '{search_type}'. "
                f"Expected one of: {', '.join(EMBEDDING_FIELDS)}."
            )
        if limit < 1:
            raise ValidationError("limit must be a positive integer.")

        embedding_field = EMBEDDING_FIELDS[search_type]
        query_embedding = self.embedding_provider.embed_query(query)

        def select(key: str, record: dict[str, str]) -> SearchResult | None:
            if record.get("category") != self.eligible_category:
                return None
            stored = parse_embedding(record.get(embedding_field))
            if stored is None:
                return None
            score = cosine_similarity(query_embedding, stored)
            if not math.isfinite(score):
                return None
            return SearchResult(item=ItemRecord.from_hash(key, record), score=score)

        return scan_items(
            self.repository,
            select=select,
            sort_key=lambda result: result.score,
            limit=limit,
        )


def list_items_by_url(
    repository: ItemRepository,
    url: str,
    *,
    limit: int = DEFAULT_LIST_LIMIT,
) -> list[ItemRecord]:
    """Return items whose ``url`` equals *url*, sorted by ``createdAt`` descending."""
    if not url or not url.strip():
        raise ValidationError("URL parameter is required.")

    def select(key: str, record: dict[str, str]) -> ItemRecord | None:
        if record.get("url") != url:
            return None
        return ItemRecord.from_hash(key, record)

    return scan_items(
        repository,
        select=select,
        sort_key=lambda item: parse_timestamp(item.created_at),
        limit=limit,
    )
