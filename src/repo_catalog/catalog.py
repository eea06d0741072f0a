"""
Registration of GitHub repositories into the catalogue.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Protocol

from .errors import EmbeddingFailure, ValidationError
from .github import RepositoryMetadata
from .repository import ItemRepository
from .storage import ItemRecord


logger = logging.getLogger(__name__)


class DocumentEmbedder(Protocol):
    def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Return one vector per text, in order."""


class RepositoryLookup(Protocol):
    def lookup(self, github_url: str) -> RepositoryMetadata:
        """Resolve a GitHub URL to repository metadata."""


def utc_timestamp(now: datetime | None = None) -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a ``Z`` suffix."""
    moment = now or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace(
        "+00:00", "Z"
    )


class CatalogService:
    """Look up repository metadata, embed it, and persist a new item."""

    def __init__(
        self,
        repository: ItemRepository,
        embedding_provider: DocumentEmbedder,
        github: RepositoryLookup,
        *,
        default_category: str,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.repository = repository
        self.embedding_provider = embedding_provider
        self.github = github
        self.default_category = default_category
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def add_item(
        self,
        github_repository_url: str,
        url: str,
        *,
        category: str | None = None,
    ) -> ItemRecord:
        if not github_repository_url or not url:
            raise ValidationError("github_repository_url and url are required.")

        metadata = self.github.lookup(github_repository_url)

        # All three vectors are computed before anything is written.
        combined_text = f"{metadata.description} {metadata.full_name}"
        embeddings = self.embedding_provider.embed_texts(
            [metadata.description, metadata.full_name, combined_text]
        )
        if len(embeddings) != 3 or any(not vector for vector in embeddings):
            raise EmbeddingFailure("Failed to generate embeddings for GitHub content.")
        description_vec, repository_vec, combined_vec = embeddings

        created_at = utc_timestamp(self._clock())
        item = ItemRecord(
            id=self.repository.allocate_id(),
            github_repository_name=metadata.full_name,
            github_description=metadata.description,
            homepage_url=metadata.homepage,
            url=url,
            is_template=metadata.is_template,
            category=category or self.default_category,
            created_at=created_at,
            updated_at=created_at,
            description_embeddings=description_vec,
            repository_embeddings=repository_vec,
            combined_embeddings=combined_vec,
        )
        return self.repository.create(item)
