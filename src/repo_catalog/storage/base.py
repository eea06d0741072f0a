"""
Storage interfaces and data models for the item catalogue.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from typing import Any, Protocol


ITEM_KEY_PREFIX = "item:"
ITEM_KEY_PATTERN = f"{ITEM_KEY_PREFIX}*"

DESCRIPTIONS_INDEX = "search:descriptions"
REPOSITORIES_INDEX = "search:repositories"
AUXILIARY_INDEXES = (DESCRIPTIONS_INDEX, REPOSITORIES_INDEX)

# searchType -> hash field holding the stored vector
EMBEDDING_FIELDS: dict[str, str] = {
    "description": "descriptionEmbeddings",
    "repository": "repositoryEmbeddings",
    "combined": "combinedEmbeddings",
}


def parse_embedding(raw: str | None) -> list[float] | None:
    """Decode a stored JSON vector, returning None when it is not a numeric array."""
    if not raw:
        return None
    try:
        value = json.loads(raw)
    except ValueError:
        return None
    if not isinstance(value, list):
        return None
    vector: list[float] = []
    for component in value:
        # bool is an int subclass but never a valid component
        if isinstance(component, bool) or not isinstance(component, (int, float)):
            return None
        try:
            number = float(component)
        except OverflowError:
            return None
        # json.loads accepts NaN and Infinity, which have no cosine meaning
        if not math.isfinite(number):
            return None
        vector.append(number)
    return vector


@dataclass(frozen=True)
class ItemRecord:
    """A registered GitHub repository with its embedding vectors."""

    id: str
    github_repository_name: str
    github_description: str
    homepage_url: str
    url: str
    is_template: bool
    category: str
    created_at: str
    updated_at: str
    description_embeddings: list[float] | None = None
    repository_embeddings: list[float] | None = None
    combined_embeddings: list[float] | None = None

    def to_hash(self) -> dict[str, str]:
        """Flatten the record into string fields for a key-value hash."""
        data = {
            "id": self.id,
            "github_repository_name": self.github_repository_name,
            "github_description": self.github_description,
            "homepage_url": self.homepage_url,
            "url": self.url,
            "is_template": "true" if self.is_template else "false",
            "category": self.category,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        embeddings = {
            "descriptionEmbeddings": self.description_embeddings,
            "repositoryEmbeddings": self.repository_embeddings,
            "combinedEmbeddings": self.combined_embeddings,
        }
        for field_name, vector in embeddings.items():
            if vector is not None:
                data[field_name] = json.dumps(vector)
        return data

    @classmethod
    def from_hash(cls, key: str, data: dict[str, str]) -> "ItemRecord":
        """Build a record from a stored hash, tolerating missing fields."""
        return cls(
            id=key,
            github_repository_name=data.get("github_repository_name", ""),
            github_description=data.get("github_description", ""),
            homepage_url=data.get("homepage_url", ""),
            url=data.get("url", ""),
            is_template=data.get("is_template") == "true",
            category=data.get("category", ""),
            created_at=data.get("createdAt", ""),
            updated_at=data.get("updatedAt", ""),
            description_embeddings=parse_embedding(data.get("descriptionEmbeddings")),
            repository_embeddings=parse_embedding(data.get("repositoryEmbeddings")),
            combined_embeddings=parse_embedding(data.get("combinedEmbeddings")),
        )

    def public_fields(self) -> dict[str, Any]:
        """Return the API projection of the record (embeddings omitted)."""
        return {
            "id": self.id,
            "github_repository_name": self.github_repository_name,
            "github_description": self.github_description,
            "homepage_url": self.homepage_url,
            "url": self.url,
            "is_template": self.is_template,
            "category": self.category,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


class KeyValueStore(Protocol):
    """Protocol for the hash-and-set key-value operations the catalogue needs."""

    def ping(self) -> None:
        """Raise StorageUnavailable when the store cannot be reached."""

    def close(self) -> None:
        """Release the underlying connection."""

    def hgetall(self, key: str) -> dict[str, str]:
        """Return every field of a hash, or an empty dict when absent."""

    def hset(self, key: str, mapping: dict[str, str]) -> int:
        """Set hash fields. Return the number of newly created fields."""

    def delete(self, key: str) -> int:
        """Delete a key of any type. Return 1 if it existed, else 0."""

    def scan(
        self,
        cursor: int = 0,
        *,
        match: str = "*",
        count: int = 100,
    ) -> tuple[int, list[str]]:
        """Return (next_cursor, keys) for one page; next_cursor 0 ends the scan."""

    def sadd(self, key: str, *members: str) -> int:
        """Add members to a set. Return the number newly added."""

    def srem(self, key: str, *members: str) -> int:
        """Remove members from a set. Return the number removed."""

    def scard(self, key: str) -> int:
        """Return the set cardinality (0 when absent)."""
