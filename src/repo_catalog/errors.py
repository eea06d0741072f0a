"""
Error taxonomy shared by the repository, search engine, and HTTP layer.

Each error carries the HTTP status code the API responds with.
"""

from __future__ import annotations


class CatalogError(Exception):
    """Base class for classified catalog failures."""

    status_code: int = 500

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(CatalogError):
    """Missing or malformed required input."""

    status_code = 400


class AuthError(CatalogError):
    """Missing, invalid, or unauthorized session token."""

    status_code = 401


class NotFound(CatalogError):
    """Unknown item id."""

    status_code = 404


class MethodNotAllowed(CatalogError):
    """HTTP method not supported by the endpoint."""

    status_code = 405


class UpstreamFailure(CatalogError):
    """A GitHub, embedding, or identity provider call failed."""

    status_code = 500


class EmbeddingFailure(UpstreamFailure):
    """The embedding provider could not produce a vector."""


class StorageUnavailable(CatalogError):
    """The key-value store is unreachable or misconfigured."""

    status_code = 500
