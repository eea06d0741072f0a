"""
GitHub repository metadata lookup.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any

import httpx

from .errors import UpstreamFailure, ValidationError


logger = logging.getLogger(__name__)

GITHUB_URL_RE = re.compile(r"github\.com/([^/]+)/([^/]+?)(?:\.git)?(?:/.*)?$")

NO_DESCRIPTION = "No description available"


def parse_github_url(github_url: str) -> tuple[str, str]:
    """Return ``(owner, repo)`` from a GitHub repository URL."""
    match = GITHUB_URL_RE.search(github_url.strip())
    if match is None:
        raise ValidationError(
            "Invalid GitHub repository URL format. "
            "Expected: https://github.com/owner/repo"
        )
    return match.group(1), match.group(2)


@dataclass(frozen=True)
class RepositoryMetadata:
    """The subset of GitHub repository metadata the catalogue stores."""

    full_name: str
    description: str
    homepage: str
    is_template: bool

    @classmethod
    def from_api(cls, owner: str, repo: str, data: dict[str, Any]) -> "RepositoryMetadata":
        return cls(
            full_name=data.get("full_name") or f"{owner}/{repo}",
            description=data.get("description") or NO_DESCRIPTION,
            homepage=data.get("homepage") or "",
            is_template=bool(data.get("is_template", False)),
        )


class GitHubClient:
    """Read-only client for ``GET /repos/{owner}/{repo}``."""

    def __init__(
        self,
        *,
        api_url: str = "https://api.github.com",
        token: str | None = None,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": "repo-catalog",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.Client(
            base_url=api_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def fetch_repository(self, owner: str, repo: str) -> RepositoryMetadata:
        try:
            response = self._client.get(f"/repos/{owner}/{repo}")
        except httpx.HTTPError as exc:
            logger.error("GitHub API request for %s/%s failed: %s", owner, repo, exc)
            raise UpstreamFailure("Failed to connect to GitHub API", status_code=500) from exc

        if response.is_error:
            raise UpstreamFailure(
                "Failed to fetch repository information from GitHub: "
                f"{response.status_code} {response.reason_phrase}",
                status_code=400,
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise UpstreamFailure(
                "GitHub API returned an invalid response", status_code=500
            ) from exc
        return RepositoryMetadata.from_api(owner, repo, data)

    def lookup(self, github_url: str) -> RepositoryMetadata:
        """Parse a repository URL and fetch its metadata."""
        owner, repo = parse_github_url(github_url)
        return self.fetch_repository(owner, repo)
