"""
Configuration helpers for the catalog service.

All settings come from environment variables. Entry points load a local
``.env`` file first (see ``load_env``).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv


DEFAULT_DB_PATH = "~/.repo_catalog/catalog.duckdb"
DEFAULT_SEARCH_CATEGORY = "my awesome boilerplate"
DEFAULT_SCAN_COUNT = 100
DEFAULT_CLERK_API_URL = "https://api.clerk.com/v1"
DEFAULT_GITHUB_API_URL = "https://api.github.com"
DEFAULT_HTTP_TIMEOUT = 30.0

ENV_STORE = "REPO_CATALOG_STORE"
ENV_REDIS_URL = "REDIS_URL"
ENV_DB_PATH = "REPO_CATALOG_DB_PATH"
ENV_SEARCH_CATEGORY = "REPO_CATALOG_SEARCH_CATEGORY"
ENV_SCAN_COUNT = "REPO_CATALOG_SCAN_COUNT"
ENV_CORS_ORIGINS = "REPO_CATALOG_CORS_ORIGINS"
ENV_ALLOWED_USERS = "REPO_CATALOG_ALLOWED_USERS"
ENV_CLERK_SECRET_KEY = "CLERK_SECRET_KEY"
ENV_CLERK_API_URL = "CLERK_API_URL"
ENV_GITHUB_API_URL = "GITHUB_API_URL"
ENV_GITHUB_TOKEN = "GITHUB_TOKEN"
ENV_HTTP_TIMEOUT = "REPO_CATALOG_HTTP_TIMEOUT"
ENV_LOG_LEVEL = "REPO_CATALOG_LOG_LEVEL"
ENV_LOG_JSON = "REPO_CATALOG_LOG_JSON"


def load_env() -> None:
    """Load variables from a ``.env`` file without overriding the environment."""
    load_dotenv(override=False)


def resolve_db_path(override_path: str | None = None) -> str:
    """
    Resolve the DuckDB path from CLI override, env var, or default.

    Precedence:
    1) explicit override_path
    2) REPO_CATALOG_DB_PATH
    3) default path
    """
    raw_path = override_path or os.getenv(ENV_DB_PATH) or DEFAULT_DB_PATH
    resolved = Path(raw_path).expanduser().resolve()
    resolved.parent.mkdir(parents=True, exist_ok=True)
    return str(resolved)


def _split_csv(raw: str | None) -> tuple[str, ...]:
    if not raw:
        return ()
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class CatalogSettings:
    """Runtime settings for the store, collaborators, and HTTP surface."""

    store_backend: str = "duckdb"
    redis_url: str | None = None
    db_path: str | None = None
    search_category: str = DEFAULT_SEARCH_CATEGORY
    scan_count: int = DEFAULT_SCAN_COUNT
    cors_origins: tuple[str, ...] = ("*",)
    allowed_usernames: tuple[str, ...] = field(default_factory=tuple)
    clerk_secret_key: str | None = None
    clerk_api_url: str = DEFAULT_CLERK_API_URL
    github_api_url: str = DEFAULT_GITHUB_API_URL
    github_token: str | None = None
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    log_level: str = "INFO"
    log_json: bool = False

    @classmethod
    def from_env(cls) -> "CatalogSettings":
        redis_url = os.getenv(ENV_REDIS_URL) or None
        default_backend = "redis" if redis_url else "duckdb"
        return cls(
            store_backend=(os.getenv(ENV_STORE) or default_backend).strip().lower(),
            redis_url=redis_url,
            db_path=os.getenv(ENV_DB_PATH) or None,
            search_category=os.getenv(ENV_SEARCH_CATEGORY, DEFAULT_SEARCH_CATEGORY),
            scan_count=int(os.getenv(ENV_SCAN_COUNT, str(DEFAULT_SCAN_COUNT))),
            cors_origins=_split_csv(os.getenv(ENV_CORS_ORIGINS)) or ("*",),
            allowed_usernames=_split_csv(os.getenv(ENV_ALLOWED_USERS)),
            clerk_secret_key=os.getenv(ENV_CLERK_SECRET_KEY) or None,
            clerk_api_url=os.getenv(ENV_CLERK_API_URL, DEFAULT_CLERK_API_URL),
            github_api_url=os.getenv(ENV_GITHUB_API_URL, DEFAULT_GITHUB_API_URL),
            github_token=os.getenv(ENV_GITHUB_TOKEN) or None,
            http_timeout=float(os.getenv(ENV_HTTP_TIMEOUT, str(DEFAULT_HTTP_TIMEOUT))),
            log_level=os.getenv(ENV_LOG_LEVEL, "INFO").upper(),
            log_json=_env_flag(ENV_LOG_JSON),
        )
