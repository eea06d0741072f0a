"""
FastAPI server for the repository catalogue.

Every endpoint answers ``OPTIONS`` with CORS headers and no body, rejects
other unsupported methods with 405, and returns a JSON envelope carrying
``success``, ``message`` and ``timestamp``.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, Iterator, TypeVar

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .auth import AuthenticatedUser, SessionVerifier, extract_bearer_token
from .catalog import CatalogService, utc_timestamp
from .config import CatalogSettings, load_env
from .embeddings import EmbeddingProvider
from .errors import CatalogError, MethodNotAllowed, ValidationError
from .github import GitHubClient
from .logging_config import setup_logging
from .models import (
    AddItemRequest,
    ItemIdRequest,
    ListItemsByUrlRequest,
    SearchItemsRequest,
)
from .repository import ItemRepository
from .search import SimilaritySearchEngine
from .search import list_items_by_url as list_items_for_url
from .storage import KeyValueStore, open_store


logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

CORS_ALLOW_METHODS = "GET, POST, DELETE, OPTIONS"
CORS_ALLOW_HEADERS = (
    "Accept, Accept-Language, Content-Language, Content-Type, Authorization, "
    "X-Requested-With, Origin, Access-Control-Request-Method, "
    "Access-Control-Request-Headers"
)

router = APIRouter()


def envelope(
    success: bool,
    message: str,
    *,
    status_code: int = 200,
    headers: dict[str, str] | None = None,
    **payload: Any,
) -> JSONResponse:
    """Build the JSON body shared by every endpoint."""
    body: dict[str, Any] = {"success": success, "message": message}
    body.update(payload)
    body["timestamp"] = utc_timestamp()
    return JSONResponse(body, status_code=status_code, headers=headers)


def cors_headers(origin: str | None, allowed_origins: tuple[str, ...]) -> dict[str, str]:
    headers = {
        "Access-Control-Allow-Methods": CORS_ALLOW_METHODS,
        "Access-Control-Allow-Headers": CORS_ALLOW_HEADERS,
        "Access-Control-Max-Age": "86400",
        "Vary": "Origin",
    }
    if "*" in allowed_origins or not allowed_origins:
        headers["Access-Control-Allow-Origin"] = "*"
    else:
        headers["Access-Control-Allow-Origin"] = (
            origin if origin in allowed_origins else allowed_origins[0]
        )
        headers["Access-Control-Allow-Credentials"] = "true"
    return headers


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def get_settings(request: Request) -> CatalogSettings:
    return request.app.state.settings


def get_store(settings: CatalogSettings = Depends(get_settings)) -> Iterator[KeyValueStore]:
    """Open one store connection per request."""
    store = open_store(settings)
    try:
        yield store
    finally:
        store.close()


def get_repository(
    store: KeyValueStore = Depends(get_store),
    settings: CatalogSettings = Depends(get_settings),
) -> ItemRepository:
    return ItemRepository(store, scan_count=settings.scan_count)


def get_embedding_provider() -> EmbeddingProvider:
    return EmbeddingProvider()


def get_github_client(
    settings: CatalogSettings = Depends(get_settings),
) -> Iterator[GitHubClient]:
    client = GitHubClient(
        api_url=settings.github_api_url,
        token=settings.github_token,
        timeout=settings.http_timeout,
    )
    try:
        yield client
    finally:
        client.close()


def get_session_verifier(
    settings: CatalogSettings = Depends(get_settings),
) -> Iterator[SessionVerifier]:
    verifier = SessionVerifier(
        secret_key=settings.clerk_secret_key,
        api_url=settings.clerk_api_url,
        allowed_usernames=settings.allowed_usernames,
        timeout=settings.http_timeout,
    )
    try:
        yield verifier
    finally:
        verifier.close()


async def require_user(
    request: Request,
    verifier: SessionVerifier = Depends(get_session_verifier),
) -> AuthenticatedUser:
    token = extract_bearer_token(request.headers.get("Authorization"))
    return await asyncio.to_thread(verifier.verify_session, token)


def get_search_engine(
    repository: ItemRepository = Depends(get_repository),
    embedding_provider: EmbeddingProvider = Depends(get_embedding_provider),
    settings: CatalogSettings = Depends(get_settings),
) -> SimilaritySearchEngine:
    return SimilaritySearchEngine(
        repository,
        embedding_provider,
        eligible_category=settings.search_category,
    )


def get_catalog_service(
    repository: ItemRepository = Depends(get_repository),
    embedding_provider: EmbeddingProvider = Depends(get_embedding_provider),
    github: GitHubClient = Depends(get_github_client),
    settings: CatalogSettings = Depends(get_settings),
) -> CatalogService:
    return CatalogService(
        repository,
        embedding_provider,
        github,
        default_category=settings.search_category,
    )


# ---------------------------------------------------------------------------
# Request parsing
# ---------------------------------------------------------------------------


async def request_params(request: Request) -> dict[str, Any]:
    """Read parameters from the query string (GET) or the JSON body."""
    if request.method == "GET":
        return dict(request.query_params)
    raw_body = await request.body()
    if not raw_body.strip():
        return dict(request.query_params)
    try:
        data = json.loads(raw_body)
    except ValueError as exc:
        raise ValidationError("Request body must be valid JSON.") from exc
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object.")
    return {key: value for key, value in data.items() if value is not None}


def validate_params(model: type[ModelT], params: dict[str, Any]) -> ModelT:
    try:
        return model.model_validate(params)
    except PydanticValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        raise ValidationError(f"Invalid parameter '{location}': {first['msg']}") from exc


async def add_item_params(params: dict[str, Any] = Depends(request_params)) -> AddItemRequest:
    parsed = validate_params(AddItemRequest, params)
    if not parsed.github_repository_url.strip() or not parsed.url.strip():
        raise ValidationError("github_repository_url and url are required.")
    return parsed


async def item_id_params(params: dict[str, Any] = Depends(request_params)) -> ItemIdRequest:
    parsed = validate_params(ItemIdRequest, params)
    if not parsed.id.strip():
        raise ValidationError("Item ID is required")
    return parsed


async def list_params(
    params: dict[str, Any] = Depends(request_params),
) -> ListItemsByUrlRequest:
    parsed = validate_params(ListItemsByUrlRequest, params)
    if not parsed.url.strip():
        raise ValidationError("URL parameter is required.")
    return parsed


async def search_params(
    params: dict[str, Any] = Depends(request_params),
) -> SearchItemsRequest:
    parsed = validate_params(SearchItemsRequest, params)
    if not parsed.query.strip():
        raise ValidationError("Query parameter is required.")
    return parsed


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.get("/health")
async def health_check():
    return envelope(True, "healthy")


@router.post("/add-item")
async def add_item(
    user: AuthenticatedUser = Depends(require_user),
    params: AddItemRequest = Depends(add_item_params),
    service: CatalogService = Depends(get_catalog_service),
):
    """Register a GitHub repository with its embeddings."""
    item = await asyncio.to_thread(
        service.add_item,
        params.github_repository_url.strip(),
        params.url.strip(),
        category=params.category,
    )
    logger.info("Item %s added by %s", item.id, user.username or user.user_id)
    return envelope(
        True,
        "GitHub repository item added successfully.",
        status_code=201,
        item=item.public_fields(),
    )


@router.api_route("/delete-item", methods=["GET", "POST", "DELETE"])
async def delete_item(
    user: AuthenticatedUser = Depends(require_user),
    params: ItemIdRequest = Depends(item_id_params),
    repository: ItemRepository = Depends(get_repository),
):
    """Delete an item and report what was removed."""
    deleted = await asyncio.to_thread(repository.delete, params.id.strip())
    logger.info("Item %s deleted by %s", deleted.id, user.username or user.user_id)
    public = deleted.public_fields()
    return envelope(
        True,
        f"GitHub repository '{deleted.github_repository_name}' deleted successfully",
        deletedItem={
            key: public[key]
            for key in (
                "id",
                "github_description",
                "github_repository_name",
                "homepage_url",
                "url",
            )
        },
    )


@router.api_route("/get-item", methods=["GET", "POST"])
async def get_item(
    _user: AuthenticatedUser = Depends(require_user),
    params: ItemIdRequest = Depends(item_id_params),
    repository: ItemRepository = Depends(get_repository),
):
    item = await asyncio.to_thread(repository.get, params.id.strip())
    return envelope(True, "Item retrieved successfully.", item=item.public_fields())


@router.api_route("/list-items-by-url", methods=["GET", "POST"])
async def list_items_by_url(
    params: ListItemsByUrlRequest = Depends(list_params),
    repository: ItemRepository = Depends(get_repository),
):
    """List items registered under a tenant domain, newest first."""
    items = await asyncio.to_thread(
        list_items_for_url, repository, params.url.strip(), limit=params.limit
    )
    return envelope(
        True,
        f"Found {len(items)} items for URL: {params.url.strip()}",
        results={
            "total": len(items),
            "items": [item.public_fields() for item in items],
        },
    )


@router.api_route("/search-items", methods=["GET", "POST"])
async def search_items(
    params: SearchItemsRequest = Depends(search_params),
    engine: SimilaritySearchEngine = Depends(get_search_engine),
):
    """Rank eligible items by cosine similarity to the query."""
    results = await asyncio.to_thread(
        engine.search,
        params.query,
        limit=params.limit,
        search_type=params.search_type,
    )
    return envelope(
        True,
        f"Found {len(results)} items matching your query "
        f"using {params.search_type} embeddings.",
        results={
            "total": len(results),
            "items": [result.public_fields() for result in results],
        },
    )


@router.post("/init-index")
async def init_index(
    _user: AuthenticatedUser = Depends(require_user),
    repository: ItemRepository = Depends(get_repository),
):
    """Make sure the auxiliary search index sets cover every item."""
    already_present, indexed = await asyncio.to_thread(repository.ensure_indexes)
    if already_present:
        return envelope(
            True,
            "Search index already exists and is up to date.",
            indexExists=True,
            indexed=indexed,
        )
    return envelope(
        True,
        "Search index created successfully.",
        status_code=201,
        indexExists=False,
        indexed=indexed,
    )


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


async def catalog_error_handler(request: Request, exc: CatalogError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return envelope(False, exc.message, status_code=exc.status_code)


async def http_error_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    """Render routing errors (unknown path, unsupported method) in the envelope."""
    if exc.status_code == 405:
        error = MethodNotAllowed(
            f"Method not allowed. {request.method} is not supported on {request.url.path}."
        )
    else:
        error = CatalogError(str(exc.detail), status_code=exc.status_code)
    return envelope(
        False,
        error.message,
        status_code=error.status_code,
        headers=getattr(exc, "headers", None),
    )


def create_app(settings: CatalogSettings | None = None) -> FastAPI:
    """Build the API application; settings default to the environment."""
    if settings is None:
        settings = CatalogSettings.from_env()

    application = FastAPI(
        title="repo-catalog",
        description="Semantic catalogue of GitHub repositories",
    )
    application.state.settings = settings
    application.include_router(router)
    application.add_exception_handler(CatalogError, catalog_error_handler)
    application.add_exception_handler(StarletteHTTPException, http_error_handler)

    @application.middleware("http")
    async def cors_and_logging(request: Request, call_next):
        start = time.perf_counter()
        if request.method == "OPTIONS":
            response: Response = Response(status_code=204)
        else:
            try:
                response = await call_next(request)
            except Exception:
                logger.exception(
                    "Unhandled exception on %s %s", request.method, request.url.path
                )
                response = envelope(False, "Internal server error.", status_code=500)

        response.headers.update(
            cors_headers(request.headers.get("Origin"), settings.cors_origins)
        )
        logger.info(
            "%s %s -> %s",
            request.method,
            request.url.path,
            response.status_code,
            extra={"duration_ms": int((time.perf_counter() - start) * 1000)},
        )
        return response

    return application


def configured_app() -> FastAPI:
    """
    Load ``.env``, configure logging, and build the app.

    Usable as a uvicorn factory: ``uvicorn --factory repo_catalog.server:configured_app``.
    """
    load_env()
    settings = CatalogSettings.from_env()
    setup_logging(settings.log_level, settings.log_json)
    return create_app(settings)


def run_server(host: str = "127.0.0.1", port: int = 8000):
    """Run the FastAPI server."""
    import uvicorn

    uvicorn.run(configured_app(), host=host, port=port)


if __name__ == "__main__":
    run_server()
