from typing import Literal, TypeAlias

from pydantic import BaseModel, ConfigDict, Field

SearchType: TypeAlias = Literal["description", "repository", "combined"]


class AddItemRequest(BaseModel):
    """Register a GitHub repository under a tenant domain"""

    github_repository_url: str = Field(
        default="", description="GitHub repository URL, e.g. https://github.com/owner/repo"
    )
    url: str = Field(default="", description="Tenant domain the item belongs to")
    category: str | None = Field(
        default=None, description="Category tag; defaults to the searchable category"
    )


class ItemIdRequest(BaseModel):
    """Identify a single item"""

    id: str = Field(default="", description="Item id, e.g. item:1700000000000:abc123xyz")


class ListItemsByUrlRequest(BaseModel):
    """List the items registered under a tenant domain"""

    url: str = Field(default="", description="Tenant domain to filter on")
    limit: int = Field(default=50, ge=1, description="Maximum number of items")


class SearchItemsRequest(BaseModel):
    """Semantic search over the catalogue"""

    model_config = ConfigDict(populate_by_name=True)

    query: str = Field(default="", description="Free-text search query")
    limit: int = Field(default=5, ge=1, description="Maximum number of results")
    search_type: SearchType = Field(
        default="combined",
        alias="searchType",
        description="Which stored embedding to compare against",
    )
