from datetime import datetime
from typing import Any

from fastapi import UploadFile
from pydantic import BaseModel, ConfigDict, Field

from cms.config import settings
from cms.enums import ContentStatus, ContentType, SortDirection, SortField, UserRole


# --- User ---

class UserBase(BaseModel):
    name: str = Field(max_length=150)
    email: str = Field(max_length=255)
    role: UserRole = UserRole.SUBSCRIBER


class UserCreate(UserBase):
    permissions: list[str] = []


class UserUpdate(BaseModel):
    name: str | None = Field(None, max_length=150)
    email: str | None = Field(None, max_length=255)
    role: UserRole | None = None
    permissions: list[str] | None = None


class UserResponse(UserBase):
    id: int
    created_at: datetime | None = None
    model_config = ConfigDict(from_attributes=True)


# --- Category / Tag ---

class CategoryResponse(BaseModel):
    id: int
    name: str
    slug: str
    model_config = ConfigDict(from_attributes=True)


class TagResponse(BaseModel):
    id: int
    name: str
    slug: str
    model_config = ConfigDict(from_attributes=True)


# --- Media ---

class MediaResponse(BaseModel):
    id: int
    filename: str
    original_name: str
    mime_type: str
    size: int
    path: str
    url: str
    alt_text: str | None = None


# --- Content (input) ---

class ContentCreate(BaseModel):
    """
    Everything needed to create a piece of content.

    ``categories`` / ``tags`` hold ids of existing rows; they are trusted
    as already validated by the caller.  ``featured_image`` and ``media``
    carry uploaded files that the service hands to the file store.
    """

    title: str = Field(min_length=1, max_length=255)
    body: str = Field(min_length=1)
    excerpt: str | None = Field(None, max_length=500)
    type: ContentType = ContentType.ARTICLE
    status: ContentStatus = ContentStatus.DRAFT
    categories: list[int] = []
    tags: list[int] = []
    meta: dict[str, Any] | None = None
    featured_image: UploadFile | None = None
    media: list[UploadFile] = []


class ContentUpdate(BaseModel):
    """
    Partial update.  Only fields that were explicitly supplied are applied
    (``model_fields_set``); for ``tags`` and ``categories`` an explicitly
    supplied empty list clears the association, while leaving the field
    out keeps it untouched.
    """

    title: str | None = Field(None, min_length=1, max_length=255)
    body: str | None = Field(None, min_length=1)
    excerpt: str | None = Field(None, max_length=500)
    type: ContentType | None = None
    status: ContentStatus | None = None
    categories: list[int] | None = None
    tags: list[int] | None = None
    meta: dict[str, Any] | None = None
    featured_image: UploadFile | None = None
    media: list[UploadFile] = []
    media_to_delete: list[int] = []


class ContentFilter(BaseModel):
    """Immutable filter and sort options for paginated content listings."""

    model_config = ConfigDict(frozen=True)

    category_id: int | None = None
    tag_id: int | None = None
    author_id: int | None = None
    type: ContentType | None = None
    status: ContentStatus | None = None
    search: str | None = None
    per_page: int = Field(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE)
    page: int = Field(1, ge=1)
    sort_by: SortField = SortField.PUBLISHED_AT
    sort_direction: SortDirection = SortDirection.DESC

    def normalized(self) -> dict[str, Any]:
        """Filter and sort fields as JSON-safe values, without ``per_page``."""
        return self.model_dump(mode="json", exclude={"per_page"})


# --- Content (output) ---

class ContentResponse(BaseModel):
    id: int
    title: str
    slug: str
    body: str
    excerpt: str | None = None
    type: ContentType
    status: ContentStatus
    published_at: datetime | None = None
    featured_image: str | None = None
    featured_image_url: str | None = None
    meta: dict[str, Any] = {}
    author_id: int
    author: UserResponse | None = None
    categories: list[CategoryResponse] = []
    tags: list[TagResponse] = []
    media: list[MediaResponse] = []
    created_at: datetime | None = None
    updated_at: datetime | None = None


# --- Pagination ---

class PaginatedResponse(BaseModel):
    items: list[ContentResponse]
    total: int
    page: int
    per_page: int
    pages: int


# --- Metrics ---

class MetricsResponse(BaseModel):
    total_contents: int
    contents_by_status: dict[str, int]
    total_media: int
    total_users: int
    cache_info: dict = {}
