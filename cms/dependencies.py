from fastapi import Depends, Header, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from cms.cache import cache
from cms.config import settings
from cms.database import get_db
from cms.enums import ContentStatus, ContentType, SortDirection, SortField
from cms.events import event_bus
from cms.models import User
from cms.schemas import ContentFilter
from cms.services.content_service import ContentService
from cms.storage import FileStorage, storage


class PaginationParams:
    """
    Reusable FastAPI dependency that parses page / per_page query
    parameters for the category and tag listings.

    Attributes
    ----------
    page:
        1-based page number (minimum 1).
    per_page:
        Number of items per page, at most ``settings.MAX_PAGE_SIZE``.
    """

    def __init__(
        self,
        page: int = Query(1, ge=1, description="Page number (1-based)."),
        per_page: int = Query(
            settings.DEFAULT_PAGE_SIZE,
            ge=1,
            le=settings.MAX_PAGE_SIZE,
            description="Number of items returned per page.",
        ),
    ) -> None:
        self.page = page
        self.per_page = per_page


def content_filter_params(
    pagination: PaginationParams = Depends(),
    category_id: int | None = Query(None, ge=1),
    tag_id: int | None = Query(None, ge=1),
    author_id: int | None = Query(None, ge=1),
    type: ContentType | None = Query(None),
    status: ContentStatus | None = Query(None),
    search: str | None = Query(None, max_length=200),
    sort_by: SortField = Query(SortField.PUBLISHED_AT),
    sort_direction: SortDirection = Query(SortDirection.DESC),
) -> ContentFilter:
    """Build the immutable ``ContentFilter`` from listing query parameters."""
    return ContentFilter(
        category_id=category_id,
        tag_id=tag_id,
        author_id=author_id,
        type=type,
        status=status,
        search=search or None,
        per_page=pagination.per_page,
        page=pagination.page,
        sort_by=sort_by,
        sort_direction=sort_direction,
    )


def get_storage() -> FileStorage:
    return storage


def get_content_service(
    db: AsyncSession = Depends(get_db),
    file_storage: FileStorage = Depends(get_storage),
) -> ContentService:
    return ContentService(db, cache=cache, storage=file_storage, events=event_bus)


async def get_current_user(
    x_user_id: int | None = Header(None, description="Id of the acting user."),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Resolve the acting user from the ``X-User-Id`` header.

    Credential checks happen upstream (gateway / auth service); this only
    maps the already-authenticated identity onto a User row.
    """
    if x_user_id is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    user = await db.get(User, x_user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="Unknown user")
    return user
