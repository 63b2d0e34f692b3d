"""
Content repository: persistence and query composition for Content.

Every read excludes soft-deleted rows.  Reads that feed responses eager
load author (``joinedload``) and categories, tags and media
(``selectinload``) and use ``populate_existing`` so that rows already in
the identity map are refreshed rather than served stale after a write in
the same session.
"""
from datetime import datetime, timezone
from typing import Any, Sequence

from sqlalchemy import ColumnElement, and_, delete, func, insert, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from cms.database import dialect_name
from cms.enums import ContentStatus, SortDirection, SortField
from cms.models import Category, Content, Tag, content_categories, content_tags
from cms.schemas import ContentFilter

# Dialects whose ``match()`` compiles to a real full-text query on ``body``.
_FULL_TEXT_DIALECTS = frozenset({"postgresql", "mysql", "mariadb"})

_SORT_COLUMNS = {
    SortField.PUBLISHED_AT: Content.published_at,
    SortField.CREATED_AT: Content.created_at,
    SortField.TITLE: Content.title,
}


def _order_by(sort_by: SortField, direction: SortDirection) -> tuple:
    """Sort clause for a page; NULL sort values (drafts' published_at) go last in DESC order."""
    sort_col = _SORT_COLUMNS[sort_by]
    if direction is SortDirection.ASC:
        return sort_col.asc().nulls_first(), Content.id.asc()
    return sort_col.desc().nulls_last(), Content.id.desc()


def _with_relations():
    return (
        joinedload(Content.author),
        selectinload(Content.categories),
        selectinload(Content.tags),
        selectinload(Content.media),
    )


class ContentRepository:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create(self, values: dict[str, Any]) -> Content:
        content = Content(**values)
        self.db.add(content)
        await self.db.flush()
        return content

    async def update(self, content: Content, values: dict[str, Any]) -> None:
        for field, value in values.items():
            setattr(content, field, value)
        await self.db.flush()

    async def soft_delete(self, content: Content) -> None:
        content.deleted_at = datetime.now(timezone.utc)
        await self.db.flush()

    async def set_status(
        self,
        content: Content,
        status: ContentStatus,
        published_at: datetime | None = None,
    ) -> None:
        """Move *content* to *status*; ``published_at`` is only written when given."""
        content.status = status
        if published_at is not None:
            content.published_at = published_at
        await self.db.flush()

    async def sync_tags(self, content_id: int, tag_ids: Sequence[int]) -> None:
        await self._sync(content_tags, content_tags.c.tag_id, content_id, tag_ids)

    async def sync_categories(self, content_id: int, category_ids: Sequence[int]) -> None:
        await self._sync(
            content_categories, content_categories.c.category_id, content_id, category_ids
        )

    async def _sync(self, table, related_col, content_id: int, related_ids: Sequence[int]) -> None:
        """
        Make the association rows for *content_id* exactly *related_ids*:
        rows not listed are removed, missing ones inserted, matching ones
        left untouched.
        """
        wanted = set(related_ids)
        result = await self.db.execute(
            select(related_col).where(table.c.content_id == content_id)
        )
        current = set(result.scalars().all())

        stale = current - wanted
        if stale:
            await self.db.execute(
                delete(table).where(table.c.content_id == content_id, related_col.in_(stale))
            )
        missing = wanted - current
        if missing:
            await self.db.execute(
                insert(table),
                [{"content_id": content_id, related_col.key: rid} for rid in sorted(missing)],
            )

    # ------------------------------------------------------------------
    # Single-row reads
    # ------------------------------------------------------------------

    async def find_by_id(self, content_id: int) -> Content | None:
        result = await self.db.execute(
            select(Content).where(Content.id == content_id, Content.deleted_at.is_(None))
        )
        return result.scalar_one_or_none()

    async def find_by_id_with_relations(self, content_id: int) -> Content | None:
        return await self._first_with_relations(Content.id == content_id)

    async def find_by_slug_with_relations(self, slug: str) -> Content | None:
        return await self._first_with_relations(Content.slug == slug)

    async def slug_exists(self, slug: str, exclude_id: int | None = None) -> bool:
        q = select(Content.id).where(Content.slug == slug, Content.deleted_at.is_(None))
        if exclude_id is not None:
            q = q.where(Content.id != exclude_id)
        result = await self.db.execute(q.limit(1))
        return result.first() is not None

    async def _first_with_relations(self, condition: ColumnElement[bool]) -> Content | None:
        q = (
            select(Content)
            .where(condition, Content.deleted_at.is_(None))
            .options(*_with_relations())
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(q)
        return result.unique().scalar_one_or_none()

    # ------------------------------------------------------------------
    # Paginated reads
    # ------------------------------------------------------------------

    async def get_paginated(self, filters: ContentFilter) -> tuple[list[Content], int]:
        """
        Return one page of content matching *filters* plus the total match
        count.  Filters are applied in a fixed order and only when set:
        category, tag, author, type, status, search.
        """
        conditions: list[ColumnElement[bool]] = []
        if filters.category_id:
            conditions.append(Content.categories.any(Category.id == filters.category_id))
        if filters.tag_id:
            conditions.append(Content.tags.any(Tag.id == filters.tag_id))
        if filters.author_id:
            conditions.append(Content.author_id == filters.author_id)
        if filters.type:
            conditions.append(Content.type == filters.type)
        if filters.status:
            conditions.append(Content.status == filters.status)
        if filters.search:
            conditions.append(self._search_clause(filters.search))

        return await self._paginate(
            conditions,
            per_page=filters.per_page,
            page=filters.page,
            sort_by=filters.sort_by,
            direction=filters.sort_direction,
        )

    async def get_paginated_by_category_id(self, category_id: int, per_page: int, page: int):
        return await self._paginate(
            [Content.categories.any(Category.id == category_id)], per_page=per_page, page=page
        )

    async def get_paginated_by_category_slug(self, category_slug: str, per_page: int, page: int):
        return await self._paginate(
            [Content.categories.any(Category.slug == category_slug)], per_page=per_page, page=page
        )

    async def get_paginated_by_tag_id(self, tag_id: int, per_page: int, page: int):
        return await self._paginate(
            [Content.tags.any(Tag.id == tag_id)], per_page=per_page, page=page
        )

    async def get_paginated_by_tag_slug(self, tag_slug: str, per_page: int, page: int):
        return await self._paginate(
            [Content.tags.any(Tag.slug == tag_slug)], per_page=per_page, page=page
        )

    def _search_clause(self, term: str) -> ColumnElement[bool]:
        """
        Match *term* against the body with the backend's full-text search
        when it has one; title/slug substring matches are always OR-ed in.
        """
        clauses = [
            Content.title.icontains(term, autoescape=True),
            Content.slug.icontains(term, autoescape=True),
        ]
        if dialect_name(self.db) in _FULL_TEXT_DIALECTS:
            clauses.insert(0, Content.body.match(term))
        return or_(*clauses)

    async def _paginate(
        self,
        conditions: list[ColumnElement[bool]],
        per_page: int,
        page: int,
        sort_by: SortField = SortField.PUBLISHED_AT,
        direction: SortDirection = SortDirection.DESC,
    ) -> tuple[list[Content], int]:
        where = and_(Content.deleted_at.is_(None), *conditions)

        # 1. Total count
        count_q = select(func.count()).select_from(Content).where(where)
        total: int = (await self.db.execute(count_q)).scalar_one()

        # 2. Page rows with eager-loaded relationships; id breaks ties so
        #    pages stay stable when the sort column has duplicates or NULLs.
        q = (
            select(Content)
            .where(where)
            .options(*_with_relations())
            .order_by(*_order_by(sort_by, direction))
            .offset((page - 1) * per_page)
            .limit(per_page)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(q)
        return list(result.unique().scalars().all()), total

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------

    async def count_by_status(self) -> dict[ContentStatus, int]:
        q = (
            select(Content.status, func.count())
            .where(Content.deleted_at.is_(None))
            .group_by(Content.status)
        )
        rows = (await self.db.execute(q)).all()
        counts = {status: 0 for status in ContentStatus}
        counts.update({status: count for status, count in rows})
        return counts
