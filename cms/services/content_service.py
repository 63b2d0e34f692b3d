"""
Content service: lifecycle orchestration for the Content aggregate.

Design notes
------------
- Every mutation runs as one unit of work: all writes are flushed into
  the session and committed together at the end, or rolled back together
  on any failure.  The file store is outside that transaction, so files
  uploaded during a failed unit are deleted explicitly on rollback, and
  files made obsolete by a successful unit (a replaced featured image,
  removed media) are only deleted after the commit.
- A unit that loses a slug race against a concurrent writer (unique index
  violation on ``contents.slug``) is rolled back and replayed, up to
  ``settings.SLUG_MAX_ATTEMPTS`` times.
- After commit: cache invalidation (whole list namespace plus the
  entity's id/slug entries), then event dispatch.  Events never run
  inside the transaction and listener failures never reach the caller.  The response
  and the event payload are read back before the commit, so a row removed
  by a concurrent writer right after it cannot break either.
- Reads use cache-aside.  Misses are never cached, so a lookup for a
  missing row always goes back to the database.
- Authorization is the caller's job; the service assumes it has passed.
"""
import hashlib
import json
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from cms.cache import CacheManager
from cms.config import settings
from cms.enums import ContentStatus, MediaKind
from cms.events import ContentCreated, ContentEvent, ContentPublished, ContentUpdated, EventBus
from cms.exceptions import ContentNotFoundError
from cms.models import Content
from cms.repositories.content_repository import ContentRepository
from cms.schemas import (
    ContentCreate,
    ContentFilter,
    ContentResponse,
    ContentUpdate,
    PaginatedResponse,
)
from cms.services.media_service import MediaService
from cms.slugs import generate_unique_slug
from cms.storage import FileStorage

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _is_slug_conflict(exc: IntegrityError) -> bool:
    return "slug" in str(exc.orig).lower()


@dataclass
class _UnitOfWork:
    """Side effects collected while a mutation runs, settled after commit or rollback."""

    content_id: int | None = None
    uploaded: list[str] = field(default_factory=list)
    obsolete_files: list[str] = field(default_factory=list)
    slugs: list[str] = field(default_factory=list)
    events: list[type[ContentEvent]] = field(default_factory=list)
    snapshot: ContentResponse | None = None


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def _user_to_dict(author) -> dict | None:
    if author is None:
        return None
    return {
        "id": author.id,
        "name": author.name,
        "email": author.email,
        "role": author.role,
        "created_at": author.created_at,
    }


class ContentService:
    def __init__(
        self,
        db: AsyncSession,
        cache: CacheManager,
        storage: FileStorage,
        events: EventBus,
        repository: ContentRepository | None = None,
        media: MediaService | None = None,
    ) -> None:
        self.db = db
        self.cache = cache
        self.storage = storage
        self.events = events
        self.repository = repository or ContentRepository(db)
        self.media = media or MediaService(db, storage)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def create_content(self, data: ContentCreate, author_id: int) -> ContentResponse:
        """Create content owned by *author_id* and return it with relations loaded."""

        async def work(unit: _UnitOfWork) -> None:
            slug = await self._generate_unique_slug(data.title)
            values = {
                "title": data.title,
                "slug": slug,
                "body": data.body,
                "excerpt": data.excerpt,
                "type": data.type,
                "status": data.status,
                "author_id": author_id,
                "meta": {"views": 0, **(data.meta or {})},
                "published_at": _utcnow() if data.status.stamps_published_at(None) else None,
            }
            if data.featured_image is not None:
                path = await self.storage.upload(data.featured_image, MediaKind.IMAGE)
                unit.uploaded.append(path)
                values["featured_image"] = path

            content = await self.repository.create(values)

            if data.tags:
                await self.repository.sync_tags(content.id, data.tags)
            if data.categories:
                await self.repository.sync_categories(content.id, data.categories)

            for file in data.media:
                media = await self.media.create_media(content.id, file)
                unit.uploaded.append(media.path)

            unit.content_id = content.id
            unit.slugs.append(slug)
            unit.events.append(ContentCreated)

        unit = await self._run(work, action="create content")
        logger.info("Content %d created by user %d", unit.content_id, author_id)
        return await self._settle(unit)

    async def update_content(
        self, content_id: int, data: ContentUpdate, author_id: int
    ) -> ContentResponse:
        """
        Apply the explicitly supplied fields of *data* to content
        *content_id*.  Raises ``ContentNotFoundError`` when it does not
        exist.  The author of the content never changes.
        """
        supplied = data.model_fields_set

        async def work(unit: _UnitOfWork) -> None:
            content = await self._get_or_fail(content_id)
            values: dict = {}

            for name in ("title", "body", "type"):
                value = getattr(data, name)
                if name in supplied and value is not None:
                    values[name] = value
            if "excerpt" in supplied:
                values["excerpt"] = data.excerpt
            if data.meta is not None:
                values["meta"] = {**(content.meta or {}), **data.meta}

            if data.title and data.title != content.title:
                values["slug"] = await self._generate_unique_slug(data.title, exclude_id=content.id)

            if data.status is not None:
                values["status"] = data.status
                if data.status.stamps_published_at(content.status):
                    values["published_at"] = _utcnow()

            if data.featured_image is not None:
                if content.featured_image:
                    unit.obsolete_files.append(content.featured_image)
                path = await self.storage.upload(data.featured_image, MediaKind.IMAGE)
                unit.uploaded.append(path)
                values["featured_image"] = path

            unit.slugs.append(content.slug)
            await self.repository.update(content, values)

            if "tags" in supplied and data.tags is not None:
                await self.repository.sync_tags(content.id, data.tags)
            if "categories" in supplied and data.categories is not None:
                await self.repository.sync_categories(content.id, data.categories)

            for file in data.media:
                media = await self.media.create_media(content.id, file)
                unit.uploaded.append(media.path)

            for media_id in data.media_to_delete:
                media = await self.media.find_by_id(media_id)
                if media is None or media.content_id != content.id:
                    logger.info("Skipping media %d: not attached to content %d", media_id, content.id)
                    continue
                unit.obsolete_files.append(await self.media.remove_media(media))

            unit.content_id = content.id
            unit.slugs.append(content.slug)
            unit.events.append(ContentUpdated)

        unit = await self._run(work, action="update content")
        logger.info("Content %d updated by user %d", content_id, author_id)
        return await self._settle(unit)

    async def delete_content(self, content_id: int) -> bool:
        """Soft-delete *content_id*; False (and no mutation) when it does not exist."""

        async def work(unit: _UnitOfWork) -> None:
            content = await self.repository.find_by_id(content_id)
            if content is None:
                return
            await self.repository.soft_delete(content)
            unit.content_id = content.id
            unit.slugs.append(content.slug)

        unit = await self._run(work, action="delete content", load=False)
        if unit.content_id is None:
            return False
        await self._settle(unit)
        logger.info("Content %d deleted", content_id)
        return True

    async def publish_content(self, content_id: int) -> None:
        """
        Mark content as published and refresh ``published_at``, even when
        it was already published.  Listeners get a ``ContentPublished``
        event once the change is committed.
        """
        await self._transition(content_id, ContentStatus.PUBLISHED)

    async def draft_content(self, content_id: int) -> None:
        await self._transition(content_id, ContentStatus.DRAFT)

    async def archive_content(self, content_id: int) -> None:
        await self._transition(content_id, ContentStatus.ARCHIVED)

    async def _transition(self, content_id: int, target: ContentStatus) -> None:
        async def work(unit: _UnitOfWork) -> None:
            content = await self._get_or_fail(content_id)
            previous = content.status
            published_at = _utcnow() if target is ContentStatus.PUBLISHED else None
            await self.repository.set_status(content, target, published_at)

            if previous.can_transition_to(target):
                logger.info("Content %d moved %s -> %s", content.id, previous.value, target.value)
            else:
                logger.info("Content %d re-entered %s", content.id, target.value)

            unit.content_id = content.id
            unit.slugs.append(content.slug)
            if target is ContentStatus.PUBLISHED:
                unit.events.append(ContentPublished)

        unit = await self._run(
            work,
            action=f"set content status to {target.value}",
            load=target is ContentStatus.PUBLISHED,
        )
        await self._settle(unit)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def find_content_by_id(self, content_id: int) -> ContentResponse | None:
        key = self.cache.content_key(content_id=content_id)
        cached = await self.cache.get_content(key)
        if cached:
            return ContentResponse.model_validate(cached)

        content = await self.repository.find_by_id_with_relations(content_id)
        if content is None:
            return None
        return await self._cache_entity(key, content)

    async def find_content_by_slug(self, slug: str) -> ContentResponse | None:
        key = self.cache.content_key(slug=slug)
        cached = await self.cache.get_content(key)
        if cached:
            return ContentResponse.model_validate(cached)

        content = await self.repository.find_by_slug_with_relations(slug)
        if content is None:
            return None
        return await self._cache_entity(key, content)

    async def get_contents(self, filters: ContentFilter) -> PaginatedResponse:
        """
        Return one filtered, sorted page of content, cached under a hash of
        the normalised filter (page included) and the page size.
        """
        raw = f"{json.dumps(filters.normalized(), sort_keys=True)}:{filters.per_page}"
        cache_key = hashlib.md5(raw.encode()).hexdigest()

        cached = await self.cache.get_content_list(cache_key)
        if cached:
            return PaginatedResponse.model_validate(cached)

        items, total = await self.repository.get_paginated(filters)
        response = self._page(items, total, filters.page, filters.per_page)
        await self.cache.cache_content_list(cache_key, response.model_dump(mode="json"))
        return response

    async def get_contents_by_category_id(
        self, category_id: int, per_page: int = settings.DEFAULT_PAGE_SIZE, page: int = 1
    ) -> PaginatedResponse:
        items, total = await self.repository.get_paginated_by_category_id(category_id, per_page, page)
        return self._page(items, total, page, per_page)

    async def get_contents_by_category_slug(
        self, category_slug: str, per_page: int = settings.DEFAULT_PAGE_SIZE, page: int = 1
    ) -> PaginatedResponse:
        items, total = await self.repository.get_paginated_by_category_slug(
            category_slug, per_page, page
        )
        return self._page(items, total, page, per_page)

    async def get_contents_by_tag_id(
        self, tag_id: int, per_page: int = settings.DEFAULT_PAGE_SIZE, page: int = 1
    ) -> PaginatedResponse:
        items, total = await self.repository.get_paginated_by_tag_id(tag_id, per_page, page)
        return self._page(items, total, page, per_page)

    async def get_contents_by_tag_slug(
        self, tag_slug: str, per_page: int = settings.DEFAULT_PAGE_SIZE, page: int = 1
    ) -> PaginatedResponse:
        items, total = await self.repository.get_paginated_by_tag_slug(tag_slug, per_page, page)
        return self._page(items, total, page, per_page)

    # ------------------------------------------------------------------
    # Unit-of-work plumbing
    # ------------------------------------------------------------------

    async def _run(
        self,
        work: Callable[[_UnitOfWork], Awaitable[None]],
        action: str,
        load: bool = True,
    ) -> _UnitOfWork:
        """
        Run *work* in one transaction and commit it.  With *load*, the
        touched content is read back with its relations before the commit,
        so the response and events describe exactly what was committed.
        """
        attempts = max(1, settings.SLUG_MAX_ATTEMPTS)
        for attempt in range(1, attempts + 1):
            unit = _UnitOfWork()
            try:
                await work(unit)
                if load and unit.content_id is not None:
                    content = await self._get_with_relations(unit.content_id)
                    unit.snapshot = self._to_response(content)
                await self.db.commit()
            except IntegrityError as exc:
                await self._rollback(unit, action)
                if _is_slug_conflict(exc) and attempt < attempts:
                    logger.warning(
                        "Slug conflict during %s, retrying (attempt %d/%d)",
                        action, attempt, attempts,
                    )
                    continue
                raise
            except Exception:
                await self._rollback(unit, action)
                raise
            return unit
        raise RuntimeError(f"{action} did not complete")  # pragma: no cover

    async def _rollback(self, unit: _UnitOfWork, action: str) -> None:
        await self.db.rollback()
        for path in unit.uploaded:
            self.storage.delete(path)
        logger.warning(
            "Rolled back %s; discarded %d stored file(s)", action, len(unit.uploaded)
        )

    async def _settle(self, unit: _UnitOfWork) -> ContentResponse | None:
        """Post-commit work: obsolete files, cache eviction, events."""
        for path in unit.obsolete_files:
            self.storage.delete(path)

        await self.cache.invalidate_content(unit.content_id, tuple(dict.fromkeys(unit.slugs)))

        if unit.snapshot is None:
            return None
        for event_type in unit.events:
            self.events.dispatch(event_type(content=unit.snapshot))
        return unit.snapshot

    async def _get_with_relations(self, content_id: int) -> Content:
        content = await self.repository.find_by_id_with_relations(content_id)
        if content is None:
            raise ContentNotFoundError(content_id)
        return content

    async def _get_or_fail(self, content_id: int) -> Content:
        content = await self.repository.find_by_id(content_id)
        if content is None:
            raise ContentNotFoundError(content_id)
        return content

    async def _generate_unique_slug(self, title: str, exclude_id: int | None = None) -> str:
        async def exists(candidate: str) -> bool:
            return await self.repository.slug_exists(candidate, exclude_id=exclude_id)

        return await generate_unique_slug(title, exists)

    async def _cache_entity(self, key: str, content: Content) -> ContentResponse:
        response = self._to_response(content)
        await self.cache.cache_content(key, response.model_dump(mode="json"))
        return response

    # ------------------------------------------------------------------
    # Serialisation
    # ------------------------------------------------------------------

    def _to_response(self, content: Content) -> ContentResponse:
        return ContentResponse(
            id=content.id,
            title=content.title,
            slug=content.slug,
            body=content.body,
            excerpt=content.excerpt,
            type=content.type,
            status=content.status,
            published_at=content.published_at,
            featured_image=content.featured_image,
            featured_image_url=(
                self.storage.url(content.featured_image) if content.featured_image else None
            ),
            meta=content.meta or {},
            author_id=content.author_id,
            author=_user_to_dict(content.author),
            categories=[{"id": c.id, "name": c.name, "slug": c.slug} for c in content.categories],
            tags=[{"id": t.id, "name": t.name, "slug": t.slug} for t in content.tags],
            media=[
                {
                    "id": m.id,
                    "filename": m.filename,
                    "original_name": m.original_name,
                    "mime_type": m.mime_type,
                    "size": m.size,
                    "path": m.path,
                    "url": self.media.media_url(m),
                    "alt_text": m.alt_text,
                }
                for m in content.media
            ],
            created_at=content.created_at,
            updated_at=content.updated_at,
        )

    def _page(self, items: list[Content], total: int, page: int, per_page: int) -> PaginatedResponse:
        return PaginatedResponse(
            items=[self._to_response(c) for c in items],
            total=total,
            page=page,
            per_page=per_page,
            pages=math.ceil(total / per_page) if total > 0 else 0,
        )
