"""
Unit tests for the pieces ContentService is assembled from: slug
generation, the status state machine, the role policy, the file store,
the cache key scheme and the event bus.
"""
import asyncio
import logging

import pytest

from cms import policies
from cms.cache import CacheManager
from cms.enums import ContentStatus, ContentType, MediaKind, UserRole
from cms.events import ContentCreated, ContentEvent, ContentPublished, ContentUpdated, EventBus
from cms.exceptions import MediaValidationError
from cms.listeners import register_listeners
from cms.models import User
from cms.schemas import ContentFilter, ContentResponse
from cms.slugs import generate_unique_slug, slugify
from cms.storage import MAX_SIZES, FileStorage

from helpers import make_upload


def _content(author_id: int = 1) -> ContentResponse:
    return ContentResponse(
        id=1,
        title="Title",
        slug="title",
        body="Body",
        type=ContentType.ARTICLE,
        status=ContentStatus.DRAFT,
        author_id=author_id,
    )


# ---------------------------------------------------------------------------
# Slugs
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("title, expected", [
    ("Hello World", "hello-world"),
    ("  Spaces   everywhere  ", "spaces-everywhere"),
    ("Crème brûlée & Café!", "creme-brulee-cafe"),
    ("snake_case_title", "snake-case-title"),
    ("---", ""),
])
def test_slugify(title, expected):
    assert slugify(title) == expected


@pytest.mark.asyncio
async def test_generate_unique_slug_appends_counter():
    taken = {"my-post", "my-post-1"}

    async def exists(slug):
        return slug in taken

    assert await generate_unique_slug("My Post", exists) == "my-post-2"
    assert await generate_unique_slug("Other", exists) == "other"


@pytest.mark.asyncio
async def test_generate_unique_slug_falls_back_for_unsluggable_titles():
    async def exists(slug):
        return False

    assert await generate_unique_slug("!!!", exists) == "content"


@pytest.mark.asyncio
async def test_generate_unique_slug_never_returns_a_bare_number():
    taken = {"content-2024"}

    async def exists(slug):
        return slug in taken

    assert await generate_unique_slug("2024", exists) == "content-2024-1"
    assert await generate_unique_slug("1 2 3", exists) == "1-2-3"
    assert await generate_unique_slug("007", exists) == "content-007"


# ---------------------------------------------------------------------------
# Status state machine
# ---------------------------------------------------------------------------

def test_every_status_can_move_to_every_other():
    for source in ContentStatus:
        for target in ContentStatus:
            assert source.can_transition_to(target) is (source is not target)


def test_publishing_stamps_published_at_only_on_entry():
    assert ContentStatus.PUBLISHED.stamps_published_at(None) is True
    assert ContentStatus.PUBLISHED.stamps_published_at(ContentStatus.DRAFT) is True
    assert ContentStatus.PUBLISHED.stamps_published_at(ContentStatus.PUBLISHED) is False
    assert ContentStatus.DRAFT.stamps_published_at(ContentStatus.PUBLISHED) is False
    assert ContentStatus.ARCHIVED.stamps_published_at(None) is False


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------

def test_role_policy():
    admin = User(id=1, role=UserRole.ADMIN, permissions=[])
    editor = User(id=2, role=UserRole.EDITOR, permissions=[])
    author = User(id=3, role=UserRole.AUTHOR, permissions=[])
    reader = User(id=4, role=UserRole.SUBSCRIBER, permissions=[])
    own, foreign = _content(author_id=3), _content(author_id=99)

    assert [policies.can_create(u) for u in (admin, editor, author, reader)] == [
        True, True, True, False,
    ]
    assert policies.can_update(editor, foreign)
    assert policies.can_update(author, own)
    assert not policies.can_update(author, foreign)
    assert not policies.can_delete(editor, foreign)
    assert policies.can_delete(author, own)
    assert policies.can_publish(editor, foreign)
    assert not policies.can_draft(editor, foreign)
    assert policies.can_draft(author, own)
    assert policies.can_archive(admin)
    assert not policies.can_archive(author)


def test_direct_permission_grants():
    reader = User(id=4, role=UserRole.SUBSCRIBER, permissions=[policies.ARCHIVE])
    assert policies.can_archive(reader)
    assert not policies.can_create(reader)


# ---------------------------------------------------------------------------
# File storage
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_storage_upload_and_delete(tmp_path):
    storage = FileStorage(root=tmp_path, base_url="/files/")
    path = await storage.upload(make_upload("My Photo.JPG", "image/jpeg", b"jpeg-bytes"))

    assert path.startswith("contents/images/my-photo-")
    assert path.endswith(".jpg")
    assert storage.exists(path)
    assert storage.path(path).read_bytes() == b"jpeg-bytes"
    assert storage.url(path) == f"/files/{path}"

    storage.delete(path)
    assert not storage.exists(path)
    # Deleting twice is harmless.
    storage.delete(path)


@pytest.mark.asyncio
async def test_storage_names_never_collide(tmp_path):
    storage = FileStorage(root=tmp_path)
    first = await storage.upload(make_upload("same.png", "image/png"))
    second = await storage.upload(make_upload("same.png", "image/png"))
    assert first != second


@pytest.mark.asyncio
async def test_storage_rejects_disallowed_extension(tmp_path):
    storage = FileStorage(root=tmp_path)
    with pytest.raises(MediaValidationError):
        await storage.upload(make_upload("fake.gif.exe", "image/gif"))
    assert list(tmp_path.rglob("*.*")) == []


@pytest.mark.asyncio
async def test_storage_rejects_oversized_file(tmp_path):
    storage = FileStorage(root=tmp_path)
    big = b"0" * (MAX_SIZES[MediaKind.IMAGE] + 1)
    with pytest.raises(MediaValidationError, match="5MB"):
        await storage.upload(make_upload("huge.png", "image/png", big))


@pytest.mark.parametrize("mime, kind", [
    ("image/webp", MediaKind.IMAGE),
    ("video/quicktime", MediaKind.VIDEO),
    ("audio/ogg", MediaKind.AUDIO),
    ("application/vnd.openxmlformats-officedocument.wordprocessingml.document", MediaKind.DOCUMENT),
])
def test_detect_kind(mime, kind):
    assert FileStorage.detect_kind(make_upload("x", mime)) is kind


def test_detect_kind_rejects_unknown_types():
    with pytest.raises(MediaValidationError):
        FileStorage.detect_kind(make_upload("archive.zip", "application/zip"))


# ---------------------------------------------------------------------------
# Cache keys and list filters
# ---------------------------------------------------------------------------

def test_content_keys():
    assert CacheManager.content_key(content_id=7) == "content:id:7"
    assert CacheManager.content_key(slug="hello") == "content:slug:hello"
    with pytest.raises(ValueError):
        CacheManager.content_key()


def test_filter_normalization_excludes_page_size():
    normalized = ContentFilter(status=ContentStatus.PUBLISHED, per_page=50, page=2).normalized()
    assert "per_page" not in normalized
    assert normalized["page"] == 2
    assert normalized["status"] == "PUBLISHED"
    assert normalized["sort_by"] == "published_at"


@pytest.mark.asyncio
async def test_cache_without_redis_degrades_to_misses():
    manager = CacheManager()
    await manager.put("k", {"a": 1})
    assert await manager.get("k") is None
    await manager.invalidate_content(1, ("slug",))
    assert manager.stats == {"hits": 0, "misses": 1, "hit_rate": 0.0}


# ---------------------------------------------------------------------------
# Event bus
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_event_bus_delivers_to_base_type_listeners():
    bus = EventBus()
    seen = []

    async def on_any(event):
        seen.append(("any", type(event).__name__))

    async def on_published(event):
        seen.append(("published", type(event).__name__))

    bus.subscribe(ContentEvent, on_any)
    bus.subscribe(ContentPublished, on_published)
    bus.subscribe(ContentPublished, on_published)

    bus.dispatch(ContentPublished(content=_content()))
    bus.dispatch(ContentCreated(content=_content()))
    await bus.drain()

    assert sorted(seen) == [
        ("any", "ContentCreated"),
        ("any", "ContentPublished"),
        ("published", "ContentPublished"),
    ]


@pytest.mark.asyncio
async def test_event_bus_does_not_block_dispatcher():
    bus = EventBus()
    release = asyncio.Event()
    done = []

    async def slow(event):
        await release.wait()
        done.append(event.content.id)

    bus.subscribe(ContentCreated, slow)
    bus.dispatch(ContentCreated(content=_content()))
    assert done == []

    release.set()
    await bus.drain()
    assert done == [1]


@pytest.mark.asyncio
async def test_registered_listeners_log_lifecycle_events(caplog):
    bus = EventBus()
    register_listeners(bus)

    with caplog.at_level(logging.INFO, logger="cms.listeners"):
        bus.dispatch(ContentCreated(content=_content()))
        bus.dispatch(ContentUpdated(content=_content()))
        bus.dispatch(ContentPublished(content=_content()))
        await bus.drain()

    messages = [r.getMessage() for r in caplog.records if r.name == "cms.listeners"]
    assert "Content created: title (content_id=1)" in messages
    assert "Content updated: title (content_id=1)" in messages
    assert "Content published: Title (content_id=1, author_id=1)" in messages
