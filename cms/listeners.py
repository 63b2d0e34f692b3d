import logging

from cms.events import ContentCreated, ContentEvent, ContentPublished, ContentUpdated, EventBus

logger = logging.getLogger(__name__)


async def log_content_published(event: ContentEvent) -> None:
    content = event.content
    logger.info(
        "Content published: %s (content_id=%d, author_id=%d)",
        content.title,
        content.id,
        content.author_id,
    )


async def log_content_created(event: ContentEvent) -> None:
    logger.info("Content created: %s (content_id=%d)", event.content.slug, event.content.id)


async def log_content_updated(event: ContentEvent) -> None:
    logger.info("Content updated: %s (content_id=%d)", event.content.slug, event.content.id)


def register_listeners(bus: EventBus) -> None:
    bus.subscribe(ContentPublished, log_content_published)
    bus.subscribe(ContentCreated, log_content_created)
    bus.subscribe(ContentUpdated, log_content_updated)
