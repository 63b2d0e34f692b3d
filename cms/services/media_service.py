"""
Media service: Media rows and the files backing them.

A Media row is only ever written after its file is stored; if the row
cannot be flushed the stored file is deleted again before the error
propagates, so a failed attach never leaves an orphaned file behind.
"""
import logging

from fastapi import UploadFile
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cms.enums import MediaKind
from cms.models import Media
from cms.storage import FileStorage

logger = logging.getLogger(__name__)


class MediaService:
    def __init__(self, db: AsyncSession, storage: FileStorage) -> None:
        self.db = db
        self.storage = storage

    async def create_media(
        self, content_id: int, file: UploadFile, kind: MediaKind | None = None
    ) -> Media:
        path = await self.storage.upload(file, kind)
        try:
            media = Media(
                content_id=content_id,
                path=path,
                filename=path.rsplit("/", 1)[-1],
                original_name=file.filename or path,
                mime_type=file.content_type or "application/octet-stream",
                size=self.storage.path(path).stat().st_size,
            )
            self.db.add(media)
            await self.db.flush()
        except Exception:
            self.storage.delete(path)
            raise
        return media

    async def find_by_id(self, media_id: int) -> Media | None:
        result = await self.db.execute(select(Media).where(Media.id == media_id))
        return result.scalar_one_or_none()

    async def remove_media(self, media: Media) -> str:
        """
        Delete the Media row and return the path of its file.

        The file itself is left in place: the caller deletes it once the
        surrounding transaction has committed.
        """
        await self.db.delete(media)
        await self.db.flush()
        return media.path

    def media_url(self, media: Media) -> str:
        return self.storage.url(media.path)
