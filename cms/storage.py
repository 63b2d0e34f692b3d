"""
Local-disk file store for uploaded media.

Files are validated against a per-kind extension allow-list and size
ceiling, written under ``settings.MEDIA_ROOT`` in a per-kind folder with a
collision-free name, and addressed afterwards by their path relative to
the root.  The store is not transactional: callers that write rows
referencing a stored file are responsible for deleting the file again if
their transaction rolls back.
"""
import logging
import secrets
from pathlib import Path, PurePosixPath

from fastapi import UploadFile

from cms.config import settings
from cms.enums import MediaKind
from cms.exceptions import MediaValidationError
from cms.slugs import slugify

logger = logging.getLogger(__name__)

_MB = 1024 * 1024

ALLOWED_EXTENSIONS: dict[MediaKind, frozenset[str]] = {
    MediaKind.IMAGE: frozenset({"jpg", "jpeg", "png", "gif", "webp"}),
    MediaKind.VIDEO: frozenset({"mp4", "mov", "avi", "webm"}),
    MediaKind.AUDIO: frozenset({"mp3", "wav", "ogg"}),
    MediaKind.DOCUMENT: frozenset({"pdf", "doc", "docx", "xls", "xlsx", "ppt", "pptx"}),
}

MAX_SIZES: dict[MediaKind, int] = {
    MediaKind.IMAGE: 5 * _MB,
    MediaKind.VIDEO: 100 * _MB,
    MediaKind.AUDIO: 20 * _MB,
    MediaKind.DOCUMENT: 10 * _MB,
}

FOLDERS: dict[MediaKind, str] = {
    MediaKind.IMAGE: "contents/images",
    MediaKind.VIDEO: "contents/videos",
    MediaKind.AUDIO: "contents/audio",
    MediaKind.DOCUMENT: "contents/documents",
}

_DOCUMENT_MIME_MARKERS = ("pdf", "msword", "officedocument", "excel", "powerpoint")


def _extension(filename: str | None) -> str:
    return PurePosixPath(filename or "").suffix.lstrip(".").lower()


class FileStorage:
    def __init__(self, root: str | Path | None = None, base_url: str | None = None) -> None:
        self.root = Path(root or settings.MEDIA_ROOT)
        self.base_url = (base_url or settings.MEDIA_URL).rstrip("/")

    async def upload(self, file: UploadFile, kind: MediaKind | None = None) -> str:
        """
        Validate and store *file*, returning its path relative to the root.

        Raises ``MediaValidationError`` when the file's kind cannot be
        detected, its extension is not allowed for the kind, or it is too
        large.  The file is rewound first so a retried unit of work can
        upload the same ``UploadFile`` again.
        """
        kind = kind or self.detect_kind(file)
        await file.seek(0)
        data = await file.read()
        self.validate(file, kind, len(data))

        relative = f"{FOLDERS[kind]}/{self.unique_filename(file.filename)}"
        target = self.path(relative)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        logger.info("Stored %s (%d bytes)", relative, len(data))
        return relative

    def delete(self, path: str) -> None:
        self.path(path).unlink(missing_ok=True)
        logger.info("Deleted %s", path)

    def exists(self, path: str) -> bool:
        return self.path(path).is_file()

    def url(self, path: str) -> str:
        return f"{self.base_url}/{path}"

    def path(self, path: str) -> Path:
        return self.root / path

    # ------------------------------------------------------------------
    # Validation helpers
    # ------------------------------------------------------------------

    def validate(self, file: UploadFile, kind: MediaKind, size: int) -> None:
        ext = _extension(file.filename)
        allowed = ALLOWED_EXTENSIONS[kind]
        if ext not in allowed:
            raise MediaValidationError(
                f"Invalid file type for {kind.value}. Allowed: {', '.join(sorted(allowed))}"
            )
        if size > MAX_SIZES[kind]:
            raise MediaValidationError(
                f"File size exceeds maximum allowed for {kind.value} "
                f"({MAX_SIZES[kind] // _MB}MB)"
            )

    @staticmethod
    def detect_kind(file: UploadFile) -> MediaKind:
        mime = file.content_type or ""
        if mime.startswith("image/"):
            return MediaKind.IMAGE
        if mime.startswith("video/"):
            return MediaKind.VIDEO
        if mime.startswith("audio/"):
            return MediaKind.AUDIO
        if any(marker in mime for marker in _DOCUMENT_MIME_MARKERS):
            return MediaKind.DOCUMENT
        raise MediaValidationError(f"Unsupported media type: {mime or 'unknown'}")

    @staticmethod
    def unique_filename(filename: str | None) -> str:
        stem = slugify(PurePosixPath(filename or "").stem) or "file"
        return f"{stem}-{secrets.token_hex(6)}.{_extension(filename)}"


# Configured once at startup and handed to services by the dependency layer.
storage = FileStorage()
