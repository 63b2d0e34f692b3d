import re
import unicodedata
from typing import Awaitable, Callable

_SLUG_STRIP_RE = re.compile(r"[^a-z0-9\s-]")
_SLUG_SPACE_RE = re.compile(r"[\s_]+")
_SLUG_DASH_RE = re.compile(r"-+")


def slugify(text: str) -> str:
    """Return a URL-safe, lowercase, hyphenated ASCII slug derived from *text*."""
    text = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")
    text = _SLUG_STRIP_RE.sub("", text.lower().strip().replace("_", " "))
    text = _SLUG_SPACE_RE.sub("-", text)
    return _SLUG_DASH_RE.sub("-", text).strip("-")


async def generate_unique_slug(
    title: str, exists: Callable[[str], Awaitable[bool]]
) -> str:
    """
    Slugify *title* and append ``-1``, ``-2``, ... until *exists* reports
    the candidate as free.  An all-digit slug is prefixed with ``content-``
    so it cannot be mistaken for a numeric id in ``/contents/{identifier}``.

    The check and the later insert are not atomic; the storage layer's
    unique index is what finally rejects a concurrent duplicate.
    """
    base = slugify(title) or "content"
    if base.isdigit():
        base = f"content-{base}"
    slug = base
    counter = 1
    while await exists(slug):
        slug = f"{base}-{counter}"
        counter += 1
    return slug
