import enum


class ContentType(str, enum.Enum):
    ARTICLE = "ARTICLE"
    PAGE = "PAGE"
    MEDIA = "MEDIA"


class ContentStatus(str, enum.Enum):
    """
    Lifecycle state of a piece of content.

    Every directed transition between the three states is allowed and no
    state is terminal: archived content can be drafted or published again.
    """

    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    ARCHIVED = "ARCHIVED"

    def can_transition_to(self, target: "ContentStatus") -> bool:
        return target in _TRANSITIONS[self]

    def stamps_published_at(self, previous: "ContentStatus | None") -> bool:
        """
        True when moving from *previous* into this state must stamp
        ``published_at``.  ``previous`` is None for newly created content.
        """
        if self is ContentStatus.PUBLISHED:
            return previous is not ContentStatus.PUBLISHED
        if self is ContentStatus.DRAFT or self is ContentStatus.ARCHIVED:
            return False
        raise ValueError(f"Unhandled content status: {self!r}")


_TRANSITIONS: dict[ContentStatus, frozenset[ContentStatus]] = {
    ContentStatus.DRAFT: frozenset({ContentStatus.PUBLISHED, ContentStatus.ARCHIVED}),
    ContentStatus.PUBLISHED: frozenset({ContentStatus.DRAFT, ContentStatus.ARCHIVED}),
    ContentStatus.ARCHIVED: frozenset({ContentStatus.DRAFT, ContentStatus.PUBLISHED}),
}


class SortField(str, enum.Enum):
    PUBLISHED_AT = "published_at"
    CREATED_AT = "created_at"
    TITLE = "title"


class SortDirection(str, enum.Enum):
    ASC = "asc"
    DESC = "desc"


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    EDITOR = "editor"
    AUTHOR = "author"
    SUBSCRIBER = "subscriber"


class MediaKind(str, enum.Enum):
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"
