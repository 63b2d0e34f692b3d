from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cms.database import Base
from cms.enums import ContentStatus, ContentType, UserRole


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


# ---------------------------------------------------------------------------
# Association tables: Content <-> Category, Content <-> Tag (many-to-many)
# ---------------------------------------------------------------------------
content_categories = Table(
    "content_category",
    Base.metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("content_id", Integer, ForeignKey("contents.id", ondelete="CASCADE"), nullable=False),
    Column("category_id", Integer, ForeignKey("categories.id", ondelete="CASCADE"), nullable=False),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    UniqueConstraint("content_id", "category_id", name="content_category_unique"),
)

content_tags = Table(
    "content_tag",
    Base.metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("content_id", Integer, ForeignKey("contents.id", ondelete="CASCADE"), nullable=False),
    Column("tag_id", Integer, ForeignKey("tags.id", ondelete="CASCADE"), nullable=False),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    UniqueConstraint("content_id", "tag_id", name="content_tag_unique"),
)


# ---------------------------------------------------------------------------
# User
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(150), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, native_enum=False, length=20, values_callable=_enum_values),
        default=UserRole.SUBSCRIBER,
        nullable=False,
    )
    # Direct permission grants on top of the role ("publish content", ...)
    permissions: Mapped[List[str]] = mapped_column(JSON, default=list, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), onupdate=func.now(), nullable=True
    )

    # Relationships: lazy="noload" enforces explicit eager loading
    contents: Mapped[List["Content"]] = relationship(
        "Content", back_populates="author", lazy="noload"
    )


# ---------------------------------------------------------------------------
# Category / Tag
# ---------------------------------------------------------------------------
class Category(Base):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(150), nullable=False)
    slug: Mapped[str] = mapped_column(String(180), unique=True, nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    parent_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True
    )

    contents: Mapped[List["Content"]] = relationship(
        "Content", secondary=content_categories, back_populates="categories", lazy="noload"
    )


class Tag(Base):
    __tablename__ = "tags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    slug: Mapped[str] = mapped_column(String(120), unique=True, nullable=False, index=True)

    contents: Mapped[List["Content"]] = relationship(
        "Content", secondary=content_tags, back_populates="tags", lazy="noload"
    )


# ---------------------------------------------------------------------------
# Content
# ---------------------------------------------------------------------------
class Content(Base):
    __tablename__ = "contents"

    __table_args__ = (
        # Slugs are unique among live rows only; soft-deleted rows keep theirs.
        Index(
            "uq_contents_slug_live",
            "slug",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
        Index("ix_contents_type_status", "type", "status"),
        Index("ix_contents_author_id_status", "author_id", "status"),
        Index("ix_contents_status_published_at", "status", "published_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(300), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    excerpt: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    type: Mapped[ContentType] = mapped_column(
        Enum(ContentType, native_enum=False, length=20, values_callable=_enum_values),
        default=ContentType.ARTICLE,
        nullable=False,
    )
    status: Mapped[ContentStatus] = mapped_column(
        Enum(ContentStatus, native_enum=False, length=20, values_callable=_enum_values),
        default=ContentStatus.DRAFT,
        nullable=False,
    )
    published_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    featured_image: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    meta: Mapped[dict[str, Any]] = mapped_column(JSON, default=lambda: {"views": 0}, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), onupdate=func.now(), nullable=True
    )
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Set once at creation; nothing in the service layer reassigns it.
    author_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # Relationships: all lazy="noload"; use selectinload/joinedload explicitly
    author: Mapped["User"] = relationship("User", back_populates="contents", lazy="noload")
    categories: Mapped[List["Category"]] = relationship(
        "Category", secondary=content_categories, back_populates="contents", lazy="noload"
    )
    tags: Mapped[List["Tag"]] = relationship(
        "Tag", secondary=content_tags, back_populates="contents", lazy="noload"
    )
    media: Mapped[List["Media"]] = relationship(
        "Media", back_populates="content", lazy="noload", passive_deletes=True
    )


# ---------------------------------------------------------------------------
# Media
# ---------------------------------------------------------------------------
class Media(Base):
    __tablename__ = "media"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    content_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("contents.id", ondelete="CASCADE"), nullable=True, index=True
    )
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    original_name: Mapped[str] = mapped_column(String(255), nullable=False)
    mime_type: Mapped[str] = mapped_column(String(150), nullable=False)
    size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    path: Mapped[str] = mapped_column(String(500), nullable=False)
    alt_text: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    content: Mapped[Optional["Content"]] = relationship(
        "Content", back_populates="media", lazy="noload"
    )
