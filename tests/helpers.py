"""Data builders shared by the service and HTTP tests."""
import io

from fastapi import UploadFile
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.datastructures import Headers

from cms.enums import UserRole
from cms.models import Category, Tag, User
from cms.storage import FileStorage


async def create_user(
    db: AsyncSession,
    role: UserRole = UserRole.AUTHOR,
    email: str = "author@example.com",
    permissions: list[str] | None = None,
) -> User:
    """Insert a committed user; service rollbacks must not discard it."""
    user = User(name=email.split("@")[0], email=email, role=role, permissions=permissions or [])
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


async def create_tags(db: AsyncSession, *names: str) -> list[Tag]:
    tags = [Tag(name=name, slug=name.lower()) for name in names]
    db.add_all(tags)
    await db.commit()
    for tag in tags:
        await db.refresh(tag)
    return tags


async def create_categories(db: AsyncSession, *names: str) -> list[Category]:
    categories = [Category(name=name, slug=name.lower()) for name in names]
    db.add_all(categories)
    await db.commit()
    for category in categories:
        await db.refresh(category)
    return categories


def make_upload(filename: str, content_type: str, data: bytes = b"\x89PNG fake image") -> UploadFile:
    return UploadFile(
        file=io.BytesIO(data),
        filename=filename,
        headers=Headers({"content-type": content_type}),
    )


def stored_files(storage: FileStorage) -> list:
    if not storage.root.exists():
        return []
    return [p for p in storage.root.rglob("*") if p.is_file()]
