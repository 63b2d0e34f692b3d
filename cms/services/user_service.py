"""
User service: the authors content is attributed to.

Users are fetched without caching: the list is small and changes
infrequently.  Identity and credentials are managed upstream; this only
keeps the profile, role and direct permission grants the content policy
reads.
"""
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from cms.enums import UserRole
from cms.models import Content, User
from cms.schemas import UserCreate, UserUpdate


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def _user_to_dict(user: User) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role,
        "permissions": list(user.permissions or []),
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


def _content_summary_to_dict(content: Content) -> dict:
    """Lightweight summary embedded in the user detail view (no nested author)."""
    return {
        "id": content.id,
        "title": content.title,
        "slug": content.slug,
        "type": content.type,
        "status": content.status,
        "published_at": content.published_at.isoformat() if content.published_at else None,
    }


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def get_users(db: AsyncSession, role: UserRole | None = None) -> list[dict]:
    """Return all users (optionally only those with *role*), newest first."""
    q = select(User).order_by(User.created_at.desc(), User.id.desc())
    if role is not None:
        q = q.where(User.role == role)
    result = await db.execute(q)
    return [_user_to_dict(u) for u in result.scalars().all()]


async def get_user(db: AsyncSession, user_id: int) -> dict | None:
    """
    Return the detail dict for *user_id* including a summary of their
    live (non-deleted) content, or None when the user does not exist.
    """
    q = (
        select(User)
        .where(User.id == user_id)
        .options(selectinload(User.contents.and_(Content.deleted_at.is_(None))))
    )
    result = await db.execute(q)
    user = result.unique().scalar_one_or_none()
    if user is None:
        return None

    data = _user_to_dict(user)
    data["contents"] = [_content_summary_to_dict(c) for c in user.contents]
    return data


async def create_user(db: AsyncSession, data: UserCreate) -> dict:
    """
    Create a user and return its serialised dict.

    Email uniqueness is enforced by the database; the router translates
    the integrity error into a 409 response.
    """
    user = User(
        name=data.name,
        email=data.email,
        role=data.role,
        permissions=data.permissions,
    )
    db.add(user)
    await db.flush()
    await db.refresh(user)
    return _user_to_dict(user)


async def update_user(db: AsyncSession, user_id: int, data: UserUpdate) -> dict | None:
    """
    Apply the supplied fields of *data* to *user_id*; None when the user
    does not exist.  A duplicate email surfaces as ``IntegrityError``.
    """
    user = await db.get(User, user_id)
    if user is None:
        return None

    for name, value in data.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(user, name, value)
    await db.flush()
    await db.refresh(user)
    return _user_to_dict(user)


async def delete_user(db: AsyncSession, user_id: int) -> list[Content] | None:
    """
    Delete *user_id* and, through the foreign keys, everything they
    authored.  Returns the removed contents (media loaded, soft-deleted
    rows included) so the caller can evict caches and stored files once
    the transaction commits, or None when the user does not exist.
    """
    if await db.get(User, user_id) is None:
        return None

    result = await db.execute(
        select(Content)
        .where(Content.author_id == user_id)
        .options(selectinload(Content.media))
    )
    contents = list(result.scalars().all())
    await db.execute(delete(User).where(User.id == user_id))
    return contents
