"""
Content authorization policy.

Checked by the router layer before any state-changing content operation;
the service layer assumes the check has already passed.  A user may act
through a permission granted by their role, a permission granted to them
directly, or (for most actions) by being the author of the content.
"""
from cms.enums import UserRole
from cms.models import User
from cms.schemas import ContentResponse

CREATE = "create content"
UPDATE = "update content"
DELETE = "delete content"
PUBLISH = "publish content"
DRAFT = "draft content"
ARCHIVE = "archive content"

ROLE_PERMISSIONS: dict[UserRole, frozenset[str]] = {
    UserRole.ADMIN: frozenset({CREATE, UPDATE, DELETE, PUBLISH, DRAFT, ARCHIVE}),
    UserRole.EDITOR: frozenset({CREATE, UPDATE, PUBLISH}),
    UserRole.AUTHOR: frozenset({CREATE}),
    UserRole.SUBSCRIBER: frozenset(),
}


def has_permission(user: User, permission: str) -> bool:
    return permission in ROLE_PERMISSIONS[user.role] or permission in (user.permissions or [])


def _owns(user: User, content: ContentResponse) -> bool:
    return user.role is UserRole.AUTHOR and content.author_id == user.id


def can_create(user: User) -> bool:
    return has_permission(user, CREATE) or user.role in (UserRole.ADMIN, UserRole.AUTHOR)


def can_update(user: User, content: ContentResponse) -> bool:
    return has_permission(user, UPDATE) or user.role is UserRole.ADMIN or _owns(user, content)


def can_delete(user: User, content: ContentResponse) -> bool:
    return has_permission(user, DELETE) or user.role is UserRole.ADMIN or _owns(user, content)


def can_publish(user: User, content: ContentResponse) -> bool:
    return has_permission(user, PUBLISH) or user.role is UserRole.ADMIN or _owns(user, content)


def can_draft(user: User, content: ContentResponse) -> bool:
    return has_permission(user, DRAFT) or user.role is UserRole.ADMIN or _owns(user, content)


def can_archive(user: User) -> bool:
    return has_permission(user, ARCHIVE) or user.role is UserRole.ADMIN
