from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from cms.cache import cache
from cms.database import get_db
from cms.dependencies import get_storage
from cms.enums import UserRole
from cms.schemas import UserCreate, UserResponse, UserUpdate
from cms.services import user_service
from cms.storage import FileStorage

router = APIRouter(prefix="/api/v1/users", tags=["users"])

_DUPLICATE_EMAIL = "A user with this email already exists"

@router.get("", response_model=list[UserResponse])
async def list_users(
    role: UserRole | None = Query(None, description="Only users with this role."),
    db: AsyncSession = Depends(get_db),
):
    return await user_service.get_users(db, role)

@router.get("/{user_id}")
async def get_user(user_id: int, db: AsyncSession = Depends(get_db)):
    user = await user_service.get_user(db, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user

@router.post("", status_code=201, response_model=UserResponse)
async def create_user(data: UserCreate, db: AsyncSession = Depends(get_db)):
    try:
        return await user_service.create_user(db, data)
    except IntegrityError:
        raise HTTPException(status_code=409, detail=_DUPLICATE_EMAIL)

@router.put("/{user_id}", response_model=UserResponse)
async def update_user(user_id: int, data: UserUpdate, db: AsyncSession = Depends(get_db)):
    try:
        user = await user_service.update_user(db, user_id, data)
    except IntegrityError:
        raise HTTPException(status_code=409, detail=_DUPLICATE_EMAIL)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user

@router.delete("/{user_id}", status_code=204)
async def delete_user(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    file_storage: FileStorage = Depends(get_storage),
):
    contents = await user_service.delete_user(db, user_id)
    if contents is None:
        raise HTTPException(status_code=404, detail="User not found")
    # Their content went with them; files and cache entries go after the commit.
    await db.commit()
    for content in contents:
        await cache.invalidate_content(content.id, (content.slug,))
        if content.featured_image:
            file_storage.delete(content.featured_image)
        for media in content.media:
            file_storage.delete(media.path)
