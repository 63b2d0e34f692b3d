from fastapi import APIRouter, Depends
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from cms.database import get_db
from cms.models import Media, User
from cms.repositories.content_repository import ContentRepository
from cms.schemas import MetricsResponse
from cms.cache import cache

router = APIRouter(prefix="/api/v1/metrics", tags=["metrics"])

@router.get("", response_model=MetricsResponse)
async def get_metrics(db: AsyncSession = Depends(get_db)):

    by_status = await ContentRepository(db).count_by_status()

    total_media = (await db.execute(select(func.count()).select_from(Media))).scalar_one()

    total_users = (await db.execute(select(func.count()).select_from(User))).scalar_one()

    return MetricsResponse(
        total_contents=sum(by_status.values()),
        contents_by_status={status.value: count for status, count in by_status.items()},
        total_media=total_media,
        total_users=total_users,
        cache_info=cache.stats,
    )
