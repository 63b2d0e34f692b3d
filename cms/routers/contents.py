from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from cms import policies
from cms.dependencies import (
    PaginationParams,
    content_filter_params,
    get_content_service,
    get_current_user,
)
from cms.enums import ContentStatus, ContentType
from cms.models import User
from cms.schemas import (
    ContentCreate,
    ContentFilter,
    ContentResponse,
    ContentUpdate,
    PaginatedResponse,
)
from cms.services.content_service import ContentService

router = APIRouter(prefix="/api/v1/contents", tags=["contents"])


def _authorize(allowed: bool) -> None:
    if not allowed:
        raise HTTPException(status_code=403, detail="Unauthorized")


async def _existing(service: ContentService, content_id: int) -> ContentResponse:
    content = await service.find_content_by_id(content_id)
    if content is None:
        raise HTTPException(status_code=404, detail="Content not found")
    return content


@router.get("", response_model=PaginatedResponse)
async def list_contents(
    filters: ContentFilter = Depends(content_filter_params),
    service: ContentService = Depends(get_content_service),
):
    return await service.get_contents(filters)


@router.post("", status_code=201, response_model=ContentResponse)
async def create_content(
    title: str = Form(..., min_length=1, max_length=255),
    body: str = Form(..., min_length=1),
    excerpt: str | None = Form(None, max_length=500),
    type: ContentType = Form(ContentType.ARTICLE),
    status: ContentStatus = Form(ContentStatus.DRAFT),
    categories: list[int] = Form([]),
    tags: list[int] = Form([]),
    featured_image: UploadFile | None = File(None),
    media: list[UploadFile] = File([]),
    user: User = Depends(get_current_user),
    service: ContentService = Depends(get_content_service),
):
    _authorize(policies.can_create(user))
    data = ContentCreate(
        title=title,
        body=body,
        excerpt=excerpt,
        type=type,
        status=status,
        categories=categories,
        tags=tags,
        featured_image=featured_image,
        media=media,
    )
    return await service.create_content(data, author_id=user.id)


@router.get("/category/{category}", response_model=PaginatedResponse)
async def list_by_category(
    category: str,
    pagination: PaginationParams = Depends(),
    service: ContentService = Depends(get_content_service),
):
    if category.isdigit():
        return await service.get_contents_by_category_id(
            int(category), pagination.per_page, pagination.page
        )
    return await service.get_contents_by_category_slug(
        category, pagination.per_page, pagination.page
    )


@router.get("/tag/{tag}", response_model=PaginatedResponse)
async def list_by_tag(
    tag: str,
    pagination: PaginationParams = Depends(),
    service: ContentService = Depends(get_content_service),
):
    if tag.isdigit():
        return await service.get_contents_by_tag_id(int(tag), pagination.per_page, pagination.page)
    return await service.get_contents_by_tag_slug(tag, pagination.per_page, pagination.page)


@router.get("/{identifier}", response_model=ContentResponse)
async def show_content(identifier: str, service: ContentService = Depends(get_content_service)):
    if identifier.isdigit():
        content = await service.find_content_by_id(int(identifier))
    else:
        content = await service.find_content_by_slug(identifier)
    if content is None:
        raise HTTPException(status_code=404, detail="Content not found")
    return content


@router.put("/{content_id}", response_model=ContentResponse)
async def update_content(
    content_id: int,
    title: str | None = Form(None, min_length=1, max_length=255),
    body: str | None = Form(None, min_length=1),
    excerpt: str | None = Form(None, max_length=500),
    type: ContentType | None = Form(None),
    status: ContentStatus | None = Form(None),
    categories: list[int] | None = Form(None),
    tags: list[int] | None = Form(None),
    clear_categories: bool = Form(False),
    clear_tags: bool = Form(False),
    featured_image: UploadFile | None = File(None),
    media: list[UploadFile] = File([]),
    media_to_delete: list[int] = Form([]),
    user: User = Depends(get_current_user),
    service: ContentService = Depends(get_content_service),
):
    existing = await _existing(service, content_id)
    _authorize(policies.can_update(user, existing))

    # Multipart forms cannot carry an empty list, so clearing an
    # association is requested with an explicit flag instead.
    fields = {
        "title": title,
        "body": body,
        "excerpt": excerpt,
        "type": type,
        "status": status,
        "categories": [] if clear_categories else categories,
        "tags": [] if clear_tags else tags,
        "featured_image": featured_image,
    }
    data = ContentUpdate(
        **{name: value for name, value in fields.items() if value is not None},
        media=media,
        media_to_delete=media_to_delete,
    )
    return await service.update_content(content_id, data, author_id=user.id)


@router.delete("/{content_id}", status_code=204)
async def delete_content(
    content_id: int,
    user: User = Depends(get_current_user),
    service: ContentService = Depends(get_content_service),
):
    existing = await _existing(service, content_id)
    _authorize(policies.can_delete(user, existing))
    if not await service.delete_content(content_id):
        raise HTTPException(status_code=404, detail="Content not found")


@router.post("/{content_id}/publish", response_model=ContentResponse)
async def publish_content(
    content_id: int,
    user: User = Depends(get_current_user),
    service: ContentService = Depends(get_content_service),
):
    _authorize(policies.can_publish(user, await _existing(service, content_id)))
    await service.publish_content(content_id)
    return await _existing(service, content_id)


@router.post("/{content_id}/draft", response_model=ContentResponse)
async def draft_content(
    content_id: int,
    user: User = Depends(get_current_user),
    service: ContentService = Depends(get_content_service),
):
    _authorize(policies.can_draft(user, await _existing(service, content_id)))
    await service.draft_content(content_id)
    return await _existing(service, content_id)


@router.post("/{content_id}/archive", response_model=ContentResponse)
async def archive_content(
    content_id: int,
    user: User = Depends(get_current_user),
    service: ContentService = Depends(get_content_service),
):
    await _existing(service, content_id)
    _authorize(policies.can_archive(user))
    await service.archive_content(content_id)
    return await _existing(service, content_id)
