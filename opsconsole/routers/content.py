"""
Content Router — News categories and articles for the partner apps' H5 pages.

Public: GET /content/categories. Everything else requires a login.
"""

import logging
from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from opsconsole.auth import get_current_user
from opsconsole.config import get_settings
from opsconsole.database import get_db
from opsconsole.models import Content, User
from opsconsole.services import oss_service
from opsconsole.services.content_service import (
    CATEGORY_TYPE,
    PROTECTED_ALIAS_PREFIX,
    build_category_tree,
    decode_base64_upload,
    process_detail_html,
    url_path_for,
)
from opsconsole.utils import ApiModel, ok, page_params, page_meta

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/content", tags=["Content"])

DEFAULT_APP_ID = 15


# ── Schemas ────────────────────────────────────────────────────────────

class ContentRequest(ApiModel):
    app_id: int | None = None
    parent_id: int | None = None
    type: int | None = None
    title: str | None = None
    subtitle: str | None = None
    author: str | None = None
    content: str | None = None
    alias: str | None = None
    title_img01: str | None = None
    enabled: int | None = None


class ContentResponse(ApiModel):
    id: int
    app_id: int
    parent_id: int | None = None
    type: int
    title: str | None = None
    subtitle: str | None = None
    author: str | None = None
    content: str | None = None
    alias: str | None = None
    url_path: str | None = None
    title_img01: str | None = None
    enabled: int
    published_at: datetime | None = None
    sort_num: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class DetailRequest(ApiModel):
    content: str | None = None


class ToggleRequest(ApiModel):
    enabled: int | None = None


class BatchDeleteRequest(ApiModel):
    ids: list[int] | None = None


def content_response(c: Content, with_body: bool = True) -> ContentResponse:
    return ContentResponse(
        id=c.id,
        app_id=c.app_id,
        parent_id=c.parent_id,
        type=c.type,
        title=c.title,
        subtitle=c.subtitle,
        author=c.author,
        content=c.content if with_body else None,
        alias=c.alias,
        url_path=c.url_path,
        title_img01=c.title_img01,
        enabled=c.enabled,
        published_at=c.published_at,
        sort_num=c.sort_num,
        created_at=c.created_at,
        updated_at=c.updated_at,
    )


async def _get_content_or_404(db: AsyncSession, content_id: int) -> Content:
    content = await db.get(Content, content_id)
    if not content:
        raise HTTPException(status_code=404, detail="Content not found")
    return content


async def _ensure_alias_free(db: AsyncSession, app_id: int, alias: str, exclude_id: int | None = None):
    query = select(Content.id).where(Content.app_id == app_id, Content.alias == alias)
    if exclude_id is not None:
        query = query.where(Content.id != exclude_id)
    if (await db.execute(query)).first():
        raise HTTPException(status_code=400, detail="Alias already exists")


def _ensure_deletable(content: Content):
    if content.alias and content.alias.startswith(PROTECTED_ALIAS_PREFIX):
        raise HTTPException(status_code=400, detail="System content cannot be deleted")


# ── Public ─────────────────────────────────────────────────────────────

@router.get("/categories")
async def categories(app_id: int = Query(DEFAULT_APP_ID, alias="appId"), db: AsyncSession = Depends(get_db)):
    """Category tree (type 1 rows) for one app, roots have parentId 0."""
    result = await db.execute(
        select(Content.id, Content.title, Content.parent_id)
        .where(Content.type == CATEGORY_TYPE, Content.app_id == app_id)
        .order_by(Content.sort_num.asc())
    )
    items = [{"id": r.id, "name": r.title, "parentId": r.parent_id} for r in result.all()]
    return ok(build_category_tree(items))


# ── Authenticated ──────────────────────────────────────────────────────

@router.post("/upload")
async def upload_image(request: Request, user: User = Depends(get_current_user)):
    """
    Upload a news image to OSS (folder `news`).
    Accepts multipart `file` or JSON {file: <base64 or data URL>, ext}.
    """
    max_bytes = get_settings().upload_max_bytes
    content_type = request.headers.get("content-type", "")

    if content_type.startswith("multipart/form-data"):
        form = await request.form()
        upload = form.get("file")
        if upload is None or not hasattr(upload, "read"):
            raise HTTPException(status_code=400, detail="No file uploaded")
        data = await upload.read()
        filename, mime, ext = upload.filename, upload.content_type, None
    else:
        try:
            body = await request.json()
        except ValueError:
            raise HTTPException(status_code=400, detail="No file uploaded")
        if not isinstance(body, dict) or not isinstance(body.get("file"), str) or not body["file"]:
            raise HTTPException(status_code=400, detail="No file uploaded")
        try:
            data, ext, mime = decode_base64_upload(body["file"], body.get("ext"))
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        filename = None

    if not data:
        raise HTTPException(status_code=400, detail="File is empty")
    if len(data) > max_bytes:
        raise HTTPException(status_code=400, detail=f"File exceeds the {max_bytes // (1024 * 1024)}MB limit")

    try:
        url = await oss_service.upload_bytes(
            data, filename=filename, content_type=mime, folder=oss_service.NEWS_FOLDER, ext=ext
        )
    except oss_service.OssError as e:
        raise HTTPException(status_code=500, detail=str(e))

    logger.info(f"News image uploaded by {user.username}: {url}")
    return ok({"url": url}, message="Upload successful")


@router.post("/batch-delete")
async def batch_delete(
    payload: BatchDeleteRequest,
    _: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not payload.ids:
        raise HTTPException(status_code=400, detail="Provide the content ids to delete")

    result = await db.execute(select(Content).where(Content.id.in_(payload.ids)))
    rows = result.scalars().all()
    for content in rows:
        _ensure_deletable(content)
    for content in rows:
        await db.delete(content)
    await db.flush()
    return ok({"deleted": len(rows)}, message="Contents deleted")


@router.get("")
async def list_contents(
    page: int = Query(1),
    page_size: int = Query(10, alias="pageSize"),
    title: str | None = Query(None),
    enabled: int | None = Query(None),
    app_id: int = Query(DEFAULT_APP_ID, alias="appId"),
    type: int | None = Query(None),
    parent_id: int | None = Query(None, alias="parentId"),
    _: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    page, page_size = page_params(page, page_size)
    conditions = [Content.app_id == app_id]
    if title:
        conditions.append(Content.title.contains(title))
    if enabled is not None:
        conditions.append(Content.enabled == enabled)
    if type is not None:
        conditions.append(Content.type == type)
    if parent_id is not None:
        conditions.append(Content.parent_id == parent_id)

    total = (await db.execute(select(func.count()).select_from(Content).where(*conditions))).scalar() or 0
    result = await db.execute(
        select(Content)
        .where(*conditions)
        .order_by(Content.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    items = [content_response(c, with_body=False) for c in result.scalars().all()]
    return ok(items, pagination=page_meta(page, page_size, total))


@router.get("/{content_id}")
async def get_content(
    content_id: int,
    _: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return ok(content_response(await _get_content_or_404(db, content_id)))


@router.post("")
async def create_content(
    payload: ContentRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    app_id = payload.app_id or DEFAULT_APP_ID
    if payload.alias:
        await _ensure_alias_free(db, app_id, payload.alias)

    content = Content(
        app_id=app_id,
        parent_id=10 if payload.parent_id is None else payload.parent_id,
        type=payload.type or 2,
        title=payload.title or "",
        subtitle=payload.subtitle or "",
        author=payload.author or "",
        content=payload.content or "",
        alias=payload.alias or "",
        title_img01=payload.title_img01 or "",
        enabled=1 if payload.enabled is None else payload.enabled,
    )
    db.add(content)
    await db.flush()

    content.url_path = url_path_for(content.id)
    content.sort_num = content.id
    await db.flush()
    logger.info(f"Content {content.id} created by {user.username}")
    return ok(content_response(content), message="Content created")


@router.put("/{content_id}")
async def update_content(
    content_id: int,
    payload: ContentRequest,
    _: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    content = await _get_content_or_404(db, content_id)
    updates = payload.model_dump(exclude_unset=True, exclude={"app_id"})

    if updates.get("alias"):
        await _ensure_alias_free(db, payload.app_id or content.app_id, updates["alias"], exclude_id=content_id)

    new_type = updates.get("type") or content.type
    if new_type == CATEGORY_TYPE and updates.get("parent_id") == content_id:
        raise HTTPException(status_code=400, detail="A category cannot be its own parent")

    for field, value in updates.items():
        if value is not None:
            setattr(content, field, value)

    await db.flush()
    return ok(content_response(content), message="Content updated")


@router.delete("/{content_id}")
async def delete_content(
    content_id: int,
    _: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    content = await _get_content_or_404(db, content_id)
    _ensure_deletable(content)
    await db.delete(content)
    await db.flush()
    return ok(message="Content deleted")


@router.post("/{content_id}/detail")
async def save_detail(
    content_id: int,
    payload: DetailRequest,
    _: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Store editor HTML as the article's H5 body."""
    if not payload.content:
        raise HTTPException(status_code=400, detail="Content cannot be empty")

    content = await _get_content_or_404(db, content_id)
    content.content = process_detail_html(payload.content)
    await db.flush()
    return ok(content_response(content), message="Content detail saved")


@router.post("/{content_id}/toggle-enabled")
async def toggle_enabled(
    content_id: int,
    payload: ToggleRequest,
    _: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if payload.enabled is None:
        raise HTTPException(status_code=400, detail="Provide the enabled state")

    content = await _get_content_or_404(db, content_id)
    content.enabled = 1 if payload.enabled else 0
    await db.flush()
    return ok(content_response(content), message="Status updated")
