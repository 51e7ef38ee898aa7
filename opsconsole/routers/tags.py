"""
Tags Router — Public tag listings, authenticated create/update, admin delete.
"""

import re
import logging
from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.orm import selectinload

from opsconsole.auth import get_current_user, require_admin
from opsconsole.database import get_db
from opsconsole.models import Tag, User, post_tags
from opsconsole.utils import ApiModel, ok, page_params, page_meta, parse_uuid

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tags", tags=["Tags"])

COLOR_PATTERN = re.compile(r"^#[0-9A-Fa-f]{6}$")


# ── Schemas ────────────────────────────────────────────────────────────

class TagRequest(ApiModel):
    name: str
    color: str | None = None


class TagResponse(ApiModel):
    id: str
    name: str
    color: str
    post_count: int = 0
    created_at: datetime
    updated_at: datetime | None = None


def tag_response(t: Tag, post_count: int = 0) -> TagResponse:
    return TagResponse(
        id=str(t.id),
        name=t.name,
        color=t.color,
        post_count=post_count,
        created_at=t.created_at,
        updated_at=t.updated_at,
    )


def _post_count_subquery():
    return (
        select(post_tags.c.tag_id, func.count(post_tags.c.post_id).label("post_count"))
        .group_by(post_tags.c.tag_id)
        .subquery()
    )


def _validate(payload: TagRequest) -> str:
    name = (payload.name or "").strip()
    if not 1 <= len(name) <= 20:
        raise HTTPException(status_code=400, detail="Tag name must be 1-20 characters")
    if payload.color is not None and not COLOR_PATTERN.match(payload.color):
        raise HTTPException(status_code=400, detail="Color must be a hex value like #1890ff")
    return name


async def _tags_with_counts(db: AsyncSession, query):
    counts = _post_count_subquery()
    q = query.add_columns(func.coalesce(counts.c.post_count, 0)).outerjoin(counts, counts.c.tag_id == Tag.id)
    result = await db.execute(q)
    return [tag_response(t, count) for t, count in result.all()]


# ── Public ─────────────────────────────────────────────────────────────

@router.get("/all")
async def all_tags(db: AsyncSession = Depends(get_db)):
    """Every tag, ordered by name, with post counts."""
    return ok(await _tags_with_counts(db, select(Tag).order_by(Tag.name.asc())))


@router.get("/popular")
async def popular_tags(limit: int = Query(10), db: AsyncSession = Depends(get_db)):
    """Tags with the most posts."""
    counts = _post_count_subquery()
    count_col = func.coalesce(counts.c.post_count, 0)
    result = await db.execute(
        select(Tag, count_col)
        .outerjoin(counts, counts.c.tag_id == Tag.id)
        .order_by(count_col.desc(), Tag.name.asc())
        .limit(max(1, min(limit, 100)))
    )
    return ok([tag_response(t, count) for t, count in result.all()])


@router.get("")
async def list_tags(
    page: int = Query(1),
    limit: int = Query(10),
    search: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    page, limit = page_params(page, limit)
    query = select(Tag)
    count_query = select(func.count()).select_from(Tag)
    if search:
        query = query.where(Tag.name.contains(search))
        count_query = count_query.where(Tag.name.contains(search))

    total = (await db.execute(count_query)).scalar() or 0
    items = await _tags_with_counts(
        db, query.order_by(Tag.created_at.desc()).offset((page - 1) * limit).limit(limit)
    )
    return ok(items, pagination=page_meta(page, limit, total))


@router.get("/{tag_id}")
async def get_tag(tag_id: str, db: AsyncSession = Depends(get_db)):
    """One tag with its posts."""
    result = await db.execute(
        select(Tag).where(Tag.id == parse_uuid(tag_id)).options(selectinload(Tag.posts))
    )
    tag = result.scalar_one_or_none()
    if not tag:
        raise HTTPException(status_code=404, detail="Tag not found")

    data = tag_response(tag, len(tag.posts)).model_dump(by_alias=True)
    data["posts"] = [
        {
            "id": str(p.id),
            "title": p.title,
            "status": p.status,
            "views": p.views,
            "createdAt": p.created_at,
            "author": {"id": str(p.author.id), "username": p.author.username} if p.author else None,
        }
        for p in tag.posts
    ]
    return ok(data)


# ── Authenticated ──────────────────────────────────────────────────────

@router.post("", status_code=201)
async def create_tag(
    payload: TagRequest,
    _: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    name = _validate(payload)
    existing = await db.execute(select(Tag).where(Tag.name == name))
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=400, detail="Tag name already exists")

    tag = Tag(name=name, color=payload.color or "#1890ff")
    db.add(tag)
    await db.flush()
    return ok(tag_response(tag), message="Tag created")


@router.put("/{tag_id}")
async def update_tag(
    tag_id: str,
    payload: TagRequest,
    _: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    name = _validate(payload)
    tid = parse_uuid(tag_id)
    tag = (await db.execute(select(Tag).where(Tag.id == tid))).scalar_one_or_none()
    if not tag:
        raise HTTPException(status_code=404, detail="Tag not found")

    clash = await db.execute(select(Tag).where(Tag.name == name, Tag.id != tid))
    if clash.scalar_one_or_none():
        raise HTTPException(status_code=400, detail="Tag name already exists")

    tag.name = name
    if payload.color is not None:
        tag.color = payload.color
    await db.flush()
    return ok(tag_response(tag), message="Tag updated")


@router.delete("/{tag_id}")
async def delete_tag(
    tag_id: str,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(Tag).where(Tag.id == parse_uuid(tag_id)).options(selectinload(Tag.posts))
    )
    tag = result.scalar_one_or_none()
    if not tag:
        raise HTTPException(status_code=404, detail="Tag not found")

    await db.delete(tag)
    await db.flush()
    return ok(message="Tag deleted")
