"""
Posts Router — Public reading, authenticated writing, author-or-admin edits.
"""

import logging
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, or_

from opsconsole.auth import get_current_user, is_admin
from opsconsole.database import get_db
from opsconsole.models import Post, PostStatus, Tag, User
from opsconsole.utils import ApiModel, ok, page_params, page_meta, parse_uuid

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/posts", tags=["Posts"])

SORT_COLUMNS = {
    "createdAt": Post.created_at,
    "updatedAt": Post.updated_at,
    "title": Post.title,
    "views": Post.views,
}


# ── Schemas ────────────────────────────────────────────────────────────

class PostCreateRequest(ApiModel):
    title: str
    content: str
    summary: str | None = None
    status: PostStatus = PostStatus.DRAFT
    tag_ids: list[str] = []


class PostUpdateRequest(ApiModel):
    title: str | None = None
    content: str | None = None
    summary: str | None = None
    status: PostStatus | None = None
    tag_ids: list[str] | None = None


def post_response(p: Post, with_comments: bool = False) -> dict:
    data = {
        "id": str(p.id),
        "title": p.title,
        "content": p.content,
        "summary": p.summary,
        "status": p.status,
        "views": p.views,
        "authorId": str(p.author_id),
        "author": {"id": str(p.author.id), "username": p.author.username, "email": p.author.email}
        if p.author else None,
        "tags": [{"id": str(t.id), "name": t.name, "color": t.color} for t in p.tags],
        "commentCount": len(p.comments),
        "createdAt": p.created_at,
        "updatedAt": p.updated_at,
    }
    if with_comments:
        data["comments"] = [
            {
                "id": str(c.id),
                "content": c.content,
                "createdAt": c.created_at,
                "author": {"id": str(c.author.id), "username": c.author.username} if c.author else None,
            }
            for c in p.comments
        ]
    return data


async def _load_post(db: AsyncSession, post_id) -> Post | None:
    result = await db.execute(
        select(Post).where(Post.id == post_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _resolve_tags(db: AsyncSession, tag_ids: list[str]) -> list[Tag]:
    if not tag_ids:
        return []
    ids = [parse_uuid(t, "tagIds") for t in tag_ids]
    result = await db.execute(select(Tag).where(Tag.id.in_(ids)))
    return list(result.scalars().all())


def _require_owner_or_admin(post: Post, user: User):
    if post.author_id != user.id and not is_admin(user):
        raise HTTPException(status_code=403, detail="You can only modify your own posts")


def _validate_title(title: str | None) -> str:
    title = (title or "").strip()
    if not 1 <= len(title) <= 200:
        raise HTTPException(status_code=400, detail="Title must be 1-200 characters")
    return title


# ── Endpoints ───────────────────────────────────────────────────────────

@router.get("")
async def list_posts(
    page: int = Query(1),
    limit: int = Query(10),
    search: str | None = Query(None),
    status: str | None = Query(None),
    author_id: str | None = Query(None, alias="authorId"),
    sort_by: str = Query("createdAt", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    db: AsyncSession = Depends(get_db),
):
    page, limit = page_params(page, limit)
    conditions = []
    if search:
        conditions.append(or_(Post.title.contains(search), Post.content.contains(search)))
    if status:
        conditions.append(Post.status == status)
    if author_id:
        conditions.append(Post.author_id == parse_uuid(author_id, "authorId"))

    total = (await db.execute(select(func.count()).select_from(Post).where(*conditions))).scalar() or 0

    column = SORT_COLUMNS.get(sort_by, Post.created_at)
    result = await db.execute(
        select(Post)
        .where(*conditions)
        .order_by(column.asc() if sort_order.lower() == "asc" else column.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    posts = result.scalars().all()
    return ok([post_response(p) for p in posts], pagination=page_meta(page, limit, total))


@router.get("/stats")
async def post_stats(
    _: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(select(Post.status, func.count()).group_by(Post.status))
    by_status = {status: count for status, count in result.all()}
    views = (await db.execute(select(func.coalesce(func.sum(Post.views), 0)))).scalar() or 0
    return ok({
        "totalPosts": sum(by_status.values()),
        "publishedPosts": by_status.get(PostStatus.PUBLISHED.value, 0),
        "draftPosts": by_status.get(PostStatus.DRAFT.value, 0),
        "archivedPosts": by_status.get(PostStatus.ARCHIVED.value, 0),
        "totalViews": int(views),
    })


@router.get("/{post_id}")
async def get_post(post_id: str, db: AsyncSession = Depends(get_db)):
    """Fetch one post with author, tags and comments. Counts a view."""
    post = await _load_post(db, parse_uuid(post_id))
    if not post:
        raise HTTPException(status_code=404, detail="Post not found")

    post.views = (post.views or 0) + 1
    await db.flush()
    return ok(post_response(post, with_comments=True))


@router.post("", status_code=201)
async def create_post(
    payload: PostCreateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    title = _validate_title(payload.title)
    if not payload.content:
        raise HTTPException(status_code=400, detail="Content is required")

    post = Post(
        title=title,
        content=payload.content,
        summary=payload.summary,
        status=payload.status.value,
        author_id=user.id,
        tags=await _resolve_tags(db, payload.tag_ids),
    )
    db.add(post)
    await db.flush()

    post = await _load_post(db, post.id)
    logger.info(f"Post {post.id} created by {user.username}")
    return ok(post_response(post), message="Post created")


@router.put("/{post_id}")
async def update_post(
    post_id: str,
    payload: PostUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    post = await _load_post(db, parse_uuid(post_id))
    if not post:
        raise HTTPException(status_code=404, detail="Post not found")
    _require_owner_or_admin(post, user)

    if payload.title is not None:
        post.title = _validate_title(payload.title)
    if payload.content is not None:
        if not payload.content:
            raise HTTPException(status_code=400, detail="Content is required")
        post.content = payload.content
    if payload.summary is not None:
        post.summary = payload.summary
    if payload.status is not None:
        post.status = payload.status.value
    if payload.tag_ids is not None:
        post.tags = await _resolve_tags(db, payload.tag_ids)

    await db.flush()
    post = await _load_post(db, post.id)
    return ok(post_response(post), message="Post updated")


@router.delete("/{post_id}")
async def delete_post(
    post_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    post = await _load_post(db, parse_uuid(post_id))
    if not post:
        raise HTTPException(status_code=404, detail="Post not found")
    _require_owner_or_admin(post, user)

    await db.delete(post)
    await db.flush()
    return ok(message="Post deleted")
