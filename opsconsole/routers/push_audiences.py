"""
Push Audiences Router — audience CRUD and device-token management. Admin only.

Two routers:
- /push-audiences : named audiences
- /push-tokens    : tokens, audience membership, bulk import (JSON or Excel)
"""

import logging
from datetime import datetime
from typing import Any
from fastapi import APIRouter, Depends, HTTPException, Query, UploadFile, File, Form
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete

from opsconsole.auth import require_admin
from opsconsole.database import get_db
from opsconsole.models import PushAudience, PushToken, push_audience_tokens
from opsconsole.services.csv_export import content_disposition
from opsconsole.services.push_token_service import (
    TEMPLATE_FILENAME,
    XLSX_MEDIA_TYPE,
    build_template_workbook,
    import_tokens,
    normalize_tokens,
    parse_excel_tokens,
    parse_tags,
    set_token_audiences,
)
from opsconsole.utils import ApiModel, ok, parse_bool

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/push-audiences", tags=["Push"], dependencies=[Depends(require_admin)])
token_router = APIRouter(prefix="/push-tokens", tags=["Push"], dependencies=[Depends(require_admin)])


# ── Schemas ────────────────────────────────────────────────────────────

class AudienceRequest(ApiModel):
    name: str | None = None
    description: str | None = None
    tags: Any = None
    status: str | None = None


class AudienceResponse(ApiModel):
    id: int
    name: str
    description: str | None = None
    tags: list[str] = []
    status: str
    created_at: datetime
    updated_at: datetime | None = None


class TokenUpdateRequest(ApiModel):
    token: str | None = None
    tags: Any = None
    status: str | None = None
    audience_ids: list[int] | None = None


class TokenImportRequest(ApiModel):
    tokens: Any = None
    tags: Any = None
    status: str | None = None
    replace: Any = False
    audience_id: int | None = None


class TokenResponse(ApiModel):
    id: int
    token: str
    tags: list[str] = []
    status: str
    last_active_at: datetime | None = None
    audience_ids: list[int] = []
    created_at: datetime
    updated_at: datetime | None = None


def audience_response(a: PushAudience) -> AudienceResponse:
    return AudienceResponse(
        id=a.id,
        name=a.name,
        description=a.description,
        tags=a.tags or [],
        status=a.status,
        created_at=a.created_at,
        updated_at=a.updated_at,
    )


def token_response(t: PushToken) -> TokenResponse:
    return TokenResponse(
        id=t.id,
        token=t.token,
        tags=t.tags or [],
        status=t.status or "active",
        last_active_at=t.last_active_at,
        audience_ids=sorted(a.id for a in t.audiences),
        created_at=t.created_at,
        updated_at=t.updated_at,
    )


async def _load_token(db: AsyncSession, token_id: int) -> PushToken | None:
    result = await db.execute(
        select(PushToken).where(PushToken.id == token_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


# ── Audiences ───────────────────────────────────────────────────────────

@router.get("")
async def list_audiences(db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(PushAudience).order_by(PushAudience.updated_at.desc()))
    return ok([audience_response(a) for a in result.scalars().all()])


@router.post("", status_code=201)
async def create_audience(payload: AudienceRequest, db: AsyncSession = Depends(get_db)):
    if not payload.name:
        raise HTTPException(status_code=400, detail="Audience name is required")

    audience = PushAudience(
        name=payload.name,
        description=payload.description or None,
        tags=parse_tags(payload.tags) or None,
        status=payload.status or "active",
    )
    db.add(audience)
    await db.flush()
    return ok(audience_response(audience), message="Audience created")


@router.put("/{audience_id}")
async def update_audience(audience_id: int, payload: AudienceRequest, db: AsyncSession = Depends(get_db)):
    updates = payload.model_dump(exclude_unset=True)
    audience = await db.get(PushAudience, audience_id)
    if not updates or not audience:
        raise HTTPException(status_code=404, detail="Audience not found")

    for field, value in updates.items():
        if field == "tags":
            value = parse_tags(value) or None
        setattr(audience, field, value)

    await db.flush()
    return ok(audience_response(audience), message="Audience updated")


@router.delete("/{audience_id}")
async def delete_audience(audience_id: int, db: AsyncSession = Depends(get_db)):
    await db.execute(delete(push_audience_tokens).where(push_audience_tokens.c.audience_id == audience_id))
    audience = await db.get(PushAudience, audience_id)
    if audience:
        await db.delete(audience)
    await db.flush()
    return ok(message="Audience deleted")


# ── Tokens ──────────────────────────────────────────────────────────────

@token_router.get("")
async def list_tokens(
    search: str | None = Query(None),
    status: str | None = Query(None),
    audience_id: int | None = Query(None, alias="audienceId"),
    db: AsyncSession = Depends(get_db),
):
    query = select(PushToken)
    if search:
        query = query.where(PushToken.token.contains(search))
    if status:
        query = query.where(PushToken.status == status)
    if audience_id:
        query = query.where(PushToken.audiences.any(PushAudience.id == audience_id))

    result = await db.execute(query.order_by(PushToken.updated_at.desc()))
    return ok([token_response(t) for t in result.scalars().all()])


@token_router.get("/template")
async def download_template():
    """Excel template for token import."""
    return Response(
        content=build_template_workbook(),
        media_type=XLSX_MEDIA_TYPE,
        headers=content_disposition(TEMPLATE_FILENAME),
    )


@token_router.post("/import")
async def import_tokens_json(payload: TokenImportRequest, db: AsyncSession = Depends(get_db)):
    tokens = normalize_tokens(payload.tokens, parse_tags(payload.tags), payload.status)
    if not tokens:
        raise HTTPException(status_code=400, detail="Provide the tokens to import")

    result = await import_tokens(db, tokens, replace=parse_bool(payload.replace), audience_id=payload.audience_id)
    return ok(result, message="Token import finished")


async def _read_excel_tokens(file: UploadFile | None) -> list[str]:
    if file is None:
        raise HTTPException(status_code=400, detail="Upload the Excel template file")
    try:
        tokens = parse_excel_tokens(await file.read())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not tokens:
        raise HTTPException(status_code=400, detail="No tokens found in the Excel file")
    return tokens


@token_router.post("/import-excel")
async def import_tokens_excel(
    file: UploadFile | None = File(None),
    tags: str | None = Form(None),
    status: str | None = Form(None),
    replace: str | None = Form(None),
    audience_id: int | None = Form(None, alias="audienceId"),
    db: AsyncSession = Depends(get_db),
):
    values = await _read_excel_tokens(file)
    default_tags = parse_tags(tags)
    items = [{"token": t, "tags": default_tags, "status": status} for t in values]
    result = await import_tokens(db, items, replace=parse_bool(replace), audience_id=audience_id)
    return ok(result, message="Token import finished")


@token_router.post("/parse-excel")
async def parse_tokens_excel(file: UploadFile | None = File(None)):
    """Parse an uploaded workbook without importing; the UI previews the result."""
    return ok({"tokens": await _read_excel_tokens(file)}, message="Tokens parsed")


@token_router.put("/{token_id}")
async def update_token(token_id: int, payload: TokenUpdateRequest, db: AsyncSession = Depends(get_db)):
    token = await _load_token(db, token_id)
    if not token:
        raise HTTPException(status_code=404, detail="Token not found")

    if payload.token is not None:
        clash = await db.execute(
            select(PushToken).where(PushToken.token == payload.token, PushToken.id != token_id)
        )
        if clash.scalar_one_or_none():
            raise HTTPException(status_code=400, detail="Token already exists")
        token.token = payload.token
    if payload.tags is not None:
        token.tags = parse_tags(payload.tags) or None
    if payload.status is not None:
        token.status = payload.status
    if payload.audience_ids is not None:
        await set_token_audiences(db, token, payload.audience_ids, replace=True)

    await db.flush()
    token = await _load_token(db, token_id)
    return ok(token_response(token), message="Token updated")


@token_router.delete("/{token_id}")
async def delete_token(token_id: int, db: AsyncSession = Depends(get_db)):
    token = await db.get(PushToken, token_id)
    if token:
        await db.delete(token)
        await db.flush()
    return ok(message="Token deleted")
