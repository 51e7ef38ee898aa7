"""
Push Templates Router — notification content bound to a config and an audience. Admin only.
"""

import json
import time
import random
import string
import logging
from datetime import datetime
from typing import Any
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_

from opsconsole.auth import require_admin
from opsconsole.database import get_db
from opsconsole.models import PushTemplate
from opsconsole.services.push_token_service import parse_tags
from opsconsole.utils import ApiModel, ok, parse_bool

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/push-templates", tags=["Push"], dependencies=[Depends(require_admin)])


# ── Schemas ────────────────────────────────────────────────────────────

class TemplateRequest(ApiModel):
    name: str | None = None
    template_key: str | None = None
    push_config_id: int | None = None
    push_audience_id: int | None = None
    title: str | None = None
    body: str | None = None
    data_payload: Any = None
    click_action: str | None = None
    image_url: str | None = None
    description: str | None = None
    tags: Any = None
    enabled: Any = None


class TemplateResponse(ApiModel):
    id: int
    name: str
    template_key: str
    push_config_id: int
    push_config_name: str | None = None
    push_audience_id: int | None = None
    push_audience_name: str | None = None
    title: str
    body: str
    data_payload: dict | None = None
    click_action: str | None = None
    image_url: str | None = None
    description: str | None = None
    tags: list[str] = []
    enabled: bool
    created_at: datetime
    updated_at: datetime | None = None


def template_response(t: PushTemplate) -> TemplateResponse:
    return TemplateResponse(
        id=t.id,
        name=t.name,
        template_key=t.template_key,
        push_config_id=t.push_config_id,
        push_config_name=t.push_config.name if t.push_config else None,
        push_audience_id=t.push_audience_id,
        push_audience_name=t.push_audience.name if t.push_audience else None,
        title=t.title,
        body=t.body,
        data_payload=t.data_payload,
        click_action=t.click_action,
        image_url=t.image_url,
        description=t.description,
        tags=t.tags or [],
        enabled=bool(t.enabled),
        created_at=t.created_at,
        updated_at=t.updated_at,
    )


def generate_template_key() -> str:
    """tpl_<epoch ms>_<6 random base36 chars>"""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=6))
    return f"tpl_{int(time.time() * 1000)}_{suffix}"


def parse_data_payload(value: Any) -> dict | None:
    """Accept a dict or a JSON object string. Anything else is a 400."""
    if value is None or value == "":
        return None
    if isinstance(value, dict):
        return value
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            raise HTTPException(status_code=400, detail="dataPayload is not valid JSON")
        if isinstance(parsed, dict):
            return parsed
    raise HTTPException(status_code=400, detail="dataPayload must be a JSON object")


async def _load_template(db: AsyncSession, template_id: int) -> PushTemplate | None:
    result = await db.execute(
        select(PushTemplate).where(PushTemplate.id == template_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _ensure_unique(db: AsyncSession, template_key: str, push_config_id: int, exclude_id: int | None = None):
    query = select(PushTemplate).where(
        PushTemplate.template_key == template_key,
        PushTemplate.push_config_id == push_config_id,
    )
    if exclude_id is not None:
        query = query.where(PushTemplate.id != exclude_id)
    if (await db.execute(query)).scalar_one_or_none():
        raise HTTPException(status_code=409, detail="Template key already exists for this push config")


# ── Endpoints ───────────────────────────────────────────────────────────

@router.get("")
async def list_templates(
    search: str | None = Query(None),
    push_config_id: int | None = Query(None, alias="pushConfigId"),
    push_audience_id: int | None = Query(None, alias="pushAudienceId"),
    enabled: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    query = select(PushTemplate)
    if search:
        query = query.where(or_(
            PushTemplate.name.contains(search),
            PushTemplate.template_key.contains(search),
            PushTemplate.title.contains(search),
        ))
    if push_config_id:
        query = query.where(PushTemplate.push_config_id == push_config_id)
    if push_audience_id:
        query = query.where(PushTemplate.push_audience_id == push_audience_id)
    if enabled is not None:
        query = query.where(PushTemplate.enabled.is_(parse_bool(enabled)))

    result = await db.execute(query.order_by(PushTemplate.updated_at.desc()))
    return ok([template_response(t) for t in result.scalars().all()])


@router.get("/{template_id}")
async def get_template(template_id: int, db: AsyncSession = Depends(get_db)):
    template = await _load_template(db, template_id)
    if not template:
        raise HTTPException(status_code=404, detail="Template not found")
    return ok(template_response(template))


@router.post("", status_code=201)
async def create_template(payload: TemplateRequest, db: AsyncSession = Depends(get_db)):
    if not (payload.name and payload.title and payload.body and payload.push_config_id and payload.push_audience_id):
        raise HTTPException(
            status_code=400,
            detail="Required fields: name, pushConfigId, pushAudienceId, title, body",
        )

    data_payload = parse_data_payload(payload.data_payload)
    template_key = (payload.template_key or "").strip() or generate_template_key()
    await _ensure_unique(db, template_key, payload.push_config_id)

    template = PushTemplate(
        name=payload.name,
        template_key=template_key,
        push_config_id=payload.push_config_id,
        push_audience_id=payload.push_audience_id,
        title=payload.title,
        body=payload.body,
        data_payload=data_payload,
        click_action=payload.click_action or None,
        image_url=payload.image_url or None,
        description=payload.description or None,
        tags=parse_tags(payload.tags) or None,
        enabled=True if payload.enabled is None else parse_bool(payload.enabled),
    )
    db.add(template)
    await db.flush()

    template = await _load_template(db, template.id)
    logger.info(f"Push template {template.id} ({template.template_key}) created")
    return ok(template_response(template), message="Template created")


@router.put("/{template_id}")
async def update_template(template_id: int, payload: TemplateRequest, db: AsyncSession = Depends(get_db)):
    template = await _load_template(db, template_id)
    if not template:
        raise HTTPException(status_code=404, detail="Template not found")

    updates = payload.model_dump(exclude_unset=True)
    if "data_payload" in updates:
        updates["data_payload"] = parse_data_payload(updates["data_payload"])
    if "tags" in updates:
        updates["tags"] = parse_tags(updates["tags"]) or None
    if "enabled" in updates:
        updates["enabled"] = parse_bool(updates["enabled"])
    if "template_key" in updates:
        updates["template_key"] = (updates["template_key"] or "").strip() or template.template_key

    key = updates.get("template_key", template.template_key)
    config_id = updates.get("push_config_id") or template.push_config_id
    if key != template.template_key or config_id != template.push_config_id:
        await _ensure_unique(db, key, config_id, exclude_id=template.id)

    for field, value in updates.items():
        if value is None and field in ("name", "push_config_id", "title", "body"):
            continue
        setattr(template, field, value)

    await db.flush()
    template = await _load_template(db, template_id)
    return ok(template_response(template), message="Template updated")


@router.delete("/{template_id}")
async def delete_template(template_id: int, db: AsyncSession = Depends(get_db)):
    template = await db.get(PushTemplate, template_id)
    if template:
        await db.delete(template)
        await db.flush()
    return ok(message="Template deleted")
