"""
Push Configs Router — FCM credential sets per app/platform. Admin only.
"""

import logging
from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from opsconsole.auth import require_admin
from opsconsole.crypto import encrypt_value, decrypt_value
from opsconsole.database import get_db
from opsconsole.models import PushConfig, PushPlatform, User
from opsconsole.utils import ApiModel, ok, parse_bool

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/push-configs", tags=["Push"], dependencies=[Depends(require_admin)])

SECRET_FIELDS = ("server_key", "service_account")


# ── Schemas ────────────────────────────────────────────────────────────

class PushConfigRequest(ApiModel):
    name: str | None = None
    app_id: str | None = None
    platform: PushPlatform | None = None
    project_id: str | None = None
    server_key: str | None = None
    service_account: str | None = None
    vapid_key: str | None = None
    description: str | None = None
    enabled: bool | None = None


class PushConfigResponse(ApiModel):
    id: int
    name: str
    app_id: str
    platform: str
    project_id: str
    server_key: str | None = None
    service_account: str | None = None
    vapid_key: str | None = None
    description: str | None = None
    enabled: bool
    created_at: datetime
    updated_at: datetime | None = None


def push_config_response(c: PushConfig) -> PushConfigResponse:
    return PushConfigResponse(
        id=c.id,
        name=c.name,
        app_id=c.app_id,
        platform=c.platform,
        project_id=c.project_id,
        server_key=decrypt_value(c.server_key),
        service_account=decrypt_value(c.service_account),
        vapid_key=c.vapid_key,
        description=c.description,
        enabled=bool(c.enabled),
        created_at=c.created_at,
        updated_at=c.updated_at,
    )


async def _get_config_or_404(db: AsyncSession, config_id: int) -> PushConfig:
    config = await db.get(PushConfig, config_id)
    if not config:
        raise HTTPException(status_code=404, detail="Push config not found")
    return config


async def _ensure_unique(db: AsyncSession, app_id: str, platform: str, exclude_id: int | None = None):
    query = select(PushConfig).where(PushConfig.app_id == app_id, PushConfig.platform == platform)
    if exclude_id is not None:
        query = query.where(PushConfig.id != exclude_id)
    if (await db.execute(query)).scalar_one_or_none():
        raise HTTPException(status_code=409, detail="A push config for this appId and platform already exists")


# ── Endpoints ───────────────────────────────────────────────────────────

@router.get("")
async def list_push_configs(
    app_id: str | None = Query(None, alias="appId"),
    platform: str | None = Query(None),
    enabled: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    query = select(PushConfig)
    if app_id:
        query = query.where(PushConfig.app_id == app_id)
    if platform:
        query = query.where(PushConfig.platform == platform)
    if enabled is not None:
        query = query.where(PushConfig.enabled.is_(parse_bool(enabled)))

    result = await db.execute(query.order_by(PushConfig.updated_at.desc()))
    return ok([push_config_response(c) for c in result.scalars().all()])


@router.get("/{config_id}")
async def get_push_config(config_id: int, db: AsyncSession = Depends(get_db)):
    return ok(push_config_response(await _get_config_or_404(db, config_id)))


@router.post("", status_code=201)
async def create_push_config(
    payload: PushConfigRequest,
    user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    if not (payload.name and payload.app_id and payload.platform and payload.project_id):
        raise HTTPException(status_code=400, detail="Required fields: name, appId, platform, projectId")

    await _ensure_unique(db, payload.app_id, payload.platform.value)

    config = PushConfig(
        name=payload.name,
        app_id=payload.app_id,
        platform=payload.platform.value,
        project_id=payload.project_id,
        server_key=encrypt_value(payload.server_key or None),
        service_account=encrypt_value(payload.service_account or None),
        vapid_key=payload.vapid_key or None,
        description=payload.description or None,
        enabled=True if payload.enabled is None else payload.enabled,
    )
    db.add(config)
    await db.flush()
    logger.info(f"Push config {config.id} ({config.app_id}/{config.platform}) created by {user.username}")
    return ok(push_config_response(config), message="Push config created")


@router.put("/{config_id}")
async def update_push_config(
    config_id: int,
    payload: PushConfigRequest,
    db: AsyncSession = Depends(get_db),
):
    config = await _get_config_or_404(db, config_id)
    updates = payload.model_dump(exclude_unset=True)
    if "platform" in updates and updates["platform"] is not None:
        updates["platform"] = updates["platform"].value

    app_id = updates.get("app_id") or config.app_id
    platform = updates.get("platform") or config.platform
    if app_id != config.app_id or platform != config.platform:
        await _ensure_unique(db, app_id, platform, exclude_id=config.id)

    for field, value in updates.items():
        if field in SECRET_FIELDS:
            value = encrypt_value(value or None)
        elif value is None and field in ("name", "app_id", "platform", "project_id", "enabled"):
            continue
        setattr(config, field, value)

    await db.flush()
    return ok(push_config_response(config), message="Push config updated")


@router.delete("/{config_id}")
async def delete_push_config(config_id: int, db: AsyncSession = Depends(get_db)):
    config = await _get_config_or_404(db, config_id)
    await db.delete(config)
    await db.flush()
    return ok(message="Push config deleted")
