"""
API Partners Router — loan-partner integration configs (`api_partner_conf`).

Field names stay snake_case on the wire; the partner apps read these
records directly. secret_key is encrypted at rest and never returned by
the unauthenticated endpoints.
"""

import logging
from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, Query, UploadFile, File, Form
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, or_

from opsconsole.auth import get_current_user
from opsconsole.config import get_settings
from opsconsole.crypto import encrypt_value, decrypt_value
from opsconsole.database import get_db
from opsconsole.models import ApiPartnerConfig, User
from opsconsole.services import oss_service
from opsconsole.utils import ok, page_params, page_meta

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api-partner-configs", tags=["API Partners"])

SORT_COLUMNS = {
    "created_at": ApiPartnerConfig.created_at,
    "updated_at": ApiPartnerConfig.updated_at,
    "app_id": ApiPartnerConfig.app_id,
    "partner_name": ApiPartnerConfig.partner_name,
}


# ── Schemas ────────────────────────────────────────────────────────────

class ApiPartnerPayload(BaseModel):
    app_id: int | None = None
    partner_logo: str | None = None
    partner_name: str | None = None
    partner_description: str | None = None
    partner_phone: str | None = None
    partner_api: str | None = None
    type: int | None = None
    secret_key: str | None = None
    default_amount: float | None = None
    default_loan_days: int | None = None
    default_interest_rate: float | None = None
    extend: str | None = None
    ios_download_url: str | None = None
    android_download_url: str | None = None
    admittance_url: str | None = None
    credential_stuffing_url: str | None = None
    push_user_data_url: str | None = None
    credit_data_url: str | None = None
    loan_product_url: str | None = None
    loan_contract_url: str | None = None
    submit_loan_url: str | None = None
    loan_preview_url: str | None = None
    bank_list_url: str | None = None
    bind_bank_url: str | None = None
    set_default_bank_url: str | None = None
    pre_bind: str | None = None
    get_bank: str | None = None
    user_loan_amt: str | None = None
    order_status_url: str | None = None
    repay_plan_url: str | None = None
    repay_details_url: str | None = None
    contract_sign_url: str | None = None
    query_user_url: str | None = None
    status: int | None = None
    is_head: int | None = None
    add_bank: int | None = None
    is_sign: int | None = None
    is_reload: int | None = None


class ApiPartnerResponse(ApiPartnerPayload):
    id: int
    created_at: datetime | None = None
    updated_at: datetime | None = None


def partner_response(p: ApiPartnerConfig, include_secret: bool = True) -> ApiPartnerResponse:
    data = {name: getattr(p, name) for name in ApiPartnerResponse.model_fields}
    data["secret_key"] = decrypt_value(p.secret_key) if include_secret else None
    return ApiPartnerResponse(**data)


async def _get_partner_or_404(db: AsyncSession, partner_id: int) -> ApiPartnerConfig:
    partner = await db.get(ApiPartnerConfig, partner_id)
    if not partner:
        raise HTTPException(status_code=404, detail="API partner config not found")
    return partner


# ── Public ─────────────────────────────────────────────────────────────

@router.get("/enabled")
async def enabled_partners(db: AsyncSession = Depends(get_db)):
    """All partners with status 1, newest first."""
    result = await db.execute(
        select(ApiPartnerConfig)
        .where(ApiPartnerConfig.status == 1)
        .order_by(ApiPartnerConfig.created_at.desc())
    )
    return ok([partner_response(p, include_secret=False) for p in result.scalars().all()])


@router.get("/app/{app_id}")
async def partner_by_app_id(app_id: int, db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(ApiPartnerConfig).where(ApiPartnerConfig.app_id == app_id))
    partner = result.scalar_one_or_none()
    if not partner:
        raise HTTPException(status_code=404, detail="No partner config for this app id")
    return ok(partner_response(partner, include_secret=False))


# ── Authenticated ──────────────────────────────────────────────────────

@router.post("/upload-logo")
async def upload_logo(
    file: UploadFile | None = File(None),
    app_id: str | None = Form(None, alias="appId"),
    user: User = Depends(get_current_user),
):
    """Upload a partner logo to OSS (folder `cpi_logo`). With appId the object name is stable."""
    if file is None:
        raise HTTPException(status_code=400, detail="No file uploaded")

    data = await file.read()
    max_bytes = get_settings().upload_max_bytes
    if not data:
        raise HTTPException(status_code=400, detail="File is empty")
    if len(data) > max_bytes:
        raise HTTPException(status_code=400, detail=f"File exceeds the {max_bytes // (1024 * 1024)}MB limit")

    try:
        url = await oss_service.upload_bytes(
            data,
            filename=file.filename,
            content_type=file.content_type,
            folder=oss_service.LOGO_FOLDER,
            app_id=app_id or None,
        )
    except oss_service.OssError as e:
        raise HTTPException(status_code=500, detail=str(e))

    logger.info(f"Partner logo uploaded by {user.username}: {url}")
    return ok({"url": url}, message="Upload successful")


@router.get("")
async def list_partners(
    page: int = Query(1),
    limit: int = Query(10),
    status: int | None = Query(None),
    type: int | None = Query(None),
    search: str | None = Query(None),
    sort_by: str = Query("created_at", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    _: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    page, limit = page_params(page, limit)
    conditions = []
    if status is not None:
        conditions.append(ApiPartnerConfig.status == status)
    if type is not None:
        conditions.append(ApiPartnerConfig.type == type)
    if search:
        conditions.append(or_(
            ApiPartnerConfig.partner_name.contains(search),
            ApiPartnerConfig.partner_description.contains(search),
        ))

    total = (await db.execute(
        select(func.count()).select_from(ApiPartnerConfig).where(*conditions)
    )).scalar() or 0

    column = SORT_COLUMNS.get(sort_by, ApiPartnerConfig.created_at)
    result = await db.execute(
        select(ApiPartnerConfig)
        .where(*conditions)
        .order_by(column.asc() if sort_order.lower() == "asc" else column.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    items = [partner_response(p) for p in result.scalars().all()]
    return ok(items, pagination=page_meta(page, limit, total))


@router.get("/{partner_id}")
async def get_partner(
    partner_id: int,
    _: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return ok(partner_response(await _get_partner_or_404(db, partner_id)))


@router.post("", status_code=201)
async def create_partner(
    payload: ApiPartnerPayload,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not (payload.app_id and payload.partner_name and payload.partner_api and payload.secret_key):
        raise HTTPException(
            status_code=400,
            detail="Missing required fields: app_id, partner_name, partner_api, secret_key",
        )

    existing = await db.execute(select(ApiPartnerConfig).where(ApiPartnerConfig.app_id == payload.app_id))
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=400, detail="This app_id already exists")

    values = payload.model_dump(exclude_none=True)
    values["secret_key"] = encrypt_value(payload.secret_key)
    partner = ApiPartnerConfig(**values)
    db.add(partner)
    await db.flush()
    logger.info(f"API partner {partner.partner_name} (app {partner.app_id}) created by {user.username}")
    return ok(partner_response(partner), message="API partner config created")


@router.put("/{partner_id}")
async def update_partner(
    partner_id: int,
    payload: ApiPartnerPayload,
    _: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    partner = await _get_partner_or_404(db, partner_id)
    updates = payload.model_dump(exclude_unset=True)
    if not updates:
        raise HTTPException(status_code=400, detail="No fields to update")

    if "app_id" in updates and updates["app_id"] != partner.app_id:
        clash = await db.execute(
            select(ApiPartnerConfig).where(
                ApiPartnerConfig.app_id == updates["app_id"],
                ApiPartnerConfig.id != partner_id,
            )
        )
        if clash.scalar_one_or_none():
            raise HTTPException(status_code=400, detail="This app_id already exists")

    for field, value in updates.items():
        if field == "secret_key":
            if not value:
                continue
            value = encrypt_value(value)
        elif value is None and field in ("app_id", "partner_name", "partner_api"):
            continue
        setattr(partner, field, value)

    await db.flush()
    return ok(partner_response(partner), message="API partner config updated")


@router.delete("/{partner_id}")
async def delete_partner(
    partner_id: int,
    _: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    partner = await _get_partner_or_404(db, partner_id)
    await db.delete(partner)
    await db.flush()
    return ok(message="API partner config deleted")
