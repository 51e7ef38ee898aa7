"""
Attribution Router — Adjust / AppsFlyer event series, lookups, raw details,
CSV export and per-user favorite ad sequences.

Series rows: {query_date, event_<sanitized name>: distinct users, ...}.
Paginated views are descending by date, charts ascending.
"""

import logging
from datetime import date
from typing import Any
from fastapi import APIRouter, Depends, HTTPException, Query, Body
from sqlalchemy.ext.asyncio import AsyncSession

from opsconsole.auth import get_current_user
from opsconsole.database import get_db, get_report_db
from opsconsole.models import User
from opsconsole.services import favorites_service, reporting_service
from opsconsole.services.csv_export import csv_response
from opsconsole.utils import event_column, ok, page_params, page_meta

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Attribution"], dependencies=[Depends(get_current_user)])


def _source(data_source: str | None) -> str:
    source = (data_source or "adjust").lower()
    if source not in reporting_service.DATA_SOURCES:
        raise HTTPException(status_code=400, detail="dataSource must be 'adjust' or 'appsflyer'")
    return source


def _range(start_date: str | None, end_date: str | None) -> tuple[date, date]:
    try:
        return reporting_service.resolve_range(start_date, end_date)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid date, expected YYYY-MM-DD")


async def _series(db, source, start_date, end_date, app_id, media_source, ad_sequence):
    start, end = _range(start_date, end_date)
    return await reporting_service.attribution_series(
        db, source, start, end,
        app_id=app_id, media_source=media_source, ad_sequence=ad_sequence,
    )


def _page_desc(rows: list, page: int, limit: int) -> tuple[list, dict]:
    rows = list(reversed(rows))
    return reporting_service.slice_page(rows, page, limit), page_meta(page, limit, len(rows))


# ── Lookups ────────────────────────────────────────────────────────────

@router.get("/attribution-app-ids")
async def attribution_app_ids(db: AsyncSession = Depends(get_report_db)):
    return ok(await reporting_service.app_ids(db))


@router.get("/attribution-media-sources")
async def attribution_media_sources(db: AsyncSession = Depends(get_report_db)):
    return ok(await reporting_service.media_sources(db))


@router.get("/attribution-ad-sequences")
async def attribution_ad_sequences(
    media_source: str | None = Query(None, alias="mediaSource"),
    db: AsyncSession = Depends(get_report_db),
):
    return ok(await reporting_service.ad_sequences(db, media_source))


@router.get("/attribution-event-names")
async def attribution_event_names(
    data_source: str = Query("adjust", alias="dataSource"),
    db: AsyncSession = Depends(get_report_db),
):
    return ok(await reporting_service.event_names(db, _source(data_source)))


# ── Series ─────────────────────────────────────────────────────────────

@router.get("/attribution-data")
async def attribution_data(
    start_date: str | None = Query(None, alias="startDate"),
    end_date: str | None = Query(None, alias="endDate"),
    page: int = Query(1),
    page_size: int = Query(10, alias="pageSize"),
    data_source: str = Query("adjust", alias="dataSource"),
    app_id: str | None = Query(None, alias="appId"),
    media_source: str | None = Query(None, alias="mediaSource"),
    ad_sequence: str | None = Query(None, alias="adSequence"),
    db: AsyncSession = Depends(get_report_db),
):
    page, page_size = page_params(page, page_size)
    rows, names = await _series(db, _source(data_source), start_date, end_date, app_id, media_source, ad_sequence)
    items, pagination = _page_desc(rows, page, page_size)
    return ok(items, pagination=pagination, eventNames=names)


@router.get("/attribution-chart")
async def attribution_chart(
    start_date: str | None = Query(None, alias="startDate"),
    end_date: str | None = Query(None, alias="endDate"),
    data_source: str = Query("adjust", alias="dataSource"),
    app_id: str | None = Query(None, alias="appId"),
    media_source: str | None = Query(None, alias="mediaSource"),
    ad_sequence: str | None = Query(None, alias="adSequence"),
    db: AsyncSession = Depends(get_report_db),
):
    rows, names = await _series(db, _source(data_source), start_date, end_date, app_id, media_source, ad_sequence)
    return ok(rows, eventNames=names)


@router.get("/attribution-comparison")
async def attribution_comparison(
    start_date: str | None = Query(None, alias="startDate"),
    end_date: str | None = Query(None, alias="endDate"),
    page: int = Query(1),
    page_size: int = Query(10, alias="pageSize"),
    app_id: str | None = Query(None, alias="appId"),
    media_source: str | None = Query(None, alias="mediaSource"),
    ad_sequence: str | None = Query(None, alias="adSequence"),
    db: AsyncSession = Depends(get_report_db),
):
    """Adjust and AppsFlyer side by side; pagination follows the Adjust series."""
    page, page_size = page_params(page, page_size)
    adjust_rows, adjust_names = await _series(db, "adjust", start_date, end_date, None, None, None)
    af_rows, af_names = await _series(db, "appsflyer", start_date, end_date, app_id, media_source, ad_sequence)

    adjust_page, pagination = _page_desc(adjust_rows, page, page_size)
    af_page, _ = _page_desc(af_rows, page, page_size)
    return ok(
        {"adjust": adjust_page, "appsflyer": af_page},
        pagination=pagination,
        eventNames={"adjust": adjust_names, "appsflyer": af_names},
    )


@router.get("/attribution-details")
async def attribution_details(
    date_str: str | None = Query(None, alias="date"),
    event_name: str | None = Query(None, alias="eventName"),
    page: int = Query(1),
    page_size: int = Query(20, alias="pageSize"),
    data_source: str = Query("appsflyer", alias="dataSource"),
    app_id: str | None = Query(None, alias="appId"),
    media_source: str | None = Query(None, alias="mediaSource"),
    ad_sequence: str | None = Query(None, alias="adSequence"),
    db: AsyncSession = Depends(get_report_db),
):
    """Raw callback/event rows behind one day's counts."""
    if not date_str:
        raise HTTPException(status_code=400, detail="date is required")
    try:
        day = reporting_service.parse_day(date_str)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid date, expected YYYY-MM-DD")

    page, page_size = page_params(page, page_size, default_limit=20)
    items, total = await reporting_service.attribution_details(
        db, _source(data_source), day, event_name, page, page_size,
        app_id=app_id, media_source=media_source, ad_sequence=ad_sequence,
    )
    return ok(items, pagination=page_meta(page, page_size, total))


@router.get("/attribution-export")
async def attribution_export(
    start_date: str | None = Query(None, alias="startDate"),
    end_date: str | None = Query(None, alias="endDate"),
    data_source: str = Query("adjust", alias="dataSource"),
    app_id: str | None = Query(None, alias="appId"),
    media_source: str | None = Query(None, alias="mediaSource"),
    ad_sequence: str | None = Query(None, alias="adSequence"),
    db: AsyncSession = Depends(get_report_db),
):
    source = _source(data_source)
    rows, names = await _series(db, source, start_date, end_date, app_id, media_source, ad_sequence)
    columns = [("query_date", "date")] + [(event_column(n), n) for n in names]
    start, end = _range(start_date, end_date)
    return csv_response(f"attribution_{source}_{start}_{end}.csv", columns, reversed(rows))


# ── Favorites ──────────────────────────────────────────────────────────

@router.get("/attribution-favorites")
async def get_favorites(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return ok(await favorites_service.get_favorites(db, user.id))


@router.post("/attribution-favorites")
async def post_favorites(
    payload: dict[str, Any] | None = Body(None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    {mediaSource, adSequence} toggles one favorite -> {favorites, added}.
    {favorites?, additions?, removals?} syncs in bulk -> {favorites}.
    """
    payload = payload or {}
    if "mediaSource" in payload or "adSequence" in payload:
        try:
            favorites, added = await favorites_service.toggle_favorite(
                db, user.id, str(payload.get("mediaSource") or ""), str(payload.get("adSequence") or "")
            )
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return ok({"favorites": favorites, "added": added})

    lists = {}
    for field in ("favorites", "additions", "removals"):
        value = payload.get(field)
        if value is not None and not isinstance(value, list):
            raise HTTPException(status_code=400, detail=f"{field} must be a list")
        lists[field] = value

    favorites = await favorites_service.sync_favorites(db, user.id, **lists)
    return ok({"favorites": favorites})
