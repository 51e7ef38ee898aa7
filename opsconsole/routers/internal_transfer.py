"""
Internal Transfer Router — daily funnel from registration to loan.

Columns: 注册人数, 实名认证完成人数, 获取个信人数, 个人信息推送成功人数,
授信成功人数, 借款成功人数 (distinct users per day).
"""

import logging
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from opsconsole.auth import get_current_user
from opsconsole.database import get_report_db
from opsconsole.services import reporting_service
from opsconsole.services.csv_export import csv_response
from opsconsole.utils import ok, page_params, page_meta

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Internal Transfer"], dependencies=[Depends(get_current_user)])

EXPORT_COLUMNS = [("query_date", "日期")] + [(label, label) for label in reporting_service.FUNNEL_LABELS]


async def _series(db: AsyncSession, start_date: str | None, end_date: str | None) -> list[dict]:
    try:
        start, end = reporting_service.resolve_range(start_date, end_date)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid date, expected YYYY-MM-DD")
    return await reporting_service.internal_transfer_series(db, start, end)


@router.get("/internal-transfer-data")
async def internal_transfer_data(
    start_date: str | None = Query(None, alias="startDate"),
    end_date: str | None = Query(None, alias="endDate"),
    page: int = Query(1),
    page_size: int = Query(10, alias="pageSize"),
    db: AsyncSession = Depends(get_report_db),
):
    page, page_size = page_params(page, page_size)
    rows = list(reversed(await _series(db, start_date, end_date)))
    return ok(
        reporting_service.slice_page(rows, page, page_size),
        pagination=page_meta(page, page_size, len(rows)),
    )


@router.get("/internal-transfer-chart")
async def internal_transfer_chart(
    start_date: str | None = Query(None, alias="startDate"),
    end_date: str | None = Query(None, alias="endDate"),
    db: AsyncSession = Depends(get_report_db),
):
    return ok(await _series(db, start_date, end_date))


@router.get("/internal-transfer-details")
async def internal_transfer_details(
    date_str: str | None = Query(None, alias="date"),
    db: AsyncSession = Depends(get_report_db),
):
    """Per-stage counts for one day (defaults to today)."""
    try:
        day = reporting_service.parse_day(date_str) or reporting_service.resolve_range(None, None)[1]
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid date, expected YYYY-MM-DD")
    stages = await reporting_service.internal_transfer_details(db, day)
    return ok({"date": day.isoformat(), "stages": stages})


@router.get("/internal-transfer-export")
async def internal_transfer_export(
    start_date: str | None = Query(None, alias="startDate"),
    end_date: str | None = Query(None, alias="endDate"),
    db: AsyncSession = Depends(get_report_db),
):
    rows = await _series(db, start_date, end_date)
    logger.info(f"Internal transfer export: {len(rows)} rows")
    return csv_response("internal_transfer.csv", EXPORT_COLUMNS, reversed(rows))
