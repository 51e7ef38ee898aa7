"""
Rating Router — distinct users per day and rating level (`user_rating`).
Without startDate/endDate every row is aggregated.
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from opsconsole.auth import get_current_user
from opsconsole.database import get_report_db
from opsconsole.services import reporting_service
from opsconsole.services.csv_export import csv_response
from opsconsole.utils import ok

router = APIRouter(prefix="/rating-data", tags=["Rating"], dependencies=[Depends(get_current_user)])

EXPORT_COLUMNS = [("query_date", "日期"), ("rating_level", "评级"), ("user_count", "人数")]


async def _rows(db: AsyncSession, start_date: str | None, end_date: str | None) -> list[dict]:
    try:
        start = reporting_service.parse_day(start_date)
        end = reporting_service.parse_day(end_date)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid date, expected YYYY-MM-DD")
    return await reporting_service.rating_rows(db, start, end)


@router.get("")
async def rating_data(
    start_date: str | None = Query(None, alias="startDate"),
    end_date: str | None = Query(None, alias="endDate"),
    db: AsyncSession = Depends(get_report_db),
):
    return ok(await _rows(db, start_date, end_date))


@router.get("/export")
async def rating_export(
    start_date: str | None = Query(None, alias="startDate"),
    end_date: str | None = Query(None, alias="endDate"),
    db: AsyncSession = Depends(get_report_db),
):
    return csv_response("rating_data.csv", EXPORT_COLUMNS, await _rows(db, start_date, end_date))
