"""
Reporting Service — Date-series aggregates over the lending-core tables:
attribution events (Adjust / AppsFlyer), the internal-transfer funnel and
user ratings.

Every series is a contiguous run of days starting at the start date and
capped at MAX_SERIES_DAYS, generated here rather than in SQL so the same
queries run on Postgres and SQLite. Days with no events report 0.
"""

import logging
from datetime import date, datetime, time, timedelta
from typing import Optional, Tuple, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, distinct

from opsconsole.utils import event_column
from opsconsole.models import (
    AdjustEventConfig, AdjustEventRecord, AppsflyerCallback,
    UserLoginRecord, UserOcrRecord, UserInfo, UserUploadRecord,
    UserCredit, UserLoan, UserRating,
)

logger = logging.getLogger(__name__)

MAX_SERIES_DAYS = 100
DEFAULT_RANGE_DAYS = 30
DATA_SOURCES = ("adjust", "appsflyer")

# A user completes OCR on a day once all of these events succeed that day
OCR_EVENTS = ("check", "liveness-check", "face-recognition")

# Internal-transfer funnel: (key, column label, date column, counted column, filters)
FUNNEL_STAGES = [
    ("register", "注册人数", UserLoginRecord.request_time, UserLoginRecord.user_id,
     [UserLoginRecord.is_new_user == 1]),
    ("ocr", "实名认证完成人数", UserOcrRecord.created_at, UserOcrRecord.user_id,
     [UserOcrRecord.recognition_status == 1, UserOcrRecord.event_name.in_(OCR_EVENTS)]),
    ("info", "获取个信人数", UserInfo.created_at, UserInfo.user_id, []),
    ("upload", "个人信息推送成功人数", UserUploadRecord.created_at, UserUploadRecord.user_id,
     [UserUploadRecord.status == "success"]),
    ("credit", "授信成功人数", UserCredit.created_at, UserCredit.user_id,
     [UserCredit.credit_status == 2]),
    ("loan", "借款成功人数", UserLoan.created_at, UserLoan.id, [UserLoan.status == 1]),
]
FUNNEL_LABELS = [stage[1] for stage in FUNNEL_STAGES]


# ── Date helpers ──────────────────────────────────────────────────────

def parse_day(value: Optional[str]) -> Optional[date]:
    """'YYYY-MM-DD' (or a longer ISO timestamp) -> date. Raises ValueError."""
    if not value:
        return None
    return date.fromisoformat(value.strip()[:10])


def resolve_range(start: Optional[str], end: Optional[str]) -> Tuple[date, date]:
    """Parse the requested range; defaults to the last 30 days through today."""
    today = date.today()
    start_day = parse_day(start) or today - timedelta(days=DEFAULT_RANGE_DAYS)
    end_day = parse_day(end) or today
    return start_day, end_day


def date_series(start: date, end: date) -> List[date]:
    """Days from start to end inclusive, at most MAX_SERIES_DAYS of them."""
    days = []
    current = start
    while current <= end and len(days) < MAX_SERIES_DAYS:
        days.append(current)
        current += timedelta(days=1)
    return days


def _bounds(days: List[date]) -> Tuple[datetime, datetime]:
    return datetime.combine(days[0], time.min), datetime.combine(days[-1] + timedelta(days=1), time.min)


def _day_key(value) -> str:
    """DATE() comes back as a date on Postgres and as a string on SQLite."""
    if isinstance(value, (date, datetime)):
        return value.strftime("%Y-%m-%d")
    return str(value)[:10]


def _split(value: Optional[str]) -> List[str]:
    return [v.strip() for v in (value or "").split(",") if v.strip()]


def slice_page(rows: list, page: int, limit: int) -> list:
    return rows[(page - 1) * limit:page * limit]


# ── Attribution lookups ───────────────────────────────────────────────

async def adjust_event_names(db: AsyncSession) -> List[str]:
    result = await db.execute(
        select(AdjustEventConfig.event_name).distinct()
        .where(
            AdjustEventConfig.is_enabled == 1,
            AdjustEventConfig.event_name.is_not(None),
            AdjustEventConfig.event_name != "",
        )
        .order_by(AdjustEventConfig.event_name.asc())
    )
    return [row[0] for row in result.all()]


async def appsflyer_event_names(db: AsyncSession) -> List[str]:
    result = await db.execute(
        select(AppsflyerCallback.event_name).distinct()
        .where(AppsflyerCallback.event_name.is_not(None), AppsflyerCallback.event_name != "")
        .order_by(AppsflyerCallback.event_name.asc())
    )
    return [row[0] for row in result.all()]


async def event_names(db: AsyncSession, data_source: str = "adjust") -> List[str]:
    if data_source == "appsflyer":
        return await appsflyer_event_names(db)
    return await adjust_event_names(db)


async def _distinct_appsflyer_values(db: AsyncSession, column, *conditions) -> List[str]:
    result = await db.execute(
        select(column).distinct()
        .where(column.is_not(None), column != "", *conditions)
        .order_by(column.asc())
    )
    return [row[0] for row in result.all()]


async def app_ids(db: AsyncSession) -> List[str]:
    return await _distinct_appsflyer_values(db, AppsflyerCallback.app_id)


async def media_sources(db: AsyncSession) -> List[str]:
    return await _distinct_appsflyer_values(db, AppsflyerCallback.media_source)


async def ad_sequences(db: AsyncSession, media_source: Optional[str] = None) -> List[str]:
    """af_c_id values, optionally narrowed to one or more (comma-separated) media sources."""
    conditions = []
    sources = _split(media_source)
    if sources:
        conditions.append(AppsflyerCallback.media_source.in_(sources))
    return await _distinct_appsflyer_values(db, AppsflyerCallback.af_c_id, *conditions)


# ── Attribution series ────────────────────────────────────────────────

def _appsflyer_filters(app_id: Optional[str], media_source: Optional[str], ad_sequence: Optional[str]) -> list:
    conditions = []
    if app_id:
        conditions.append(AppsflyerCallback.app_id == app_id)
    sources = _split(media_source)
    if sources:
        conditions.append(AppsflyerCallback.media_source.in_(sources))
    sequences = _split(ad_sequence)
    if sequences:
        conditions.append(AppsflyerCallback.af_c_id.in_(sequences))
    return conditions


def _empty_rows(days: List[date], names: List[str]) -> List[dict]:
    return [
        {"query_date": d.strftime("%Y-%m-%d"), **{event_column(n): 0 for n in names}}
        for d in days
    ]


async def attribution_series(
    db: AsyncSession,
    data_source: str,
    start: date,
    end: date,
    app_id: Optional[str] = None,
    media_source: Optional[str] = None,
    ad_sequence: Optional[str] = None,
) -> Tuple[List[dict], List[str]]:
    """
    Per-day distinct-user counts for every known event, ascending by date.
    Adjust counts user_id on status=1 records; AppsFlyer counts
    customer_user_id on processed callbacks and honours the app/media/ad filters.
    """
    names = await event_names(db, data_source)
    days = date_series(start, end)
    if not names or not days:
        return [], names

    lower, upper = _bounds(days)
    if data_source == "appsflyer":
        model = AppsflyerCallback
        user_col = AppsflyerCallback.customer_user_id
        conditions = [
            AppsflyerCallback.callback_status == "processed",
            AppsflyerCallback.customer_user_id.is_not(None),
            *_appsflyer_filters(app_id, media_source, ad_sequence),
        ]
    else:
        model = AdjustEventRecord
        user_col = AdjustEventRecord.user_id
        conditions = [AdjustEventRecord.status == 1]

    day_col = func.date(model.created_at)
    result = await db.execute(
        select(day_col, model.event_name, func.count(distinct(user_col)))
        .where(
            model.event_name.in_(names),
            model.created_at >= lower,
            model.created_at < upper,
            *conditions,
        )
        .group_by(day_col, model.event_name)
    )

    rows = _empty_rows(days, names)
    by_day = {row["query_date"]: row for row in rows}
    for day, event_name, count in result.all():
        row = by_day.get(_day_key(day))
        if row is not None:
            row[event_column(event_name)] += int(count or 0)

    logger.info(f"Attribution series [{data_source}] {start}..{end}: {len(days)} days, {len(names)} events")
    return rows, names


async def attribution_details(
    db: AsyncSession,
    data_source: str,
    day: date,
    event_name: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
    app_id: Optional[str] = None,
    media_source: Optional[str] = None,
    ad_sequence: Optional[str] = None,
) -> Tuple[List[dict], int]:
    """Raw event rows behind one day's counts, newest first."""
    lower = datetime.combine(day, time.min)
    upper = lower + timedelta(days=1)

    if data_source == "appsflyer":
        model = AppsflyerCallback
        conditions = [
            AppsflyerCallback.callback_status == "processed",
            *_appsflyer_filters(app_id, media_source, ad_sequence),
        ]
    else:
        model = AdjustEventRecord
        conditions = [AdjustEventRecord.status == 1]

    conditions += [model.created_at >= lower, model.created_at < upper]
    if event_name:
        conditions.append(model.event_name == event_name)

    total = (await db.execute(select(func.count()).select_from(model).where(*conditions))).scalar() or 0
    result = await db.execute(
        select(model)
        .where(*conditions)
        .order_by(model.created_at.desc(), model.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )

    items = []
    for r in result.scalars().all():
        if data_source == "appsflyer":
            items.append({
                "id": r.id,
                "appsflyer_id": r.appsflyer_id,
                "customer_user_id": r.customer_user_id,
                "app_id": r.app_id,
                "media_source": r.media_source,
                "ad_sequence": r.af_c_id,
                "event_name": r.event_name,
                "callback_status": r.callback_status,
                "created_at": r.created_at,
            })
        else:
            items.append({
                "id": r.id,
                "user_id": r.user_id,
                "event_name": r.event_name,
                "status": r.status,
                "created_at": r.created_at,
            })
    return items, total


# ── Internal-transfer funnel ──────────────────────────────────────────

async def _stage_counts(db: AsyncSession, stage, lower: datetime, upper: datetime) -> dict:
    key, _, date_col, count_col, filters = stage
    day_col = func.date(date_col)
    if key == "ocr":
        completed = (
            select(day_col.label("day"), count_col.label("user_id"))
            .where(date_col >= lower, date_col < upper, *filters)
            .group_by(day_col, count_col)
            .having(func.count(distinct(UserOcrRecord.event_name)) == len(OCR_EVENTS))
            .subquery()
        )
        result = await db.execute(
            select(completed.c.day, func.count(completed.c.user_id)).group_by(completed.c.day)
        )
        return {_day_key(day): int(count or 0) for day, count in result.all()}

    result = await db.execute(
        select(day_col, func.count(distinct(count_col)))
        .where(date_col >= lower, date_col < upper, *filters)
        .group_by(day_col)
    )
    return {_day_key(day): int(count or 0) for day, count in result.all()}


async def internal_transfer_series(db: AsyncSession, start: date, end: date) -> List[dict]:
    """One row per day with each funnel stage's distinct-user count, ascending."""
    days = date_series(start, end)
    if not days:
        return []
    lower, upper = _bounds(days)

    counts = {}
    for stage in FUNNEL_STAGES:
        counts[stage[1]] = await _stage_counts(db, stage, lower, upper)

    rows = []
    for d in days:
        key = d.strftime("%Y-%m-%d")
        rows.append({"query_date": key, **{label: counts[label].get(key, 0) for label in FUNNEL_LABELS}})
    return rows


async def internal_transfer_details(db: AsyncSession, day: date) -> List[dict]:
    """Stage-by-stage counts for a single day, with conversion from the previous stage."""
    lower = datetime.combine(day, time.min)
    upper = lower + timedelta(days=1)
    key = day.strftime("%Y-%m-%d")

    details = []
    previous = None
    for stage in FUNNEL_STAGES:
        count = (await _stage_counts(db, stage, lower, upper)).get(key, 0)
        details.append({
            "stage": stage[0],
            "label": stage[1],
            "count": count,
            "conversionRate": round(count / previous * 100, 2) if previous else None,
        })
        previous = count
    return details


# ── Ratings ───────────────────────────────────────────────────────────

def _rating_level(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return value


def _level_sort_key(row: dict):
    level = row["rating_level"]
    if isinstance(level, int):
        return (0, level, "")
    return (1, 0, str(level))


async def rating_rows(db: AsyncSession, start: Optional[date] = None, end: Optional[date] = None) -> List[dict]:
    """Distinct users per (day, rating_level), date descending then level ascending. No range = all rows."""
    conditions = []
    if start:
        conditions.append(UserRating.created_at >= datetime.combine(start, time.min))
    if end:
        conditions.append(UserRating.created_at < datetime.combine(end + timedelta(days=1), time.min))

    day_col = func.date(UserRating.created_at)
    result = await db.execute(
        select(day_col, UserRating.rating_level, func.count(distinct(UserRating.user_id)))
        .where(*conditions)
        .group_by(day_col, UserRating.rating_level)
    )
    rows = [
        {"query_date": _day_key(day), "rating_level": _rating_level(level), "user_count": int(count or 0)}
        for day, level, count in result.all()
    ]
    rows.sort(key=_level_sort_key)
    rows.sort(key=lambda r: r["query_date"], reverse=True)
    return rows
