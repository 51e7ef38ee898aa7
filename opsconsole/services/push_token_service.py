"""
Push Token Service — token import, audience membership, Excel template I/O.
"""

import io
import json
import logging
from typing import Any
from openpyxl import Workbook, load_workbook
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from opsconsole.models import PushAudience, PushToken
from opsconsole.utils import utcnow

logger = logging.getLogger(__name__)

TEMPLATE_FILENAME = "push-token-template.xlsx"
TEMPLATE_SHEET = "Tokens"
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def parse_tags(value: Any) -> list[str] | None:
    """Accept a list, a JSON array string or a comma-separated string."""
    if not value:
        return None
    if isinstance(value, list):
        return [t.strip() for t in value if isinstance(t, str) and t.strip()]
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            return [t.strip() for t in value.split(",") if t.strip()]
        if isinstance(parsed, list):
            return [t.strip() for t in parsed if isinstance(t, str) and t.strip()]
    return None


def normalize_tokens(raw_tokens: Any, default_tags: list[str] | None = None, default_status: str | None = None) -> list[dict]:
    """
    Turn an import body's `tokens` into [{token, tags, status, audience_ids}].
    Accepts a list of strings, a list of {token, tags?, status?} objects,
    or a comma-separated string. Blank tokens are dropped.
    """
    items = []
    if isinstance(raw_tokens, list):
        for raw in raw_tokens:
            if isinstance(raw, str):
                items.append({"token": raw.strip(), "tags": default_tags, "status": default_status})
            elif isinstance(raw, dict):
                token = raw.get("token")
                items.append({
                    "token": token.strip() if isinstance(token, str) else "",
                    "tags": parse_tags(raw.get("tags")) or default_tags,
                    "status": raw.get("status") or default_status,
                    "audience_ids": [int(a) for a in raw.get("audienceIds") or [] if str(a).isdigit()],
                })
    elif isinstance(raw_tokens, str):
        items = [
            {"token": t.strip(), "tags": default_tags, "status": default_status}
            for t in raw_tokens.split(",")
        ]
    return [item for item in items if item["token"]]


async def _audiences_by_id(db: AsyncSession, ids: set[int]) -> dict[int, PushAudience]:
    if not ids:
        return {}
    result = await db.execute(select(PushAudience).where(PushAudience.id.in_(ids)))
    return {a.id: a for a in result.scalars().all()}


async def set_token_audiences(db: AsyncSession, token: PushToken, audience_ids: list[int], replace: bool = True):
    """Attach `token` to the given audiences; `replace` drops its other memberships first."""
    found = await _audiences_by_id(db, set(audience_ids))
    current = [] if replace else list(token.audiences)
    have = {a.id for a in current}
    for audience_id in dict.fromkeys(audience_ids):
        if audience_id in found and audience_id not in have:
            current.append(found[audience_id])
            have.add(audience_id)
    token.audiences = current


async def import_tokens(
    db: AsyncSession,
    tokens: list[dict],
    replace: bool = False,
    audience_id: int | None = None,
) -> dict:
    """
    Upsert tokens. New tokens are always counted; existing tokens are only
    updated (and counted) when `replace` is set. `audience_id` is added to
    every token's memberships.
    """
    imported = 0
    for item in tokens:
        value = item.get("token")
        if not value:
            continue

        tags = item.get("tags") or None
        status = item.get("status") or "active"

        result = await db.execute(select(PushToken).where(PushToken.token == value))
        token = result.scalar_one_or_none()
        if token:
            if replace:
                token.tags = tags
                token.status = status
                token.updated_at = utcnow()
                imported += 1
        else:
            token = PushToken(token=value, tags=tags, status=status, last_active_at=utcnow(), audiences=[])
            db.add(token)
            imported += 1

        audience_ids = list(item.get("audience_ids") or [])
        if audience_id:
            audience_ids.append(audience_id)
        if audience_ids or replace:
            await set_token_audiences(db, token, audience_ids, replace=replace)

        await db.flush()

    logger.info(f"Imported {imported} push tokens (replace={replace}, audience={audience_id})")
    return {"imported": imported}


def build_template_workbook() -> bytes:
    """The downloadable import template: one `token` column, two example rows."""
    wb = Workbook()
    ws = wb.active
    ws.title = TEMPLATE_SHEET
    ws.append(["token"])
    ws.append(["token_example_1"])
    ws.append(["token_example_2"])
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def parse_excel_tokens(data: bytes) -> list[str]:
    """
    Read tokens from the first sheet of an uploaded workbook.
    The header row is skipped; string cells are split on commas;
    result is de-duplicated in first-seen order.
    Raises ValueError for unreadable files or a workbook without sheets.
    """
    try:
        wb = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    except Exception as e:
        raise ValueError(f"Could not read Excel file: {e}")

    if not wb.worksheets:
        raise ValueError("Excel file has no data")

    tokens: dict[str, None] = {}
    for row in wb.worksheets[0].iter_rows(min_row=2, values_only=True):
        for cell in row:
            if isinstance(cell, str) and cell.strip():
                for token in cell.split(","):
                    if token.strip():
                        tokens.setdefault(token.strip(), None)
    wb.close()
    return list(tokens)
