"""
Shared utility functions — response envelope, pagination, id parsing.
"""

import logging
import math
import re
import uuid as uuid_mod
from datetime import datetime, timezone
from typing import Any
from fastapi import HTTPException
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


class ApiModel(BaseModel):
    """Schema base: camelCase on the wire, snake_case in Python."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


def ok(data: Any = None, message: str | None = None, pagination: dict | None = None, **extra) -> dict:
    """Build the standard success envelope."""
    body: dict[str, Any] = {"success": True, "data": data}
    if message:
        body["message"] = message
    if pagination is not None:
        body["pagination"] = pagination
    body.update(extra)
    return body


def page_params(page: int | None, limit: int | None, default_limit: int = 10) -> tuple[int, int]:
    """Clamp page >= 1 and 1 <= limit <= MAX_PAGE_SIZE."""
    page = max(1, page or 1)
    limit = min(max(1, limit or default_limit), MAX_PAGE_SIZE)
    return page, limit


def page_meta(page: int, limit: int, total: int) -> dict:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "totalPages": math.ceil(total / limit) if limit else 0,
    }


def parse_uuid(value: str, field_name: str = "id") -> uuid_mod.UUID:
    """
    Parse a string as UUID, raising a 400 HTTPException on invalid input
    instead of letting a bare ValueError bubble up as a 500.
    """
    try:
        return uuid_mod.UUID(str(value))
    except (ValueError, AttributeError):
        raise HTTPException(
            status_code=400,
            detail=f"Invalid id for '{field_name}': {value!r}",
        )


def parse_bool(value: Any) -> bool:
    return value is True or value in ("true", "1", 1)


def safe_error_detail(exc: Exception, fallback: str = "Internal server error") -> str:
    """
    Return a message safe for client consumption.
    Logs the real exception server-side; hides it in production.
    """
    from opsconsole.config import get_settings
    logger.error(f"Operation failed: {exc}", exc_info=True)
    if get_settings().is_production:
        return fallback
    return str(exc) or fallback


def utcnow() -> datetime:
    """
    Return the current UTC time as a naive datetime (no tzinfo).
    Naive datetimes are used because our DB columns are TIMESTAMP WITHOUT TIME ZONE.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def now_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def normalize_favorites(raw: Any, default_ts: int | None = None) -> dict[str, list[dict]]:
    """
    Clean a {mediaSource: [{value, favoritedAt}, ...]} map.
    Blank values and non-list groups are dropped, each value is kept once with
    its most recent favoritedAt, groups are sorted newest first and empty
    groups removed. Idempotent.
    """
    if not isinstance(raw, dict):
        return {}
    fallback = default_ts if default_ts is not None else now_ms()
    result: dict[str, list[dict]] = {}
    for media, entries in raw.items():
        media = str(media).strip()
        if not media or not isinstance(entries, list):
            continue
        latest: dict[str, int] = {}
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            value = entry.get("value")
            if not isinstance(value, str) or not value.strip():
                continue
            ts = entry.get("favoritedAt")
            if isinstance(ts, bool) or not isinstance(ts, (int, float)):
                ts = fallback
            value = value.strip()
            latest[value] = max(latest.get(value, int(ts)), int(ts))
        if latest:
            result[media] = [
                {"value": v, "favoritedAt": ts}
                for v, ts in sorted(latest.items(), key=lambda item: (-item[1], item[0]))
            ]
    return result


def event_column(event_name: str) -> str:
    """Report column for an event: `event_` + name with non [A-Za-z0-9_] chars as `_`."""
    return "event_" + re.sub(r"[^a-zA-Z0-9_]", "_", event_name)
