"""
Favorites Service — per-user favorite ad sequences for the attribution view.

Stored as one JSON SystemConfig row per user under `attribution_favorites:{userId}`,
shaped {mediaSource: [{value, favoritedAt(ms)}, ...]}, newest first.
"""

import json
import logging
from typing import Iterable
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from opsconsole.models import ConfigType, SystemConfig
from opsconsole.utils import normalize_favorites, now_ms

logger = logging.getLogger(__name__)

FAVORITE_KEY_PREFIX = "attribution_favorites:"


def favorites_key(user_id) -> str:
    return f"{FAVORITE_KEY_PREFIX}{user_id}"


async def _load_row(db: AsyncSession, user_id) -> SystemConfig | None:
    result = await db.execute(select(SystemConfig).where(SystemConfig.key == favorites_key(user_id)))
    return result.scalar_one_or_none()


async def get_favorites(db: AsyncSession, user_id) -> dict:
    row = await _load_row(db, user_id)
    if not row or not row.value:
        return {}
    try:
        return normalize_favorites(json.loads(row.value))
    except json.JSONDecodeError as e:
        logger.error(f"Unreadable favorites for user {user_id}: {e}")
        return {}


async def save_favorites(db: AsyncSession, user_id, favorites: dict) -> dict:
    favorites = normalize_favorites(favorites)
    row = await _load_row(db, user_id)
    value = json.dumps(favorites, ensure_ascii=False)
    if row:
        row.value = value
        row.type = ConfigType.JSON.value
    else:
        db.add(SystemConfig(key=favorites_key(user_id), value=value, type=ConfigType.JSON.value))
    await db.flush()
    return favorites


def _pair(item) -> tuple[str, str]:
    if not isinstance(item, dict):
        return "", ""
    media = item.get("mediaSource") or item.get("media_source") or ""
    ad = item.get("adSequence") or item.get("ad_sequence") or ""
    return str(media).strip(), str(ad).strip()


def _add(favorites: dict, media: str, ad: str, ts: int) -> bool:
    entries = favorites.setdefault(media, [])
    if any(e["value"] == ad for e in entries):
        return False
    entries.insert(0, {"value": ad, "favoritedAt": ts})
    return True


def _remove(favorites: dict, media: str, ad: str) -> bool:
    entries = favorites.get(media, [])
    kept = [e for e in entries if e["value"] != ad]
    if len(kept) == len(entries):
        return False
    if kept:
        favorites[media] = kept
    else:
        favorites.pop(media, None)
    return True


async def toggle_favorite(db: AsyncSession, user_id, media_source: str, ad_sequence: str) -> tuple[dict, bool]:
    """Add the pair if absent, otherwise remove it. Returns (favorites, added)."""
    media, ad = (media_source or "").strip(), (ad_sequence or "").strip()
    if not media or not ad:
        raise ValueError("mediaSource and adSequence are required")

    favorites = await get_favorites(db, user_id)
    added = not _remove(favorites, media, ad)
    if added:
        _add(favorites, media, ad, now_ms())

    favorites = await save_favorites(db, user_id, favorites)
    logger.info(f"User {user_id} {'added' if added else 'removed'} favorite {media}/{ad}")
    return favorites, added


async def sync_favorites(
    db: AsyncSession,
    user_id,
    favorites: Iterable | None = None,
    additions: Iterable | None = None,
    removals: Iterable | None = None,
) -> dict:
    """
    Bulk sync from the client.
    `favorites` replaces the whole set (existing timestamps are kept for pairs
    already stored); `additions` and `removals` are then applied in that order.
    """
    current = await get_favorites(db, user_id)
    ts = now_ms()

    if favorites is not None:
        replaced: dict = {}
        for item in favorites:
            media, ad = _pair(item)
            if not media or not ad:
                continue
            existing = next((e for e in current.get(media, []) if e["value"] == ad), None)
            _add(replaced, media, ad, existing["favoritedAt"] if existing else ts)
        current = replaced

    for item in additions or []:
        media, ad = _pair(item)
        if media and ad:
            _add(current, media, ad, ts)

    for item in removals or []:
        media, ad = _pair(item)
        if media and ad:
            _remove(current, media, ad)

    return await save_favorites(db, user_id, current)
