"""
Attribution view state — query filters, the fetched series, favorites, and the
snapshot/cache layers that let a re-opened view skip redundant fetches.

Persisted layers (client store):
  attribution_selected_items_v4  selected event columns per data source (no expiry)
  attribution_query_state_v1     date range, filters, pagination (24 h)
  attribution_data_cache_v1      the last full result set (24 h, 5 MB cap)

Restore order: in-memory snapshot for the same user, then the persisted layers.
"""

import enum
import logging
from dataclasses import dataclass, field
from typing import Optional

from opsconsole.client.api import ApiClient
from opsconsole.client.cache import PersistentCache
from opsconsole.client.dedupe import RequestDeduplicator
from opsconsole.services.csv_export import encode_csv
from opsconsole.utils import event_column, normalize_favorites, now_ms, page_meta

logger = logging.getLogger(__name__)

SELECTED_ITEMS_KEY = "attribution_selected_items_v4"
QUERY_STATE_KEY = "attribution_query_state_v1"
DATA_CACHE_KEY = "attribution_data_cache_v1"
FAVORITES_SYNC_KEY = "attribution-favorites-sync"
MAX_FETCH_ROWS = 1000
DEFAULT_PAGE_SIZE = 10


class RestoreOutcome(str, enum.Enum):
    SNAPSHOT = "snapshot"  # in-memory snapshot restored, no fetch
    CACHED = "cached"      # persisted data restored, no fetch
    FETCH = "fetch"        # only the query restored, caller should fetch
    WAIT = "wait"          # nothing restored, wait for the user to query


@dataclass
class AttributionSnapshot:
    """Point-in-time copy of the view, kept in memory between visits."""
    user_id: str
    data_source: str = "adjust"
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    app_id: Optional[str] = None
    media_sources: list = field(default_factory=list)
    ad_sequences: list = field(default_factory=list)
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE
    rows: list = field(default_factory=list)
    event_names: list = field(default_factory=list)
    selected_items: dict = field(default_factory=dict)
    favorites: dict = field(default_factory=dict)
    dirty: bool = False
    captured_at: int = 0


_snapshot: Optional[AttributionSnapshot] = None


def save_snapshot(snapshot: AttributionSnapshot) -> None:
    global _snapshot
    _snapshot = snapshot


def take_snapshot(user_id) -> Optional[AttributionSnapshot]:
    """The held snapshot if it belongs to user_id; a snapshot for anyone else is discarded."""
    global _snapshot
    if _snapshot is None:
        return None
    if _snapshot.user_id != str(user_id):
        logger.debug("Discarding attribution snapshot of another user")
        _snapshot = None
        return None
    return _snapshot


def clear_snapshot() -> None:
    global _snapshot
    _snapshot = None


class AttributionState:

    def __init__(
        self,
        api: ApiClient,
        user_id,
        cache: Optional[PersistentCache] = None,
        dedupe: Optional[RequestDeduplicator] = None,
    ):
        self.api = api
        self.user_id = str(user_id)
        self.cache = cache or PersistentCache(
            api.store, keys=(SELECTED_ITEMS_KEY, QUERY_STATE_KEY, DATA_CACHE_KEY)
        )
        self.dedupe = dedupe or RequestDeduplicator()

        self.data_source = "adjust"
        self.start_date: Optional[str] = None
        self.end_date: Optional[str] = None
        self.app_id: Optional[str] = None
        self.media_sources: list[str] = []
        self.ad_sequences: list[str] = []
        self.page = 1
        self.page_size = DEFAULT_PAGE_SIZE
        self.rows: list[dict] = []
        self.event_names: list[str] = []
        self.selected_items: dict[str, list[str]] = {}
        self.favorites: dict[str, list[dict]] = {}
        self.dirty = False
        self._favorites_version = 0

    # ── Snapshot / cache ──────────────────────────────────────────────

    def _query_state(self) -> dict:
        return {
            "dataSource": self.data_source,
            "startDate": self.start_date,
            "endDate": self.end_date,
            "appId": self.app_id,
            "mediaSources": list(self.media_sources),
            "adSequences": list(self.ad_sequences),
            "page": self.page,
            "pageSize": self.page_size,
        }

    def _apply_query_state(self, state: dict) -> None:
        self.data_source = state.get("dataSource") or "adjust"
        self.start_date = state.get("startDate")
        self.end_date = state.get("endDate")
        self.app_id = state.get("appId")
        self.media_sources = list(state.get("mediaSources") or [])
        self.ad_sequences = list(state.get("adSequences") or [])
        self.page = max(1, int(state.get("page") or 1))
        self.page_size = max(1, int(state.get("pageSize") or DEFAULT_PAGE_SIZE))

    def snapshot(self) -> AttributionSnapshot:
        snap = AttributionSnapshot(
            user_id=self.user_id,
            data_source=self.data_source,
            start_date=self.start_date,
            end_date=self.end_date,
            app_id=self.app_id,
            media_sources=list(self.media_sources),
            ad_sequences=list(self.ad_sequences),
            page=self.page,
            page_size=self.page_size,
            rows=list(self.rows),
            event_names=list(self.event_names),
            selected_items={k: list(v) for k, v in self.selected_items.items()},
            favorites=normalize_favorites(self.favorites),
            dirty=self.dirty,
            captured_at=now_ms(),
        )
        save_snapshot(snap)
        return snap

    def persist(self) -> None:
        """Write the query state and data cache, and refresh the in-memory snapshot."""
        self.cache.set(QUERY_STATE_KEY, self._query_state(), owner=self.user_id)
        self.cache.set(
            DATA_CACHE_KEY,
            {"dataSource": self.data_source, "rows": self.rows, "eventNames": self.event_names},
            owner=self.user_id,
        )
        self.snapshot()

    def restore(self) -> RestoreOutcome:
        snap = take_snapshot(self.user_id)
        if snap is not None:
            for name in (
                "data_source", "start_date", "end_date", "app_id", "page", "page_size", "dirty",
            ):
                setattr(self, name, getattr(snap, name))
            self.media_sources = list(snap.media_sources)
            self.ad_sequences = list(snap.ad_sequences)
            self.rows = list(snap.rows)
            self.event_names = list(snap.event_names)
            self.selected_items = {k: list(v) for k, v in snap.selected_items.items()}
            self.favorites = normalize_favorites(snap.favorites)
            return RestoreOutcome.SNAPSHOT

        selected = self.cache.get(SELECTED_ITEMS_KEY, owner=self.user_id, expires=False)
        if isinstance(selected, dict):
            self.selected_items = {k: list(v) for k, v in selected.items() if isinstance(v, list)}

        state = self.cache.get(QUERY_STATE_KEY, owner=self.user_id)
        if isinstance(state, dict):
            self._apply_query_state(state)

        data = self.cache.get(DATA_CACHE_KEY, owner=self.user_id)
        if isinstance(data, dict):
            self.rows = list(data.get("rows") or [])
            self.event_names = list(data.get("eventNames") or [])

        if data is not None:
            return RestoreOutcome.CACHED
        if state is not None:
            return RestoreOutcome.FETCH
        return RestoreOutcome.WAIT

    # ── Query ─────────────────────────────────────────────────────────

    def params(self) -> dict:
        return {
            "dataSource": self.data_source,
            "startDate": self.start_date,
            "endDate": self.end_date,
            "appId": self.app_id,
            "mediaSource": ",".join(self.media_sources) or None,
            "adSequence": ",".join(self.ad_sequences) or None,
        }

    async def fetch(self) -> list[dict]:
        """Fetch the whole filtered series once; pages are sliced locally."""
        response = await self.api.get_attribution_chart_data(self.params())
        rows = list(reversed(response.get("data") or []))
        self.rows = rows[:MAX_FETCH_ROWS]
        self.event_names = list(response.get("eventNames") or [])
        self.page = 1
        self.persist()
        logger.info(f"Attribution [{self.data_source}] fetched {len(self.rows)} rows")
        return self.rows

    @property
    def pagination(self) -> dict:
        return page_meta(self.page, self.page_size, len(self.rows))

    def page_rows(self, page: Optional[int] = None) -> list[dict]:
        page = page or self.page
        return self.rows[(page - 1) * self.page_size:page * self.page_size]

    def set_page(self, page: int, page_size: Optional[int] = None) -> list[dict]:
        if page_size:
            self.page_size = max(1, page_size)
        self.page = max(1, page)
        self.cache.set(QUERY_STATE_KEY, self._query_state(), owner=self.user_id)
        return self.page_rows()

    def select_items(self, names: list[str], data_source: Optional[str] = None) -> None:
        self.selected_items[data_source or self.data_source] = list(names)
        self.cache.set(SELECTED_ITEMS_KEY, self.selected_items, owner=self.user_id)

    def selected_columns(self) -> list[str]:
        return self.selected_items.get(self.data_source) or list(self.event_names)

    def export_csv(self) -> str:
        columns = [("query_date", "date")] + [(event_column(n), n) for n in self.selected_columns()]
        return encode_csv(columns, self.rows)

    # ── Favorites ─────────────────────────────────────────────────────

    def is_favorite(self, media_source: str, ad_sequence: str) -> bool:
        return any(e["value"] == ad_sequence for e in self.favorites.get(media_source, []))

    def toggle_favorite(self, media_source: str, ad_sequence: str) -> bool:
        """Local toggle; returns True when added. Marks the favorites dirty."""
        entries = [e for e in self.favorites.get(media_source, []) if e["value"] != ad_sequence]
        added = len(entries) == len(self.favorites.get(media_source, []))
        if added:
            entries.insert(0, {"value": ad_sequence, "favoritedAt": now_ms()})
        self.favorites = normalize_favorites({**self.favorites, media_source: entries})
        self.dirty = True
        self._favorites_version += 1
        return added

    async def load_favorites(self) -> dict:
        response = await self.api.get_attribution_favorites()
        self.favorites = normalize_favorites(response.get("data"))
        self.dirty = False
        return self.favorites

    async def _sync(self) -> dict:
        version = self._favorites_version
        pairs = [
            {"mediaSource": media, "adSequence": entry["value"]}
            for media, entries in self.favorites.items()
            for entry in entries
        ]
        response = await self.api.sync_attribution_favorites(favorites=pairs)
        server = normalize_favorites((response.get("data") or {}).get("favorites"))
        if version == self._favorites_version:
            self.favorites = server
            self.dirty = False
        return self.favorites

    async def sync_favorites(self) -> dict:
        """Push local favorites. Concurrent callers share one request; failure keeps `dirty`."""
        return await self.dedupe.run(FAVORITES_SYNC_KEY, self._sync)

    async def apply_filters(self) -> list[dict]:
        """Sync pending favorite changes, then re-query. A failed sync aborts the query."""
        if self.dirty:
            try:
                await self.sync_favorites()
            except Exception:
                logger.warning("Favorites sync failed, filters not applied")
                raise
        return await self.fetch()
