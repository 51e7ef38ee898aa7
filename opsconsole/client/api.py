"""
Ops Console API Client
Async wrapper over the REST API: one method per endpoint, each returning the
decoded envelope {success, data?, message?, pagination?} (bytes for file
downloads). The bearer token is read from the client store on every call.

A 401 clears `token`/`user` from the store and fires `on_unauthorized`
(the "go to login" hook). No retries.
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional
import httpx

from opsconsole.client.storage import MemoryStorage
from opsconsole.config import get_settings

logger = logging.getLogger(__name__)

TOKEN_KEY = "token"
USER_KEY = "user"
CONTENT_LIST_TIMEOUT = 15.0
CONTENT_SAVE_TIMEOUT = 40.0


class ApiError(Exception):
    """Non-2xx response or transport failure."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Any = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.body = body


class RequestTimeout(ApiError):
    """Raised by with_timeout when the call outlives its budget."""


async def with_timeout(awaitable: Awaitable, seconds: float):
    """Race a call against a timer."""
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except asyncio.TimeoutError:
        raise RequestTimeout(f"Request timed out after {seconds:g}s")


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        for field in ("error", "message", "detail"):
            if isinstance(body.get(field), str) and body[field]:
                return body[field]
    return f"HTTP {response.status_code}"


def _params(params: Optional[dict]) -> Optional[dict]:
    if not params:
        return None
    return {k: v for k, v in params.items() if v is not None}


def _default_unauthorized() -> None:
    logger.info("Session expired, redirect to /login")


class ApiClient:
    """
    REST client for the console API.
    Pass `transport` (httpx.MockTransport / ASGITransport) to run without a network.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        store=None,
        timeout: Optional[float] = None,
        on_unauthorized: Optional[Callable[[], Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.store = store if store is not None else MemoryStorage()
        self.timeout = timeout if timeout is not None else settings.client_timeout_seconds
        self.on_unauthorized = on_unauthorized or _default_unauthorized
        self._transport = transport
        self._http: Optional[httpx.AsyncClient] = None

    @property
    def headers(self) -> dict[str, str]:
        h = {"Accept": "application/json"}
        token = self.store.get(TOKEN_KEY)
        if token:
            h["Authorization"] = f"Bearer {token}"
        return h

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._http

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def _handle_unauthorized(self) -> None:
        self.store.remove(TOKEN_KEY)
        self.store.remove(USER_KEY)
        result = self.on_unauthorized()
        if inspect.isawaitable(result):
            await result

    async def request(
        self,
        method: str,
        path: str,
        params: Optional[dict] = None,
        json: Any = None,
        files: Optional[dict] = None,
        data: Optional[dict] = None,
        raw: bool = False,
    ):
        """Send one request. Returns the JSON envelope, or bytes when raw=True."""
        try:
            response = await self._client().request(
                method,
                path,
                params=_params(params),
                json=json,
                files=files,
                data=data,
                headers=self.headers,
            )
        except httpx.TimeoutException as e:
            logger.warning(f"{method} {path} timed out: {e}")
            raise RequestTimeout(f"Request timed out after {self.timeout:g}s") from e
        except httpx.HTTPError as e:
            logger.error(f"{method} {path} failed: {e}")
            raise ApiError(f"Network error: {e}") from e

        if response.status_code == 401:
            await self._handle_unauthorized()
            raise ApiError(_error_message(response), status_code=401)
        if response.status_code >= 400:
            body = None
            try:
                body = response.json()
            except ValueError:
                pass
            raise ApiError(_error_message(response), status_code=response.status_code, body=body)

        if raw:
            return response.content
        try:
            return response.json()
        except ValueError as e:
            logger.error(f"{method} {path} returned a non-JSON body")
            raise ApiError("Invalid JSON response", status_code=response.status_code) from e

    async def get(self, path: str, params: Optional[dict] = None, **kwargs):
        return await self.request("GET", path, params=params, **kwargs)

    async def post(self, path: str, json: Any = None, **kwargs):
        return await self.request("POST", path, json=json, **kwargs)

    async def put(self, path: str, json: Any = None, **kwargs):
        return await self.request("PUT", path, json=json, **kwargs)

    async def delete(self, path: str, **kwargs):
        return await self.request("DELETE", path, **kwargs)

    # ── Auth ──────────────────────────────────────────────────────────

    async def login(self, username: str, password: str) -> dict:
        return await self.post("/auth/login", {"username": username, "password": password})

    async def register(self, username: str, email: str, password: str) -> dict:
        return await self.post("/auth/register", {"username": username, "email": email, "password": password})

    async def get_profile(self) -> dict:
        return await self.get("/auth/profile")

    # ── Users ─────────────────────────────────────────────────────────

    async def get_users(self, params: Optional[dict] = None) -> dict:
        return await self.get("/users", params)

    async def get_user_stats(self) -> dict:
        return await self.get("/users/stats")

    async def get_user(self, user_id: str) -> dict:
        return await self.get(f"/users/{user_id}")

    async def create_user(self, data: dict) -> dict:
        return await self.post("/users", data)

    async def update_user(self, user_id: str, data: dict) -> dict:
        return await self.put(f"/users/{user_id}", data)

    async def delete_user(self, user_id: str) -> dict:
        return await self.delete(f"/users/{user_id}")

    async def reset_user_password(self, user_id: str, password: str) -> dict:
        return await self.post(f"/users/{user_id}/reset-password", {"password": password})

    # ── Tags ──────────────────────────────────────────────────────────

    async def get_tags(self, params: Optional[dict] = None) -> dict:
        return await self.get("/tags", params)

    async def get_all_tags(self) -> dict:
        return await self.get("/tags/all")

    async def get_popular_tags(self, limit: Optional[int] = None) -> dict:
        return await self.get("/tags/popular", {"limit": limit})

    async def get_tag(self, tag_id: str) -> dict:
        return await self.get(f"/tags/{tag_id}")

    async def create_tag(self, data: dict) -> dict:
        return await self.post("/tags", data)

    async def update_tag(self, tag_id: str, data: dict) -> dict:
        return await self.put(f"/tags/{tag_id}", data)

    async def delete_tag(self, tag_id: str) -> dict:
        return await self.delete(f"/tags/{tag_id}")

    # ── Posts ─────────────────────────────────────────────────────────

    async def get_posts(self, params: Optional[dict] = None) -> dict:
        return await self.get("/posts", params)

    async def get_post_stats(self) -> dict:
        return await self.get("/posts/stats")

    async def get_post(self, post_id: str) -> dict:
        return await self.get(f"/posts/{post_id}")

    async def create_post(self, data: dict) -> dict:
        return await self.post("/posts", data)

    async def update_post(self, post_id: str, data: dict) -> dict:
        return await self.put(f"/posts/{post_id}", data)

    async def delete_post(self, post_id: str) -> dict:
        return await self.delete(f"/posts/{post_id}")

    # ── API partners ──────────────────────────────────────────────────

    async def get_api_partner_configs(self, params: Optional[dict] = None) -> dict:
        return await self.get("/api-partner-configs", params)

    async def get_enabled_api_partners(self) -> dict:
        return await self.get("/api-partner-configs/enabled")

    async def get_api_partner_by_app(self, app_id: int) -> dict:
        return await self.get(f"/api-partner-configs/app/{app_id}")

    async def get_api_partner_config(self, partner_id: int) -> dict:
        return await self.get(f"/api-partner-configs/{partner_id}")

    async def create_api_partner_config(self, data: dict) -> dict:
        return await self.post("/api-partner-configs", data)

    async def update_api_partner_config(self, partner_id: int, data: dict) -> dict:
        return await self.put(f"/api-partner-configs/{partner_id}", data)

    async def delete_api_partner_config(self, partner_id: int) -> dict:
        return await self.delete(f"/api-partner-configs/{partner_id}")

    async def upload_partner_logo(self, content: bytes, filename: str, app_id: Optional[str] = None) -> dict:
        return await self.request(
            "POST",
            "/api-partner-configs/upload-logo",
            files={"file": (filename, content)},
            data={"appId": app_id} if app_id else None,
        )

    # ── Content ───────────────────────────────────────────────────────

    async def get_content_categories(self, app_id: Optional[int] = None) -> dict:
        return await self.get("/content/categories", {"appId": app_id})

    async def get_contents(self, params: Optional[dict] = None) -> dict:
        return await with_timeout(self.get("/content", params), CONTENT_LIST_TIMEOUT)

    async def get_content(self, content_id: int) -> dict:
        return await self.get(f"/content/{content_id}")

    async def create_content(self, data: dict) -> dict:
        return await with_timeout(self.post("/content", data), CONTENT_SAVE_TIMEOUT)

    async def update_content(self, content_id: int, data: dict) -> dict:
        return await with_timeout(self.put(f"/content/{content_id}", data), CONTENT_SAVE_TIMEOUT)

    async def delete_content(self, content_id: int) -> dict:
        return await self.delete(f"/content/{content_id}")

    async def batch_delete_contents(self, ids: list[int]) -> dict:
        return await self.post("/content/batch-delete", {"ids": ids})

    async def save_content_detail(self, content_id: int, html: str) -> dict:
        return await with_timeout(self.post(f"/content/{content_id}/detail", {"content": html}), CONTENT_SAVE_TIMEOUT)

    async def toggle_content_enabled(self, content_id: int, enabled: int) -> dict:
        return await self.post(f"/content/{content_id}/toggle-enabled", {"enabled": enabled})

    async def upload_content_image(self, content: bytes, filename: str) -> dict:
        return await with_timeout(
            self.request("POST", "/content/upload", files={"file": (filename, content)}),
            CONTENT_SAVE_TIMEOUT,
        )

    # ── Push ──────────────────────────────────────────────────────────

    async def get_push_configs(self, params: Optional[dict] = None) -> dict:
        return await self.get("/push-configs", params)

    async def get_push_config(self, config_id: int) -> dict:
        return await self.get(f"/push-configs/{config_id}")

    async def create_push_config(self, data: dict) -> dict:
        return await self.post("/push-configs", data)

    async def update_push_config(self, config_id: int, data: dict) -> dict:
        return await self.put(f"/push-configs/{config_id}", data)

    async def delete_push_config(self, config_id: int) -> dict:
        return await self.delete(f"/push-configs/{config_id}")

    async def get_push_audiences(self) -> dict:
        return await self.get("/push-audiences")

    async def create_push_audience(self, data: dict) -> dict:
        return await self.post("/push-audiences", data)

    async def update_push_audience(self, audience_id: int, data: dict) -> dict:
        return await self.put(f"/push-audiences/{audience_id}", data)

    async def delete_push_audience(self, audience_id: int) -> dict:
        return await self.delete(f"/push-audiences/{audience_id}")

    async def get_push_tokens(self, params: Optional[dict] = None) -> dict:
        return await self.get("/push-tokens", params)

    async def update_push_token(self, token_id: int, data: dict) -> dict:
        return await self.put(f"/push-tokens/{token_id}", data)

    async def delete_push_token(self, token_id: int) -> dict:
        return await self.delete(f"/push-tokens/{token_id}")

    async def import_push_tokens(self, data: dict) -> dict:
        return await self.post("/push-tokens/import", data)

    async def import_push_tokens_excel(self, content: bytes, filename: str, fields: Optional[dict] = None) -> dict:
        return await self.request(
            "POST", "/push-tokens/import-excel", files={"file": (filename, content)}, data=fields
        )

    async def parse_push_tokens_excel(self, content: bytes, filename: str) -> dict:
        return await self.request("POST", "/push-tokens/parse-excel", files={"file": (filename, content)})

    async def download_push_token_template(self) -> bytes:
        return await self.get("/push-tokens/template", raw=True)

    async def get_push_templates(self, params: Optional[dict] = None) -> dict:
        return await self.get("/push-templates", params)

    async def get_push_template(self, template_id: int) -> dict:
        return await self.get(f"/push-templates/{template_id}")

    async def create_push_template(self, data: dict) -> dict:
        return await self.post("/push-templates", data)

    async def update_push_template(self, template_id: int, data: dict) -> dict:
        return await self.put(f"/push-templates/{template_id}", data)

    async def delete_push_template(self, template_id: int) -> dict:
        return await self.delete(f"/push-templates/{template_id}")

    async def get_push_tasks(self, params: Optional[dict] = None) -> dict:
        return await self.get("/push-tasks", params)

    async def get_push_task(self, task_id: int) -> dict:
        return await self.get(f"/push-tasks/{task_id}")

    async def create_push_task(self, data: dict) -> dict:
        return await self.post("/push-tasks", data)

    async def update_push_task(self, task_id: int, data: dict) -> dict:
        return await self.put(f"/push-tasks/{task_id}", data)

    async def delete_push_task(self, task_id: int) -> dict:
        return await self.delete(f"/push-tasks/{task_id}")

    async def execute_push_task(self, task_id: int) -> dict:
        return await self.post(f"/push-tasks/{task_id}/execute")

    # ── Reports ───────────────────────────────────────────────────────

    async def get_rating_data(self, params: Optional[dict] = None) -> dict:
        return await self.get("/rating-data", params)

    async def export_rating_data(self, params: Optional[dict] = None) -> bytes:
        return await self.get("/rating-data/export", params, raw=True)

    async def get_internal_transfer_data(self, params: Optional[dict] = None) -> dict:
        return await self.get("/internal-transfer-data", params)

    async def get_internal_transfer_chart_data(self, params: Optional[dict] = None) -> dict:
        return await self.get("/internal-transfer-chart", params)

    async def get_internal_transfer_details(self, params: Optional[dict] = None) -> dict:
        return await self.get("/internal-transfer-details", params)

    async def export_internal_transfer(self, params: Optional[dict] = None) -> bytes:
        return await self.get("/internal-transfer-export", params, raw=True)

    async def get_attribution_app_ids(self) -> dict:
        return await self.get("/attribution-app-ids")

    async def get_attribution_media_sources(self) -> dict:
        return await self.get("/attribution-media-sources")

    async def get_attribution_ad_sequences(self, media_source: Optional[str] = None) -> dict:
        return await self.get("/attribution-ad-sequences", {"mediaSource": media_source})

    async def get_attribution_event_names(self, data_source: str = "adjust") -> dict:
        return await self.get("/attribution-event-names", {"dataSource": data_source})

    async def get_attribution_data(self, params: Optional[dict] = None) -> dict:
        return await self.get("/attribution-data", params)

    async def get_attribution_chart_data(self, params: Optional[dict] = None) -> dict:
        return await self.get("/attribution-chart", params)

    async def get_attribution_details(self, params: Optional[dict] = None) -> dict:
        return await self.get("/attribution-details", params)

    async def get_attribution_comparison(self, params: Optional[dict] = None) -> dict:
        return await self.get("/attribution-comparison", params)

    async def export_attribution(self, params: Optional[dict] = None) -> bytes:
        return await self.get("/attribution-export", params, raw=True)

    async def get_attribution_favorites(self) -> dict:
        return await self.get("/attribution-favorites")

    async def toggle_attribution_favorite(self, media_source: str, ad_sequence: str) -> dict:
        return await self.post("/attribution-favorites", {"mediaSource": media_source, "adSequence": ad_sequence})

    async def sync_attribution_favorites(
        self,
        favorites: Optional[list[dict]] = None,
        additions: Optional[list[dict]] = None,
        removals: Optional[list[dict]] = None,
    ) -> dict:
        body = {k: v for k, v in (("favorites", favorites), ("additions", additions), ("removals", removals)) if v is not None}
        return await self.post("/attribution-favorites", body)
