"""
Auth session — current user + token, persisted in the client store.
"""

import json
import logging
from typing import Optional

from opsconsole.client.api import ApiClient, ApiError, TOKEN_KEY, USER_KEY
from opsconsole.client.storage import read_json

logger = logging.getLogger(__name__)


class AuthError(Exception):
    """Login/registration refused by the server."""


class AuthSession:

    def __init__(self, api: ApiClient):
        self.api = api
        self.store = api.store
        self.user: Optional[dict] = None
        self.token: Optional[str] = None
        self.loading = True

    @property
    def is_authenticated(self) -> bool:
        return bool(self.user and self.token)

    def _clear(self) -> None:
        self.store.remove(TOKEN_KEY)
        self.store.remove(USER_KEY)
        self.user = None
        self.token = None

    def _remember(self, token: str, user: dict) -> None:
        self.store.set(TOKEN_KEY, token)
        self.store.set(USER_KEY, json.dumps(user, ensure_ascii=False))
        self.token = token
        self.user = user

    async def restore(self) -> bool:
        """
        Re-establish a stored session. Stored values are applied optimistically,
        then confirmed against /auth/profile; any failure signs out.
        """
        try:
            token = self.store.get(TOKEN_KEY)
            user = read_json(self.store, USER_KEY)
            if not token or not user:
                return False

            self.token, self.user = token, user
            try:
                response = await self.api.get_profile()
            except ApiError as e:
                logger.info(f"Stored session rejected: {e.message}")
                self._clear()
                return False

            user = (response.get("data") or {}).get("user")
            if response.get("success") and user:
                self.user = user
                self.store.set(USER_KEY, json.dumps(self.user, ensure_ascii=False))
                return True
            self._clear()
            return False
        finally:
            self.loading = False

    async def _authenticate(self, call) -> dict:
        try:
            response = await call
        except ApiError as e:
            raise AuthError(e.message) from e
        if not response.get("success"):
            raise AuthError(response.get("message") or response.get("error") or "Authentication failed")
        data = response.get("data") or {}
        self._remember(data["token"], data["user"])
        return self.user

    async def login(self, username: str, password: str) -> dict:
        return await self._authenticate(self.api.login(username, password))

    async def register(self, username: str, email: str, password: str) -> dict:
        return await self._authenticate(self.api.register(username, email, password))

    def logout(self) -> None:
        self._clear()
