"""
FCM Service — Firebase Cloud Messaging delivery for push tasks.

Two credential modes per PushConfig:
- service account JSON: RS256-signed JWT exchanged for an OAuth access token
  (cached per config until 60s before expiry), then one HTTP v1
  messages:send call per device token.
- legacy server key: POST /fcm/send with up to 500 registration_ids per call.

Secrets on the config are stored encrypted and decrypted here right before use.
"""

import json
import time
import logging
import httpx
from jose import jwt

from opsconsole.crypto import decrypt_value
from opsconsole.models import PushConfig, PushTemplate

logger = logging.getLogger(__name__)

LEGACY_ENDPOINT = "https://fcm.googleapis.com/fcm/send"
V1_ENDPOINT = "https://fcm.googleapis.com/v1/projects/{project_id}/messages:send"
OAUTH_TOKEN_URL = "https://oauth2.googleapis.com/token"
FCM_SCOPE = "https://www.googleapis.com/auth/firebase.messaging"
LEGACY_BATCH_SIZE = 500

# Re-fetch the access token this many seconds before it expires
TOKEN_EXPIRY_BUFFER = 60

# push_config_id -> (access_token, expires_at epoch seconds)
_access_token_cache: dict[int, tuple[str, int]] = {}


class FcmError(Exception):
    """Raised when a config cannot be used to send at all."""


def clear_token_cache():
    _access_token_cache.clear()


def _chunks(items: list, size: int):
    for i in range(0, len(items), size):
        yield items[i:i + size]


def build_notification(template: PushTemplate) -> dict:
    payload = {"title": template.title, "body": template.body}
    if template.image_url:
        payload["image"] = template.image_url
    if template.click_action:
        payload["click_action"] = template.click_action
    return payload


def normalize_data_payload(data: dict | None) -> dict | None:
    """FCM data values must be strings; non-strings are JSON-encoded."""
    if not data:
        return None
    return {
        str(k): v if isinstance(v, str) else json.dumps(v, ensure_ascii=False)
        for k, v in data.items()
    }


async def get_access_token(config_id: int, service_account_json: str, http: httpx.AsyncClient) -> str:
    """OAuth2 jwt-bearer grant for a service account, cached per push config."""
    now = int(time.time())
    cached = _access_token_cache.get(config_id)
    if cached and cached[1] - TOKEN_EXPIRY_BUFFER > now:
        return cached[0]

    account = json.loads(service_account_json)
    assertion = jwt.encode(
        {
            "iss": account["client_email"],
            "scope": FCM_SCOPE,
            "aud": OAUTH_TOKEN_URL,
            "iat": now,
            "exp": now + 3600,
        },
        account["private_key"],
        algorithm="RS256",
    )

    response = await http.post(
        OAUTH_TOKEN_URL,
        data={
            "grant_type": "urn:ietf:params:oauth:grant-type:jwt-bearer",
            "assertion": assertion,
        },
        headers={"Content-Type": "application/x-www-form-urlencoded"},
    )
    if response.status_code >= 400:
        raise FcmError(f"Failed to obtain FCM access token: {response.text[:200]}")

    token_data = response.json()
    token = token_data["access_token"]
    _access_token_cache[config_id] = (token, now + int(token_data.get("expires_in") or 3600))
    logger.info(f"FCM access token refreshed for push config {config_id}")
    return token


async def _send_with_service_account(
    config: PushConfig, service_account_json: str, tokens: list[str], template: PushTemplate, http: httpx.AsyncClient
) -> dict:
    try:
        account = json.loads(service_account_json)
    except json.JSONDecodeError as e:
        raise FcmError(f"Service account JSON is invalid: {e}")

    project_id = config.project_id or account.get("project_id")
    if not project_id:
        raise FcmError("Service account JSON is missing project_id")

    access_token = await get_access_token(config.id, service_account_json, http)
    endpoint = V1_ENDPOINT.format(project_id=project_id)
    notification = build_notification(template)
    data = normalize_data_payload(template.data_payload)

    success, failure, errors = 0, 0, []
    for token in tokens:
        message = {"token": token, "notification": notification}
        if data:
            message["data"] = data
        response = await http.post(
            endpoint,
            json={"message": message},
            headers={"Authorization": f"Bearer {access_token}"},
        )
        if response.status_code < 400:
            success += 1
        else:
            failure += 1
            errors.append(f"Token tail {token[-8:]}: {response.text[:200]}")

    return {"success": success, "failure": failure, "errors": errors}


async def _send_with_server_key(
    server_key: str, tokens: list[str], template: PushTemplate, http: httpx.AsyncClient
) -> dict:
    notification = build_notification(template)
    data = normalize_data_payload(template.data_payload)

    success, failure, errors = 0, 0, []
    for batch in _chunks(tokens, LEGACY_BATCH_SIZE):
        body = {"registration_ids": batch, "priority": "high", "notification": notification}
        if data:
            body["data"] = data

        response = await http.post(
            LEGACY_ENDPOINT,
            json=body,
            headers={"Authorization": f"key={server_key}"},
        )
        if response.status_code >= 400:
            failure += len(batch)
            errors.append(f"HTTP {response.status_code}: {response.text[:200]}")
            continue

        result = response.json()
        success += result.get("success") or 0
        failure += result.get("failure") or 0
        for i, item in enumerate(result.get("results") or []):
            if item.get("error"):
                tail = batch[i][-8:] if i < len(batch) else ""
                errors.append(f"{item['error']} (token tail: {tail})")

    return {"success": success, "failure": failure, "errors": errors}


async def send_notification(
    config: PushConfig,
    tokens: list[str],
    template: PushTemplate,
    http: httpx.AsyncClient | None = None,
) -> dict:
    """
    Send `template` to every token using `config`'s credentials.
    Returns {"success": int, "failure": int, "errors": [str]}.
    The service account wins when both credentials are present.
    """
    service_account = decrypt_value(config.service_account)
    server_key = decrypt_value(config.server_key)
    if not service_account and not server_key:
        raise FcmError("Push config has neither a service account nor a server key")

    if http is None:
        async with httpx.AsyncClient(timeout=30.0) as client:
            return await send_notification(config, tokens, template, http=client)

    if service_account:
        return await _send_with_service_account(config, service_account, tokens, template, http)
    return await _send_with_server_key(server_key, tokens, template, http)
