"""
Tests for loan-partner API configs and logo upload.
"""

import pytest
from unittest.mock import patch, AsyncMock

PARTNER = {
    "app_id": 15,
    "partner_name": "Dana Cepat",
    "partner_api": "https://partner.example.com/api",
    "secret_key": "s3cret",
    "type": 1,
    "default_amount": 1500000.0,
    "loan_product_url": "https://partner.example.com/product",
}


@pytest.mark.anyio
async def test_create_and_fetch_partner(client, user_headers):
    response = await client.post("/api/api-partner-configs", json=PARTNER, headers=user_headers)
    assert response.status_code == 201
    partner = response.json()["data"]
    assert partner["app_id"] == 15
    assert partner["secret_key"] == "s3cret"
    assert partner["status"] == 1

    fetched = await client.get(f"/api/api-partner-configs/{partner['id']}", headers=user_headers)
    assert fetched.json()["data"]["loan_product_url"] == "https://partner.example.com/product"


@pytest.mark.anyio
async def test_partner_requires_core_fields(client, user_headers):
    response = await client.post("/api/api-partner-configs", json={"app_id": 1}, headers=user_headers)
    assert response.status_code == 400
    assert response.json()["error"] == "Missing required fields: app_id, partner_name, partner_api, secret_key"


@pytest.mark.anyio
async def test_duplicate_app_id_rejected(client, user_headers):
    await client.post("/api/api-partner-configs", json=PARTNER, headers=user_headers)
    response = await client.post("/api/api-partner-configs", json=PARTNER, headers=user_headers)
    assert response.status_code == 400
    assert response.json()["error"] == "This app_id already exists"


@pytest.mark.anyio
async def test_public_endpoints_hide_secret(client, user_headers):
    await client.post("/api/api-partner-configs", json=PARTNER, headers=user_headers)
    await client.post("/api/api-partner-configs", json={**PARTNER, "app_id": 16, "status": 0}, headers=user_headers)

    enabled = (await client.get("/api/api-partner-configs/enabled")).json()["data"]
    assert [p["app_id"] for p in enabled] == [15]
    assert enabled[0]["secret_key"] is None

    by_app = await client.get("/api/api-partner-configs/app/16")
    assert by_app.status_code == 200
    assert by_app.json()["data"]["secret_key"] is None
    assert (await client.get("/api/api-partner-configs/app/99")).status_code == 404


@pytest.mark.anyio
async def test_list_requires_login_and_filters(client, user_headers):
    assert (await client.get("/api/api-partner-configs")).status_code == 401

    await client.post("/api/api-partner-configs", json=PARTNER, headers=user_headers)
    await client.post("/api/api-partner-configs", json={**PARTNER, "app_id": 16, "type": 2}, headers=user_headers)
    response = await client.get("/api/api-partner-configs", params={"type": 2}, headers=user_headers)
    body = response.json()
    assert [p["app_id"] for p in body["data"]] == [16]
    assert body["pagination"]["total"] == 1


@pytest.mark.anyio
async def test_update_keeps_secret_when_blank(client, user_headers):
    partner = (await client.post("/api/api-partner-configs", json=PARTNER, headers=user_headers)).json()["data"]
    response = await client.put(
        f"/api/api-partner-configs/{partner['id']}",
        json={"partner_name": "Dana Kilat", "secret_key": ""},
        headers=user_headers,
    )
    data = response.json()["data"]
    assert data["partner_name"] == "Dana Kilat"
    assert data["secret_key"] == "s3cret"

    empty = await client.put(f"/api/api-partner-configs/{partner['id']}", json={}, headers=user_headers)
    assert empty.status_code == 400


@pytest.mark.anyio
async def test_delete_partner(client, user_headers):
    partner = (await client.post("/api/api-partner-configs", json=PARTNER, headers=user_headers)).json()["data"]
    assert (await client.delete(f"/api/api-partner-configs/{partner['id']}", headers=user_headers)).status_code == 200
    assert (await client.get(f"/api/api-partner-configs/{partner['id']}", headers=user_headers)).status_code == 404


@pytest.mark.anyio
async def test_upload_logo_uses_stable_name(client, user_headers):
    upload = AsyncMock(return_value="https://bucket.example.com/cpi_logo/15.png")
    with patch("opsconsole.services.oss_service.upload_bytes", upload):
        response = await client.post(
            "/api/api-partner-configs/upload-logo",
            files={"file": ("logo.png", b"\x89PNG fake", "image/png")},
            data={"appId": "15"},
            headers=user_headers,
        )
    assert response.status_code == 200
    assert response.json()["data"]["url"] == "https://bucket.example.com/cpi_logo/15.png"
    kwargs = upload.await_args.kwargs
    assert kwargs["folder"] == "cpi_logo"
    assert kwargs["app_id"] == "15"
    assert kwargs["filename"] == "logo.png"


@pytest.mark.anyio
async def test_upload_logo_without_file(client, user_headers):
    response = await client.post("/api/api-partner-configs/upload-logo", data={"appId": "15"}, headers=user_headers)
    assert response.status_code == 400
    assert response.json()["error"] == "No file uploaded"


@pytest.mark.anyio
async def test_upload_logo_without_oss_config_is_500(client, user_headers):
    response = await client.post(
        "/api/api-partner-configs/upload-logo",
        files={"file": ("logo.png", b"data", "image/png")},
        headers=user_headers,
    )
    assert response.status_code == 500
    assert response.json()["error"].startswith("Object storage is not configured")
