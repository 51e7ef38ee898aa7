"""
Tests for per-user favorite ad sequences.
"""

import pytest

from opsconsole.utils import normalize_favorites


@pytest.mark.anyio
async def test_toggle_adds_then_removes(client, user_headers):
    pair = {"mediaSource": "fb", "adSequence": "ad1"}
    response = await client.post("/api/attribution-favorites", json=pair, headers=user_headers)
    data = response.json()["data"]
    assert data["added"] is True
    assert [e["value"] for e in data["favorites"]["fb"]] == ["ad1"]
    assert isinstance(data["favorites"]["fb"][0]["favoritedAt"], int)

    response = await client.post("/api/attribution-favorites", json=pair, headers=user_headers)
    assert response.json()["data"] == {"favorites": {}, "added": False}


@pytest.mark.anyio
async def test_toggle_requires_both_fields(client, user_headers):
    response = await client.post("/api/attribution-favorites", json={"mediaSource": "fb"}, headers=user_headers)
    assert response.status_code == 400
    assert response.json()["error"] == "mediaSource and adSequence are required"


@pytest.mark.anyio
async def test_favorites_are_per_user(client, user_headers, admin_headers):
    await client.post("/api/attribution-favorites", json={"mediaSource": "fb", "adSequence": "ad1"},
                      headers=user_headers)
    mine = await client.get("/api/attribution-favorites", headers=user_headers)
    theirs = await client.get("/api/attribution-favorites", headers=admin_headers)
    assert list(mine.json()["data"]) == ["fb"]
    assert theirs.json()["data"] == {}


@pytest.mark.anyio
async def test_sync_replaces_and_keeps_timestamps(client, user_headers):
    first = await client.post("/api/attribution-favorites", json={"mediaSource": "fb", "adSequence": "ad1"},
                              headers=user_headers)
    original_ts = first.json()["data"]["favorites"]["fb"][0]["favoritedAt"]

    response = await client.post(
        "/api/attribution-favorites",
        json={"favorites": [
            {"mediaSource": "fb", "adSequence": "ad1"},
            {"mediaSource": "google", "adSequence": "ad2"},
            {"mediaSource": "", "adSequence": "ignored"},
        ]},
        headers=user_headers,
    )
    favorites = response.json()["data"]["favorites"]
    assert set(favorites) == {"fb", "google"}
    assert favorites["fb"][0]["favoritedAt"] == original_ts


@pytest.mark.anyio
async def test_sync_applies_additions_and_removals(client, user_headers):
    await client.post("/api/attribution-favorites", json={"mediaSource": "fb", "adSequence": "ad1"},
                      headers=user_headers)
    response = await client.post(
        "/api/attribution-favorites",
        json={
            "additions": [{"mediaSource": "fb", "adSequence": "ad9"}],
            "removals": [{"mediaSource": "fb", "adSequence": "ad1"}],
        },
        headers=user_headers,
    )
    assert [e["value"] for e in response.json()["data"]["favorites"]["fb"]] == ["ad9"]

    stored = await client.get("/api/attribution-favorites", headers=user_headers)
    assert [e["value"] for e in stored.json()["data"]["fb"]] == ["ad9"]


@pytest.mark.anyio
async def test_sync_rejects_non_list(client, user_headers):
    response = await client.post("/api/attribution-favorites", json={"favorites": "fb:ad1"}, headers=user_headers)
    assert response.status_code == 400


def test_normalize_keeps_latest_timestamp_per_value():
    raw = {
        "fb": [
            {"value": "a", "favoritedAt": 100},
            {"value": "a", "favoritedAt": 300},
            {"value": "b", "favoritedAt": 200},
            {"value": "  ", "favoritedAt": 400},
            "junk",
        ],
        "google": [],
        "tiktok": "not a list",
    }
    cleaned = normalize_favorites(raw)
    assert cleaned == {"fb": [{"value": "a", "favoritedAt": 300}, {"value": "b", "favoritedAt": 200}]}
    assert normalize_favorites(cleaned) == cleaned


def test_normalize_fills_missing_timestamp():
    cleaned = normalize_favorites({"fb": [{"value": "a"}, {"value": "b", "favoritedAt": True}]}, default_ts=5)
    assert cleaned == {"fb": [{"value": "a", "favoritedAt": 5}, {"value": "b", "favoritedAt": 5}]}


def test_normalize_rejects_non_dict():
    assert normalize_favorites(None) == {}
    assert normalize_favorites(["fb"]) == {}
