"""
Tests for tag listings and tag management.
"""

import pytest


@pytest.mark.anyio
async def test_all_tags_are_public_and_counted(client, seeded):
    response = await client.get("/api/tags/all")
    assert response.status_code == 200
    tags = {t["name"]: t for t in response.json()["data"]}
    assert set(tags) == {"技术", "生活", "学习", "工作"}
    assert tags["技术"]["postCount"] == 2
    assert tags["学习"]["postCount"] == 1
    assert tags["生活"]["postCount"] == 0
    assert tags["技术"]["color"] == "#1890ff"


@pytest.mark.anyio
async def test_popular_tags_ordered_by_post_count(client, seeded):
    response = await client.get("/api/tags/popular", params={"limit": 2})
    names = [t["name"] for t in response.json()["data"]]
    assert names == ["技术", "学习"]


@pytest.mark.anyio
async def test_create_tag_requires_login(client, seeded):
    response = await client.post("/api/tags", json={"name": "运营"})
    assert response.status_code == 401


@pytest.mark.anyio
async def test_create_update_delete_tag(client, user_headers, admin_headers):
    response = await client.post("/api/tags", json={"name": "运营", "color": "#123abc"}, headers=user_headers)
    assert response.status_code == 201
    tag = response.json()["data"]
    assert tag["color"] == "#123abc"

    response = await client.put(f"/api/tags/{tag['id']}", json={"name": "运营活动"}, headers=user_headers)
    assert response.json()["data"]["name"] == "运营活动"

    assert (await client.delete(f"/api/tags/{tag['id']}", headers=user_headers)).status_code == 403
    assert (await client.delete(f"/api/tags/{tag['id']}", headers=admin_headers)).status_code == 200
    assert (await client.get(f"/api/tags/{tag['id']}")).status_code == 404


@pytest.mark.anyio
@pytest.mark.parametrize("payload, error", [
    ({"name": ""}, "Tag name must be 1-20 characters"),
    ({"name": "x" * 21}, "Tag name must be 1-20 characters"),
    ({"name": "ok", "color": "blue"}, "Color must be a hex value like #1890ff"),
    ({"name": "技术"}, "Tag name already exists"),
])
async def test_tag_validation(client, user_headers, payload, error):
    response = await client.post("/api/tags", json=payload, headers=user_headers)
    assert response.status_code == 400
    assert response.json()["error"] == error


@pytest.mark.anyio
async def test_tag_detail_lists_posts(client, seeded):
    tags = {t["name"]: t for t in (await client.get("/api/tags/all")).json()["data"]}
    response = await client.get(f"/api/tags/{tags['学习']['id']}")
    data = response.json()["data"]
    assert data["postCount"] == 1
    assert data["posts"][0]["title"] == "欢迎使用管理后台系统"
    assert data["posts"][0]["author"]["username"] == "admin"
