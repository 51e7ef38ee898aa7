"""
Tests for post reading, writing and ownership rules.
"""

import pytest


@pytest.mark.anyio
async def test_list_posts_is_public(client, seeded):
    response = await client.get("/api/posts", params={"status": "PUBLISHED"})
    assert response.status_code == 200
    body = response.json()
    assert body["pagination"]["total"] == 2
    assert {p["title"] for p in body["data"]} == {"欢迎使用管理后台系统", "系统使用指南"}
    assert all(p["author"]["username"] == "admin" for p in body["data"])


@pytest.mark.anyio
async def test_get_post_counts_a_view(client, seeded):
    post = (await client.get("/api/posts", params={"search": "指南"})).json()["data"][0]
    first = (await client.get(f"/api/posts/{post['id']}")).json()["data"]
    second = (await client.get(f"/api/posts/{post['id']}")).json()["data"]
    assert second["views"] == first["views"] + 1
    assert second["comments"] == []


@pytest.mark.anyio
async def test_create_post_with_tags(client, user_headers):
    tags = (await client.get("/api/tags/all")).json()["data"]
    response = await client.post("/api/posts", json={
        "title": "运营周报",
        "content": "本周数据",
        "status": "DRAFT",
        "tagIds": [tags[0]["id"]],
    }, headers=user_headers)
    assert response.status_code == 201
    post = response.json()["data"]
    assert post["author"]["username"] == "testuser"
    assert [t["id"] for t in post["tags"]] == [tags[0]["id"]]
    assert post["commentCount"] == 0


@pytest.mark.anyio
async def test_post_validation(client, user_headers):
    response = await client.post("/api/posts", json={"title": " ", "content": "x"}, headers=user_headers)
    assert response.status_code == 400
    assert response.json()["error"] == "Title must be 1-200 characters"


@pytest.mark.anyio
async def test_only_author_or_admin_can_edit(client, user_headers, admin_headers):
    admin_post = (await client.get("/api/posts", params={"search": "指南"})).json()["data"][0]
    response = await client.put(f"/api/posts/{admin_post['id']}", json={"title": "hijack"}, headers=user_headers)
    assert response.status_code == 403
    assert response.json()["error"] == "You can only modify your own posts"

    own = (await client.post("/api/posts", json={"title": "mine", "content": "c"}, headers=user_headers)).json()["data"]
    response = await client.put(
        f"/api/posts/{own['id']}", json={"status": "PUBLISHED", "tagIds": []}, headers=user_headers
    )
    assert response.json()["data"]["status"] == "PUBLISHED"

    assert (await client.delete(f"/api/posts/{own['id']}", headers=admin_headers)).status_code == 200
    assert (await client.get(f"/api/posts/{own['id']}")).status_code == 404


@pytest.mark.anyio
async def test_post_stats(client, user_headers):
    await client.post("/api/posts", json={"title": "draft", "content": "c"}, headers=user_headers)
    response = await client.get("/api/posts/stats", headers=user_headers)
    data = response.json()["data"]
    assert data["totalPosts"] == 3
    assert data["publishedPosts"] == 2
    assert data["draftPosts"] == 1
    assert data["archivedPosts"] == 0
