"""
Tests for news categories/articles and image upload.
"""

import base64
import pytest
from unittest.mock import patch, AsyncMock

from opsconsole.services.content_service import build_category_tree, decode_base64_upload, process_detail_html


async def _create(client, headers, **fields):
    response = await client.post("/api/content", json=fields, headers=headers)
    assert response.status_code == 200, response.text
    return response.json()["data"]


@pytest.mark.anyio
async def test_create_article_sets_url_path_and_sort(client, user_headers):
    article = await _create(client, user_headers, title="借款须知", alias="loan-guide")
    assert article["urlPath"] == f"/article/{article['id']}.html"
    assert article["sortNum"] == article["id"]
    assert article["appId"] == 15
    assert article["parentId"] == 10
    assert article["type"] == 2
    assert article["enabled"] == 1


@pytest.mark.anyio
async def test_alias_unique_per_app(client, user_headers):
    await _create(client, user_headers, title="a", alias="same")
    response = await client.post("/api/content", json={"title": "b", "alias": "same"}, headers=user_headers)
    assert response.status_code == 400
    assert response.json()["error"] == "Alias already exists"
    await _create(client, user_headers, title="c", alias="same", appId=16)


@pytest.mark.anyio
async def test_category_tree_is_public(client, user_headers):
    root = await _create(client, user_headers, title="新闻", type=1, parentId=0)
    child = await _create(client, user_headers, title="公告", type=1, parentId=root["id"])
    await _create(client, user_headers, title="文章", type=2, parentId=child["id"])

    response = await client.get("/api/content/categories")
    assert response.status_code == 200
    assert response.json()["data"] == [{
        "id": root["id"], "name": "新闻", "parentId": 0,
        "children": [{"id": child["id"], "name": "公告", "parentId": root["id"], "children": []}],
    }]


@pytest.mark.anyio
async def test_category_cannot_be_its_own_parent(client, user_headers):
    category = await _create(client, user_headers, title="cat", type=1, parentId=0)
    response = await client.put(f"/api/content/{category['id']}", json={"parentId": category["id"]},
                                headers=user_headers)
    assert response.status_code == 400


@pytest.mark.anyio
async def test_list_omits_body_and_paginates(client, user_headers):
    for i in range(3):
        await _create(client, user_headers, title=f"post {i}", content="<p>body</p>")
    response = await client.get("/api/content", params={"pageSize": 2}, headers=user_headers)
    body = response.json()
    assert body["pagination"] == {"page": 1, "limit": 2, "total": 3, "totalPages": 2}
    assert [c["title"] for c in body["data"]] == ["post 2", "post 1"]
    assert all(c["content"] is None for c in body["data"])


@pytest.mark.anyio
async def test_save_detail_processes_html(client, user_headers):
    article = await _create(client, user_headers, title="a")
    response = await client.post(
        f"/api/content/{article['id']}/detail",
        json={"content": '<p class="ql-align-center"><img src="x.png"></p>'},
        headers=user_headers,
    )
    html = response.json()["data"]["content"]
    assert html.startswith("<head>")
    assert 'style="text-align:center"' in html
    assert "<img style='margin:0 auto;display:block;width:100%' src=\"x.png\">" in html

    empty = await client.post(f"/api/content/{article['id']}/detail", json={"content": ""}, headers=user_headers)
    assert empty.status_code == 400


@pytest.mark.anyio
async def test_toggle_enabled(client, user_headers):
    article = await _create(client, user_headers, title="a")
    response = await client.post(f"/api/content/{article['id']}/toggle-enabled", json={"enabled": 0},
                                 headers=user_headers)
    assert response.json()["data"]["enabled"] == 0
    missing = await client.post(f"/api/content/{article['id']}/toggle-enabled", json={}, headers=user_headers)
    assert missing.status_code == 400


@pytest.mark.anyio
async def test_system_content_cannot_be_deleted(client, user_headers):
    protected = await _create(client, user_headers, title="about", alias="app_setting_about")
    plain = await _create(client, user_headers, title="plain")

    response = await client.delete(f"/api/content/{protected['id']}", headers=user_headers)
    assert response.status_code == 400
    assert response.json()["error"] == "System content cannot be deleted"

    batch = await client.post("/api/content/batch-delete", json={"ids": [protected["id"], plain["id"]]},
                              headers=user_headers)
    assert batch.status_code == 400
    assert (await client.get(f"/api/content/{plain['id']}", headers=user_headers)).status_code == 200

    batch = await client.post("/api/content/batch-delete", json={"ids": [plain["id"]]}, headers=user_headers)
    assert batch.json()["data"] == {"deleted": 1}


@pytest.mark.anyio
async def test_upload_multipart(client, user_headers):
    upload = AsyncMock(return_value="https://bucket.example.com/news/1_abc.jpg")
    with patch("opsconsole.services.oss_service.upload_bytes", upload):
        response = await client.post(
            "/api/content/upload",
            files={"file": ("photo.jpg", b"\xff\xd8jpeg", "image/jpeg")},
            headers=user_headers,
        )
    assert response.status_code == 200
    assert response.json()["data"]["url"] == "https://bucket.example.com/news/1_abc.jpg"
    assert upload.await_args.kwargs["folder"] == "news"
    assert upload.await_args.kwargs["filename"] == "photo.jpg"


@pytest.mark.anyio
async def test_upload_base64_data_url(client, user_headers):
    upload = AsyncMock(return_value="https://bucket.example.com/news/2_def.webp")
    data_url = "data:image/webp;base64," + base64.b64encode(b"RIFFwebp").decode()
    with patch("opsconsole.services.oss_service.upload_bytes", upload):
        response = await client.post("/api/content/upload", json={"file": data_url}, headers=user_headers)
    assert response.status_code == 200
    assert upload.await_args.args[0] == b"RIFFwebp"
    assert upload.await_args.kwargs["ext"] == "webp"
    assert upload.await_args.kwargs["content_type"] == "image/webp"


@pytest.mark.anyio
async def test_upload_rejects_bad_base64(client, user_headers):
    response = await client.post("/api/content/upload", json={"file": "@@not base64@@"}, headers=user_headers)
    assert response.status_code == 400
    assert response.json()["error"].startswith("Invalid base64 file data")


def test_category_tree_ignores_self_parent():
    items = [{"id": 1, "name": "a", "parentId": 0}, {"id": 2, "name": "b", "parentId": 2}]
    assert build_category_tree(items) == [{"id": 1, "name": "a", "parentId": 0, "children": []}]


def test_decode_plain_base64_defaults_to_png():
    raw, ext, mime = decode_base64_upload(base64.b64encode(b"img").decode())
    assert (raw, ext, mime) == (b"img", "png", None)


def test_process_detail_html_prefixes_head():
    assert process_detail_html("<p>x</p>").endswith("</head><p>x</p>")
