"""
Tests for the attribution, internal-transfer and rating reports.
Source rows are written straight into the lending-core tables.
"""

import pytest
from datetime import datetime

from opsconsole.models import (
    AdjustEventConfig, AdjustEventRecord, AppsflyerCallback,
    UserLoginRecord, UserOcrRecord, UserInfo, UserUploadRecord,
    UserCredit, UserLoan, UserRating,
)
from opsconsole.services.reporting_service import (
    date_series, internal_transfer_details, MAX_SERIES_DAYS,
)

RANGE = {"startDate": "2026-03-01", "endDate": "2026-03-03"}


def _at(day, hour=9):
    return datetime(2026, 3, day, hour)


@pytest.fixture
async def attribution_rows(db_session):
    db_session.add_all([
        AdjustEventConfig(event_name="register", is_enabled=1),
        AdjustEventConfig(event_name="loan success", is_enabled=1),
        AdjustEventConfig(event_name="retired", is_enabled=0),
        AdjustEventRecord(user_id="u1", event_name="register", status=1, created_at=_at(1, 9)),
        AdjustEventRecord(user_id="u1", event_name="register", status=1, created_at=_at(1, 10)),
        AdjustEventRecord(user_id="u2", event_name="register", status=1, created_at=_at(1, 11)),
        AdjustEventRecord(user_id="u3", event_name="register", status=0, created_at=_at(1, 12)),
        AdjustEventRecord(user_id="u2", event_name="loan success", status=1, created_at=_at(3, 8)),
        AppsflyerCallback(customer_user_id="u1", app_id="com.a", media_source="fb", af_c_id="ad1",
                          event_name="af_register", callback_status="processed", created_at=_at(1, 9)),
        AppsflyerCallback(customer_user_id="u2", app_id="com.a", media_source="google", af_c_id="ad2",
                          event_name="af_register", callback_status="processed", created_at=_at(1, 10)),
        AppsflyerCallback(customer_user_id=None, app_id="com.b", media_source="fb", af_c_id="ad3",
                          event_name="af_register", callback_status="processed", created_at=_at(1, 11)),
        AppsflyerCallback(customer_user_id="u3", app_id="com.b", media_source="fb", af_c_id="ad1",
                          event_name="af_login", callback_status="pending", created_at=_at(2, 9)),
    ])
    await db_session.commit()


@pytest.fixture
async def funnel_rows(db_session):
    db_session.add_all([
        UserLoginRecord(user_id=1, is_new_user=1, request_time=_at(1)),
        UserLoginRecord(user_id=2, is_new_user=1, request_time=_at(1)),
        UserLoginRecord(user_id=3, is_new_user=0, request_time=_at(1)),
        *[UserOcrRecord(user_id=1, event_name=e, recognition_status=1, created_at=_at(1, 9 + i))
          for i, e in enumerate(("check", "liveness-check", "face-recognition", "check"))],
        UserOcrRecord(user_id=2, event_name="check", recognition_status=1, created_at=_at(1)),
        UserOcrRecord(user_id=2, event_name="liveness-check", recognition_status=1, created_at=_at(1)),
        UserOcrRecord(user_id=2, event_name="face-recognition", recognition_status=0, created_at=_at(1)),
        UserOcrRecord(user_id=2, event_name="bank-card", recognition_status=1, created_at=_at(1)),
        UserInfo(user_id=1, created_at=_at(1)),
        UserUploadRecord(user_id=1, status="success", created_at=_at(1)),
        UserUploadRecord(user_id=2, status="failed", created_at=_at(1)),
        UserCredit(user_id=1, credit_status=2, created_at=_at(2)),
        UserLoan(user_id=1, status=1, created_at=_at(2, 10)),
        UserLoan(user_id=1, status=1, created_at=_at(2, 11)),
        UserLoan(user_id=2, status=0, created_at=_at(2, 12)),
    ])
    await db_session.commit()


# ── Attribution ───────────────────────────────────────────────────────

@pytest.mark.anyio
async def test_adjust_chart_counts_distinct_users(client, user_headers, attribution_rows):
    response = await client.get("/api/attribution-chart", params=RANGE, headers=user_headers)
    body = response.json()
    assert body["eventNames"] == ["loan success", "register"]
    assert body["data"] == [
        {"query_date": "2026-03-01", "event_loan_success": 0, "event_register": 2},
        {"query_date": "2026-03-02", "event_loan_success": 0, "event_register": 0},
        {"query_date": "2026-03-03", "event_loan_success": 1, "event_register": 0},
    ]


@pytest.mark.anyio
async def test_attribution_data_is_paginated_newest_first(client, user_headers, attribution_rows):
    response = await client.get("/api/attribution-data", params={**RANGE, "pageSize": 2}, headers=user_headers)
    body = response.json()
    assert [r["query_date"] for r in body["data"]] == ["2026-03-03", "2026-03-02"]
    assert body["pagination"] == {"page": 1, "limit": 2, "total": 3, "totalPages": 2}


@pytest.mark.anyio
async def test_appsflyer_series_counts_processed_callbacks(client, user_headers, attribution_rows):
    params = {**RANGE, "dataSource": "appsflyer"}
    response = await client.get("/api/attribution-chart", params=params, headers=user_headers)
    body = response.json()
    assert body["eventNames"] == ["af_login", "af_register"]
    assert body["data"][0] == {"query_date": "2026-03-01", "event_af_login": 0, "event_af_register": 2}
    assert body["data"][1]["event_af_login"] == 0

    filtered = await client.get("/api/attribution-chart", params={**params, "mediaSource": "fb"},
                                headers=user_headers)
    assert filtered.json()["data"][0]["event_af_register"] == 1


@pytest.mark.anyio
async def test_attribution_comparison(client, user_headers, attribution_rows):
    response = await client.get("/api/attribution-comparison", params=RANGE, headers=user_headers)
    body = response.json()
    assert len(body["data"]["adjust"]) == 3
    assert len(body["data"]["appsflyer"]) == 3
    assert body["data"]["adjust"][0]["query_date"] == "2026-03-03"
    assert body["eventNames"]["appsflyer"] == ["af_login", "af_register"]
    assert body["pagination"]["total"] == 3


@pytest.mark.anyio
@pytest.mark.filterwarnings("error::sqlalchemy.exc.SAWarning")
async def test_attribution_lookups(client, user_headers, attribution_rows):
    app_ids = await client.get("/api/attribution-app-ids", headers=user_headers)
    assert app_ids.json()["data"] == ["com.a", "com.b"]
    sources = await client.get("/api/attribution-media-sources", headers=user_headers)
    assert sources.json()["data"] == ["fb", "google"]
    sequences = await client.get("/api/attribution-ad-sequences", params={"mediaSource": "google"},
                                 headers=user_headers)
    assert sequences.json()["data"] == ["ad2"]
    names = await client.get("/api/attribution-event-names", headers=user_headers)
    assert names.json()["data"] == ["loan success", "register"]


@pytest.mark.anyio
async def test_attribution_details(client, user_headers, attribution_rows):
    params = {"date": "2026-03-01", "dataSource": "appsflyer"}
    response = await client.get("/api/attribution-details", params=params, headers=user_headers)
    body = response.json()
    assert body["pagination"]["total"] == 3
    assert body["data"][0]["ad_sequence"] == "ad3"

    narrowed = await client.get("/api/attribution-details", params={**params, "mediaSource": "google"},
                                headers=user_headers)
    assert [r["customer_user_id"] for r in narrowed.json()["data"]] == ["u2"]

    missing = await client.get("/api/attribution-details", headers=user_headers)
    assert missing.status_code == 400
    assert missing.json()["error"] == "date is required"


@pytest.mark.anyio
async def test_attribution_export_csv(client, user_headers, attribution_rows):
    response = await client.get("/api/attribution-export", params=RANGE, headers=user_headers)
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert "attachment" in response.headers["content-disposition"]
    assert response.content.startswith(b"\xef\xbb\xbf")
    lines = response.content.decode("utf-8-sig").split("\r\n")
    assert lines[0] == "date,loan success,register"
    assert lines[1] == "2026-03-03,1,0"
    assert lines[3] == "2026-03-01,0,2"


@pytest.mark.anyio
@pytest.mark.parametrize("params", [
    {"startDate": "2026-13-45"},
    {"dataSource": "facebook"},
])
async def test_attribution_rejects_bad_params(client, user_headers, params):
    response = await client.get("/api/attribution-data", params=params, headers=user_headers)
    assert response.status_code == 400
    assert response.json()["success"] is False


@pytest.mark.anyio
async def test_reports_require_login(client):
    for path in ("/api/attribution-data", "/api/internal-transfer-data", "/api/rating-data"):
        response = await client.get(path)
        assert response.status_code == 401


@pytest.mark.anyio
async def test_no_events_means_no_rows(client, user_headers):
    response = await client.get("/api/attribution-data", params=RANGE, headers=user_headers)
    body = response.json()
    assert body["data"] == []
    assert body["eventNames"] == []


# ── Internal transfer ─────────────────────────────────────────────────

@pytest.mark.anyio
async def test_internal_transfer_chart(client, user_headers, funnel_rows):
    params = {"startDate": "2026-03-01", "endDate": "2026-03-02"}
    response = await client.get("/api/internal-transfer-chart", params=params, headers=user_headers)
    assert response.json()["data"] == [
        {"query_date": "2026-03-01", "注册人数": 2, "实名认证完成人数": 1, "获取个信人数": 1,
         "个人信息推送成功人数": 1, "授信成功人数": 0, "借款成功人数": 0},
        {"query_date": "2026-03-02", "注册人数": 0, "实名认证完成人数": 0, "获取个信人数": 0,
         "个人信息推送成功人数": 0, "授信成功人数": 1, "借款成功人数": 2},
    ]

    table = await client.get("/api/internal-transfer-data", params=params, headers=user_headers)
    assert [r["query_date"] for r in table.json()["data"]] == ["2026-03-02", "2026-03-01"]


@pytest.mark.anyio
async def test_internal_transfer_details(client, user_headers, funnel_rows):
    response = await client.get("/api/internal-transfer-details", params={"date": "2026-03-01"},
                                headers=user_headers)
    data = response.json()["data"]
    assert data["date"] == "2026-03-01"
    assert [(s["stage"], s["count"], s["conversionRate"]) for s in data["stages"]] == [
        ("register", 2, None),
        ("ocr", 1, 50.0),
        ("info", 1, 100.0),
        ("upload", 1, 100.0),
        ("credit", 0, 0.0),
        ("loan", 0, None),
    ]


@pytest.mark.anyio
async def test_internal_transfer_export(client, user_headers, funnel_rows):
    params = {"startDate": "2026-03-01", "endDate": "2026-03-02"}
    response = await client.get("/api/internal-transfer-export", params=params, headers=user_headers)
    lines = response.content.decode("utf-8-sig").split("\r\n")
    assert lines[0] == "日期,注册人数,实名认证完成人数,获取个信人数,个人信息推送成功人数,授信成功人数,借款成功人数"
    assert lines[1] == "2026-03-02,0,0,0,0,1,2"


@pytest.mark.anyio
async def test_ocr_stage_needs_every_event_on_the_same_day(db_session):
    db_session.add_all([
        UserOcrRecord(user_id=5, event_name="check", recognition_status=1, created_at=_at(1, 23)),
        UserOcrRecord(user_id=5, event_name="liveness-check", recognition_status=1, created_at=_at(2, 1)),
        UserOcrRecord(user_id=5, event_name="face-recognition", recognition_status=1, created_at=_at(2, 2)),
        UserOcrRecord(user_id=6, event_name="check", recognition_status=1, created_at=_at(2)),
        UserOcrRecord(user_id=6, event_name="liveness-check", recognition_status=1, created_at=_at(2)),
        UserOcrRecord(user_id=6, event_name="face-recognition", recognition_status=1, created_at=_at(2)),
    ])
    await db_session.commit()

    for day, expected in ((1, 0), (2, 1)):
        stages = await internal_transfer_details(db_session, datetime(2026, 3, day).date())
        assert stages[1]["stage"] == "ocr"
        assert stages[1]["count"] == expected


# ── Rating ────────────────────────────────────────────────────────────

@pytest.fixture
async def rating_rows(db_session):
    db_session.add_all([
        UserRating(user_id=1, rating_level="2", created_at=_at(1)),
        UserRating(user_id=2, rating_level="1", created_at=_at(1)),
        UserRating(user_id=3, rating_level="1", created_at=_at(1)),
        UserRating(user_id=3, rating_level="1", created_at=_at(1, 15)),
        UserRating(user_id=4, rating_level="10", created_at=_at(1)),
        UserRating(user_id=1, rating_level="1", created_at=_at(2)),
    ])
    await db_session.commit()


@pytest.mark.anyio
async def test_rating_data_sorted_by_date_then_level(client, user_headers, rating_rows):
    response = await client.get("/api/rating-data", headers=user_headers)
    assert response.json()["data"] == [
        {"query_date": "2026-03-02", "rating_level": 1, "user_count": 1},
        {"query_date": "2026-03-01", "rating_level": 1, "user_count": 2},
        {"query_date": "2026-03-01", "rating_level": 2, "user_count": 1},
        {"query_date": "2026-03-01", "rating_level": 10, "user_count": 1},
    ]

    ranged = await client.get("/api/rating-data", params={"startDate": "2026-03-02", "endDate": "2026-03-02"},
                              headers=user_headers)
    assert len(ranged.json()["data"]) == 1


@pytest.mark.anyio
async def test_rating_export(client, user_headers, rating_rows):
    response = await client.get("/api/rating-data/export", headers=user_headers)
    lines = response.content.decode("utf-8-sig").split("\r\n")
    assert lines[0] == "日期,评级,人数"
    assert lines[1] == "2026-03-02,1,1"

    bad = await client.get("/api/rating-data", params={"startDate": "yesterday"}, headers=user_headers)
    assert bad.status_code == 400


def test_date_series_is_capped():
    from datetime import date
    days = date_series(date(2025, 1, 1), date(2026, 1, 1))
    assert len(days) == MAX_SERIES_DAYS
    assert days[0] == date(2025, 1, 1)
    assert date_series(date(2026, 1, 2), date(2026, 1, 1)) == []
