"""
tests/test_api_routes.py — FastAPI Route Integration Tests
===========================================================
These tests verify:
- Auth guards on admin and read endpoints
- Upload endpoint success and error mapping
- Left-realm repair endpoint
- Health endpoint availability
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import create_engine

from factories import auth, make_token, make_upload, sheet_row, utc, workbook_bytes
from realmstats.services.ingestion_service import IngestionPipeline

XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _file(name: str, content: bytes) -> dict:
    return {"file": (name, content, XLSX)}


# ===========================================================================
# Health endpoint
# ===========================================================================
class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


# ===========================================================================
# Auth guards
# ===========================================================================
class TestAuthGuards:
    ADMIN_GET_ENDPOINTS = ["/api/admin/seasons", "/api/admin/logs"]
    ADMIN_POST_ENDPOINTS = [
        "/api/upload",
        "/api/admin/fix-left-realm",
        "/api/admin/seasons/assign-snapshots",
        "/api/admin/seasons/detect-reset",
    ]
    READ_ENDPOINTS = [
        "/api/snapshots",
        "/api/snapshots/latest",
        "/api/players",
        "/api/players/left-realm",
        "/api/players/joined-realm",
        "/api/name-changes",
        "/api/alliance-moves",
        "/api/uploads",
        "/api/seasons",
    ]

    @pytest.mark.parametrize("endpoint", ADMIN_GET_ENDPOINTS + READ_ENDPOINTS)
    def test_get_rejects_no_auth(self, client, endpoint):
        assert client.get(endpoint).status_code == 401

    @pytest.mark.parametrize("endpoint", ADMIN_POST_ENDPOINTS)
    def test_post_rejects_no_auth(self, client, endpoint):
        assert client.post(endpoint).status_code == 401

    @pytest.mark.parametrize("endpoint", READ_ENDPOINTS)
    def test_get_rejects_invalid_token(self, client, endpoint):
        resp = client.get(endpoint, headers={"Authorization": "Bearer invalid"})
        assert resp.status_code == 401

    @pytest.mark.parametrize("endpoint", ADMIN_POST_ENDPOINTS)
    def test_post_rejects_non_admin(self, client, viewer_token, endpoint):
        resp = client.post(endpoint, headers=auth(viewer_token))
        assert resp.status_code == 403

    @pytest.mark.parametrize("endpoint", READ_ENDPOINTS)
    def test_reads_allow_any_authenticated_user(self, client, viewer_token, endpoint):
        assert client.get(endpoint, headers=auth(viewer_token)).status_code == 200

    def test_legacy_is_admin_claim_is_accepted(self, client):
        token = make_token(role="VIEWER", is_admin=True)
        assert client.get("/api/admin/seasons", headers=auth(token)).status_code == 200

    def test_me(self, client, admin_token):
        resp = client.get("/api/auth/me", headers=auth(admin_token))
        assert resp.status_code == 200
        assert resp.json()["is_admin"] is True
        assert resp.json()["role"] == "ADMIN"


# ===========================================================================
# Upload
# ===========================================================================
class TestUploadEndpoint:
    def test_successful_upload(self, client, admin_token):
        content = workbook_bytes([
            sheet_row("1001", "Alice", "ABC", 15_000_000),
            sheet_row("1002", "Bob", "XYZ", 9_000_000),
        ])
        resp = client.post(
            "/api/upload",
            files=_file("671_20250810_2040utc.xlsx", content),
            headers=auth(admin_token),
        )

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["message"] == "Successfully processed 2 players"
        assert body["data"]["kingdom"] == "671"
        assert body["data"]["rows_processed"] == 2
        assert body["data"]["timestamp"].startswith("2025-08-10T20:40:00")

        uploads = client.get("/api/uploads", headers=auth(admin_token)).json()["uploads"]
        assert uploads[0]["uploaded_by"] == "admin-1"
        assert uploads[0]["status"] == "COMPLETED"

    def test_missing_file_is_400(self, client, admin_token):
        resp = client.post("/api/upload", headers=auth(admin_token))
        assert resp.status_code == 400
        assert resp.json() == {"detail": "No file provided", "code": "VALIDATION_ERROR"}

    def test_bad_filename_is_400(self, client, admin_token):
        resp = client.post(
            "/api/upload",
            files=_file("roster.xlsx", workbook_bytes([sheet_row("1")])),
            headers=auth(admin_token),
        )
        assert resp.status_code == 400
        assert "Invalid filename format" in resp.json()["detail"]
        assert client.get("/api/uploads", headers=auth(admin_token)).json()["uploads"] == []

    def test_wrong_extension_is_400(self, client, admin_token):
        resp = client.post(
            "/api/upload",
            files={"file": ("671_20250810_2040utc.csv", b"a,b", "text/csv")},
            headers=auth(admin_token),
        )
        assert resp.status_code == 400


# ===========================================================================
# Reads
# ===========================================================================
class TestReadEndpoints:
    def test_player_detail_and_404(self, client, db_engine, viewer_token):
        IngestionPipeline(db_engine).ingest_parsed(
            make_upload(utc(2025, 8, 1), [("1001", "Alice", "ABC", 1)]), "a"
        )

        ok = client.get("/api/players/1001", headers=auth(viewer_token))
        missing = client.get("/api/players/nobody", headers=auth(viewer_token))

        assert ok.status_code == 200
        assert ok.json()["player"]["current_name"] == "Alice"
        assert missing.status_code == 404
        assert missing.json()["code"] == "NOT_FOUND"

    def test_joined_realm_between_snapshots(self, client, db_engine, viewer_token):
        pipeline = IngestionPipeline(db_engine)
        first = pipeline.ingest_parsed(
            make_upload(utc(2025, 8, 1), [("1001", "Alice", "ABC", 1)]), "a"
        )
        second = pipeline.ingest_parsed(
            make_upload(utc(2025, 8, 2), [("1001", "Alice", "ABC", 1), ("1002", "Bob", "ABC", 2)]),
            "a",
        )

        resp = client.get(
            "/api/players/joined-realm",
            params={
                "mode": "snapshot",
                "from_snapshot": first.snapshot_id,
                "to_snapshot": second.snapshot_id,
            },
            headers=auth(viewer_token),
        )

        assert resp.status_code == 200
        assert [p["lord_id"] for p in resp.json()["players"]] == ["1002"]

    def test_joined_realm_snapshot_mode_needs_both_ids(self, client, viewer_token):
        resp = client.get(
            "/api/players/joined-realm",
            params={"mode": "snapshot", "from_snapshot": 1},
            headers=auth(viewer_token),
        )
        assert resp.status_code == 400
        assert resp.json()["code"] == "VALIDATION_ERROR"

    def test_database_failure_uses_error_envelope(self, client, viewer_token):
        from realmstats.api.deps import get_engine
        from realmstats.api.main import app

        app.dependency_overrides[get_engine] = lambda: create_engine("sqlite://")
        resp = client.get("/api/name-changes", headers=auth(viewer_token))

        assert resp.status_code == 500
        assert resp.json()["code"] == "DATABASE_ERROR"


# ===========================================================================
# Admin repair and seasons
# ===========================================================================
class TestAdminEndpoints:
    def test_fix_left_realm(self, client, db_engine, admin_token):
        long_ago = utc(2024, 1, 1)
        pipeline = IngestionPipeline(db_engine)
        pipeline.ingest_parsed(make_upload(long_ago, [("Y", "Yara", "ABC", 50_000_000)]), "a")
        pipeline.ingest_parsed(
            make_upload(long_ago + timedelta(days=1), [("Z", "Zed", "ABC", 60_000_000)]), "a"
        )

        resp = client.post("/api/admin/fix-left-realm", headers=auth(admin_token))

        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["should_have_been_marked"] == 2
        assert {p["lord_id"] for p in data["newly_marked_as_left"]} == {"Y", "Z"}

        again = client.post("/api/admin/fix-left-realm", headers=auth(admin_token)).json()
        assert again["data"]["should_have_been_marked"] == 0
        assert again["data"]["incorrectly_marked_count"] == 0

    def test_season_lifecycle(self, client, admin_token):
        created = client.post(
            "/api/admin/seasons",
            json={"name": "Season 1", "start_date": "2025-07-01T00:00:00Z"},
            headers=auth(admin_token),
        )
        assert created.status_code == 201
        season_id = created.json()["id"]

        activated = client.post(
            f"/api/admin/seasons/{season_id}/activate", headers=auth(admin_token)
        )
        assert activated.json()["is_active"] is True

        duplicate = client.post(
            "/api/admin/seasons",
            json={"name": "Season 1", "start_date": "2025-07-01T00:00:00Z"},
            headers=auth(admin_token),
        )
        assert duplicate.status_code == 400

        ended = client.post(f"/api/admin/seasons/{season_id}/end", headers=auth(admin_token))
        assert ended.json()["is_active"] is False

    def test_detect_reset_without_snapshots(self, client, admin_token):
        resp = client.post("/api/admin/seasons/detect-reset", headers=auth(admin_token))
        assert resp.status_code == 200
        assert resp.json()["reset_detected"] is False

    def test_unknown_season_is_404(self, client, admin_token):
        resp = client.post("/api/admin/seasons/999/activate", headers=auth(admin_token))
        assert resp.status_code == 404

    def test_logs_endpoint(self, client, admin_token):
        resp = client.get("/api/admin/logs?tail=5", headers=auth(admin_token))
        assert resp.status_code == 200
        assert "DEBUG" in resp.json()["valid_levels"]

    def test_log_level_validation(self, client, admin_token):
        resp = client.put("/api/admin/logs/level", json={"level": "LOUD"}, headers=auth(admin_token))
        assert resp.status_code == 400
