"""Tests for the HTTP API."""

from __future__ import annotations

import asyncio
import time
from pathlib import Path

import pytest

pytest.importorskip("fastapi")

from fastapi.testclient import TestClient  # noqa: E402

from codeseceval.config import SecEvalConfig  # noqa: E402
from codeseceval.web.app import create_app  # noqa: E402


@pytest.fixture
def client(tmp_path: Path):
    config = SecEvalConfig(data_dir=tmp_path / "data", config_dir=tmp_path / "config")
    app = asyncio.run(create_app(config, in_memory=True))
    with TestClient(app) as c:
        yield c


def _wait_for_history(client: TestClient, scan_id: str, timeout: float = 5.0) -> dict:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        response = client.get(f"/api/history/{scan_id}")
        if response.status_code == 200:
            return response.json()
        time.sleep(0.05)
    raise AssertionError(f"scan {scan_id} never reached history")


class TestScans:
    def test_scan_round_trip(self, client: TestClient, project_dir: Path):
        response = client.post("/api/scans", json={"target_path": str(project_dir)})
        assert response.status_code == 202
        scan_id = response.json()["session_id"]

        record = _wait_for_history(client, scan_id)
        assert record["finding_count"] >= 1

        result = client.get(f"/api/scans/{scan_id}/result").json()
        assert result["status"] == "completed"
        files = {Path(f["file_path"]).name for f in result["findings"]}
        assert files == {"file2.js"}

    def test_unknown_progress_is_404(self, client: TestClient):
        response = client.get("/api/scans/nope")
        assert response.status_code == 404
        assert response.json()["error"] == "NotFound"

    def test_cancel_unknown_returns_false(self, client: TestClient):
        response = client.post("/api/scans/nope/cancel")
        assert response.status_code == 200
        assert response.json()["cancelled"] is False

    def test_emptied_rule_set_applies_no_rules(self, client: TestClient, project_dir: Path):
        rule = {
            "id": "MINE",
            "name": "Debug flag",
            "description": "Debug left on",
            "severity": "low",
            "category": "configuration",
            "languages": ["javascript"],
            "pattern": "DEBUG = true",
        }
        assert client.post("/api/rules", json=rule).status_code == 201
        body = {"id": "mine", "name": "Mine", "rules": ["MINE"]}
        assert client.post("/api/rule-sets", json=body).status_code == 201
        assert client.delete("/api/rules/MINE").status_code == 200

        response = client.post(
            "/api/scans", json={"target_path": str(project_dir), "rule_set": "mine"}
        )
        scan_id = response.json()["session_id"]

        # SEC005 would flag file2.js if every enabled rule ran
        assert _wait_for_history(client, scan_id)["finding_count"] == 0

    def test_unknown_rule_set_is_404(self, client: TestClient, project_dir: Path):
        response = client.post(
            "/api/scans", json={"target_path": str(project_dir), "rule_set": "nope"}
        )
        assert response.status_code == 404


class TestRules:
    def test_list_and_filter(self, client: TestClient):
        assert len(client.get("/api/rules").json()) == 10
        critical = client.get("/api/rules", params={"severity": "critical"}).json()
        assert [r["id"] for r in critical] == ["SEC001", "SEC005"]

    def test_get_rule(self, client: TestClient):
        assert client.get("/api/rules/SEC003").json()["cwe_id"] == "CWE-798"
        assert client.get("/api/rules/NOPE").status_code == 404

    def test_create_update_delete(self, client: TestClient):
        rule = {
            "id": "MINE",
            "name": "Debug flag",
            "description": "Debug left on",
            "severity": "low",
            "category": "configuration",
            "languages": ["python"],
            "pattern": "DEBUG = True",
        }
        assert client.post("/api/rules", json=rule).status_code == 201
        assert client.post("/api/rules", json=rule).status_code == 409

        updated = client.patch("/api/rules/MINE", json={"severity": "high"}).json()
        assert updated["severity"] == "high"

        assert client.delete("/api/rules/MINE").status_code == 200
        assert client.get("/api/rules/MINE").status_code == 404

    def test_invalid_rule_lists_problems(self, client: TestClient):
        response = client.post("/api/rules", json={"id": "X"})
        assert response.status_code == 422
        assert len(response.json()["problems"]) >= 3

    def test_builtin_delete_forbidden(self, client: TestClient):
        assert client.delete("/api/rules/SEC001").status_code == 403

    def test_validate(self, client: TestClient):
        body = client.post("/api/rules/validate", json={"id": "X"}).json()
        assert body["valid"] is False

    def test_statistics(self, client: TestClient):
        stats = client.get("/api/rules/statistics").json()
        assert stats["total"] == 10
        assert stats["by_severity"]["critical"] == 2

    def test_rule_sets(self, client: TestClient):
        sets = client.get("/api/rule-sets").json()
        assert {s["id"] for s in sets} >= {"owasp-top10", "critical-only"}
        detail = client.get("/api/rule-sets/critical-only").json()
        assert [r["id"] for r in detail["members"]] == ["SEC001", "SEC005"]


class TestHistoryAndSettings:
    def test_cache_stats(self, client: TestClient):
        stats = client.get("/api/cache").json()
        assert set(stats) >= {"size", "items", "hits", "misses", "hit_rate"}

    def test_settings_update(self, client: TestClient):
        body = client.patch("/api/settings", json={"max_concurrent_scans": 20}).json()
        assert body["max_concurrent_scans"] == 10

    def test_settings_unknown_key(self, client: TestClient):
        response = client.patch("/api/settings", json={"colour": "blue"})
        assert response.status_code == 422

    def test_remove_unknown_history(self, client: TestClient):
        assert client.delete("/api/history/nope").status_code == 404
