"""Tests for the pipeline and health HTTP endpoints."""

import json

import pytest


def _post(client, url, payload, **kwargs):
    return client.post(url, data=json.dumps(payload), content_type="application/json", **kwargs)


@pytest.fixture
def created(client, pipeline_data):
    response = _post(client, "/api/pipelines", pipeline_data, headers={"X-User": "alice"})
    assert response.status_code == 201
    return response.get_json()["data"]


class TestPipelineCrud:
    def test_create(self, created):
        assert created["id"]
        assert created["q_gross"] == 6160.0
        assert created["q_net_rev"] == 3080.0
        assert created["progress_percent"] == 80
        assert created["created_by"] == "alice"
        assert created["starting_date"] == "2025-04-15"
        assert len(created["monthly_forecasts"]) == 3

    def test_create_validation_error(self, client, pipeline_data):
        pipeline_data["group"] = "marketing"
        response = _post(client, "/api/pipelines", pipeline_data)

        assert response.status_code == 400
        body = response.get_json()
        assert body["success"] is False
        assert body["error_code"] == "VALIDATION_ERROR"
        assert body["details"]["errors"][0]["field"] == "group"

    def test_create_rejects_oversized_amount(self, client, pipeline_data):
        pipeline_data["max_gross"] = 1e30
        response = _post(client, "/api/pipelines", pipeline_data)

        assert response.status_code == 400
        body = response.get_json()
        assert body["error_code"] == "VALIDATION_ERROR"
        assert body["details"]["errors"][0]["code"] == "INVALID_FINANCIAL_VALUE"

    def test_non_json_body(self, client):
        response = client.post("/api/pipelines", data="publisher=x", content_type="text/plain")
        assert response.status_code == 400
        assert response.get_json()["error_code"] == "VALIDATION_ERROR"

    def test_get(self, client, created):
        response = client.get(f"/api/pipelines/{created['id']}")
        assert response.status_code == 200
        assert response.get_json()["data"]["publisher"] == "Example Media"

    def test_get_missing(self, client):
        response = client.get("/api/pipelines/does-not-exist")
        assert response.status_code == 404
        assert response.get_json()["error_code"] == "NOT_FOUND"

    def test_list(self, client, created, pipeline_data):
        _post(client, "/api/pipelines", dict(pipeline_data, group="cs"))

        body = client.get("/api/pipelines?group=cs").get_json()["data"]
        assert body["total"] == 1
        assert body["pipelines"][0]["group"] == "cs"

        body = client.get("/api/pipelines?limit=1").get_json()["data"]
        assert body["total"] == 2
        assert len(body["pipelines"]) == 1
        assert body["limit"] == 1

    @pytest.mark.parametrize("method", ["put", "patch"])
    def test_update(self, client, created, method):
        response = getattr(client, method)(
            f"/api/pipelines/{created['id']}",
            data=json.dumps({"max_gross": 6000, "user": "bob"}),
            content_type="application/json",
        )
        assert response.status_code == 200
        body = response.get_json()["data"]
        assert body["q_gross"] == 12320.0
        assert body["updated_by"] == "bob"

    def test_update_missing(self, client):
        response = client.put(
            "/api/pipelines/missing", data=json.dumps({"poc": "bob"}), content_type="application/json"
        )
        assert response.status_code == 404

    def test_delete(self, client, created):
        response = client.delete(
            f"/api/pipelines/{created['id']}",
            data=json.dumps({"reason": "duplicate"}),
            content_type="application/json",
            headers={"X-User": "bob"},
        )
        assert response.status_code == 200
        assert response.get_json()["data"] == {
            "pipeline_id": created["id"],
            "deleted_by": "bob",
            "archived_forecasts": 3,
        }
        assert client.get(f"/api/pipelines/{created['id']}").status_code == 404


class TestActivities:
    def test_status_change_appears_in_history(self, client, created):
        client.patch(
            f"/api/pipelines/{created['id']}",
            data=json.dumps({"status": "【B】"}),
            content_type="application/json",
            headers={"X-User": "bob"},
        )
        body = client.get(f"/api/pipelines/{created['id']}/activities?type=status_change").get_json()
        activities = body["data"]["activities"]
        assert len(activities) == 1
        assert activities[0]["activity_type"] == "status_change"
        assert activities[0]["logged_by"] == "bob"

    def test_add_note(self, client, created):
        response = _post(
            client, f"/api/pipelines/{created['id']}/activities", {"notes": "Called", "user": "carol"}
        )
        assert response.status_code == 201
        assert response.get_json()["data"]["activity_type"] == "note"

        activities = client.get(f"/api/pipelines/{created['id']}/activities").get_json()["data"]["activities"]
        assert [(a["notes"], a["logged_by"]) for a in activities] == [("Called", "carol")]

    def test_note_requires_text(self, client, created):
        response = _post(client, f"/api/pipelines/{created['id']}/activities", {"notes": ""})
        assert response.status_code == 400

    def test_unknown_activity_type(self, client, created):
        response = client.get(f"/api/pipelines/{created['id']}/activities?type=gossip")
        assert response.status_code == 400


class TestForecastEndpoints:
    def test_forecast_check(self, client, created):
        body = client.get(f"/api/pipelines/{created['id']}/forecast-check").get_json()["data"]
        assert body["consistent"] is True
        assert body["q_gross"] == 6160.0

    def test_calculate_preview(self, client, pipeline_data):
        body = _post(client, "/api/pipelines/calculate", pipeline_data).get_json()["data"]
        assert body["q_gross"] == 6160.0
        assert body["metadata"]["quarterly_breakdown"]["gross"]["last_month"] == 2400.0
        assert client.get("/api/pipelines").get_json()["data"]["total"] == 0


class TestHealth:
    def test_health(self, client, created):
        response = client.get("/health")
        assert response.status_code == 200
        body = response.get_json()["data"]
        assert body["overall_status"] == "healthy"
        assert body["database"]["pipelines"] == 1
        assert "pipeline_service" in body["services"]

    def test_system_stats(self, client):
        response = client.get("/health/system")
        assert response.status_code == 200
        assert "cpu_percent" in response.get_json()["data"]["system"]


def test_unknown_route_returns_json_404(client):
    response = client.get("/api/nothing-here")
    assert response.status_code == 404
    assert response.get_json()["error_code"] == "NOT_FOUND"


def test_method_not_allowed(client):
    response = client.post("/health")
    assert response.status_code == 405
    assert response.get_json()["error_code"] == "METHOD_NOT_ALLOWED"
