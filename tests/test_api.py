import csv
import io

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

import main


def _auth(token):
    return {"Authorization": f"Bearer {token}"}


def test_current_data_for_free_plan(client):
    response = client.get("/api/current-data")
    assert response.status_code == 200
    data = response.json()

    assert "cropHealth" not in data
    assert "yieldPrediction" not in data
    assert "ph" not in data["soil"]
    assert "humidity" not in data["weather"]
    assert data["weather"]["temperature"] == 20.0
    assert data["location"]["city"]


def test_current_data_for_premium_plan(client, token_for):
    data = client.get("/api/current-data", headers=_auth(token_for("premium"))).json()

    assert 0 <= data["cropHealth"]["score"] <= 100
    assert data["yieldPrediction"]["perHectare"] >= 0
    assert data["soil"]["ph"] > 0
    assert data["weather"]["humidity"] == 62


def test_pro_plan_sees_health_but_not_yield(client, token_for):
    data = client.get("/api/current-data", headers=_auth(token_for("pro"))).json()
    assert "cropHealth" in data
    assert "yieldPrediction" not in data


def test_history_grows_with_each_request(client):
    client.get("/api/current-data")
    data = client.get("/api/current-data").json()
    assert len(data["historical"]["timestamps"]) == 2


@pytest.mark.parametrize("header", ["Bearer garbage", "Token abc", "Bearer"])
def test_bad_authorization_is_rejected(client, header):
    response = client.get("/api/current-data", headers={"Authorization": header})
    assert response.status_code == 401


def test_subscribe_returns_plan_token(client):
    response = client.post("/api/subscribe", json={"plan": "pro"})
    assert response.status_code == 200
    body = response.json()
    assert body["plan"] == "pro"
    assert body["token_type"] == "bearer"
    assert "crop-health" in body["features"]

    features = client.get("/api/features", headers=_auth(body["access_token"])).json()
    assert features["plan"] == "pro"
    assert "export-csv" in features["features"]


def test_subscribe_to_unknown_plan(client):
    response = client.post("/api/subscribe", json={"plan": "platinum"})
    assert response.status_code == 400


def test_features_default_to_free(client):
    body = client.get("/api/features").json()
    assert body["plan"] == "free"
    assert "crop-health" not in body["features"]


def test_plans_catalogue(client):
    plans = client.get("/api/plans").json()["plans"]
    assert list(plans) == ["free", "pro", "premium"]


def test_forecast(client):
    body = client.get("/api/forecast").json()
    assert len(body["forecast"]) == 7
    assert {"date", "fullDate", "temperature", "humidity", "rainfall", "windSpeed", "description", "dayIndex"} == set(body["forecast"][0])
    assert body["location"]["city"]


def test_health(client):
    body = client.get("/api/health").json()
    assert body["status"] == "healthy"
    assert body["uptime"] >= 0
    assert body["version"] == "1.0.0"


def test_unknown_route(client):
    response = client.get("/api/nope")
    assert response.status_code == 404
    assert response.json() == {"error": "Route not found"}


def test_unhandled_error_is_reported(service):
    def broken(now=None):
        raise RuntimeError("sensor bus offline")

    service.build_payload = broken
    main.app.dependency_overrides[main.get_data_service] = lambda: service
    try:
        response = TestClient(main.app, raise_server_exceptions=False).get("/api/current-data")
    finally:
        main.app.dependency_overrides.clear()

    assert response.status_code == 500
    assert response.json() == {"error": "Something went wrong!", "details": "sensor bus offline"}


def test_export_needs_paid_plan(client):
    response = client.get("/api/export")
    assert response.status_code == 403
    assert response.json()["detail"]["suggested_plan"] == "pro"


def _rows(response):
    return list(csv.reader(io.StringIO(response.text)))


def test_pro_export_is_basic_csv(client, token_for):
    response = client.get("/api/export", headers=_auth(token_for("pro")))
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert "attachment" in response.headers["content-disposition"]

    rows = _rows(response)
    assert rows[0] == ["Metric", "Value", "Status", "Timestamp"]
    metrics = [row[0] for row in rows[1:]]
    assert metrics[0] == "Temperature"
    assert "Potassium" in metrics
    assert "Predicted Yield" not in metrics


def test_premium_export_includes_health_and_yield(client, token_for):
    rows = _rows(client.get("/api/export", headers=_auth(token_for("premium"))))
    metrics = [row[0] for row in rows[1:]]
    assert metrics[-4:] == ["Crop Health Score", "Growth Stage", "Days from Planting", "Predicted Yield"]
    growth = next(row for row in rows if row[0] == "Growth Stage")
    assert growth[2] == "On Track"


def test_websocket_pushes_redacted_update(client):
    with client.websocket_connect("/ws") as ws:
        message = ws.receive_json()
        assert message["event"] == "dataUpdate"
        assert "cropHealth" not in message["data"]

        ws.send_text("requestUpdate")
        again = ws.receive_json()
        assert again["event"] == "dataUpdate"
        assert len(again["data"]["historical"]["timestamps"]) == 2


def test_websocket_subscribe_upgrades_view(client, token_for):
    token = token_for("premium")
    with client.websocket_connect("/ws") as ws:
        ws.receive_json()
        ws.send_json({"event": "subscribe", "token": token})
        message = ws.receive_json()
        assert "yieldPrediction" in message["data"]
        assert "cropHealth" in message["data"]


def test_websocket_rejects_bad_subscribe_and_unknown_events(client):
    with client.websocket_connect("/ws") as ws:
        ws.receive_json()
        ws.send_json({"event": "subscribe", "token": "garbage"})
        assert ws.receive_json()["event"] == "error"
        ws.send_text("dance")
        error = ws.receive_json()
        assert error == {"event": "error", "message": "Unknown event", "details": "dance"}


def test_websocket_with_token_query(client, token_for):
    with client.websocket_connect(f"/ws?token={token_for('pro')}") as ws:
        data = ws.receive_json()["data"]
        assert "cropHealth" in data
        assert "yieldPrediction" not in data


def test_websocket_with_invalid_token_is_closed(client):
    with pytest.raises(WebSocketDisconnect) as excinfo:
        with client.websocket_connect("/ws?token=garbage") as ws:
            ws.receive_json()
    assert excinfo.value.code == 1008
