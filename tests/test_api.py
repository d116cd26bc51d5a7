"""
HTTP surface: pricing agent endpoint, status and admin catalog edits.
"""
import json
import time

import pytest
from fastapi.testclient import TestClient

from quote_agent.api import state
from quote_agent.api.main import app
from quote_agent.catalog import CatalogStore
from quote_agent.config.settings import get_settings


@pytest.fixture
def client(catalog_file):
    state.set_store(CatalogStore(catalog_path=catalog_file))
    with TestClient(app) as test_client:
        yield test_client
    state.set_store(None)


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "online"


def test_pricing_agent_quote(client):
    response = client.post("/pricing-agent", json={
        "message": "45 sq ft triple ground mulch and 3 feet metal edging",
        "customer": {"first_name": "Sam"},
    })
    assert response.status_code == 200
    data = response.json()
    assert data["stage"] == "complete"
    assert data["catalogGeneration"] == 1
    assert data["pricing"]["totals"]["totalCost"] == pytest.approx(66.915, abs=0.01)
    assert "Sam" in data["response"]["message"]
    assert data["response"]["kind"] == "quote"


def test_pricing_agent_clarification(client):
    response = client.post("/pricing-agent", json={"message": "I need some mulch"})
    data = response.json()
    assert response.status_code == 200
    assert data["stage"] == "collection"
    assert data["pricing"] is None
    assert data["response"]["kind"] == "clarification"


def test_pricing_agent_requires_message(client):
    assert client.post("/pricing-agent", json={}).status_code == 422


def test_system_status(client, catalog_file):
    data = client.get("/system/status").json()
    assert data["engine_active"] is True
    assert data["services_count"] == 16
    assert data["catalog_generation"] == 1
    assert data["catalog_path"] == str(catalog_file)


def test_catalog_listing(client):
    data = client.get("/catalog", params={"category": "irrigation"}).json()
    assert set(data["services"]) == {"irrigationSetup", "irrigationZone"}
    assert data["stats"]["services"] == 16


def test_edit_changes_next_quote(client):
    before = client.post("/pricing-agent", json={"message": "100 square feet of mulch"}).json()
    response = client.put("/service-config/tripleGroundMulch", json={
        "category": "laborSettings", "key": "hourlyLaborRate", "value": 50,
    })
    assert response.status_code == 200
    assert response.json()["generation"] == 2

    after = client.post("/pricing-agent", json={"message": "100 square feet of mulch"}).json()
    assert after["catalogGeneration"] == 2
    assert after["pricing"]["totals"]["totalCost"] > before["pricing"]["totals"]["totalCost"]


def test_edit_variable_default(client):
    response = client.put("/service-config/paverPatio", json={
        "category": "siteAccess", "key": "accessDifficulty", "value": "moderate", "field": "default",
    })
    assert response.status_code == 200
    assert response.json()["field"] == "default"


def test_edit_unknown_service_is_404(client):
    response = client.put("/service-config/hotTub", json={
        "category": "laborSettings", "key": "hourlyLaborRate", "value": 50,
    })
    assert response.status_code == 404
    assert "hotTub" in response.json()["detail"]


def test_invalid_edit_is_400(client):
    response = client.put("/service-config/tripleGroundMulch", json={
        "category": "businessSettings", "key": "profitMarginTarget", "value": 0.9,
    })
    assert response.status_code == 400
    assert response.json()["detail"]["errors"]
    assert client.get("/system/status").json()["catalog_generation"] == 1


def test_unsupported_field_is_400(client):
    response = client.put("/service-config/tripleGroundMulch", json={
        "category": "laborSettings", "key": "hourlyLaborRate", "value": "Rate", "field": "label",
    })
    assert response.status_code == 400


def test_reload(client, catalog_file):
    response = client.post("/service-config/reload")
    assert response.json() == {"generation": 1, "reloaded": False}

    document = json.loads(catalog_file.read_text(encoding='utf-8'))
    document['services']['metalEdging']['materialSettings']['baseMaterialCost']['value'] = 4.25
    catalog_file.write_text(json.dumps(document), encoding='utf-8')

    response = client.post("/service-config/reload")
    assert response.json() == {"generation": 2, "reloaded": True}

    response = client.post("/service-config/reload", params={"force": True})
    assert response.json() == {"generation": 3, "reloaded": True}


def test_over_budget_returns_apology(client, monkeypatch):
    monkeypatch.setattr(get_settings(), "latency_budget_ms", 50.0)
    agent = state.get_agent()

    def slow_run(*args, **kwargs):
        time.sleep(0.5)
        return None
    monkeypatch.setattr(agent, "run", slow_run)

    response = client.post("/pricing-agent", json={"message": "100 square feet of mulch"})
    data = response.json()
    assert response.status_code == 200
    assert data["stage"] == "timeout"
    assert data["response"]["kind"] == "apology"
    assert data["pricing"] is None
