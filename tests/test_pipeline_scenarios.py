"""
End-to-end PricingAgent runs on realistic chat messages.
"""
import pytest

from conftest import make_document, make_service
from quote_agent.engine.models import CustomerContext
from quote_agent.engine.pipeline import PricingAgent


@pytest.fixture(scope="module")
def agent(snapshot):
    return PricingAgent(snapshot)


def test_mulch_and_edging(agent):
    response = agent.run("45 sq ft triple ground mulch and 3 feet metal edging")
    assert response.stage == "complete"
    assert response.catalog_generation == 1
    assert [s.service_name for s in response.pricing.services] == ["Triple Ground Mulch (SQFT)", "Metal Edging"]
    assert response.pricing.totals.total_cost == pytest.approx(66.915)
    message = response.sales_response.message.lower()
    assert "mulch" in message and "edging" in message and "total" in message


def test_irrigation_setup_and_zones(agent):
    response = agent.run("irrigation setup with 2 turf zones")
    assert response.stage == "complete"
    assert response.pricing.totals.total_cost == pytest.approx(960.0)
    assert "$960.00" in response.sales_response.message


def test_mulch_only(agent):
    response = agent.run("100 square feet of mulch")
    assert response.stage == "complete"
    assert 80 <= response.pricing.totals.total_cost <= 150
    assert "100 sqft" in response.sales_response.message


def test_paver_patio_with_site_conditions(agent):
    response = agent.run("12x10 paver patio with tight access, removing concrete")
    assert response.stage == "complete"
    patio = response.pricing.services[0]
    assert patio.quantity == pytest.approx(120.0)
    assert patio.variables['siteAccess.accessDifficulty'] == "Difficult access"
    assert 1800 <= response.pricing.totals.total_cost <= 2800
    assert response.sales_response.tone == "premium"


def test_zero_quantity_asks_instead_of_pricing(agent):
    response = agent.run("0 sq ft of mulch")
    assert response.stage == "collection"
    assert response.pricing is None
    assert response.sales_response.kind == "clarification"
    assert "How much Triple Ground Mulch (SQFT)" in response.sales_response.message


def test_repeated_service_is_priced_once_with_summed_quantity(agent):
    response = agent.run("45 sq ft of mulch and 30 sq ft of mulch")
    assert response.stage == "complete"
    assert len(response.pricing.services) == 1
    assert response.pricing.services[0].quantity == 75
    assert response.pricing.totals.total_cost == pytest.approx(74.475)


def test_excavation_with_depth(agent):
    response = agent.run("dig out 200 sq ft, 18 inches deep")
    assert response.stage == "complete"
    excavation = response.pricing.services[0]
    assert excavation.service_name == "Excavation & Removal (SQFT)"
    assert excavation.quantity == 200
    assert excavation.tier1.total_man_hours == 12
    assert excavation.tier1.total_days == 2
    # 200 sqft × 1.5 ft ÷ 27 × 1.10 = 12.2 -> 13 cubic yards × $25, plus 5%
    assert response.pricing.totals.total_cost == pytest.approx(341.25)


def test_timings_cover_each_stage(agent):
    response = agent.run("100 square feet of mulch")
    assert set(response.timings_ms) == {"collection", "variables", "pricing", "formatting"}
    assert response.total_ms >= 0
    data = response.to_dict()
    assert data["stage"] == "complete"
    assert data["response"]["message"] == response.sales_response.message
    assert data["catalogGeneration"] == 1


def test_same_input_same_total(agent):
    text = "12x10 paver patio with tight access, removing concrete"
    totals = {agent.run(text).pricing.totals.total_cost for _ in range(3)}
    assert len(totals) == 1


def test_no_service_message(agent):
    response = agent.run("Hi, what are your business hours this week?")
    assert response.stage == "collection"
    assert response.pricing is None
    assert response.collection.no_services_detected
    assert response.sales_response.kind == "clarification"


@pytest.mark.parametrize("text", ["", "   ", None, "!!!", "mulch " * 500])
def test_odd_input_never_raises(agent, text):
    response = agent.run(text)
    assert response.sales_response.message


def test_clarification_then_follow_up(agent):
    first = agent.run("I need some mulch", CustomerContext(first_name="Robin"))
    assert first.stage == "collection"
    assert first.sales_response.kind == "clarification"
    assert "How much Triple Ground Mulch (SQFT)" in first.sales_response.message

    second = agent.run_follow_up("about 200 square feet", first.collection, CustomerContext(first_name="Robin"))
    assert second.stage == "complete"
    assert second.pricing.services[0].quantity == 200
    assert second.pricing.totals.total_cost == pytest.approx(198.6)
    assert "calendar" in second.sales_response.message


def test_pricing_failure_becomes_apology(custom_snapshot):
    fence = make_service(
        "Fence", 901, "linear_feet", ("fence",),
        style={"fenceStyle": {
            "type": "select", "label": "Fence Style",
            "options": {"privacy": {"label": "Privacy"}, "picket": {"label": "Picket"}},
        }},
    )
    agent = PricingAgent(custom_snapshot(make_document(fence=fence)))
    response = agent.run("40 feet of fence")
    assert response.collection.is_ready
    assert response.stage == "pricing"
    assert not response.pricing.success
    assert response.sales_response.kind == "apology"
    assert "fenceStyle" not in response.sales_response.message


def test_unexpected_error_becomes_apology(snapshot, monkeypatch):
    agent = PricingAgent(snapshot)

    def explode(*args, **kwargs):
        raise RuntimeError("template store offline")
    monkeypatch.setattr(agent.sales, "format_sales_response", explode)

    response = agent.run("100 square feet of mulch")
    assert response.stage == "formatting"
    assert response.pricing is None
    assert response.sales_response.kind == "apology"
    assert len(response.sales_response.message) >= 100
