"""
Quantity extraction and readiness decisions for ParameterCollectorService.
"""
import pytest

from quote_agent.engine.models import NEEDS_CLARIFICATION, READY_FOR_PRICING
from quote_agent.engine.parameter_collector import ParameterCollectorService


@pytest.fixture(scope="module")
def collector(snapshot):
    return ParameterCollectorService(snapshot)


def _by_name(result):
    return {s.service_name: s for s in result.services}


def test_mulch_and_edging_ready(collector):
    result = collector.collect("45 sq ft triple ground mulch and 3 feet metal edging")
    assert result.status == READY_FOR_PRICING
    services = _by_name(result)
    mulch = services["Triple Ground Mulch (SQFT)"]
    edging = services["Metal Edging"]
    assert (mulch.quantity, mulch.unit, mulch.quantity_source) == (45, "sqft", "explicit")
    assert (edging.quantity, edging.unit, edging.quantity_source) == (3, "linear_feet", "explicit")
    assert result.confidence >= 0.8
    assert result.clarifying_questions == []


def test_irrigation_setup_and_zones(collector):
    result = collector.collect("irrigation setup with 2 turf zones")
    assert result.status == READY_FOR_PRICING
    setup, zones = result.services
    assert setup.service_name == "Irrigation Set Up Cost"
    assert (setup.quantity, setup.unit, setup.quantity_source) == (1, "each", "fixed")
    assert zones.service_name == "Irrigation (per zone)"
    assert (zones.quantity, zones.unit, zones.quantity_source) == (2, "each", "adjacent")


def test_zones_alone_add_setup_line(collector):
    result = collector.collect("3 drip zones")
    assert result.status == READY_FOR_PRICING
    assert [s.service_name for s in result.services] == ["Irrigation Set Up Cost", "Irrigation (per zone)"]
    assert result.services[0].auto_added
    assert result.services[1].quantity == 3


def test_no_services_detected(collector):
    result = collector.collect("Hi, what are your business hours this week?")
    assert result.no_services_detected
    assert result.services == []
    assert result.status == NEEDS_CLARIFICATION
    assert result.confidence == 0.0
    assert "What can we help you with" in result.clarifying_questions[0]


def test_missing_quantity_asks_how_much(collector):
    result = collector.collect("I need some mulch")
    assert result.status == NEEDS_CLARIFICATION
    assert result.services[0].quantity is None
    assert result.services[0].extraction_confidence == 0.0
    assert result.clarifying_questions == [
        "How much Triple Ground Mulch (SQFT) do you need (in sqft)?"
    ]


def test_missing_count_asks_how_many(collector):
    result = collector.collect("buried downspout")
    assert result.status == NEEDS_CLARIFICATION
    assert result.clarifying_questions == [
        "How many downspouts do you need for Buried Downspout (EACH)?"
    ]


@pytest.mark.parametrize("text", ["0 sq ft of mulch", "mulch 0 sqft", "mulch 0"])
def test_zero_quantity_asks_how_much(collector, text):
    result = collector.collect(text)
    assert result.status == NEEDS_CLARIFICATION
    mulch = result.services[0]
    assert not mulch.has_quantity
    assert mulch.extraction_confidence == 0.0
    assert result.clarifying_questions == [
        "How much Triple Ground Mulch (SQFT) do you need (in sqft)?"
    ]


def test_zero_follow_up_does_not_fill(collector):
    first = collector.collect("I need some mulch")
    second = collector.process_follow_up("0 square feet", first)
    assert second.status == NEEDS_CLARIFICATION
    assert second.services[0].quantity is None
    assert second.clarifying_questions == first.clarifying_questions


def test_unit_conversion(collector):
    result = collector.collect("2 pallets of sod")
    sod = result.services[0]
    assert sod.quantity == pytest.approx(900.0)
    assert sod.unit == "sqft"
    assert sod.quantity_source == "converted"
    assert sod.original_quantity == 2
    assert sod.original_unit == "pallet"
    assert result.status == READY_FOR_PRICING


def test_dimensions_become_area(collector):
    result = collector.collect("12 by 10 ft paver patio")
    patio = result.services[0]
    assert patio.quantity == pytest.approx(120.0)
    assert patio.quantity_source == "dimension"
    assert result.status == READY_FOR_PRICING


def test_size_word_estimate(collector):
    result = collector.collect("a small paver patio")
    patio = result.services[0]
    assert patio.quantity == 150.0
    assert patio.quantity_source == "estimated"


def test_incompatible_unit_is_not_used(collector):
    result = collector.collect("mulch 3 cubic yards")
    assert result.services[0].quantity is None
    assert result.status == NEEDS_CLARIFICATION


def test_crew_size_is_not_a_quantity(collector):
    result = collector.collect("paver patio with a 2 person crew")
    patio = result.services[0]
    assert patio.quantity is None


def test_bare_number_needs_confirmation(collector):
    result = collector.collect("mulch 50")
    mulch = result.services[0]
    assert mulch.quantity == 50
    assert mulch.quantity_source == "bare"
    assert 0.5 <= mulch.extraction_confidence < 0.8
    assert result.status == NEEDS_CLARIFICATION
    assert result.clarifying_questions == [
        "Just to confirm, is that 50 sqft of Triple Ground Mulch (SQFT)?"
    ]


def test_follow_up_confirms_bare_quantity(collector):
    first = collector.collect("mulch 50")
    second = collector.process_follow_up("yes that's right", first)
    assert second.status == READY_FOR_PRICING
    assert second.services[0].quantity == 50
    assert second.services[0].quantity_source == "follow_up"


def test_follow_up_fills_missing_quantity(collector):
    first = collector.collect("I need some mulch")
    second = collector.process_follow_up("about 200 square feet", first)
    assert second.status == READY_FOR_PRICING
    assert second.services[0].quantity == 200
    assert second.original_text == "I need some mulch about 200 square feet"
    # the first result is left untouched
    assert first.services[0].quantity is None


def test_ambiguous_keyword_asks_which_service(collector):
    result = collector.collect("30 feet of edging")
    assert result.status == NEEDS_CLARIFICATION
    assert result.clarifying_questions == ["Did you mean Metal Edging or Spade Edging?"]
    assert result.services[0].quantity == 30


def test_follow_up_resolves_ambiguity(collector):
    first = collector.collect("30 feet of edging")
    second = collector.process_follow_up("metal edging", first)
    assert second.status == READY_FOR_PRICING
    assert [s.service_name for s in second.services] == ["Metal Edging"]
    assert second.services[0].quantity == 30
    assert second.services[0].candidates == []


def test_follow_up_adds_new_service(collector):
    first = collector.collect("100 sq ft of mulch")
    second = collector.process_follow_up("also 20 feet of metal edging", first)
    assert [s.service_name for s in second.services] == ["Triple Ground Mulch (SQFT)", "Metal Edging"]
    assert second.services[1].quantity == 20


def test_repeated_service_quantities_are_summed(collector):
    result = collector.collect("45 sq ft of mulch and 30 sq ft of mulch")
    assert result.status == READY_FOR_PRICING
    assert len(result.services) == 1
    mulch = result.services[0]
    assert (mulch.quantity, mulch.unit, mulch.quantity_source) == (75, "sqft", "explicit")
    assert mulch.original_quantity == 75
    assert "45 sq ft" in mulch.source_span and "30 sq ft" in mulch.source_span


def test_repeat_through_shared_keyword_is_summed(collector):
    result = collector.collect("30 feet of metal edging plus more edging 20 feet")
    assert result.status == READY_FOR_PRICING
    assert [s.service_name for s in result.services] == ["Metal Edging"]
    assert result.services[0].quantity == 50


def test_repeat_without_quantity_is_not_counted_twice(collector):
    result = collector.collect("mulch for the beds, 100 sq ft of mulch")
    assert result.status == READY_FOR_PRICING
    assert len(result.services) == 1
    assert result.services[0].quantity == 100
    assert result.services[0].quantity_source == "explicit"


def test_aggregate_confidence_penalizes_missing_quantities(collector):
    result = collector.collect("100 sq ft of mulch and some sod")
    assert result.status == NEEDS_CLARIFICATION
    mulch, sod = result.services
    assert sod.quantity is None
    expected = (mulch.extraction_confidence + 0.0) / 2 * 0.5
    assert result.confidence == pytest.approx(expected)
    assert collector.aggregate_confidence([]) == 0.0


@pytest.mark.parametrize("text", [
    "45 sq ft triple ground mulch and 3 feet metal edging",
    "irrigation setup with 2 turf zones",
    "100 square feet of mulch",
    "mulch 50",
    "some sod and a retaining wall",
    "edging",
    "",
])
def test_ready_implies_services_and_confidence(collector, text):
    result = collector.collect(text)
    if result.status == READY_FOR_PRICING:
        assert result.services
        assert result.confidence >= 0.8
        assert all(s.quantity and s.quantity > 0 for s in result.services)
        assert all(s.extraction_confidence >= 0.5 for s in result.services)
    else:
        assert result.clarifying_questions
