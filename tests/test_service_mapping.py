"""
Keyword mapping tests for ServiceMappingEngine.
"""
import pytest

from quote_agent.engine.service_mapping import ServiceMappingEngine


@pytest.fixture(scope="module")
def engine(snapshot):
    return ServiceMappingEngine(snapshot)


def test_maps_mulch_and_edging_in_text_order(engine):
    result = engine.map_user_input("45 sq ft triple ground mulch and 3 feet metal edging")
    assert result.service_names == ["Triple Ground Mulch (SQFT)", "Metal Edging"]
    assert [s.catalog_row for s in result.services] == [23, 21]


def test_longest_phrase_consumes_span(engine):
    """'mulch' must not match again inside 'triple ground mulch'."""
    result = engine.map_user_input("triple ground mulch")
    assert len(result.services) == 1
    assert result.services[0].matched_keyword == "triple ground mulch"
    assert result.services[0].match_score == 1.0


def test_no_match_is_empty_not_error(engine):
    result = engine.map_user_input("what are your business hours this week")
    assert result.services == []
    assert engine.map_user_input("").services == []


def test_punctuation_and_case_are_normalized(engine):
    assert engine.map_to_names("MULCH!!!") == ["Triple Ground Mulch (SQFT)"]
    assert engine.map_to_names("Paver-Patio, please") == ["Paver Patio (SQFT)"]


def test_shared_keyword_surfaces_candidates(engine):
    result = engine.map_user_input("edging")
    assert len(result.services) == 1
    mapped = result.services[0]
    assert mapped.is_ambiguous
    assert mapped.candidates == ["metalEdging", "spadeEdging"]


def test_shared_keyword_refers_to_service_already_matched(engine):
    result = engine.map_user_input("metal edging and more edging along the beds")
    assert result.service_names == ["Metal Edging"]
    assert not result.services[0].is_ambiguous
    assert [r.service_id for r in result.repeats] == ["metalEdging"]
    assert result.repeats[0].is_repeat and not result.repeats[0].is_ambiguous


def test_second_mention_is_a_repeat(engine):
    result = engine.map_user_input("45 sq ft of mulch and 30 sq ft of mulch")
    assert result.service_names == ["Triple Ground Mulch (SQFT)"]
    assert len(result.repeats) == 1
    first, again = result.services[0], result.repeats[0]
    assert again.service_id == first.service_id
    assert again.start > first.start


def test_plural_variant_scores_below_exact(engine):
    plural = engine.map_user_input("turf zones").services[0]
    exact = engine.map_user_input("turf zone").services[0]
    assert plural.service_name == exact.service_name == "Irrigation (per zone)"
    assert plural.match_score < exact.match_score


def test_specific_phrase_beats_generic(engine):
    result = engine.map_user_input("sprinkler zones")
    assert result.service_names == ["Irrigation (per zone)"]


@pytest.mark.parametrize("phrase,expected", [
    ("bark mulch", "Triple Ground Mulch (SQFT)"),
    ("sprinkler setup", "Irrigation Set Up Cost"),
    ("tumbled stone edging", "Stone Edgers Tumbled"),
    ("black dirt", "Topsoil (CYDS)"),
    ("shade tree", "Medium Tree (2.25-4in Caliper)"),
    ("dry creek bed", "Dry Creek (SQFT)"),
])
def test_synonyms(engine, phrase, expected):
    assert engine.map_to_names(phrase) == [expected]


def test_unmapped_text_skips_keywords_units_and_quantities(engine):
    leftovers = engine.find_unmapped_text("45 sq ft of mulch near the pool")
    assert "pool" in leftovers
    assert "mulch" not in leftovers
    assert "sq" not in leftovers
