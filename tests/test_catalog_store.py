"""
Catalog validation and the versioned store.
"""
import json

import pytest

from conftest import make_document, make_service
from quote_agent.catalog import CatalogStore, load_catalog, load_catalog_file
from quote_agent.engine.errors import CatalogError
from quote_agent.engine.pipeline import PricingAgent


@pytest.fixture
def store(catalog_file):
    return CatalogStore(catalog_path=catalog_file)


def test_shipped_catalog_loads(snapshot):
    assert len(snapshot) == 16
    mulch = snapshot.get('tripleGroundMulch')
    assert mulch.catalog_row == 23
    assert mulch.setting('hourlyLaborRate') == 25
    assert snapshot.get_by_row(21).service_name == "Metal Edging"
    assert snapshot.find_by_name("metal edging").service_id == 'metalEdging'


def test_store_needs_a_source():
    with pytest.raises(ValueError):
        CatalogStore()


def test_update_setting_bumps_generation_and_persists(store, catalog_file):
    before = store.snapshot()
    after = store.update_setting('tripleGroundMulch', 'laborSettings', 'hourlyLaborRate', 50)

    assert after.generation == before.generation + 1
    assert store.generation == after.generation
    assert after.get('tripleGroundMulch').setting('hourlyLaborRate') == 50
    # the old snapshot is untouched and no longer current
    assert before.get('tripleGroundMulch').setting('hourlyLaborRate') == 25
    assert not store.is_fresh(before)
    assert store.is_fresh(after)

    on_disk = json.loads(catalog_file.read_text(encoding='utf-8'))
    assert on_disk['services']['tripleGroundMulch']['laborSettings']['hourlyLaborRate']['value'] == 50


def test_invalid_edit_is_rejected(store, catalog_file):
    generation = store.generation
    with pytest.raises(CatalogError) as exc:
        store.update_setting('tripleGroundMulch', 'businessSettings', 'profitMarginTarget', 0.9)
    assert any("outside validation range" in err for err in exc.value.errors)
    assert store.generation == generation
    assert store.snapshot().get('tripleGroundMulch').setting('profitMarginTarget') == 0.2
    on_disk = json.loads(catalog_file.read_text(encoding='utf-8'))
    assert on_disk['services']['tripleGroundMulch']['businessSettings']['profitMarginTarget']['value'] == 0.2


@pytest.mark.parametrize("service_id,category,key", [
    ('noSuchService', 'laborSettings', 'hourlyLaborRate'),
    ('tripleGroundMulch', 'noSuchCategory', 'hourlyLaborRate'),
    ('tripleGroundMulch', 'laborSettings', 'noSuchKey'),
])
def test_unknown_target_raises_key_error(store, service_id, category, key):
    with pytest.raises(KeyError):
        store.update_setting(service_id, category, key, 1)
    assert store.generation == 1


def test_update_variable_default(store):
    with pytest.raises(CatalogError):
        store.update_variable_default('paverPatio', 'siteAccess', 'accessDifficulty', 'impossible')
    snapshot = store.update_variable_default('paverPatio', 'siteAccess', 'accessDifficulty', 'difficult')
    assert snapshot.get('paverPatio').variables['siteAccess.accessDifficulty'].default == 'difficult'


def test_in_memory_store_does_not_write(catalog_document):
    store = CatalogStore(document=catalog_document)
    snapshot = store.update_setting('metalEdging', 'materialSettings', 'baseMaterialCost', 4.0)
    assert snapshot.generation == 2
    assert store.reload_if_changed() is False
    with pytest.raises(CatalogError):
        store.reload()


def test_reload_if_changed(store, catalog_file):
    assert store.reload_if_changed() is False
    assert store.generation == 1

    document = json.loads(catalog_file.read_text(encoding='utf-8'))
    document['services']['metalEdging']['materialSettings']['baseMaterialCost']['value'] = 4.25
    catalog_file.write_text(json.dumps(document), encoding='utf-8')

    assert store.reload_if_changed() is True
    assert store.generation == 2
    assert store.snapshot().get('metalEdging').setting('baseMaterialCost') == 4.25


def test_reload_of_broken_file_keeps_snapshot(store, catalog_file):
    catalog_file.write_text("{not json", encoding='utf-8')
    with pytest.raises(CatalogError):
        store.reload()
    assert store.generation == 1
    assert len(store.snapshot()) == 16


def test_stats(store):
    stats = store.get_stats()
    assert stats['services'] == 16
    assert stats['generation'] == 1
    assert stats['version'] == "2.2"
    assert sum(stats['by_category'].values()) == 16


def test_duplicate_catalog_rows_rejected():
    document = make_document(
        first=make_service("First", 900, keywords=("first",)),
        second=make_service("Second", 900, keywords=("second",)),
    )
    with pytest.raises(CatalogError) as exc:
        load_catalog(document)
    assert any("catalogRow 900 already used" in err for err in exc.value.errors)


def test_default_must_be_an_option():
    service = make_service(
        extras={"finish": {
            "type": "select", "default": "gold",
            "options": {"matte": {"label": "Matte"}, "gloss": {"label": "Gloss"}},
        }},
    )
    with pytest.raises(CatalogError) as exc:
        load_catalog(make_document(test=service))
    assert any("default 'gold' is not one of the options" in err for err in exc.value.errors)


def test_empty_validation_range_rejected():
    service = make_service(laborSettings={
        "hourlyLaborRate": {"value": 25, "validation": {"min": 100, "max": 10}},
    })
    with pytest.raises(CatalogError) as exc:
        load_catalog(make_document(test=service))
    assert any("validation range is empty" in err for err in exc.value.errors)


def test_missing_base_setting_rejected():
    service = make_service()
    del service['materialSettings']
    with pytest.raises(CatalogError) as exc:
        load_catalog(make_document(test=service))
    assert any("baseMaterialCost: required base setting is missing" in err for err in exc.value.errors)


def test_excavation_entry_uses_its_own_settings(snapshot):
    excavation = snapshot.get('excavation')
    assert excavation.pricing_model == 'excavation'
    assert excavation.setting('baseRatePerCubicYard') == 25
    assert excavation.setting('hourlyLaborRate') is None
    assert excavation.variables['calculation.depthInches'].modifiers_for(18) == {}
    assert snapshot.by_pricing_model('excavation') is excavation
    assert snapshot.get('paverPatio').variables['serviceIntegrations.includeExcavation'].default is False


def test_excavation_model_requirements(catalog_document):
    excavation = catalog_document['services']['excavation']
    del excavation['materialSettings']['wasteFactor']
    excavation['unit'] = 'cubic_yards'
    with pytest.raises(CatalogError) as exc:
        load_catalog(catalog_document)
    assert any("wasteFactor: required base setting is missing" in err for err in exc.value.errors)
    assert any("needs unit 'sqft'" in err for err in exc.value.errors)


def test_unknown_pricing_model_rejected():
    service = make_service(pricingModel="auction")
    with pytest.raises(CatalogError) as exc:
        load_catalog(make_document(test=service))
    assert any("unknown pricingModel 'auction'" in err for err in exc.value.errors)


def test_paver_excavation_toggle_is_admin_editable(store):
    snapshot = store.update_variable_default('paverPatio', 'serviceIntegrations', 'includeExcavation', True)
    assert snapshot.get('paverPatio').variables['serviceIntegrations.includeExcavation'].default is True
    response = PricingAgent(store).run("12 by 10 ft paver patio")
    assert response.stage == "complete"
    assert response.pricing.services[0].tier2.excavation_cost == pytest.approx(125.0)


def test_unknown_categories_are_ignored():
    service = make_service(notes={"crewNote": {"text": "bring the long hose"}})
    snapshot = load_catalog(make_document(test=service))
    assert snapshot.get('test').variables == {}


def test_catalog_file_errors(tmp_path):
    with pytest.raises(CatalogError):
        load_catalog_file(tmp_path / 'missing.json')


def test_agent_picks_up_admin_edit(store):
    agent = PricingAgent(store)
    first = agent.run("100 square feet of mulch")
    assert first.stage == "complete"
    assert first.catalog_generation == 1
    assert first.pricing.totals.total_cost == pytest.approx(99.30)

    store.update_setting('tripleGroundMulch', 'laborSettings', 'hourlyLaborRate', 50)

    second = agent.run("100 square feet of mulch")
    assert second.catalog_generation == 2
    assert second.pricing.totals.total_cost == pytest.approx(129.30)
