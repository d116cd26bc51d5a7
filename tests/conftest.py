import copy
import json
import os
import sys

import pytest

# Add src to path for internal imports
src_path = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'src')
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from quote_agent.catalog import load_catalog, load_catalog_file
from quote_agent.config.settings import get_data_dir
from quote_agent.engine.models import ExtractedServiceRequest

CATALOG_PATH = get_data_dir() / 'service_catalog.json'


def _base_settings(hours_per_unit=0.1, material=1.0, margin=0.2):
    return {
        "laborSettings": {
            "hourlyLaborRate": {"value": 25, "validation": {"min": 10, "max": 150}},
            "laborHoursPerUnit": {"value": hours_per_unit, "validation": {"min": 0, "max": 10}},
        },
        "materialSettings": {
            "baseMaterialCost": {"value": material, "validation": {"min": 0, "max": 100}},
        },
        "businessSettings": {
            "profitMarginTarget": {"value": margin, "validation": {"min": 0.05, "max": 0.5}},
        },
    }


def make_service(name="Test Service", row=900, unit="sqft", keywords=("test service",), **extra):
    """Minimal valid service definition; extra keys are merged in."""
    service = {
        "serviceName": name,
        "catalogRow": row,
        "unit": unit,
        "keywords": list(keywords),
    }
    service.update(_base_settings())
    for key, value in extra.items():
        if isinstance(value, dict) and isinstance(service.get(key), dict):
            service[key] = {**service[key], **value}
        else:
            service[key] = value
    return service


def make_document(**services):
    return {"version": "test", "lastModified": "2026-01-01T00:00:00", "services": services}


@pytest.fixture(scope="module")
def snapshot():
    """The shipped catalog."""
    return load_catalog_file(CATALOG_PATH, generation=1)


@pytest.fixture
def catalog_document():
    """Fresh copy of the shipped catalog document."""
    with open(CATALOG_PATH, 'r', encoding='utf-8') as f:
        return json.load(f)


@pytest.fixture
def catalog_file(tmp_path, catalog_document):
    """The shipped catalog written to a temporary file the test may edit."""
    path = tmp_path / 'service_catalog.json'
    path.write_text(json.dumps(catalog_document, indent=2), encoding='utf-8')
    return path


@pytest.fixture
def make_request():
    """Build an ExtractedServiceRequest for a catalog entry."""
    def _make(snapshot, service_id, quantity, variables=None):
        entry = snapshot.get(service_id)
        return ExtractedServiceRequest(
            service_id=entry.service_id,
            service_name=entry.service_name,
            catalog_row=entry.catalog_row,
            unit=entry.unit,
            quantity=quantity,
            quantity_source='explicit',
            match_score=1.0,
            extraction_confidence=1.0,
            variables=copy.deepcopy(variables),
        )
    return _make


@pytest.fixture
def custom_snapshot():
    """Validate a hand-built document."""
    def _load(document):
        return load_catalog(document, generation=1)
    return _load
