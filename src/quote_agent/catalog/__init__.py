"""Catalog subpackage - service catalog model, validation and versioned store."""
from .models import CatalogSnapshot, ServiceCatalogEntry, VariableSpec, SelectSpec, NumberSpec, ToggleSpec
from .loader import load_catalog, load_catalog_file
from .store import CatalogStore

__all__ = [
    'CatalogSnapshot', 'ServiceCatalogEntry', 'VariableSpec', 'SelectSpec',
    'NumberSpec', 'ToggleSpec', 'load_catalog', 'load_catalog_file', 'CatalogStore',
]
