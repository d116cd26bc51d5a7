"""
Catalog Store - versioned service configuration with admin edits.

Single writer (admin), many readers (pipeline). Readers take an immutable
snapshot; writers validate a modified copy of the document, persist it and
swap in a new snapshot with a bumped generation counter.
"""
import copy
import json
import logging
import os
import threading
from datetime import datetime
from pathlib import Path
from typing import Optional

from ..engine.errors import CatalogError
from .loader import get_content_hash, load_catalog, read_catalog_document
from .models import CatalogSnapshot

logger = logging.getLogger(__name__)


class CatalogStore:
    """Holds the current catalog snapshot and applies admin edits."""

    def __init__(self, catalog_path: Optional[Path] = None, document: Optional[dict] = None):
        """Load the catalog from a JSON file or an in-memory document."""
        if catalog_path is None and document is None:
            raise ValueError("CatalogStore needs a catalog_path or a document")

        self.catalog_path = Path(catalog_path) if catalog_path else None
        self._write_lock = threading.Lock()

        if document is None:
            document = read_catalog_document(self.catalog_path)
        self._snapshot = load_catalog(document, generation=1)
        logger.info("Catalog loaded: %d services, version %s, generation %d",
                    len(self._snapshot), self._snapshot.version, self._snapshot.generation)

    @classmethod
    def from_settings(cls, settings) -> 'CatalogStore':
        return cls(catalog_path=settings.catalog_path)

    def snapshot(self) -> CatalogSnapshot:
        """Current immutable snapshot (safe to hold for a whole request)."""
        return self._snapshot

    @property
    def generation(self) -> int:
        return self._snapshot.generation

    def is_fresh(self, snapshot: CatalogSnapshot) -> bool:
        """True if no edit or reload happened since `snapshot` was taken."""
        return snapshot.generation == self._snapshot.generation

    def update_setting(
        self,
        service_id: str,
        category: str,
        key: str,
        value,
        field: str = "value",
    ) -> CatalogSnapshot:
        """
        Change one leaf of a service's configuration.

        Raises KeyError for an unknown service/category/key and CatalogError if
        the edited catalog does not validate; the current snapshot is kept in
        both cases.
        """
        with self._write_lock:
            document = copy.deepcopy(self._snapshot.document)
            services = document['services']
            if service_id not in services:
                raise KeyError(f"Service '{service_id}' not found")
            categories = services[service_id]
            if not isinstance(categories.get(category), dict):
                raise KeyError(f"Category '{category}' not found on service '{service_id}'")
            leaf = categories[category].get(key)
            if not isinstance(leaf, dict):
                raise KeyError(f"Setting '{category}.{key}' not found on service '{service_id}'")

            old_value = leaf.get(field)
            leaf[field] = value
            document['lastModified'] = datetime.now().isoformat(timespec='seconds')

            snapshot = self._commit(document)
            logger.info("Admin edit %s.%s.%s.%s: %r -> %r (generation %d)",
                        service_id, category, key, field, old_value, value, snapshot.generation)
            return snapshot

    def update_variable_default(self, service_id: str, category: str, key: str, default) -> CatalogSnapshot:
        """Change the default of a variable spec."""
        return self.update_setting(service_id, category, key, default, field="default")

    def reload(self) -> CatalogSnapshot:
        """Re-read the catalog file unconditionally."""
        if self.catalog_path is None:
            raise CatalogError("Catalog store has no backing file to reload")
        with self._write_lock:
            document = read_catalog_document(self.catalog_path)
            self._snapshot = load_catalog(document, generation=self._snapshot.generation + 1)
            logger.info("Catalog reloaded (generation %d)", self._snapshot.generation)
            return self._snapshot

    def reload_if_changed(self) -> bool:
        """Reload only if the file content differs from the current snapshot."""
        if self.catalog_path is None:
            return False
        document = read_catalog_document(self.catalog_path)
        if get_content_hash(document) == self._snapshot.content_hash:
            return False
        with self._write_lock:
            self._snapshot = load_catalog(document, generation=self._snapshot.generation + 1)
            logger.info("Catalog changed on disk, reloaded (generation %d)", self._snapshot.generation)
        return True

    def _commit(self, document: dict) -> CatalogSnapshot:
        """Validate, persist and swap in a new snapshot. Caller holds the lock."""
        snapshot = load_catalog(document, generation=self._snapshot.generation + 1)
        if self.catalog_path is not None:
            self._write_document(document)
        self._snapshot = snapshot
        return snapshot

    def _write_document(self, document: dict):
        """Write the catalog file atomically."""
        tmp_path = self.catalog_path.with_suffix(self.catalog_path.suffix + '.tmp')
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(document, f, indent=2)
        os.replace(tmp_path, self.catalog_path)

    def get_stats(self) -> dict:
        """Get statistics about the current catalog."""
        snapshot = self._snapshot
        by_category = {}
        variable_count = 0
        for entry in snapshot.entries():
            by_category[entry.category or 'uncategorized'] = by_category.get(entry.category or 'uncategorized', 0) + 1
            variable_count += len(entry.variables)

        return {
            'version': snapshot.version,
            'lastModified': snapshot.last_modified,
            'generation': snapshot.generation,
            'contentHash': snapshot.content_hash,
            'services': len(snapshot),
            'variables': variable_count,
            'by_category': by_category,
        }
