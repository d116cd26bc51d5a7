"""
Shared API state - one catalog store and one agent per process.

Handlers go through get_store()/get_agent(); tests swap in their own store
with set_store().
"""
import logging
from typing import Optional

from ..catalog.store import CatalogStore
from ..config.settings import get_settings
from ..engine.pipeline import PricingAgent

logger = logging.getLogger(__name__)

_store: Optional[CatalogStore] = None
_agent: Optional[PricingAgent] = None


def get_store() -> CatalogStore:
    global _store
    if _store is None:
        _store = CatalogStore.from_settings(get_settings())
    return _store


def get_agent() -> PricingAgent:
    global _agent
    if _agent is None:
        _agent = PricingAgent.from_settings(get_store(), get_settings())
    return _agent


def set_store(store: Optional[CatalogStore]):
    """Replace the store (None drops it); the agent is rebuilt on next use."""
    global _store, _agent
    _store = store
    _agent = None
    if store is not None:
        logger.info("API catalog store replaced (generation %d)", store.generation)
