"""
Service Config API - FastAPI router for admin catalog edits.

Every successful edit bumps the catalog generation, so the next pricing
request runs against the new values.
"""
from typing import Any, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from ..engine.errors import CatalogError
from .state import get_store

router = APIRouter(tags=["service-config"])


class SettingUpdate(BaseModel):
    """Request model for changing one configuration leaf."""
    category: str
    key: str
    value: Any
    field: str = "value"  # "value" for base settings, "default" for variables


class UpdateResponse(BaseModel):
    """Response model for an applied edit."""
    service_id: str
    category: str
    key: str
    field: str
    value: Any
    generation: int


class ReloadResponse(BaseModel):
    generation: int
    reloaded: bool


@router.get("/catalog")
async def get_catalog(category: Optional[str] = None):
    """Current catalog document plus version/generation stats."""
    store = get_store()
    snapshot = store.snapshot()
    services = snapshot.document.get('services', {})
    if category:
        services = {sid: svc for sid, svc in services.items() if svc.get('category') == category}
    return {
        "stats": store.get_stats(),
        "services": services,
    }


@router.put("/service-config/{service_id}", response_model=UpdateResponse)
async def update_service_config(service_id: str, update: SettingUpdate):
    """Change one base setting value or variable default."""
    if update.field not in ("value", "default"):
        raise HTTPException(status_code=400, detail=f"Unsupported field '{update.field}'")
    store = get_store()
    try:
        snapshot = store.update_setting(service_id, update.category, update.key, update.value, field=update.field)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=str(e.args[0]) if e.args else "not found")
    except CatalogError as e:
        raise HTTPException(status_code=400, detail={"errors": e.errors})
    return UpdateResponse(
        service_id=service_id,
        category=update.category,
        key=update.key,
        field=update.field,
        value=update.value,
        generation=snapshot.generation,
    )


@router.post("/service-config/reload", response_model=ReloadResponse)
async def reload_service_config(force: bool = False):
    """Re-read the catalog file (only if it changed, unless forced)."""
    store = get_store()
    try:
        if force:
            store.reload()
            reloaded = True
        else:
            reloaded = store.reload_if_changed()
    except CatalogError as e:
        raise HTTPException(status_code=400, detail={"errors": e.errors})
    return ReloadResponse(generation=store.generation, reloaded=reloaded)
