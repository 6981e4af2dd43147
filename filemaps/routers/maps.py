"""API router for map management."""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from filemaps.errors import DocumentUnreadable
from filemaps.map_registry import MapRegistry
from filemaps.map_store import MapStore
from filemaps.models import (
    MapCreateRequest,
    MapDetail,
    MapImportRequest,
    MapInfo,
    MapUpdateRequest,
)
from filemaps.routers.deps import flush_store, get_registry, load_store, require_store, write_registry

maps_router = APIRouter(prefix="/api/maps", tags=["maps"])


def _detail(store: MapStore) -> MapDetail:
    return MapDetail(
        info=store.info.model_copy(),
        exclude=store.exclude_patterns,
        resources=store.resources(),
    )


@maps_router.get("")
def list_maps(registry: MapRegistry = Depends(get_registry)):
    """List all maps, most recently opened first."""
    return {"maps": registry.list_maps(descending=True)}


@maps_router.post("", response_model=MapDetail)
def create_map(payload: MapCreateRequest, registry: MapRegistry = Depends(get_registry)):
    """Create a new, empty map and write its document."""
    _, store = registry.add_map(
        MapInfo(title=payload.title, baseDir=payload.baseDir, fileName=payload.fileName)
    )
    with store.locked():
        flush_store(store)
        detail = _detail(store)
    write_registry(registry)
    return detail


@maps_router.post("/import", response_model=MapDetail)
def import_map(payload: MapImportRequest, registry: MapRegistry = Depends(get_registry)):
    """Register an existing map document."""
    if not payload.path.strip():
        raise HTTPException(status_code=400, detail="empty path")
    try:
        _, store = registry.import_map(payload.path)
    except DocumentUnreadable as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    write_registry(registry)
    return _detail(store)


@maps_router.get("/{map_id}", response_model=MapDetail)
def read_map(map_id: int, registry: MapRegistry = Depends(get_registry)):
    store = load_store(registry, map_id)
    with store.locked():
        store.mark_opened()
        detail = _detail(store)
    write_registry(registry)
    return detail


@maps_router.put("/{map_id}", response_model=MapDetail)
def update_map(map_id: int, payload: MapUpdateRequest, registry: MapRegistry = Depends(get_registry)):
    """Rename a map or move its document."""
    store = require_store(registry, map_id)
    with store.locked():
        try:
            if payload.title is not None:
                store.set_title(payload.title)
            if payload.baseDir is not None:
                store.set_base_dir(payload.baseDir)
            if payload.fileName is not None:
                store.set_file_name(payload.fileName)
        except DocumentUnreadable as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        flush_store(store)
        detail = _detail(store)
    write_registry(registry)
    return detail


@maps_router.delete("/{map_id}")
def delete_map(map_id: int, registry: MapRegistry = Depends(get_registry)):
    """Forget a map; its document file stays on disk."""
    if not registry.delete_map(map_id):
        raise HTTPException(status_code=404, detail=f"Map {map_id} not found")
    write_registry(registry)
    return {}
