"""API router for the resources of one map."""
from __future__ import annotations

import os

from fastapi import APIRouter, Depends, HTTPException

from filemaps.errors import ScanCancelled
from filemaps.map_registry import MapRegistry
from filemaps.models import (
    Resource,
    ResourcesCreateRequest,
    ResourcesDeleteRequest,
    ResourcesResponse,
    ResourcesUpdateRequest,
    ScanRequest,
)
from filemaps.routers.deps import flush_store, get_file_opener, get_registry, load_store
from filemaps.services.file_opener import FileOpener, open_resource
from filemaps.services.scanner import scan_into_store

resources_router = APIRouter(prefix="/api/maps/{map_id}/resources", tags=["resources"])


@resources_router.post("", response_model=ResourcesResponse)
def create_resources(map_id: int, payload: ResourcesCreateRequest, registry: MapRegistry = Depends(get_registry)):
    """Add resources; absolute paths are stored relative to the map base directory."""
    store = load_store(registry, map_id)
    created: list[Resource] = []
    with store.locked():
        for item in payload.items:
            path = item.path
            if os.path.isabs(path):
                path = os.path.relpath(path, store.base_dir)
            resource_id = store.add_resource(Resource(type=item.type, path=path, pos=item.pos, style=item.style))
            created.append(store.get_resource(resource_id))
        flush_store(store)
    return ResourcesResponse(resources=created)


@resources_router.put("", response_model=ResourcesResponse)
def update_resources(map_id: int, payload: ResourcesUpdateRequest, registry: MapRegistry = Depends(get_registry)):
    """Move or restyle resources. Nothing is changed if any id is unknown."""
    store = load_store(registry, map_id)
    with store.locked():
        known = store.resource_ids()
        for update in payload.resources:
            if update.id not in known:
                raise HTTPException(status_code=404, detail=f"Resource {update.id} not found")
        for update in payload.resources:
            if update.pos is not None:
                store.update_resource_position(update.id, update.pos)
            if update.style is not None:
                store.update_resource_style(update.id, update.style)
        flush_store(store)
        return ResourcesResponse(resources=[store.get_resource(update.id) for update in payload.resources])


@resources_router.post("/delete")
def delete_resources(map_id: int, payload: ResourcesDeleteRequest, registry: MapRegistry = Depends(get_registry)):
    """Delete several resources; unknown ids are reported, not fatal."""
    store = load_store(registry, map_id)
    with store.locked():
        deleted = [resource_id for resource_id in payload.ids if store.delete_resource(resource_id)]
        flush_store(store)
    missing = [resource_id for resource_id in payload.ids if resource_id not in deleted]
    return {"deleted": deleted, "missing": missing}


@resources_router.post("/scan", response_model=ResourcesResponse)
def scan_resources(map_id: int, payload: ScanRequest, registry: MapRegistry = Depends(get_registry)):
    """Scan a directory and add files that are not on the map yet."""
    store = load_store(registry, map_id)
    root = payload.path or store.base_dir
    if not os.path.isabs(root):
        root = os.path.join(store.base_dir, root)
    if not os.path.isdir(root):
        raise HTTPException(status_code=400, detail=f"Not a directory: {root}")
    with store.locked():
        try:
            added = scan_into_store(store, payload.exclude, root=root)
        except ScanCancelled as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        flush_store(store)
        return ResourcesResponse(resources=[store.get_resource(resource_id) for resource_id in added])


@resources_router.get("/{resource_id}", response_model=Resource)
def read_resource(map_id: int, resource_id: int, registry: MapRegistry = Depends(get_registry)):
    store = load_store(registry, map_id)
    resource = store.get_resource(resource_id)
    if resource is None:
        raise HTTPException(status_code=404, detail=f"Resource {resource_id} not found")
    return resource


@resources_router.delete("/{resource_id}")
def delete_resource(map_id: int, resource_id: int, registry: MapRegistry = Depends(get_registry)):
    store = load_store(registry, map_id)
    with store.locked():
        if not store.delete_resource(resource_id):
            raise HTTPException(status_code=404, detail=f"Resource {resource_id} not found")
        flush_store(store)
    return {}


@resources_router.get("/{resource_id}/open")
def open_map_resource(
    map_id: int,
    resource_id: int,
    registry: MapRegistry = Depends(get_registry),
    opener: FileOpener = Depends(get_file_opener),
):
    """Open a resource in the configured external application."""
    store = load_store(registry, map_id)
    opened = open_resource(store, resource_id, opener)
    if opened is None:
        raise HTTPException(status_code=404, detail=f"Resource {resource_id} not found")
    if not opened:
        raise HTTPException(status_code=500, detail="could not open resource")
    return {}
