"""Request-scoped access to the process-wide registry and collaborators."""
from __future__ import annotations

from fastapi import HTTPException, Request

from filemaps.errors import DocumentUnreadable, StoreWriteError
from filemaps.map_registry import MapRegistry
from filemaps.map_store import MapStore
from filemaps.services.file_opener import CommandFileOpener, FileOpener


def get_registry(request: Request) -> MapRegistry:
    return request.app.state.map_registry


def get_file_opener(request: Request) -> FileOpener:
    opener = getattr(request.app.state, "file_opener", None)
    return opener if opener is not None else CommandFileOpener()


def require_store(registry: MapRegistry, map_id: int) -> MapStore:
    store = registry.get_store(map_id)
    if store is None:
        raise HTTPException(status_code=404, detail=f"Map {map_id} not found")
    return store


def load_store(registry: MapRegistry, map_id: int) -> MapStore:
    store = require_store(registry, map_id)
    try:
        store.ensure_loaded()
    except DocumentUnreadable as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return store


def flush_store(store: MapStore) -> None:
    try:
        store.flush()
    except StoreWriteError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc


def write_registry(registry: MapRegistry) -> None:
    try:
        registry.write()
    except StoreWriteError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
