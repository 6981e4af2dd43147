"""Lazily loaded, indexed access to one map document."""
from __future__ import annotations

import logging
import os
import threading
import time
from contextlib import contextmanager
from pathlib import Path, PurePosixPath
from typing import Iterator, Optional

from filemaps import codec
from filemaps.errors import StoreReadError, StoreWriteError
from filemaps.models import MapDocument, MapInfo, Position, Resource, Style, utc_now
from filemaps.observability import record_store_io, start_span

logger = logging.getLogger("filemaps.store")


def normalize_resource_path(path: str) -> str:
    value = str(path or "").replace("\\", "/").strip()
    if value.startswith("./"):
        value = value[2:]
    return str(PurePosixPath(value)) if value else ""


def normalize_base_dir(base_dir: str) -> str:
    """Absolute form of a map directory, as used to identify its document."""
    return os.path.abspath(base_dir) if base_dir else base_dir


class MapStore:
    """Owns the resources of one map.

    The backing document is read on the first ``ensure_loaded()`` call and
    cached for the rest of the process lifetime (or until ``invalidate()``).
    Resources live in a dense list with an ``id -> list position`` index;
    deletion swaps the last resource into the freed slot, so list order is
    not stable across deletes.

    Every public method holds the store lock for its whole duration.
    Mutations are kept in memory and marked dirty until ``flush()``.
    """

    def __init__(self, info: MapInfo, *, loaded: bool = False):
        self.info = info
        self._lock = threading.RLock()
        self._document = MapDocument(titleCopy=info.title)
        self._index: dict[int, int] = {}
        self._high_water = 0
        self._loaded = loaded
        self._dirty = False

    @classmethod
    def create(cls, info: MapInfo) -> "MapStore":
        """Return a store for a brand new map with an empty, unsaved document."""
        store = cls(info, loaded=True)
        store._dirty = True
        return store

    # ── properties ───────────────────────────────────────────────

    @property
    def map_id(self) -> int:
        return self.info.id

    @property
    def title(self) -> str:
        return self.info.title

    @property
    def base_dir(self) -> str:
        return self.info.baseDir

    @property
    def file_name(self) -> str:
        return self.info.fileName

    @property
    def file_path(self) -> Path:
        return Path(self.info.baseDir) / self.info.fileName

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    @property
    def is_dirty(self) -> bool:
        return self._dirty

    @contextmanager
    def locked(self) -> Iterator["MapStore"]:
        """Hold the store lock across several operations."""
        with self._lock:
            yield self

    # ── loading ──────────────────────────────────────────────────

    def ensure_loaded(self) -> None:
        with self._lock:
            if self._loaded:
                return
            self._load()

    def invalidate(self) -> None:
        """Drop the cached document so the next ``ensure_loaded()`` re-reads it."""
        with self._lock:
            if self._dirty:
                logger.warning("Discarding unsaved changes of map %s", self.map_id)
            self._document = MapDocument(titleCopy=self.info.title)
            self._index = {}
            self._high_water = 0
            self._loaded = False
            self._dirty = False

    def _load(self) -> None:
        path = self.file_path
        started = time.perf_counter()
        result = "error"
        try:
            with start_span("filemaps.store.load", {"map_id": self.map_id, "path": str(path)}):
                try:
                    raw = path.read_bytes()
                except FileNotFoundError as exc:
                    raise StoreReadError(str(path), "file does not exist") from exc
                except OSError as exc:
                    raise StoreReadError(str(path), str(exc)) from exc
                document = codec.decode_document(raw, str(path))
                result = "success"
        except Exception:
            logger.error("Could not read map document %s for map %s", path, self.map_id)
            raise
        finally:
            record_store_io("document", "read", result, (time.perf_counter() - started) * 1000)

        self._document = document
        self._rebuild_index()
        self._high_water = max(self._index, default=0)
        self._reconcile_title()
        self._loaded = True
        self._dirty = False
        logger.info("Loaded map %s from %s (%d resources)", self.map_id, path, len(document.resources))

    def _reconcile_title(self) -> None:
        title_copy = self._document.titleCopy
        if not title_copy:
            self._document.titleCopy = self.info.title
            return
        if self.info.title and title_copy != self.info.title:
            logger.warning(
                "Title mismatch for map %s: registry has %r, document has %r; using document title",
                self.map_id,
                self.info.title,
                title_copy,
            )
        self.info.title = title_copy

    def _load_if_present(self) -> None:
        if not self._loaded and self.file_path.is_file():
            self._load()

    def _rebuild_index(self) -> None:
        index: dict[int, int] = {}
        for position, resource in enumerate(self._document.resources):
            if resource.id in index:
                logger.warning("Duplicate resource id %s in map %s", resource.id, self.map_id)
            index[resource.id] = position
        self._index = index

    # ── queries ──────────────────────────────────────────────────

    def get_resource(self, resource_id: int) -> Optional[Resource]:
        """Return a copy of the resource, or None. Does not load the document."""
        with self._lock:
            position = self._index.get(resource_id)
            if position is None:
                return None
            return self._document.resources[position].model_copy(deep=True)

    def get_resource_by_path(self, path: str) -> Optional[Resource]:
        wanted = normalize_resource_path(path)
        with self._lock:
            for resource in self._document.resources:
                if normalize_resource_path(resource.path) == wanted:
                    return resource.model_copy(deep=True)
        return None

    def resources(self) -> list[Resource]:
        with self._lock:
            return [resource.model_copy(deep=True) for resource in self._document.resources]

    def resource_ids(self) -> set[int]:
        with self._lock:
            return set(self._index)

    @property
    def exclude_patterns(self) -> list[str]:
        with self._lock:
            return list(self._document.exclude)

    def resolve_path(self, resource_id: int) -> Optional[Path]:
        """Absolute filesystem path of a resource."""
        with self._lock:
            position = self._index.get(resource_id)
            if position is None:
                return None
            relative = self._document.resources[position].path
        return (Path(self.info.baseDir) / relative).resolve(strict=False)

    # ── mutations ────────────────────────────────────────────────

    def add_resource(self, resource: Resource) -> int:
        """Append a copy of ``resource`` under a fresh id and return that id."""
        with self._lock:
            self.ensure_loaded()
            new_id = max(self._high_water, max(self._index, default=0)) + 1
            stored = resource.model_copy(deep=True, update={"id": new_id})
            stored.path = normalize_resource_path(stored.path)
            self._document.resources.append(stored)
            self._index[new_id] = len(self._document.resources) - 1
            self._high_water = new_id
            self._dirty = True
            return new_id

    def update_resource_position(self, resource_id: int, pos: Position) -> bool:
        with self._lock:
            self.ensure_loaded()
            position = self._index.get(resource_id)
            if position is None:
                return False
            self._document.resources[position].pos = pos.model_copy()
            self._dirty = True
            return True

    def update_resource_style(self, resource_id: int, style: Optional[Style]) -> bool:
        with self._lock:
            self.ensure_loaded()
            position = self._index.get(resource_id)
            if position is None:
                return False
            self._document.resources[position].style = style.model_copy(deep=True) if style else None
            self._dirty = True
            return True

    def delete_resource(self, resource_id: int) -> bool:
        with self._lock:
            self.ensure_loaded()
            position = self._index.get(resource_id)
            if position is None:
                return False
            resources = self._document.resources
            resources[position] = resources[-1]
            resources.pop()
            self._rebuild_index()
            self._dirty = True
            return True

    def set_exclude_patterns(self, patterns: list[str]) -> None:
        with self._lock:
            self.ensure_loaded()
            self._document.exclude = list(patterns)
            self._dirty = True

    def set_title(self, title: str) -> None:
        with self._lock:
            self._load_if_present()
            self.info.title = title
            self._document.titleCopy = title
            self._dirty = True

    def set_base_dir(self, base_dir: str) -> None:
        with self._lock:
            self._load_if_present()
            self.info.baseDir = normalize_base_dir(base_dir)
            self._dirty = True

    def set_file_name(self, file_name: str) -> None:
        with self._lock:
            self._load_if_present()
            self.info.fileName = file_name
            self._dirty = True

    def mark_opened(self) -> None:
        with self._lock:
            self.info.lastOpened = utc_now()

    # ── persistence ──────────────────────────────────────────────

    def flush(self) -> None:
        """Write the document to ``base_dir/file_name`` if it has unsaved changes."""
        with self._lock:
            if not self._dirty:
                return
            path = self.file_path
            self._document.titleCopy = self.info.title
            payload = codec.encode_document(self._document)
            started = time.perf_counter()
            result = "error"
            try:
                with start_span("filemaps.store.flush", {"map_id": self.map_id, "path": str(path)}):
                    path.write_text(payload, encoding="utf-8")
                    result = "success"
            except OSError as exc:
                logger.error("Could not write map document %s: %s", path, exc)
                raise StoreWriteError(str(path), str(exc)) from exc
            finally:
                record_store_io("document", "write", result, (time.perf_counter() - started) * 1000)
            self._loaded = True
            self._dirty = False
            logger.info("Wrote map %s to %s", self.map_id, path)
