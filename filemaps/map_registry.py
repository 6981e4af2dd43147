"""Map registry: the set of known maps and their cached stores."""
from __future__ import annotations

import logging
import os
import threading
import time
from pathlib import Path
from typing import Optional

from filemaps import codec, config
from filemaps.errors import MapNotFound, StoreReadError, StoreWriteError
from filemaps.map_store import MapStore, normalize_base_dir
from filemaps.models import MapInfo, utc_now
from filemaps.observability import record_store_io

logger = logging.getLogger("filemaps.registry")


class MapRegistry:
    """Manages map index entries, id allocation and store instances.

    Construct one per process and hand it to every consumer. Structural
    changes (add/import/delete, id allocation, persistence) hold the
    registry lock; resource work happens on the stores, each under its own
    lock, so different maps never block each other.
    """

    def __init__(self, storage_path: Path | str | None = None):
        self.storage_path = Path(storage_path) if storage_path else config.CONFIG_DIR / config.MAPS_FILE_NAME
        self._lock = threading.RLock()
        self._maps: list[MapInfo] = []
        self._stores: dict[int, MapStore] = {}
        self._high_water = 0

    # ── queries ──────────────────────────────────────────────────

    def list_maps(self, descending: bool = False) -> list[MapInfo]:
        """Map entries ordered by ``lastOpened`` (ties broken by id)."""
        with self._lock:
            entries = [info.model_copy() for info in self._maps]
        entries.sort(key=lambda info: (info.lastOpened, info.id), reverse=descending)
        return entries

    def get_info(self, map_id: int) -> Optional[MapInfo]:
        with self._lock:
            info = self._find(map_id)
            return info.model_copy() if info else None

    def get_store(self, map_id: int) -> Optional[MapStore]:
        """Return the cached store for ``map_id``, creating an unloaded one on first use."""
        with self._lock:
            store = self._stores.get(map_id)
            if store is not None:
                return store
            info = self._find(map_id)
            if info is None:
                return None
            store = MapStore(info)
            self._stores[map_id] = store
            return store

    def require_store(self, map_id: int) -> MapStore:
        store = self.get_store(map_id)
        if store is None:
            raise MapNotFound(map_id)
        return store

    def stores(self) -> list[MapStore]:
        with self._lock:
            return list(self._stores.values())

    def _find(self, map_id: int) -> Optional[MapInfo]:
        for info in self._maps:
            if info.id == map_id:
                return info
        return None

    def _find_by_file(self, base_dir: str, file_name: str) -> Optional[MapInfo]:
        for info in self._maps:
            if info.baseDir == base_dir and info.fileName == file_name:
                return info
        return None

    def _allocate_id(self) -> int:
        new_id = max(self._high_water, max((info.id for info in self._maps), default=0)) + 1
        self._high_water = new_id
        return new_id

    # ── mutations ────────────────────────────────────────────────

    def add_map(self, info: MapInfo) -> tuple[int, MapStore]:
        """Register a new map with an empty document. Nothing is written to disk."""
        with self._lock:
            entry = info.model_copy(update={"id": self._allocate_id(), "baseDir": normalize_base_dir(info.baseDir)})
            self._maps.append(entry)
            store = MapStore.create(entry)
            self._stores[entry.id] = store
            logger.info("Added map %s (%s)", entry.id, entry.title)
            return entry.id, store

    def import_map(self, path: str | Path) -> tuple[int, MapStore]:
        """Register an existing map document; importing the same file twice is a no-op."""
        absolute = os.path.abspath(os.fspath(path))
        base_dir, file_name = os.path.split(absolute)
        with self._lock:
            existing = self._find_by_file(base_dir, file_name)
            if existing is not None:
                return existing.id, self.require_store(existing.id)

            probe = MapStore(MapInfo(baseDir=base_dir, fileName=file_name, lastOpened=utc_now()))
            probe.ensure_loaded()
            entry = MapInfo(
                id=self._allocate_id(),
                title=probe.title,
                baseDir=base_dir,
                fileName=file_name,
                lastOpened=probe.info.lastOpened,
            )
            # keep the already-loaded document instead of reading the file twice
            probe.info = entry
            self._maps.append(entry)
            self._stores[entry.id] = probe
            logger.info("Imported map %s from %s", entry.id, absolute)
            return entry.id, probe

    def delete_map(self, map_id: int) -> bool:
        """Forget a map. The document file on disk is left alone."""
        with self._lock:
            self._stores.pop(map_id, None)
            for position, info in enumerate(self._maps):
                if info.id == map_id:
                    self._maps[position] = self._maps[-1]
                    self._maps.pop()
                    logger.info("Deleted map %s", map_id)
                    return True
            return False

    # ── persistence ──────────────────────────────────────────────

    def read(self) -> None:
        """Load the registry file, creating an empty one when it does not exist."""
        with self._lock:
            path = self.storage_path
            if not path.exists():
                logger.info("%s does not exist, creating new", path)
                self._maps = []
                self._stores = {}
                self.write()
                return

            started = time.perf_counter()
            result = "error"
            try:
                try:
                    raw = path.read_bytes()
                except OSError as exc:
                    raise StoreReadError(str(path), str(exc)) from exc
                infos = codec.decode_registry(raw, str(path))
                result = "success"
            except Exception:
                logger.error("Could not read maps registry %s", path)
                raise
            finally:
                record_store_io("registry", "read", result, (time.perf_counter() - started) * 1000)

            self._maps = infos
            self._stores = {}
            self._high_water = max(self._high_water, max((info.id for info in infos), default=0))
            logger.info("Loaded %d maps from %s", len(infos), path)

    def write(self) -> None:
        with self._lock:
            path = self.storage_path
            payload = codec.encode_registry(self._maps)
            started = time.perf_counter()
            result = "error"
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_text(payload, encoding="utf-8")
                result = "success"
            except OSError as exc:
                logger.error("Could not write maps registry %s: %s", path, exc)
                raise StoreWriteError(str(path), str(exc)) from exc
            finally:
                record_store_io("registry", "write", result, (time.perf_counter() - started) * 1000)

    def flush_all(self) -> None:
        """Write every dirty store, then the registry."""
        for store in self.stores():
            if store.is_dirty:
                store.flush()
        self.write()
