"""Directory scanning and merging of discovered files into a map."""
from __future__ import annotations

import logging
import os
import random
import threading
import time
from pathlib import Path
from typing import Iterable, Optional

from filemaps import config
from filemaps.errors import ScanCancelled, ScanDirectoryError
from filemaps.map_store import MapStore, normalize_resource_path
from filemaps.models import RESOURCE_FILE, Position, Resource
from filemaps.observability import record_scan, start_span
from filemaps.services.exclusion import ExclusionMatcher

logger = logging.getLogger("filemaps.scanner")


def _relative(path: str, base: str) -> str:
    return os.path.relpath(path, base).replace(os.sep, "/")


def scan(
    root: str | Path,
    scan_base: str | Path,
    patterns: Iterable[str] | None = None,
    cancel: Optional[threading.Event] = None,
) -> list[str]:
    """Recursively list files under ``root`` that survive ``patterns``.

    Paths are matched relative to ``scan_base``. Excluded directories are not
    descended into. Unreadable directories are logged and skipped. Result
    order follows the directory listing and is not guaranteed.
    """
    root = os.path.abspath(os.fspath(root))
    base = os.path.abspath(os.fspath(scan_base))
    matcher = ExclusionMatcher(patterns)
    logger.info("Scan start: path=%s base=%s exclude=%s", root, base, matcher.patterns)

    found: list[str] = []
    _read_dir(root, base, matcher, found, cancel, root)
    logger.info("Scan of %s found %d files", root, len(found))
    return found


def _read_dir(
    path: str,
    base: str,
    matcher: ExclusionMatcher,
    found: list[str],
    cancel: Optional[threading.Event],
    root: str,
) -> None:
    try:
        with os.scandir(path) as it:
            entries = list(it)
    except OSError as exc:
        error = ScanDirectoryError(path, str(exc))
        logger.error("%s", error)
        return

    dirs: list[str] = []
    for entry in entries:
        if cancel is not None and cancel.is_set():
            raise ScanCancelled(root)
        try:
            is_dir = entry.is_dir(follow_symlinks=False)
        except OSError:
            is_dir = False
        if matcher.is_excluded(_relative(entry.path, base), is_dir):
            continue
        if is_dir:
            dirs.append(entry.path)
        else:
            found.append(entry.path)

    for directory in dirs:
        _read_dir(directory, base, matcher, found, cancel, root)


def _scatter(spread: float, rng: random.Random) -> Position:
    half = spread / 2.0
    return Position(x=rng.uniform(-half, half), y=rng.uniform(-half, half), z=0.0)


def merge_scan(
    store: MapStore,
    paths: Iterable[str],
    spread: float | None = None,
    rng: Optional[random.Random] = None,
) -> list[int]:
    """Add every path not yet on the map as a new file resource.

    Known paths are left untouched. New resources get a random position
    inside ``spread``. Returns the ids of the added resources.
    """
    spread = config.SCAN_SPREAD if spread is None else spread
    rng = rng or random.Random()
    added: list[int] = []
    with store.locked():
        store.ensure_loaded()
        base = store.base_dir
        for path in paths:
            rel = normalize_resource_path(_relative(path, base) if os.path.isabs(path) else path)
            if not rel or store.get_resource_by_path(rel) is not None:
                continue
            added.append(store.add_resource(Resource(type=RESOURCE_FILE, path=rel, pos=_scatter(spread, rng))))
    if added:
        logger.info("Merged %d new resources into map %s", len(added), store.map_id)
    return added


def scan_into_store(
    store: MapStore,
    patterns: list[str],
    root: str | Path | None = None,
    cancel: Optional[threading.Event] = None,
    spread: float | None = None,
    rng: Optional[random.Random] = None,
) -> list[int]:
    """Scan ``root`` (default: the map base dir) and merge the files into ``store``.

    On success the map's stored exclude patterns are replaced by ``patterns``.
    The store is not flushed.
    """
    started = time.perf_counter()
    result = "error"
    found: list[str] = []
    added: list[int] = []
    try:
        with start_span("filemaps.scan", {"map_id": store.map_id}):
            store.ensure_loaded()
            base = store.base_dir
            found = scan(root or base, base, patterns, cancel)
            with store.locked():
                added = merge_scan(store, found, spread, rng)
                store.set_exclude_patterns(patterns)
            result = "success"
    except ScanCancelled:
        result = "cancelled"
        raise
    finally:
        record_scan(
            result,
            (time.perf_counter() - started) * 1000,
            map_id=store.map_id,
            found=len(found),
            merged=len(added),
        )
    return added
