"""Error types raised by the map registry, stores and scanner."""
from __future__ import annotations

from typing import Any


class FileMapsError(Exception):
    """Base class for all filemaps core errors."""


class MapNotFound(FileMapsError):
    def __init__(self, map_id: int):
        super().__init__(f"Map {map_id} not found")
        self.map_id = map_id


class ResourceNotFound(FileMapsError):
    def __init__(self, map_id: int | None, resource_id: int):
        super().__init__(f"Resource {resource_id} not found in map {map_id}")
        self.map_id = map_id
        self.resource_id = resource_id


class DocumentUnreadable(FileMapsError):
    """A persisted document could not be opened or parsed."""

    def __init__(self, path: str, reason: str = ""):
        message = f"Could not read document {path}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.path = path
        self.reason = reason


class StoreReadError(DocumentUnreadable):
    pass


class UnsupportedSchemaVersion(DocumentUnreadable):
    def __init__(self, version: Any, path: str = "", kind: str = "document"):
        super().__init__(path or "<memory>", f"unsupported {kind} schema version {version!r}")
        self.version = version
        self.kind = kind


class StoreWriteError(FileMapsError):
    def __init__(self, path: str, reason: str = ""):
        message = f"Could not write document {path}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.path = path
        self.reason = reason


class ScanDirectoryError(FileMapsError):
    """A single directory could not be listed; the scan skips that subtree."""

    def __init__(self, path: str, reason: str = ""):
        super().__init__(f"Could not read directory {path}: {reason}")
        self.path = path
        self.reason = reason


class ScanCancelled(FileMapsError):
    def __init__(self, path: str):
        super().__init__(f"Scan of {path} was cancelled")
        self.path = path
