"""Versioned JSON codec for map documents and the maps registry.

Every persisted file carries an integer schema version at the top level.
Decoding reads that tag first, dispatches through an explicit
version -> decoder table and upgrades older shapes into the current
in-memory models. Unknown versions are rejected, never guessed.

Version 1 is the legacy layout (``version`` tag, ``title2``, resources keyed
by id, numeric resource types). Version 2 is the current layout.
"""
from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, Callable

from pydantic import ValidationError

from filemaps.errors import StoreReadError, UnsupportedSchemaVersion
from filemaps.models import (
    RESOURCE_DIRECTORY,
    RESOURCE_FILE,
    MapDocument,
    MapInfo,
    Resource,
    utc_now,
)

logger = logging.getLogger("filemaps.codec")

MAP_DOCUMENT_VERSION = 2
REGISTRY_VERSION = 2

_LEGACY_RESOURCE_TYPES = {0: RESOURCE_FILE, 1: RESOURCE_DIRECTORY}
_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


def _load_json(raw: str | bytes, path: str) -> dict[str, Any]:
    try:
        data = json.loads(raw)
    except (ValueError, UnicodeDecodeError) as exc:
        raise StoreReadError(path, f"invalid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise StoreReadError(path, "top-level JSON value must be an object")
    return data


def read_schema_version(data: dict[str, Any], path: str = "", kind: str = "document") -> int:
    """Return the schema tag of a decoded envelope.

    ``schemaVersion`` is preferred; the legacy ``version`` key is accepted
    so that files written by older releases can be upgraded.
    """
    version = data.get("schemaVersion", data.get("version"))
    if isinstance(version, bool) or not isinstance(version, (int, float)):
        raise UnsupportedSchemaVersion(version, path, kind)
    if isinstance(version, float):
        if not version.is_integer():
            raise UnsupportedSchemaVersion(version, path, kind)
        version = int(version)
    return version


def _parse_legacy_timestamp(value: Any) -> datetime:
    token = str(value or "").strip()
    if not token:
        return utc_now()
    token = _FRACTION_RE.sub(r"\1", token.replace("Z", "+00:00"))
    try:
        parsed = datetime.fromisoformat(token)
    except ValueError:
        logger.warning("Unparseable legacy timestamp %r, using current time", value)
        return utc_now()
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# ── Map documents ──────────────────────────────────────────────────

def _decode_document_v1(data: dict[str, Any]) -> MapDocument:
    resources: list[Resource] = []
    raw_resources = data.get("resources") or {}
    for key, item in raw_resources.items():
        if not isinstance(item, dict):
            continue
        resource_id = item.get("id") or int(key)
        resources.append(
            Resource(
                id=resource_id,
                type=_LEGACY_RESOURCE_TYPES.get(item.get("type", 0), RESOURCE_FILE),
                path=item.get("path", ""),
                pos=item.get("pos") or {},
            )
        )
    resources.sort(key=lambda r: r.id)
    return MapDocument(
        schemaVersion=MAP_DOCUMENT_VERSION,
        titleCopy=data.get("title2", ""),
        exclude=[],
        resources=resources,
    )


def _decode_document_v2(data: dict[str, Any]) -> MapDocument:
    return MapDocument.model_validate(data)


_DOCUMENT_DECODERS: dict[int, Callable[[dict[str, Any]], MapDocument]] = {
    1: _decode_document_v1,
    2: _decode_document_v2,
}


def decode_document(raw: str | bytes, path: str = "") -> MapDocument:
    data = _load_json(raw, path)
    version = read_schema_version(data, path, "document")
    decoder = _DOCUMENT_DECODERS.get(version)
    if decoder is None:
        raise UnsupportedSchemaVersion(version, path, "document")
    try:
        document = decoder(data)
    except (ValidationError, TypeError, ValueError, AttributeError) as exc:
        raise StoreReadError(path, str(exc)) from exc
    if version != MAP_DOCUMENT_VERSION:
        logger.info("Upgraded map document %s from schema %s to %s", path, version, MAP_DOCUMENT_VERSION)
    document.schemaVersion = MAP_DOCUMENT_VERSION
    return document


def encode_document(document: MapDocument) -> str:
    payload = document.model_dump(mode="json", exclude_none=True)
    payload["schemaVersion"] = MAP_DOCUMENT_VERSION
    return json.dumps(payload, indent=2)


# ── Registry ───────────────────────────────────────────────────────

def _decode_registry_v1(data: dict[str, Any]) -> list[MapInfo]:
    infos: list[MapInfo] = []
    for item in data.get("maps") or []:
        infos.append(
            MapInfo(
                id=item["id"],
                title=item.get("title", ""),
                baseDir=item.get("base", ""),
                fileName=item.get("file", ""),
                lastOpened=_parse_legacy_timestamp(item.get("opened")),
            )
        )
    return infos


def _decode_registry_v2(data: dict[str, Any]) -> list[MapInfo]:
    return [MapInfo.model_validate(item) for item in data.get("maps") or []]


_REGISTRY_DECODERS: dict[int, Callable[[dict[str, Any]], list[MapInfo]]] = {
    1: _decode_registry_v1,
    2: _decode_registry_v2,
}


def decode_registry(raw: str | bytes, path: str = "") -> list[MapInfo]:
    data = _load_json(raw, path)
    version = read_schema_version(data, path, "registry")
    decoder = _REGISTRY_DECODERS.get(version)
    if decoder is None:
        raise UnsupportedSchemaVersion(version, path, "registry")
    try:
        return decoder(data)
    except (ValidationError, KeyError, TypeError, ValueError) as exc:
        raise StoreReadError(path, str(exc)) from exc


def encode_registry(infos: list[MapInfo]) -> str:
    payload = {
        "schemaVersion": REGISTRY_VERSION,
        "maps": [info.model_dump(mode="json") for info in infos],
    }
    return json.dumps(payload, indent=2)
