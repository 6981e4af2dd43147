"""Pydantic models for maps, resources and API payloads."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

RESOURCE_FILE = "file"
RESOURCE_DIRECTORY = "directory"

ResourceType = Literal["file", "directory"]


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


# ── Registry models ────────────────────────────────────────────────

class MapInfo(BaseModel):
    id: int = 0
    title: str = ""
    baseDir: str = ""
    fileName: str = ""
    lastOpened: datetime = Field(default_factory=utc_now)

    @field_validator("lastOpened")
    @classmethod
    def assume_utc(cls, value: datetime) -> datetime:
        # entries written without an offset are UTC
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


# ── Map document models ────────────────────────────────────────────

class Position(BaseModel):
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0


class Style(BaseModel):
    sClass: str = ""
    rules: dict[str, str] = Field(default_factory=dict)


class Resource(BaseModel):
    id: int = 0
    type: ResourceType = RESOURCE_FILE
    path: str
    pos: Position = Field(default_factory=Position)
    style: Optional[Style] = None


class MapDocument(BaseModel):
    schemaVersion: int = 2
    titleCopy: str = ""
    exclude: list[str] = Field(default_factory=list)
    resources: list[Resource] = Field(default_factory=list)


def default_styles() -> list[Style]:
    """Built-in per-extension styles offered to clients."""
    return [
        Style(sClass="go", rules={"color": "#375eab"}),
        Style(sClass="html", rules={"color": "#ff0000"}),
        Style(sClass="md", rules={"color": "#00ff00"}),
        Style(sClass="ts", rules={"color": "#0000ff"}),
    ]


# ── API payloads ───────────────────────────────────────────────────

class MapCreateRequest(BaseModel):
    title: str
    baseDir: str
    fileName: str


class MapUpdateRequest(BaseModel):
    title: Optional[str] = None
    baseDir: Optional[str] = None
    fileName: Optional[str] = None


class MapImportRequest(BaseModel):
    path: str


class MapDetail(BaseModel):
    info: MapInfo
    exclude: list[str] = Field(default_factory=list)
    resources: list[Resource] = Field(default_factory=list)
    styles: list[Style] = Field(default_factory=default_styles)


class ResourceItem(BaseModel):
    path: str  # absolute, or relative to the map base directory
    type: ResourceType = RESOURCE_FILE
    pos: Position = Field(default_factory=Position)
    style: Optional[Style] = None


class ResourcesCreateRequest(BaseModel):
    items: list[ResourceItem] = Field(default_factory=list)


class ResourceUpdate(BaseModel):
    id: int
    pos: Optional[Position] = None
    style: Optional[Style] = None


class ResourcesUpdateRequest(BaseModel):
    resources: list[ResourceUpdate] = Field(default_factory=list)


class ResourcesDeleteRequest(BaseModel):
    ids: list[int] = Field(default_factory=list)


class ScanRequest(BaseModel):
    path: str = ""  # directory to scan, defaults to the map base directory
    exclude: list[str] = Field(default_factory=list)


class ResourcesResponse(BaseModel):
    resources: list[Resource] = Field(default_factory=list)
