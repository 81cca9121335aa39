"""
Acervo Catalog Models — Pydantic definitions for assets, filters and stats.

AssetMetadata: One record per cataloged object (JSON keys are camelCase).
UploadMetadata: Classification submitted with an upload.
CatalogFilter: Query criteria.
CatalogStats / FolderSummary: Aggregation results.

Documents written by the first release used Portuguese keys (tema, nucleo,
ano, mes, uuid, extensao ...). Those keys are accepted on input; output always
uses the keys declared here.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from acervo.catalog.naming import AssetStatus, media_type, normalize_status


def _alias(name: str, *legacy: str) -> Dict[str, Any]:
    """Field kwargs accepting the camelCase name, snake_case attribute and legacy keys."""
    snake = "".join(f"_{c.lower()}" if c.isupper() else c for c in name)
    choices = [name, *legacy]
    if snake != name:
        choices.append(snake)
    return {
        "validation_alias": AliasChoices(*choices),
        "serialization_alias": name,
    }


def _coerce_status(value: Any) -> AssetStatus:
    status = normalize_status(value)
    if status is None:
        allowed = ", ".join(s.value for s in AssetStatus)
        raise ValueError(f"unknown status '{value}' (allowed: {allowed})")
    return status


# ---------------------------------------------------------------------------
# Asset record
# ---------------------------------------------------------------------------

class AssetMetadata(BaseModel):
    """
    Metadata for a cataloged photo/video.

    id and file_path are both unique in the store. year/month/day/short_id
    duplicate what file_path encodes so filters never re-parse names.
    """

    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)
    file_name: str = Field(**_alias("fileName"))
    file_path: str = Field(**_alias("filePath"))
    size: int = Field(default=0, ge=0)
    content_type: str = Field(default="application/octet-stream", **_alias("contentType"))
    extension: str = Field(default="", **_alias("extension", "extensao"))
    uploaded_at: Optional[datetime] = Field(default=None, **_alias("uploadedAt"))
    url: str = ""
    thumbnail_url: Optional[str] = Field(default=None, **_alias("thumbnailUrl"))

    area: str = Field(min_length=1)
    theme: str = Field(min_length=1, **_alias("theme", "tema"))
    status: AssetStatus = AssetStatus.ENTRADA
    nucleus: Optional[str] = Field(default=None, **_alias("nucleus", "nucleo"))
    point: Optional[str] = Field(default=None, **_alias("point", "ponto"))
    project_type: Optional[str] = Field(default=None, **_alias("projectType", "tipoProjeto"))
    historical_function: Optional[str] = Field(
        default=None, **_alias("historicalFunction", "funcaoHistorica")
    )
    event: Optional[str] = Field(default=None, **_alias("event", "evento"))

    year: str = Field(default="", **_alias("year", "ano"))
    month: str = Field(default="", **_alias("month", "mes"))
    day: str = Field(default="", **_alias("day", "dia"))
    short_id: str = Field(default="", **_alias("shortId", "uuid"))

    @field_validator("status", mode="before")
    @classmethod
    def validate_status(cls, v: Any) -> AssetStatus:
        return _coerce_status(v)

    @property
    def thumbnail(self) -> str:
        return self.thumbnail_url or self.url

    @property
    def media_type(self) -> Optional[str]:
        return media_type(self.file_name)

    def to_document(self) -> Dict[str, Any]:
        """JSON-ready dict as persisted in the metadata document."""
        return self.model_dump(mode="json", by_alias=True)

    def to_media_item(self) -> Dict[str, Any]:
        """API view: thumbnail falls back to url, tipo defaults to 'imagem'."""
        item = self.to_document()
        item.pop("contentType", None)
        item["thumbnailUrl"] = self.thumbnail
        item["tipo"] = self.media_type or "imagem"
        return item


# ---------------------------------------------------------------------------
# Upload input
# ---------------------------------------------------------------------------

class UploadMetadata(BaseModel):
    """Classification (and object properties) submitted by an uploading client."""

    model_config = ConfigDict(extra="ignore")

    area: Optional[str] = None
    theme: Optional[str] = Field(default=None, **_alias("theme", "tema"))
    status: Optional[str] = None
    nucleus: Optional[str] = Field(default=None, **_alias("nucleus", "nucleo"))
    point: Optional[str] = Field(default=None, **_alias("point", "ponto"))
    project_type: Optional[str] = Field(default=None, **_alias("projectType", "tipoProjeto"))
    historical_function: Optional[str] = Field(
        default=None, **_alias("historicalFunction", "funcaoHistorica")
    )
    event: Optional[str] = Field(default=None, **_alias("event", "evento"))
    size: Optional[int] = Field(default=None, ge=0)
    content_type: Optional[str] = Field(default=None, **_alias("contentType"))

    @field_validator("*", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v


# ---------------------------------------------------------------------------
# Query input / output
# ---------------------------------------------------------------------------

FILTER_FIELDS = (
    "area", "nucleus", "theme", "status", "point", "project_type",
    "historical_function", "event", "year", "month",
)


class CatalogFilter(BaseModel):
    """Conjunctive filter criteria. Empty values are ignored."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    area: Optional[str] = None
    nucleus: Optional[str] = Field(default=None, **_alias("nucleus", "nucleo"))
    theme: Optional[str] = Field(default=None, **_alias("theme", "tema"))
    status: Optional[str] = None
    point: Optional[str] = Field(default=None, **_alias("point", "ponto"))
    project_type: Optional[str] = Field(default=None, **_alias("projectType", "tipoProjeto"))
    historical_function: Optional[str] = Field(
        default=None, **_alias("historicalFunction", "funcaoHistorica")
    )
    event: Optional[str] = Field(default=None, **_alias("event", "evento"))
    year: Optional[str] = Field(default=None, **_alias("year", "ano"))
    month: Optional[str] = Field(default=None, **_alias("month", "mes"))
    search: Optional[str] = None

    @field_validator("month")
    @classmethod
    def pad_month(cls, v: Optional[str]) -> Optional[str]:
        # stored months are two digits ("03")
        if v is not None and v.isdigit() and len(v) == 1:
            return v.zfill(2)
        return v

    def active(self) -> Dict[str, str]:
        """Criteria that were actually supplied (non-empty)."""
        return {
            name: value for name, value in self.model_dump().items()
            if value not in (None, "")
        }


class FolderSummary(BaseModel):
    id: str
    name: str
    slug: str
    count: int = 0


class CatalogStats(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_items: int = Field(default=0, alias="totalItens")
    total_images: int = Field(default=0, alias="totalImagens")
    total_videos: int = Field(default=0, alias="totalVideos")
    by_status: Dict[str, int] = Field(default_factory=dict, alias="porStatus")
    by_area: Dict[str, int] = Field(default_factory=dict, alias="porArea")
    by_theme: Dict[str, int] = Field(default_factory=dict, alias="porTema")
    by_nucleus: Dict[str, int] = Field(default_factory=dict, alias="porNucleo")
    by_month: Dict[str, int] = Field(default_factory=dict, alias="porMes")


# ---------------------------------------------------------------------------
# Upload handles
# ---------------------------------------------------------------------------

class UploadHandle(BaseModel):
    """Time-limited credential for a direct client-to-storage write."""
    upload_url: str
    authorization_token: str
    file_path: str


class PresignedUpload(BaseModel):
    """Result of the first upload phase, handed to the transferring client."""
    handle: UploadHandle
    file_name: str
    file_path: str
    folder_path: str
    headers: Dict[str, str] = Field(default_factory=dict)
