"""
Acervo Path Naming Scheme — Standardized storage names and their inverse.

A standardized name encodes the classification of an asset:

    YYYY_MM_DD_AREA_NUCLEUS_THEME_STATUS_TOKEN.ext

and lives under a folder chosen by its status:

    {status_folder}/{YYYY}/{MM}/{DD}/{file_name}

``compose`` and ``parse`` are inverses over the classification components;
the 8-character token is random and opaque.
"""

from __future__ import annotations

import logging
import re
import unicodedata
import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

logger = logging.getLogger("acervo.catalog.naming")

SLUG_MAX_LENGTH = 20
SLUG_FALLBACK = "GERAL"
STATUS_SLUG_FALLBACK = "ENTRADA"
DEFAULT_EXTENSION = "jpg"
TOKEN_LENGTH = 8
MIN_COMPONENTS = 8

IMAGE_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "gif", "webp", "bmp", "tiff", "raw", "svg"})
VIDEO_EXTENSIONS = frozenset({"mp4", "mov", "avi", "mkv", "webm", "flv", "wmv", "m4v", "3gp"})

_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")


class AssetStatus(str, Enum):
    """Catalog workflow status, in lifecycle order."""
    ENTRADA = "Entrada"
    CATALOGADO = "Catalogado"
    EM_PRODUCAO = "Em produção"
    PUBLICADO = "Publicado"
    ARQUIVADO = "Arquivado"


STATUS_FOLDERS: Dict[AssetStatus, str] = {
    AssetStatus.ENTRADA: "00_ENTRADA",
    AssetStatus.CATALOGADO: "01_CATALOGADO",
    AssetStatus.EM_PRODUCAO: "02_PRODUCAO",
    AssetStatus.PUBLICADO: "03_PUBLICADO",
    AssetStatus.ARQUIVADO: "04_ARQUIVADO",
}

FOLDER_LABELS: Dict[str, Tuple[str, str]] = {
    "00_ENTRADA": ("entrada", "00 - Entrada (Bruto)"),
    "01_CATALOGADO": ("catalogado", "01 - Catalogado"),
    "02_PRODUCAO": ("producao", "02 - Em Produção"),
    "03_PUBLICADO": ("publicado", "03 - Publicado"),
    "04_ARQUIVADO": ("arquivado", "04 - Arquivado"),
}

# Values written by earlier releases
_STATUS_ALIASES = {
    "Entrada (Bruto)": AssetStatus.ENTRADA,
}


@dataclass(frozen=True)
class ComposedPath:
    file_name: str
    folder_path: str
    full_path: str


@dataclass(frozen=True)
class NameComponents:
    year: str
    month: str
    day: str
    area: str
    nucleus: str
    theme: str
    status: str
    short_id: str
    extension: str


# ---------------------------------------------------------------------------
# Slugs and status helpers
# ---------------------------------------------------------------------------

def slugify(text: Optional[str]) -> str:
    """Strip diacritics and non-alphanumerics, upper-case, cap at 20 chars."""
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFD", text)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _NON_ALNUM.sub("", stripped).upper()[:SLUG_MAX_LENGTH]


_STATUS_BY_SLUG: Dict[str, AssetStatus] = {slugify(s.value): s for s in AssetStatus}
_STATUS_BY_SLUG.update({slugify(alias): s for alias, s in _STATUS_ALIASES.items()})
_STATUS_BY_FOLDER: Dict[str, AssetStatus] = {folder: s for s, folder in STATUS_FOLDERS.items()}


def status_from_slug(slug: Optional[str]) -> Optional[AssetStatus]:
    """Map a status slug (as embedded in a file name) back to a status."""
    if not slug:
        return None
    return _STATUS_BY_SLUG.get(slugify(slug))


def status_for_folder(folder: Optional[str]) -> Optional[AssetStatus]:
    """Map a top-level folder (or a path starting with one) to its status."""
    if not folder:
        return None
    return _STATUS_BY_FOLDER.get(folder.split("/", 1)[0])


def normalize_status(value: Any) -> Optional[AssetStatus]:
    """
    Resolve free-form status input to an AssetStatus.

    Accepts enum members, exact values, legacy aliases and anything whose slug
    matches a known status ("catalogado", "EM PRODUCAO"). Returns None when
    unrecognized; empty input is the initial status.
    """
    if isinstance(value, AssetStatus):
        return value
    if value is None or (isinstance(value, str) and not value.strip()):
        return AssetStatus.ENTRADA
    text = str(value).strip()
    if text in _STATUS_ALIASES:
        return _STATUS_ALIASES[text]
    try:
        return AssetStatus(text)
    except ValueError:
        return status_from_slug(text)


def folder_for_status(status: Any) -> str:
    """Top-level folder for a status; unrecognized values land in the entry folder."""
    resolved = normalize_status(status)
    if resolved is None:
        return STATUS_FOLDERS[AssetStatus.ENTRADA]
    return STATUS_FOLDERS[resolved]


# ---------------------------------------------------------------------------
# Extensions and media type
# ---------------------------------------------------------------------------

def extract_extension(file_name: str) -> str:
    base = file_name.rsplit("/", 1)[-1]
    _, dot, ext = base.rpartition(".")
    if not dot or not ext:
        return DEFAULT_EXTENSION
    return ext.lower()


def _raw_extension(file_name: str) -> str:
    _, dot, ext = file_name.rpartition(".")
    return ext.lower() if dot else ""


def is_image(file_name: str) -> bool:
    return _raw_extension(file_name) in IMAGE_EXTENSIONS


def is_video(file_name: str) -> bool:
    return _raw_extension(file_name) in VIDEO_EXTENSIONS


def media_type(file_name: str) -> Optional[str]:
    """'imagem', 'video' or None for extensions on neither list."""
    if is_image(file_name):
        return "imagem"
    if is_video(file_name):
        return "video"
    return None


# ---------------------------------------------------------------------------
# compose / parse
# ---------------------------------------------------------------------------

def generate_token() -> str:
    return uuid.uuid4().hex[:TOKEN_LENGTH].upper()


def _field(metadata: Any, *names: str) -> Optional[str]:
    for name in names:
        if isinstance(metadata, Mapping):
            value = metadata.get(name)
        else:
            value = getattr(metadata, name, None)
        if value:
            return value.value if isinstance(value, AssetStatus) else str(value)
    return None


def compose(
    original_name: str,
    metadata: Any,
    *,
    now: Optional[datetime] = None,
    token: Optional[str] = None,
) -> ComposedPath:
    """
    Build the standardized name and path for a new upload.

    ``metadata`` is a mapping or object exposing area, theme (or ``tema``),
    nucleus (or ``nucleo``) and status.
    """
    now = now or datetime.now()
    year = f"{now.year:04d}"
    month = f"{now.month:02d}"
    day = f"{now.day:02d}"
    token = token or generate_token()
    extension = extract_extension(original_name)

    status = _field(metadata, "status")
    area_slug = slugify(_field(metadata, "area")) or SLUG_FALLBACK
    nucleus_slug = slugify(_field(metadata, "nucleus", "nucleo")) or SLUG_FALLBACK
    theme_slug = slugify(_field(metadata, "theme", "tema")) or SLUG_FALLBACK
    status_slug = slugify(status) or STATUS_SLUG_FALLBACK

    file_name = (
        f"{year}_{month}_{day}_{area_slug}_{nucleus_slug}_{theme_slug}_"
        f"{status_slug}_{token}.{extension}"
    )
    folder_path = f"{folder_for_status(status)}/{year}/{month}/{day}"
    full_path = f"{folder_path}/{file_name}"

    logger.debug(f"Composed {original_name!r} -> {full_path}")
    return ComposedPath(file_name=file_name, folder_path=folder_path, full_path=full_path)


def parse(file_name: str) -> Optional[NameComponents]:
    """
    Split a standardized name (or full path) into its components.

    Returns None for names that do not follow the scheme; legacy names must
    never be fatal to callers.
    """
    if not file_name:
        return None
    base = file_name.rsplit("/", 1)[-1]
    stem, dot, extension = base.rpartition(".")
    if not dot:
        stem, extension = base, ""

    components = stem.split("_")
    if len(components) < MIN_COMPONENTS:
        logger.warning(f"File name does not follow the naming scheme: {file_name}")
        return None

    year, month, day, area, nucleus, theme, status, short_id = components[:MIN_COMPONENTS]
    return NameComponents(
        year=year,
        month=month,
        day=day,
        area=area,
        nucleus=nucleus,
        theme=theme,
        status=status,
        short_id=short_id,
        extension=extension,
    )


def record_id_for(file_name: str) -> str:
    """Record id derived from a standardized name: dots become underscores."""
    return file_name.replace(".", "_")
