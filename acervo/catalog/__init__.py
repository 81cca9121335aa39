"""
Acervo Catalog — Naming scheme, asset records, metadata store and queries.

Standardized path: {status_folder}/{YYYY}/{MM}/{DD}/{YYYY_MM_DD_AREA_NUCLEUS_THEME_STATUS_TOKEN.ext}
"""

from acervo.catalog.models import (
    AssetMetadata,
    CatalogFilter,
    CatalogStats,
    FolderSummary,
    PresignedUpload,
    UploadHandle,
    UploadMetadata,
)
from acervo.catalog.naming import AssetStatus, compose, parse
from acervo.catalog.query import CatalogQueryEngine
from acervo.catalog.store import MetadataStore

__all__ = [
    "AssetMetadata",
    "AssetStatus",
    "CatalogFilter",
    "CatalogQueryEngine",
    "CatalogStats",
    "FolderSummary",
    "MetadataStore",
    "PresignedUpload",
    "UploadHandle",
    "UploadMetadata",
    "compose",
    "parse",
]
