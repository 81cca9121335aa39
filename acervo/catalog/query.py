"""
Acervo Catalog Query Engine — Filtering, folder listings and statistics.

Every call is a single O(n) pass over MetadataStore.get_all(); no index is
maintained. That is fine for catalogs of a few thousand records.
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError

from acervo.catalog.models import (
    FILTER_FIELDS,
    AssetMetadata,
    CatalogFilter,
    CatalogStats,
    FolderSummary,
)
from acervo.catalog.naming import (
    FOLDER_LABELS,
    STATUS_FOLDERS,
    folder_for_status,
    is_image,
    is_video,
    normalize_status,
)
from acervo.catalog.store import MetadataStore
from acervo.engine.errors import AcervoValidationError

logger = logging.getLogger("acervo.catalog.query")

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _under_prefix(file_path: str, prefix: str) -> bool:
    """Path-segment prefix test: '00_ENTRA' does not match '00_ENTRADA/...'."""
    prefix = prefix.strip("/")
    if not prefix:
        return True
    return file_path == prefix or file_path.startswith(prefix + "/")


def _upload_time(record: AssetMetadata) -> datetime:
    ts = record.uploaded_at
    if ts is None:
        return _EPOCH
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


def newest_first(records: List[AssetMetadata]) -> List[AssetMetadata]:
    return sorted(records, key=_upload_time, reverse=True)


def as_filter(criteria: Union[CatalogFilter, Mapping[str, Any], None]) -> CatalogFilter:
    """Validate raw criteria; numeric year/month values are accepted."""
    if criteria is None:
        return CatalogFilter()
    if isinstance(criteria, CatalogFilter):
        return criteria
    try:
        return CatalogFilter.model_validate(dict(criteria))
    except ValidationError as e:
        raise AcervoValidationError(
            "Invalid filter criteria",
            validation_errors=[
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            ],
        ) from e


class CatalogQueryEngine:
    """Read-side operations over a MetadataStore."""

    def __init__(self, store: MetadataStore):
        self._store = store

    @property
    def store(self) -> MetadataStore:
        return self._store

    # -------------------------------------------------------------------
    # Filtering
    # -------------------------------------------------------------------

    def filter(
        self,
        criteria: Union[CatalogFilter, Mapping[str, Any], None] = None,
    ) -> List[AssetMetadata]:
        """
        AND over the supplied fields (exact match) plus an optional
        case-insensitive ``search`` across file name, area, theme and nucleus.
        """
        criteria = as_filter(criteria)
        active = criteria.active()
        search = active.pop("search", None)
        if "status" in active:
            # accept "catalogado" as well as "Catalogado"
            status = normalize_status(active["status"])
            active["status"] = status.value if status else active["status"]

        records = self._store.get_all()
        results = [r for r in records if self._matches(r, active, search)]
        logger.debug(f"Filter {criteria.active()} matched {len(results)}/{len(records)}")
        return results

    @staticmethod
    def _matches(record: AssetMetadata, active: Dict[str, str], search: Optional[str]) -> bool:
        for name in FILTER_FIELDS:
            if name not in active:
                continue
            value = getattr(record, name)
            if name == "status":
                value = value.value
            if value != active[name]:
                return False

        if search:
            needle = search.lower()
            haystacks = (record.file_name, record.area, record.theme, record.nucleus or "")
            if not any(needle in h.lower() for h in haystacks):
                return False
        return True

    # -------------------------------------------------------------------
    # Folders
    # -------------------------------------------------------------------

    def list_by_folder_prefix(self, prefix: str) -> List[AssetMetadata]:
        return [r for r in self._store.get_all() if _under_prefix(r.file_path, prefix)]

    def list_folders(self) -> List[FolderSummary]:
        """The five fixed top-level folders with their record counts."""
        counts = Counter(r.file_path.split("/", 1)[0] for r in self._store.get_all())
        folders = []
        for slug in STATUS_FOLDERS.values():
            folder_id, name = FOLDER_LABELS[slug]
            folders.append(FolderSummary(id=folder_id, name=name, slug=slug, count=counts[slug]))
        return folders

    def unique_folders(self) -> List[str]:
        """Sorted distinct parent folders of every stored path."""
        folders = {
            r.file_path.rsplit("/", 1)[0]
            for r in self._store.get_all()
            if "/" in r.file_path
        }
        return sorted(folders)

    def folder_tree(self) -> Dict[str, Any]:
        """
        Nested {segment: {name, count, children}} tree of parent folders.
        A node's count is the number of records anywhere beneath it.
        """
        tree: Dict[str, Any] = {}
        for record in self._store.get_all():
            current = tree
            for part in record.file_path.split("/")[:-1]:
                node = current.setdefault(part, {"name": part, "count": 0, "children": {}})
                node["count"] += 1
                current = node["children"]
        return tree

    def list_misplaced(self) -> List[AssetMetadata]:
        """Records whose current status no longer matches the folder they are stored in."""
        return [
            r for r in self._store.get_all()
            if not _under_prefix(r.file_path, folder_for_status(r.status))
        ]

    # -------------------------------------------------------------------
    # Statistics
    # -------------------------------------------------------------------

    def aggregate_stats(self) -> CatalogStats:
        records = self._store.get_all()
        by_status: Counter = Counter()
        by_area: Counter = Counter()
        by_theme: Counter = Counter()
        by_nucleus: Counter = Counter()
        by_month: Counter = Counter()
        images = videos = 0

        for r in records:
            by_status[r.status.value] += 1
            by_area[r.area] += 1
            by_theme[r.theme] += 1
            if r.nucleus:
                by_nucleus[r.nucleus] += 1
            by_month[f"{r.year}-{r.month}"] += 1

            name = f".{r.extension}" if r.extension else r.file_name
            if is_image(name):
                images += 1
            elif is_video(name):
                videos += 1

        return CatalogStats(
            total_items=len(records),
            total_images=images,
            total_videos=videos,
            by_status=dict(by_status),
            by_area=dict(by_area),
            by_theme=dict(by_theme),
            by_nucleus=dict(by_nucleus),
            by_month=dict(by_month),
        )
