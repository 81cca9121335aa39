"""
Acervo Metadata Store — Durable JSON collection of AssetMetadata.

The canonical representation is a single JSON array document; each element is
one asset record. A missing document is an empty catalog.

Reads never fail the caller: an unreadable or corrupt document degrades to an
empty collection (logged). Elements that fail validation are hidden from
reads but written back untouched, so a rewrite never drops data it could not
understand.

Writes rewrite the whole collection through a temp file + atomic rename; a
failed write leaves the previous document intact and raises
AcervoStorageWriteError.

Saves are serialized within the process. Two processes writing the same
document still race (last rewrite wins).
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from pydantic import AliasChoices, ValidationError

from acervo.catalog.models import AssetMetadata
from acervo.catalog.naming import normalize_status
from acervo.engine.errors import AcervoStorageWriteError, AcervoValidationError
from acervo.engine.logging import log, log_record_operation

logger = logging.getLogger("acervo.catalog.store")

# Every accepted input key (camelCase, legacy) -> attribute name
_FIELD_BY_KEY: Dict[str, str] = {}
for _name, _field in AssetMetadata.model_fields.items():
    _FIELD_BY_KEY[_name] = _name
    if isinstance(_field.validation_alias, AliasChoices):
        for _choice in _field.validation_alias.choices:
            _FIELD_BY_KEY[str(_choice)] = _name


class MetadataStore:
    """
    Whole-document JSON store keyed by record id, with file_path as alternate key.

    No in-memory cache: every call reads the document, so the file is the sole
    owner of record lifetime.
    """

    def __init__(self, db_file: Union[str, Path]):
        self._db_file = Path(db_file)
        self._lock = threading.RLock()

    @property
    def db_file(self) -> Path:
        return self._db_file

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------

    def get_all(self) -> List[AssetMetadata]:
        """Return every record; empty when the document is absent or corrupt."""
        records, _ = self._load()
        return records

    def __iter__(self) -> Iterator[AssetMetadata]:
        return iter(self.get_all())

    def count(self) -> int:
        return len(self.get_all())

    def get_by_id(self, record_id: str) -> Optional[AssetMetadata]:
        for record in self.get_all():
            if record.id == record_id:
                return record
        return None

    def get_by_path(self, file_path: str) -> Optional[AssetMetadata]:
        for record in self.get_all():
            if record.file_path == file_path:
                return record
        return None

    def _load(self) -> Tuple[List[AssetMetadata], List[Any]]:
        """(valid records, raw elements that did not validate)."""
        if not self._db_file.exists():
            logger.debug(f"Metadata document {self._db_file} does not exist yet")
            return [], []
        try:
            with open(self._db_file, "r", encoding="utf-8") as f:
                parsed = json.load(f)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.error(f"Could not read metadata document {self._db_file}: {e}")
            return [], []

        if not isinstance(parsed, list):
            logger.warning(f"Metadata document {self._db_file} is not a JSON array, ignoring")
            return [], []

        records: List[AssetMetadata] = []
        unreadable: List[Any] = []
        for index, item in enumerate(parsed):
            try:
                records.append(AssetMetadata.model_validate(item))
            except ValidationError as e:
                logger.warning(
                    f"Skipping invalid element #{index} in {self._db_file}: "
                    f"{e.error_count()} error(s)"
                )
                unreadable.append(item)
        return records, unreadable

    # -------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------

    def save(self, record: AssetMetadata) -> AssetMetadata:
        """
        Insert, or merge into the record with the same id.

        On merge, fields explicitly set on ``record`` win and uploaded_at is kept
        unless ``record`` provides one. Returns the stored record.
        """
        with self._lock:
            records, unreadable = self._load()
            index = next((i for i, r in enumerate(records) if r.id == record.id), None)

            if index is None:
                holder = next((r for r in records if r.file_path == record.file_path), None)
                if holder is not None:
                    raise AcervoValidationError(
                        f"Path already cataloged under another id: {record.file_path}",
                        file_path=record.file_path,
                        record_id=record.id,
                        validation_errors=[f"filePath is held by {holder.id}"],
                    )
                stored = record
                if stored.uploaded_at is None:
                    stored = stored.model_copy(update={"uploaded_at": _utcnow()})
                records.append(stored)
                operation = "created"
                changed = sorted(record.model_fields_set)
            else:
                existing = records[index]
                changes = {name: getattr(record, name) for name in record.model_fields_set}
                if changes.get("uploaded_at") is None:
                    changes["uploaded_at"] = existing.uploaded_at or _utcnow()
                stored = AssetMetadata.model_validate({**existing.model_dump(), **changes})
                records[index] = stored
                operation = "updated"
                changed = sorted(
                    name for name in record.model_fields_set
                    if getattr(existing, name) != getattr(stored, name)
                )

            self._write_document(records, unreadable)

        logger.info(f"Record {operation}: {stored.id} (total: {len(records)})")
        log(log_record_operation(operation, stored.id, len(records), changed))
        return stored

    def update(self, record_id: str, changes: Dict[str, Any]) -> Optional[AssetMetadata]:
        """
        Apply a metadata edit (replace-merge of the given fields).

        Keys may be attribute names, camelCase or legacy names. id, file_path
        and file_name identify the stored object and cannot be edited.
        Returns the updated record, or None when the id is unknown.
        """
        changes = {_FIELD_BY_KEY.get(key, key): value for key, value in changes.items()}
        locked = {"id", "file_path", "file_name"} & set(changes)
        if locked:
            raise AcervoValidationError(
                f"Fields cannot be edited: {', '.join(sorted(locked))}",
                record_id=record_id,
                validation_errors=sorted(locked),
            )

        with self._lock:
            records, unreadable = self._load()
            index = next((i for i, r in enumerate(records) if r.id == record_id), None)
            if index is None:
                return None
            existing = records[index]
            try:
                updated = AssetMetadata.model_validate({**existing.model_dump(), **changes})
            except ValidationError as e:
                raise AcervoValidationError(
                    f"Invalid metadata for {record_id}",
                    record_id=record_id,
                    validation_errors=[err["msg"] for err in e.errors()],
                ) from e
            records[index] = updated
            self._write_document(records, unreadable)

        changed = sorted(
            k for k in changes if getattr(existing, k, None) != getattr(updated, k, None)
        )
        logger.info(f"Record edited: {record_id} ({', '.join(changed) or 'no changes'})")
        log(log_record_operation("updated", record_id, len(records), changed))
        return updated

    def update_status(self, record_id: str, status: Any) -> Optional[AssetMetadata]:
        """
        Change the workflow status of a record.

        The stored object is not moved: file_path keeps its original folder.
        """
        resolved = normalize_status(status)
        if resolved is None:
            raise AcervoValidationError(
                f"Unknown status '{status}'",
                record_id=record_id,
                validation_errors=["status"],
            )
        return self.update(record_id, {"status": resolved})

    def delete(self, record_id: str) -> bool:
        """Remove a record. False when the id is not present."""
        with self._lock:
            records, unreadable = self._load()
            remaining = [r for r in records if r.id != record_id]
            if len(remaining) == len(records):
                return False
            self._write_document(remaining, unreadable)

        logger.info(f"Record deleted: {record_id}")
        log(log_record_operation("deleted", record_id, len(remaining)))
        return True

    def _write_document(self, records: List[AssetMetadata], unreadable: List[Any]) -> None:
        payload = [r.to_document() for r in records] + list(unreadable)
        tmp_name: Optional[str] = None
        try:
            self._db_file.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=str(self._db_file.parent),
                prefix=f".{self._db_file.name}.",
                delete=False,
            ) as handle:
                tmp_name = handle.name
                json.dump(payload, handle, indent=2, ensure_ascii=False)
                handle.flush()
                os.fsync(handle.fileno())
            Path(tmp_name).replace(self._db_file)
        except OSError as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            logger.error(f"Failed to write metadata document {self._db_file}: {e}")
            raise AcervoStorageWriteError(
                "Failed to save metadata to the catalog database",
                db_file=str(self._db_file),
                cause=str(e),
            ) from e


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)
