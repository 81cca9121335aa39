"""
Acervo Upload Workflow — Two-phase (presign → confirm) upload orchestration.

Per attempt:

    requested ──► handle_issued ──► transferring ──► confirmed
        │               │                 │
        └───────────────┴────────┬────────┘
                                 ▼
                               failed

Phase 1 (request_upload) validates the classification, composes the
standardized path and obtains a write handle from storage. Nothing is written
to the catalog yet.

The bytes go straight from the client to storage with that handle; this
module neither retries nor observes the transfer.

Phase 2 (confirm_upload) re-derives everything it can from the path, merges
the submitted classification and upserts the record. Confirming the same path
twice overwrites the single record. A malformed name only leaves the
path-derived fields empty; it never loses the confirmation.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Union

from pydantic import ValidationError

from acervo.catalog.models import AssetMetadata, PresignedUpload, UploadMetadata
from acervo.catalog.naming import (
    SLUG_FALLBACK,
    AssetStatus,
    NameComponents,
    compose,
    normalize_status,
    parse,
    record_id_for,
    status_for_folder,
    status_from_slug,
)
from acervo.catalog.store import MetadataStore
from acervo.engine.errors import (
    AcervoError,
    AcervoNotFoundError,
    AcervoValidationError,
    AcervoWorkflowError,
)
from acervo.engine.logging import log, log_upload_event, log_upload_performance
from acervo.storage.b2 import upload_headers

logger = logging.getLogger("acervo.upload.coordinator")

MetadataInput = Union[UploadMetadata, Mapping[str, Any], None]


class UploadState(str, Enum):
    REQUESTED = "requested"
    HANDLE_ISSUED = "handle_issued"
    TRANSFERRING = "transferring"
    CONFIRMED = "confirmed"
    FAILED = "failed"


_TRANSITIONS = {
    UploadState.REQUESTED: {UploadState.HANDLE_ISSUED, UploadState.FAILED},
    UploadState.HANDLE_ISSUED: {UploadState.TRANSFERRING, UploadState.CONFIRMED, UploadState.FAILED},
    UploadState.TRANSFERRING: {UploadState.CONFIRMED, UploadState.FAILED},
    UploadState.CONFIRMED: set(),
    UploadState.FAILED: set(),
}


@dataclass
class UploadItem:
    """One file of a batch upload."""
    file_name: str
    size: int
    content_type: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    data: Optional[bytes] = None


@dataclass
class UploadAttempt:
    """Outcome of one upload attempt, reported per file."""
    file_name: str
    state: UploadState = UploadState.REQUESTED
    presigned: Optional[PresignedUpload] = None
    record: Optional[AssetMetadata] = None
    error: Optional[str] = None
    history: List[UploadState] = field(default_factory=lambda: [UploadState.REQUESTED])

    def advance(self, to_state: UploadState) -> None:
        if to_state not in _TRANSITIONS[self.state]:
            raise AcervoWorkflowError(
                f"Upload of '{self.file_name}' cannot go from {self.state.value} to {to_state.value}",
                from_state=self.state.value,
                to_state=to_state.value,
            )
        self.state = to_state
        self.history.append(to_state)

    def fail(self, error: str) -> None:
        self.advance(UploadState.FAILED)
        self.error = error

    @property
    def succeeded(self) -> bool:
        return self.state == UploadState.CONFIRMED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fileName": self.file_name,
            "state": self.state.value,
            "filePath": self.presigned.file_path if self.presigned else None,
            "id": self.record.id if self.record else None,
            "error": self.error,
        }


Transfer = Callable[[PresignedUpload, UploadItem], Awaitable[Any]]


def _as_upload_metadata(metadata: MetadataInput) -> UploadMetadata:
    if metadata is None:
        return UploadMetadata()
    if isinstance(metadata, UploadMetadata):
        return metadata
    try:
        return UploadMetadata.model_validate(dict(metadata))
    except ValidationError as e:
        raise AcervoValidationError(
            "Invalid upload metadata",
            validation_errors=[f"{'.'.join(map(str, err['loc']))}: {err['msg']}" for err in e.errors()],
        ) from e


class UploadWorkflowCoordinator:
    """
    Coordinates naming, the storage backend and the metadata store.

    ``storage`` must provide ``get_upload_handle(path)``, ``public_url(path)``
    and ``file_exists(path)`` (B2StorageClient does).
    """

    def __init__(
        self,
        store: MetadataStore,
        storage,
        max_upload_size_mb: int = 500,
        default_content_type: str = "application/octet-stream",
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._store = store
        self._storage = storage
        self._max_upload_bytes = max_upload_size_mb * 1024 * 1024
        self._default_content_type = default_content_type
        self._clock = clock or datetime.now

    # -------------------------------------------------------------------
    # Phase 1
    # -------------------------------------------------------------------

    async def request_upload(
        self,
        original_file_name: str,
        content_type: Optional[str],
        size: Optional[int],
        metadata: MetadataInput,
    ) -> PresignedUpload:
        """Validate, name the object and obtain a storage write handle."""
        meta = _as_upload_metadata(metadata)
        self._validate_request(original_file_name, size, meta)

        status = meta.status or AssetStatus.ENTRADA.value
        composed = compose(
            original_file_name,
            {"area": meta.area, "nucleus": meta.nucleus, "theme": meta.theme, "status": status},
            now=self._clock(),
        )
        handle = await self._storage.get_upload_handle(composed.full_path)

        logger.info(f"Upload handle issued for {original_file_name!r} -> {composed.full_path}")
        log(log_upload_event(
            "upload_requested", composed.full_path, UploadState.HANDLE_ISSUED.value,
            original_name=original_file_name, size=size,
        ))
        return PresignedUpload(
            handle=handle,
            file_name=composed.file_name,
            file_path=composed.full_path,
            folder_path=composed.folder_path,
            headers=upload_headers(
                composed.full_path,
                handle.authorization_token,
                content_type or self._default_content_type,
            ),
        )

    def _validate_request(self, original_file_name: str, size: Optional[int], meta: UploadMetadata) -> None:
        errors = []
        if not original_file_name or not original_file_name.strip():
            errors.append("filename is required")
        if not meta.area:
            errors.append("area is required")
        if not meta.theme:
            errors.append("theme is required")
        if size is not None and size > self._max_upload_bytes:
            errors.append(
                f"size {size / 1024 / 1024:.1f} MB exceeds the "
                f"{self._max_upload_bytes // (1024 * 1024)} MB limit"
            )
        if errors:
            raise AcervoValidationError(
                f"Invalid upload request: {'; '.join(errors)}",
                validation_errors=errors,
            )

    # -------------------------------------------------------------------
    # Phase 2
    # -------------------------------------------------------------------

    async def confirm_upload(
        self,
        file_path: str,
        metadata: MetadataInput = None,
        verify: bool = False,
    ) -> AssetMetadata:
        """
        Record a completed transfer in the catalog.

        With ``verify`` the storage backend must already hold the object,
        otherwise AcervoNotFoundError is raised and nothing is written.
        The catalog write itself is synchronous file I/O on the calling loop.
        """
        if not file_path or not file_path.strip():
            raise AcervoValidationError("filePath is required", validation_errors=["filePath"])
        file_path = file_path.strip().lstrip("/")
        meta = _as_upload_metadata(metadata)
        start = time.monotonic()

        if verify and not await self._storage.file_exists(file_path):
            raise AcervoNotFoundError(
                f"No object stored at {file_path}",
                file_path=file_path,
            )

        file_name = file_path.rsplit("/", 1)[-1]
        parts = parse(file_name)
        if parts is None:
            logger.warning(f"Confirming {file_path} with a non-standard name, path fields left empty")

        record_id = record_id_for(file_name)
        if self._store.get_by_path(file_path) is not None:
            logger.info(f"Upload already cataloged, overwriting: {record_id}")

        url = self._storage.public_url(file_path)
        record = AssetMetadata(
            id=record_id,
            file_name=file_name,
            file_path=file_path,
            size=meta.size or 0,
            content_type=meta.content_type or self._default_content_type,
            extension=parts.extension if parts else "",
            uploaded_at=datetime.now(timezone.utc),
            url=url,
            thumbnail_url=url,
            area=meta.area or SLUG_FALLBACK,
            theme=meta.theme or SLUG_FALLBACK,
            status=self._resolve_status(file_path, parts, meta.status),
            nucleus=meta.nucleus,
            point=meta.point,
            project_type=meta.project_type,
            historical_function=meta.historical_function,
            event=meta.event,
            year=parts.year if parts else "",
            month=parts.month if parts else "",
            day=parts.day if parts else "",
            short_id=parts.short_id if parts else "",
        )
        stored = self._store.save(record)

        duration_ms = (time.monotonic() - start) * 1000
        logger.info(f"Upload confirmed and cataloged: {stored.id}")
        log(log_upload_event(
            "upload_confirmed", file_path, UploadState.CONFIRMED.value,
            size=stored.size, duration_ms=round(duration_ms, 2),
        ))
        log(log_upload_performance(file_path, duration_ms, stored.size))
        return stored

    @staticmethod
    def _resolve_status(
        file_path: str,
        parts: Optional[NameComponents],
        submitted: Optional[str],
    ) -> AssetStatus:
        """
        Status comes from the name itself so it always agrees with the folder:
        name slug, then top-level folder, then submitted value, then initial.
        """
        submitted_status = normalize_status(submitted) if submitted else None
        status = (
            (status_from_slug(parts.status) if parts else None)
            or status_for_folder(file_path)
            or submitted_status
            or AssetStatus.ENTRADA
        )
        if submitted_status is not None and submitted_status != status:
            logger.warning(
                f"Submitted status '{submitted}' disagrees with {file_path}, "
                f"keeping '{status.value}'"
            )
        return status

    # -------------------------------------------------------------------
    # Batches
    # -------------------------------------------------------------------

    async def process_batch(self, items: Iterable[UploadItem], transfer: Transfer) -> List[UploadAttempt]:
        """
        Run each item through request → transfer → confirm, one after another.

        A failing item is reported as a failed attempt and the batch moves on.
        """
        attempts: List[UploadAttempt] = []
        for item in items:
            attempt = UploadAttempt(file_name=item.file_name)
            attempts.append(attempt)
            try:
                attempt.presigned = await self.request_upload(
                    item.file_name, item.content_type, item.size, item.metadata,
                )
                attempt.advance(UploadState.HANDLE_ISSUED)

                attempt.advance(UploadState.TRANSFERRING)
                await transfer(attempt.presigned, item)

                confirm_meta = {
                    **item.metadata,
                    "size": item.size,
                    "contentType": item.content_type or self._default_content_type,
                }
                attempt.record = await self.confirm_upload(attempt.presigned.file_path, confirm_meta)
                attempt.advance(UploadState.CONFIRMED)
            except AcervoError as e:
                self._record_failure(attempt, e.message)
            except Exception as e:
                # transfer callables may raise anything (I/O, HTTP client errors)
                self._record_failure(attempt, f"{type(e).__name__}: {e}")

        confirmed = sum(1 for a in attempts if a.succeeded)
        logger.info(f"Batch finished: {confirmed}/{len(attempts)} confirmed")
        return attempts

    @staticmethod
    def _record_failure(attempt: UploadAttempt, message: str) -> None:
        attempt.fail(message)
        logger.error(f"Upload of {attempt.file_name!r} failed: {message}")
        log(log_upload_event(
            "upload_failed",
            attempt.presigned.file_path if attempt.presigned else None,
            UploadState.FAILED.value,
            original_name=attempt.file_name,
            error=message,
        ))
