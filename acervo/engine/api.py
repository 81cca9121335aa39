"""
Acervo Catalog API — Transport-neutral query and upload endpoints.

Each method returns an APIResponse (status code + JSON body) that any HTTP
layer can serialize as-is:

    success: {"success": true, "data": ...}
    failure: {"success": false, "error": "...", "details": "..."}

Query surface:   list, get, get_download_url, list_folders, folder_structure,
                 list_folder_files, stats, update_status, delete
Upload surface:  request_presigned, confirm_complete
Ops:             test_connection, health
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

from pydantic import BaseModel

from acervo.catalog.query import CatalogQueryEngine, as_filter, newest_first
from acervo.catalog.store import MetadataStore
from acervo.engine.config import AcervoConfig
from acervo.engine.errors import (
    AcervoError,
    AcervoNotFoundError,
    AcervoStorageAuthError,
    AcervoStorageRequestError,
    AcervoStorageTimeoutError,
    AcervoValidationError,
    AcervoWorkflowError,
)
from acervo.storage.b2 import B2StorageClient
from acervo.upload.coordinator import UploadWorkflowCoordinator

logger = logging.getLogger("acervo.engine.api")


class APIResponse(BaseModel):
    """Normalized outbound response."""

    status_code: int = 200
    body: Any = None
    headers: Dict[str, str] = {}

    @property
    def ok(self) -> bool:
        return self.status_code < 400


def _status_for(error: AcervoError) -> int:
    if isinstance(error, AcervoValidationError):
        return 400
    if isinstance(error, AcervoNotFoundError):
        return 404
    if isinstance(error, AcervoWorkflowError):
        return 409
    if isinstance(error, AcervoStorageTimeoutError):
        return 504
    if isinstance(error, (AcervoStorageAuthError, AcervoStorageRequestError)):
        return 502
    return 500


def _ok(data: Any, **extra: Any) -> APIResponse:
    body = {"success": True, "data": data}
    body.update({k: v for k, v in extra.items() if v is not None})
    return APIResponse(status_code=200, body=body)


def _fail(status_code: int, error: str, details: Optional[str] = None) -> APIResponse:
    body = {"success": False, "error": error}
    if details:
        body["details"] = details
    return APIResponse(status_code=status_code, body=body)


class CatalogAPI:
    """
    Binds the query engine, the upload coordinator and the storage client
    behind one request/response surface.
    """

    def __init__(
        self,
        store: MetadataStore,
        storage: B2StorageClient,
        coordinator: Optional[UploadWorkflowCoordinator] = None,
        query: Optional[CatalogQueryEngine] = None,
        version: str = "2.0.0",
        environment: str = "dev",
    ):
        self._store = store
        self._storage = storage
        self._coordinator = coordinator or UploadWorkflowCoordinator(store, storage)
        self._query = query or CatalogQueryEngine(store)
        self._version = version
        self._environment = environment

    @classmethod
    def from_config(cls, config: AcervoConfig) -> "CatalogAPI":
        store = MetadataStore(config.db_file)
        storage = B2StorageClient(config.storage)
        coordinator = UploadWorkflowCoordinator(
            store,
            storage,
            max_upload_size_mb=config.uploads.max_upload_size_mb,
            default_content_type=config.uploads.default_content_type,
        )
        return cls(
            store, storage, coordinator,
            version=config.version, environment=config.environment,
        )

    @property
    def query(self) -> CatalogQueryEngine:
        return self._query

    @property
    def coordinator(self) -> UploadWorkflowCoordinator:
        return self._coordinator

    @property
    def storage(self) -> B2StorageClient:
        return self._storage

    # -------------------------------------------------------------------
    # Error mapping
    # -------------------------------------------------------------------

    def _run(self, operation: str, func: Callable[[], APIResponse]) -> APIResponse:
        try:
            return func()
        except AcervoError as e:
            return self._error_response(operation, e)
        except Exception as e:
            logger.exception(f"Unhandled error in {operation}: {e}")
            return _fail(500, f"Error in {operation}", str(e))

    async def _arun(self, operation: str, func: Callable[[], Awaitable[APIResponse]]) -> APIResponse:
        try:
            return await func()
        except AcervoError as e:
            return self._error_response(operation, e)
        except Exception as e:
            logger.exception(f"Unhandled error in {operation}: {e}")
            return _fail(500, f"Error in {operation}", str(e))

    @staticmethod
    def _error_response(operation: str, error: AcervoError) -> APIResponse:
        status_code = _status_for(error)
        if status_code >= 500:
            logger.error(f"{operation} failed: {error!r}")
        else:
            logger.info(f"{operation} rejected ({status_code}): {error.message}")
        details = None
        if isinstance(error, AcervoValidationError) and error.validation_errors:
            details = "; ".join(error.validation_errors)
        elif status_code >= 500:
            details = str(error.context.get("cause") or error.error_type)
        return _fail(status_code, error.message, details)

    # -------------------------------------------------------------------
    # Query surface
    # -------------------------------------------------------------------

    def list(self, filters: Optional[Mapping[str, Any]] = None) -> APIResponse:
        """Filtered listing, newest upload first."""
        def run() -> APIResponse:
            criteria = as_filter(filters)
            records = newest_first(self._query.filter(criteria))
            items = [r.to_media_item() for r in records]
            return _ok(items, total=len(items), filters=criteria.active() or None)
        return self._run("list", run)

    def get(self, record_id: str) -> APIResponse:
        def run() -> APIResponse:
            record = self._store.get_by_id(record_id)
            if record is None:
                raise AcervoNotFoundError("Media not found", record_id=record_id)
            return _ok(record.to_media_item())
        return self._run("get", run)

    def get_download_url(self, record_id: str) -> APIResponse:
        def run() -> APIResponse:
            record = self._store.get_by_id(record_id)
            if record is None:
                raise AcervoNotFoundError("Media not found", record_id=record_id)
            return _ok({
                "url": record.url,
                "fileName": record.file_name,
                "contentType": record.content_type,
            })
        return self._run("get_download_url", run)

    def list_folders(self) -> APIResponse:
        return self._run(
            "list_folders",
            lambda: _ok([f.model_dump() for f in self._query.list_folders()]),
        )

    def folder_structure(self) -> APIResponse:
        return self._run("folder_structure", lambda: _ok(self._query.folder_tree()))

    def list_folder_files(self, folder_path: str) -> APIResponse:
        def run() -> APIResponse:
            records = newest_first(self._query.list_by_folder_prefix(folder_path))
            items = [r.to_media_item() for r in records]
            return _ok(items, total=len(items), folder=folder_path)
        return self._run("list_folder_files", run)

    def stats(self) -> APIResponse:
        return self._run(
            "stats",
            lambda: _ok(self._query.aggregate_stats().model_dump(by_alias=True)),
        )

    def update_status(self, record_id: str, status: str) -> APIResponse:
        def run() -> APIResponse:
            record = self._store.update_status(record_id, status)
            if record is None:
                raise AcervoNotFoundError("Media not found", record_id=record_id)
            return _ok(record.to_media_item())
        return self._run("update_status", run)

    def delete(self, record_id: str) -> APIResponse:
        def run() -> APIResponse:
            if not self._store.delete(record_id):
                raise AcervoNotFoundError("Media not found", record_id=record_id)
            return _ok({"id": record_id, "deleted": True})
        return self._run("delete", run)

    # -------------------------------------------------------------------
    # Upload surface
    # -------------------------------------------------------------------

    async def request_presigned(
        self,
        filename: str,
        content_type: Optional[str],
        size: Optional[int],
        metadata: Optional[Mapping[str, Any]],
    ) -> APIResponse:
        async def run() -> APIResponse:
            presigned = await self._coordinator.request_upload(filename, content_type, size, metadata)
            return _ok({
                "presignedUrl": presigned.handle.upload_url,
                "authorizationToken": presigned.handle.authorization_token,
                "fileName": presigned.file_name,
                "filePath": presigned.file_path,
                "folderPath": presigned.folder_path,
                "headers": presigned.headers,
            })
        return await self._arun("request_presigned", run)

    async def confirm_complete(
        self,
        file_path: str,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> APIResponse:
        async def run() -> APIResponse:
            record = await self._coordinator.confirm_upload(file_path, metadata)
            return _ok({
                "message": "Upload confirmed and cataloged",
                "id": record.id,
                "filePath": record.file_path,
                "url": record.url,
            })
        return await self._arun("confirm_complete", run)

    # -------------------------------------------------------------------
    # Ops
    # -------------------------------------------------------------------

    async def test_connection(self) -> APIResponse:
        async def run() -> APIResponse:
            auth = await self._storage.authorize()
            return _ok({
                "apiUrl": auth.api_url,
                "downloadUrl": auth.download_url,
                "bucketName": self._storage.bucket_name,
            })
        return await self._arun("test_connection", run)

    def health(self) -> APIResponse:
        return APIResponse(body={
            "success": True,
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": self._version,
            "environment": self._environment,
            "records": self._store.count(),
        })
