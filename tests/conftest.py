"""
Acervo Test Suite — Shared fixtures and configuration.

Run:  pytest tests/ -v
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest

from acervo.catalog.models import AssetMetadata, UploadHandle
from acervo.catalog.naming import slugify
from acervo.catalog.store import MetadataStore


# ---------------------------------------------------------------------------
# Environment setup: never touch real B2 credentials or the event log
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _isolate_config(monkeypatch):
    """Reset global singletons between tests."""
    import acervo.engine.config as cfg_mod
    import acervo.engine.logging as log_mod

    for name in ("B2_ACCOUNT_ID", "B2_APPLICATION_KEY", "B2_BUCKET_ID", "B2_BUCKET_NAME", "ACERVO_DB_FILE"):
        monkeypatch.delenv(name, raising=False)
    cfg_mod._config = None
    log_mod._global_queue = None
    yield
    if log_mod._global_queue is not None:
        log_mod.shutdown_logging()


@pytest.fixture
def db_file(tmp_path):
    return tmp_path / "data" / "media-metadata.json"


@pytest.fixture
def store(db_file):
    return MetadataStore(db_file)


@pytest.fixture
def make_record():
    """Factory for valid AssetMetadata records with standardized paths."""

    def _make(
        token: str = "A1B2C3D4",
        status: str = "Entrada",
        folder: str = "00_ENTRADA",
        area: str = "Boa Vista",
        theme: str = "Família",
        nucleus: Optional[str] = None,
        extension: str = "jpg",
        date: str = "2024_03_05",
        uploaded_at: Optional[datetime] = None,
        **extra: Any,
    ) -> AssetMetadata:
        year, month, day = date.split("_")
        status_slug = slugify(status)
        file_name = f"{date}_BOAVISTA_GERAL_FAMILIA_{status_slug}_{token}.{extension}"
        file_path = f"{folder}/{year}/{month}/{day}/{file_name}"
        fields: Dict[str, Any] = dict(
            id=file_name.replace(".", "_"),
            fileName=file_name,
            filePath=file_path,
            size=1024,
            contentType="image/jpeg" if extension == "jpg" else "video/mp4",
            extension=extension,
            uploadedAt=uploaded_at or datetime(2024, 3, 5, 12, 0, tzinfo=timezone.utc),
            url=f"https://f005.backblazeb2.com/file/acervo-test/{file_path}",
            area=area,
            theme=theme,
            status=status,
            nucleus=nucleus,
            year=year,
            month=month,
            day=day,
            shortId=token,
        )
        fields.update(extra)
        return AssetMetadata.model_validate(fields)

    return _make


# ---------------------------------------------------------------------------
# Storage double
# ---------------------------------------------------------------------------

class FakeStorage:
    """In-memory stand-in for B2StorageClient used by coordinator/API tests."""

    bucket_name = "acervo-test"

    def __init__(self):
        self.objects: Dict[str, bytes] = {}
        self.handles: List[str] = []
        self.fail_handles = False

    async def get_upload_handle(self, file_path: str) -> UploadHandle:
        if self.fail_handles:
            from acervo.engine.errors import AcervoStorageRequestError

            raise AcervoStorageRequestError("B2 unavailable", operation="get_upload_url", status_code=503)
        self.handles.append(file_path)
        return UploadHandle(
            upload_url="https://pod-000.backblaze.com/b2api/v2/b2_upload_file/bucket/token",
            authorization_token="upload-token",
            file_path=file_path,
        )

    async def file_exists(self, file_path: str) -> bool:
        return file_path in self.objects

    async def upload_bytes(self, handle: UploadHandle, data: bytes, content_type: Optional[str] = None):
        self.objects[handle.file_path] = data
        return {"fileName": handle.file_path}

    def public_url(self, file_path: str) -> str:
        return f"https://f005.backblazeb2.com/file/{self.bucket_name}/{file_path}"


@pytest.fixture
def fake_storage():
    return FakeStorage()
