"""Unit tests for acervo.engine.api — Response bodies and error → status mapping."""

from datetime import datetime, timezone

import pytest

from acervo.engine.api import APIResponse, CatalogAPI
from acervo.engine.config import AcervoConfig
from acervo.engine.errors import (
    AcervoStorageAuthError,
    AcervoStorageTimeoutError,
    AcervoStorageWriteError,
)
from acervo.storage.b2 import B2StorageClient
from acervo.upload.coordinator import UploadWorkflowCoordinator


@pytest.fixture
def api(store, fake_storage):
    coordinator = UploadWorkflowCoordinator(
        store, fake_storage, clock=lambda: datetime(2024, 3, 5, 9, 0),
    )
    return CatalogAPI(store, fake_storage, coordinator=coordinator)


@pytest.fixture
def seeded(store, make_record):
    older = make_record(token="00000001", area="Centro", uploaded_at=datetime(2024, 1, 1, tzinfo=timezone.utc))
    newer = make_record(token="00000002", area="Norte", extension="mp4", uploaded_at=datetime(2024, 5, 1, tzinfo=timezone.utc))
    store.save(older)
    store.save(newer)
    return older, newer


class TestAPIResponse:

    def test_defaults(self):
        resp = APIResponse()
        assert resp.status_code == 200
        assert resp.ok

    def test_error_not_ok(self):
        assert not APIResponse(status_code=404).ok


class TestQueryEndpoints:

    def test_list_newest_first(self, api, seeded):
        resp = api.list()
        assert resp.status_code == 200
        assert resp.body["success"] is True
        assert resp.body["total"] == 2
        assert [item["shortId"] for item in resp.body["data"]] == ["00000002", "00000001"]

    def test_list_media_item_shape(self, api, seeded):
        items = {item["shortId"]: item for item in api.list().body["data"]}
        assert items["00000002"]["tipo"] == "video"
        assert items["00000001"]["tipo"] == "imagem"
        assert items["00000001"]["thumbnailUrl"] == items["00000001"]["url"]
        assert "contentType" not in items["00000001"]

    def test_list_with_filters(self, api, seeded):
        resp = api.list({"area": "Centro", "nucleus": ""})
        assert resp.body["total"] == 1
        assert resp.body["filters"] == {"area": "Centro"}

    def test_list_numeric_year(self, api, seeded):
        resp = api.list({"ano": 2024, "mes": 3})
        assert resp.status_code == 200
        assert resp.body["total"] == 2
        assert resp.body["filters"] == {"year": "2024", "month": "03"}

    def test_list_invalid_criteria(self, api, seeded):
        resp = api.list({"area": {"nome": "Centro"}})
        assert resp.status_code == 400
        assert resp.body["error"] == "Invalid filter criteria"
        assert resp.body["details"].startswith("area")

    def test_get(self, api, seeded):
        older, _ = seeded
        resp = api.get(older.id)
        assert resp.status_code == 200
        assert resp.body["data"]["id"] == older.id

    def test_get_missing(self, api):
        resp = api.get("missing")
        assert resp.status_code == 404
        assert resp.body == {"success": False, "error": "Media not found"}

    def test_download_url(self, api, seeded):
        older, _ = seeded
        data = api.get_download_url(older.id).body["data"]
        assert data == {"url": older.url, "fileName": older.file_name, "contentType": "image/jpeg"}

    def test_folders(self, api, seeded):
        data = api.list_folders().body["data"]
        assert data[0] == {"id": "entrada", "name": "00 - Entrada (Bruto)", "slug": "00_ENTRADA", "count": 2}
        assert len(data) == 5

    def test_folder_structure(self, api, seeded):
        tree = api.folder_structure().body["data"]
        assert tree["00_ENTRADA"]["count"] == 2

    def test_folder_files(self, api, seeded):
        body = api.list_folder_files("00_ENTRADA/2024").body
        assert body["total"] == 2
        assert body["folder"] == "00_ENTRADA/2024"
        assert api.list_folder_files("01_CATALOGADO").body["total"] == 0

    def test_stats(self, api, seeded):
        data = api.stats().body["data"]
        assert data["totalItens"] == 2
        assert data["totalImagens"] == 1
        assert data["totalVideos"] == 1
        assert data["porArea"] == {"Centro": 1, "Norte": 1}

    def test_update_status(self, api, seeded):
        older, _ = seeded
        resp = api.update_status(older.id, "arquivado")
        assert resp.status_code == 200
        assert resp.body["data"]["status"] == "Arquivado"

    def test_update_status_invalid(self, api, seeded):
        older, _ = seeded
        resp = api.update_status(older.id, "Rascunho")
        assert resp.status_code == 400
        assert resp.body["details"] == "status"

    def test_delete(self, api, seeded):
        older, _ = seeded
        assert api.delete(older.id).status_code == 200
        assert api.delete(older.id).status_code == 404

    def test_health(self, api, seeded):
        body = api.health().body
        assert body["status"] == "ok"
        assert body["records"] == 2


class TestUploadEndpoints:

    @pytest.mark.asyncio
    async def test_presigned_then_complete(self, api, store):
        resp = await api.request_presigned(
            "foto.jpg", "image/jpeg", 1024, {"area": "Boa Vista", "tema": "Família"},
        )
        assert resp.status_code == 200
        data = resp.body["data"]
        assert data["presignedUrl"].startswith("https://")
        assert data["authorizationToken"] == "upload-token"
        assert data["folderPath"] == "00_ENTRADA/2024/03/05"
        assert data["headers"]["X-Bz-File-Name"] == data["filePath"]

        done = await api.confirm_complete(data["filePath"], {"area": "Boa Vista", "tema": "Família"})
        assert done.status_code == 200
        assert done.body["data"]["filePath"] == data["filePath"]
        assert done.body["data"]["id"] == data["fileName"].replace(".", "_")
        assert store.count() == 1

    @pytest.mark.asyncio
    async def test_presigned_validation_error(self, api):
        resp = await api.request_presigned("foto.jpg", None, 1, {"area": "A"})
        assert resp.status_code == 400
        assert resp.body["success"] is False
        assert "theme is required" in resp.body["details"]

    @pytest.mark.asyncio
    async def test_presigned_storage_error(self, api, fake_storage):
        fake_storage.fail_handles = True
        resp = await api.request_presigned("foto.jpg", None, 1, {"area": "A", "theme": "T"})
        assert resp.status_code == 502

    @pytest.mark.asyncio
    async def test_complete_write_failure(self, api, store, monkeypatch):
        def fail(record):
            raise AcervoStorageWriteError("Failed to save metadata", db_file="x", cause="disk full")

        monkeypatch.setattr(store, "save", fail)
        resp = await api.confirm_complete("00_ENTRADA/2024/03/05/2024_03_05_A_B_C_ENTRADA_ABCDEF12.jpg", {})
        assert resp.status_code == 500
        assert resp.body["details"] == "disk full"

    @pytest.mark.asyncio
    async def test_unexpected_error_is_500(self, api, store, monkeypatch):
        def boom(record):
            raise RuntimeError("kaboom")

        monkeypatch.setattr(store, "save", boom)
        resp = await api.confirm_complete("a/b.jpg", {"area": "A", "theme": "T"})
        assert resp.status_code == 500
        assert resp.body["success"] is False


class TestConnection:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error,status", [
        (AcervoStorageAuthError("bad creds", status_code=401), 502),
        (AcervoStorageTimeoutError("slow", timeout_seconds=1.0), 504),
    ])
    async def test_storage_errors(self, store, error, status):
        class BrokenStorage:
            bucket_name = "b"

            async def authorize(self):
                raise error

        resp = await CatalogAPI(store, BrokenStorage()).test_connection()
        assert resp.status_code == status

    @pytest.mark.asyncio
    async def test_incomplete_config(self, store):
        api = CatalogAPI(store, B2StorageClient(AcervoConfig().storage))
        resp = await api.test_connection()
        assert resp.status_code == 500
        assert "configuration incomplete" in resp.body["error"]


class TestFromConfig:

    def test_wires_components(self, tmp_path):
        config = AcervoConfig(database={"path": str(tmp_path / "db.json")}, uploads={"max_upload_size_mb": 5})
        api = CatalogAPI.from_config(config)
        assert api.query.store.db_file == tmp_path / "db.json"
        assert api.storage.bucket_name == ""
        assert api.health().body["version"] == "2.0.0"
