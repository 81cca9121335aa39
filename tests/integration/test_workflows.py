"""
Integration tests — Upload workflow through the API surface.

These tests wire CatalogAPI to a real MetadataStore and a real B2StorageClient
whose HTTP transport is an in-memory bucket.
"""

import httpx
import pytest

from acervo.catalog.store import MetadataStore
from acervo.engine.api import CatalogAPI
from acervo.storage.b2 import B2StorageClient
from acervo.upload.coordinator import UploadItem, UploadState, UploadWorkflowCoordinator


def _api(config, bucket):
    http = httpx.AsyncClient(transport=httpx.MockTransport(bucket.handler))
    store = MetadataStore(config.db_file)
    storage = B2StorageClient(config.storage, client=http)
    return CatalogAPI(store, storage, UploadWorkflowCoordinator(store, storage))


@pytest.mark.integration
class TestPresignTransferConfirm:

    @pytest.mark.asyncio
    async def test_client_side_upload(self, integration_config, bucket):
        api = _api(integration_config, bucket)
        meta = {"area": "Boa Vista", "tema": "Família", "status": "Publicado", "nucleo": "Centro"}

        presigned = await api.request_presigned("festa.png", "image/png", 4, meta)
        data = presigned.body["data"]
        assert data["folderPath"].startswith("03_PUBLICADO/")

        # the browser would POST straight to the upload URL with these headers
        async with httpx.AsyncClient(transport=httpx.MockTransport(bucket.handler)) as browser:
            resp = await browser.post(data["presignedUrl"], headers=data["headers"], content=b"\x89PNG")
        assert resp.status_code == 200
        assert bucket.objects[data["filePath"]] == b"\x89PNG"

        done = await api.confirm_complete(data["filePath"], {**meta, "size": 4, "contentType": "image/png"})
        assert done.status_code == 200
        assert done.body["data"]["url"] == (
            f"https://f001.backblazeb2.com/file/acervo-media/{data['filePath']}"
        )

        listing = api.list({"status": "publicado"}).body
        assert listing["total"] == 1
        item = listing["data"][0]
        assert item["nucleus"] == "Centro"
        assert item["tipo"] == "imagem"
        assert api.stats().body["data"]["porStatus"] == {"Publicado": 1}
        assert bucket.calls.count("b2_authorize_account") == 1

    @pytest.mark.asyncio
    async def test_batch_with_verification(self, integration_config, bucket):
        api = _api(integration_config, bucket)
        storage = api.storage

        async def transfer(presigned, item):
            await storage.upload_bytes(presigned.handle, item.data, item.content_type)
            assert await storage.file_exists(presigned.file_path)

        items = [
            UploadItem(file_name=f"clip{i}.mp4", size=3, content_type="video/mp4",
                       metadata={"area": "Norte", "theme": "Obra"}, data=b"abc")
            for i in range(3)
        ]
        attempts = await api.coordinator.process_batch(items, transfer)

        assert all(a.state == UploadState.CONFIRMED for a in attempts)
        assert len(bucket.objects) == 3
        folders = api.list_folders().body["data"]
        assert folders[0]["count"] == 3
        await storage.aclose()
