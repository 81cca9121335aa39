"""
Integration test fixtures — real store, real B2 client, mocked B2 transport.

Run: pytest tests/integration/ -v -m integration
"""

from __future__ import annotations

import json
from urllib.parse import unquote

import httpx
import pytest

from acervo.engine.config import AcervoConfig


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: exercises several subsystems together")


class B2Bucket:
    """Minimal in-memory B2 account: authorize, upload URLs, uploads, listings."""

    API = "https://api001.backblazeb2.com"

    def __init__(self):
        self.objects = {}
        self.calls = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        endpoint = request.url.path.rsplit("/", 1)[-1]
        self.calls.append(endpoint)

        if endpoint == "b2_authorize_account":
            return httpx.Response(200, json={
                "authorizationToken": "account-token",
                "apiUrl": self.API,
                "downloadUrl": "https://f001.backblazeb2.com",
            })
        if endpoint == "b2_get_upload_url":
            return httpx.Response(200, json={
                "uploadUrl": f"{self.API}/b2api/v2/b2_upload_file/bucket-1/upload",
                "authorizationToken": "upload-token",
            })
        if endpoint == "upload":
            name = unquote(request.headers["x-bz-file-name"])
            self.objects[name] = request.content
            return httpx.Response(200, json={"fileName": name})
        if endpoint == "b2_list_file_names":
            prefix = json.loads(request.content)["prefix"]
            files = [{"fileName": n} for n in sorted(self.objects) if n.startswith(prefix)]
            return httpx.Response(200, json={"files": files})
        return httpx.Response(404, json={"code": "not_found", "message": endpoint})


@pytest.fixture
def bucket():
    return B2Bucket()


@pytest.fixture
def integration_config(tmp_path):
    return AcervoConfig(
        storage={
            "account_id": "acct",
            "application_key": "secret",
            "bucket_id": "bucket-1",
            "bucket_name": "acervo-media",
        },
        database={"path": str(tmp_path / "data" / "media-metadata.json")},
    )
