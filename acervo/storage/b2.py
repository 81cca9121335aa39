"""
Acervo Storage Client — Backblaze B2 native API over httpx.

Covers what the catalog needs from the bucket:
    1. authorize()            — account auth, cached ~23h, single-flight refresh
    2. get_upload_handle()    — upload URL + token for a direct client write
    3. list_file_names()      — bucket listing by prefix
    4. file_exists()          — "object exists at path P"
    5. upload_bytes()         — client-side transfer through an issued handle
    6. public_url()           — {downloadUrl}/file/{bucket}/{path}

Every call is bounded by the configured timeout. Timeouts raise
AcervoStorageTimeoutError, rejected credentials AcervoStorageAuthError, any
other transport or non-2xx failure AcervoStorageRequestError.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from acervo.catalog.models import UploadHandle
from acervo.engine.config import StorageConfig
from acervo.engine.errors import (
    AcervoConfigError,
    AcervoStorageAuthError,
    AcervoStorageRequestError,
    AcervoStorageTimeoutError,
)
from acervo.engine.logging import log, log_storage_call, log_storage_performance

logger = logging.getLogger("acervo.storage.b2")

API_PREFIX = "/b2api/v2"


@dataclass
class B2Authorization:
    token: str
    api_url: str
    download_url: str
    recommended_part_size: int
    expires_at: float

    def is_valid(self, now: Optional[float] = None) -> bool:
        return self.expires_at > (now if now is not None else time.monotonic())


def upload_headers(file_path: str, authorization_token: str, content_type: Optional[str]) -> Dict[str, str]:
    """Headers a client sends with the object bytes to the upload URL."""
    return {
        "Authorization": authorization_token,
        "X-Bz-File-Name": quote(file_path, safe="/"),
        "Content-Type": content_type or "application/octet-stream",
        "X-Bz-Content-Sha1": "do_not_verify",
    }


class B2StorageClient:
    """
    Async client for one B2 bucket.

    The authorization is cached per client instance. Concurrent callers that
    find it missing or expired wait on the same refresh instead of each
    authenticating.
    """

    def __init__(
        self,
        config: StorageConfig,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._config = config
        self._client = client
        self._owns_client = client is None
        self._auth: Optional[B2Authorization] = None
        self._auth_lock = asyncio.Lock()
        self._auth_ttl = config.auth_ttl_hours * 3600

    @property
    def bucket_name(self) -> str:
        return self._config.bucket_name

    @property
    def cached_authorization(self) -> Optional[B2Authorization]:
        return self._auth

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._config.timeout, connect=10.0),
                follow_redirects=True,
            )
            logger.info(f"Created httpx client for bucket '{self.bucket_name}'")
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "B2StorageClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # -------------------------------------------------------------------
    # Authorization
    # -------------------------------------------------------------------

    def invalidate_authorization(self) -> None:
        self._auth = None

    async def authorize(self, force: bool = False) -> B2Authorization:
        """Return a valid account authorization, refreshing at most once at a time."""
        stale = self._auth
        if not force and stale is not None and stale.is_valid():
            return stale

        async with self._auth_lock:
            current = self._auth
            if current is not None and current.is_valid() and (not force or current is not stale):
                # refreshed by another caller while we waited
                return current

            if not self._config.is_complete:
                raise AcervoConfigError(
                    "Backblaze B2 configuration incomplete: "
                    f"missing {', '.join(self._config.missing_fields())}",
                )

            logger.info("Authorizing with Backblaze B2")
            url = f"{self._config.api_url}{API_PREFIX}/b2_authorize_account"
            try:
                data = await self._request(
                    "authorize",
                    "GET",
                    url,
                    auth=(self._config.account_id, self._config.application_key),
                )
            except AcervoStorageRequestError as e:
                # transport failures and timeouts keep their own type
                if e.status_code is None:
                    raise
                raise AcervoStorageAuthError(
                    f"Backblaze B2 authorization failed: {e.message}",
                    status_code=e.status_code,
                ) from e

            # v2 answers with top-level urls, newer accounts nest them under apiInfo
            storage_api = (data.get("apiInfo") or {}).get("storageApi") or data
            self._auth = B2Authorization(
                token=data["authorizationToken"],
                api_url=storage_api["apiUrl"],
                download_url=storage_api["downloadUrl"],
                recommended_part_size=int(storage_api.get("recommendedPartSize") or 100_000_000),
                expires_at=time.monotonic() + self._auth_ttl,
            )
            logger.info("Backblaze B2 authorization succeeded")
            return self._auth

    # -------------------------------------------------------------------
    # Bucket operations
    # -------------------------------------------------------------------

    async def get_upload_handle(self, file_path: str) -> UploadHandle:
        """Ask B2 for an upload URL that will accept ``file_path``."""
        logger.info(f"Requesting upload URL for {file_path}")
        data = await self._authorized_post(
            "get_upload_url",
            "b2_get_upload_url",
            {"bucketId": self._config.bucket_id},
        )
        return UploadHandle(
            upload_url=data["uploadUrl"],
            authorization_token=data["authorizationToken"],
            file_path=file_path,
        )

    async def list_file_names(self, prefix: str = "", max_file_count: int = 1000) -> List[Dict[str, Any]]:
        data = await self._authorized_post(
            "list_file_names",
            "b2_list_file_names",
            {
                "bucketId": self._config.bucket_id,
                "prefix": prefix,
                "maxFileCount": max_file_count,
            },
        )
        files = data.get("files") or []
        logger.info(f"Listed {len(files)} file(s){f' under {prefix}' if prefix else ''}")
        return files

    async def file_exists(self, file_path: str) -> bool:
        files = await self.list_file_names(prefix=file_path, max_file_count=1)
        return any(f.get("fileName") == file_path for f in files)

    async def upload_bytes(
        self,
        handle: UploadHandle,
        data: bytes,
        content_type: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Send object bytes to an issued upload URL (the client side of the transfer)."""
        headers = upload_headers(handle.file_path, handle.authorization_token, content_type)
        headers["X-Bz-Content-Sha1"] = hashlib.sha1(data).hexdigest()
        return await self._request(
            "upload_file",
            "POST",
            handle.upload_url,
            headers=headers,
            content=data,
        )

    def public_url(self, file_path: str) -> str:
        base = self._auth.download_url if self._auth else self._config.download_url
        return f"{base.rstrip('/')}/file/{self.bucket_name}/{file_path}"

    # -------------------------------------------------------------------
    # HTTP plumbing
    # -------------------------------------------------------------------

    async def _authorized_post(self, operation: str, endpoint: str, body: Dict[str, Any]) -> Dict[str, Any]:
        """POST to the account API; re-authorizes once if the token was rejected."""
        auth = await self.authorize()
        try:
            return await self._request(
                operation, "POST", f"{auth.api_url}{API_PREFIX}/{endpoint}",
                headers={"Authorization": auth.token}, json=body,
            )
        except AcervoStorageAuthError:
            logger.warning(f"B2 token rejected during {operation}, re-authorizing")
            auth = await self.authorize(force=True)
            return await self._request(
                operation, "POST", f"{auth.api_url}{API_PREFIX}/{endpoint}",
                headers={"Authorization": auth.token}, json=body,
            )

    async def _request(self, operation: str, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        start = time.monotonic()
        status_code: Optional[int] = None
        try:
            response = await self._get_client().request(method, url, **kwargs)
            status_code = response.status_code
        except httpx.TimeoutException as e:
            self._log_call(operation, url, None, start, error=f"timeout: {e}")
            raise AcervoStorageTimeoutError(
                f"B2 {operation} timed out after {self._config.timeout}s",
                operation=operation,
                timeout_seconds=self._config.timeout,
            ) from e
        except httpx.HTTPError as e:
            self._log_call(operation, url, None, start, error=str(e))
            raise AcervoStorageRequestError(
                f"B2 {operation} failed: {e}",
                operation=operation,
            ) from e

        if response.status_code == 401:
            self._log_call(operation, url, status_code, start, error=response.text)
            raise AcervoStorageAuthError(
                f"B2 rejected credentials during {operation}: {_error_message(response)}",
                status_code=status_code,
                operation=operation,
            )
        if response.is_error:
            self._log_call(operation, url, status_code, start, error=response.text)
            raise AcervoStorageRequestError(
                f"B2 {operation} failed with HTTP {status_code}: {_error_message(response)}",
                operation=operation,
                status_code=status_code,
                response_body=response.text,
            )

        self._log_call(operation, url, status_code, start)
        try:
            return response.json()
        except ValueError as e:
            raise AcervoStorageRequestError(
                f"B2 {operation} returned a non-JSON body",
                operation=operation,
                status_code=status_code,
                response_body=response.text,
            ) from e

    @staticmethod
    def _log_call(
        operation: str,
        url: str,
        status_code: Optional[int],
        start: float,
        error: Optional[str] = None,
    ) -> None:
        duration_ms = (time.monotonic() - start) * 1000
        if error:
            logger.error(f"B2 {operation} failed ({status_code}): {error}")
        log(log_storage_call(operation, url, status_code, duration_ms, error is None, error))
        log(log_storage_performance(operation, duration_ms, status_code))


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        return body.get("message") or body.get("code") or response.reason_phrase
    return response.reason_phrase
