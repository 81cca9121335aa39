"""Acervo Storage — Object storage backend client (Backblaze B2)."""

from acervo.storage.b2 import B2Authorization, B2StorageClient, upload_headers

__all__ = ["B2Authorization", "B2StorageClient", "upload_headers"]
