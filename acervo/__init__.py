"""
Acervo — Media catalog for an institutional photo and video archive.
Version: 2.0

Assets live in a Backblaze B2 bucket under standardized, self-describing
names; their classification lives in a single JSON metadata document.

    acervo.catalog   naming convention, metadata models, store, queries
    acervo.storage   B2 API client (authorization cache, upload URLs)
    acervo.upload    two-phase upload workflow (presign → confirm)
    acervo.engine    config, errors, event log, API surface
"""

__version__ = "2.0.0"
__all__ = ["catalog", "engine", "storage", "upload"]
