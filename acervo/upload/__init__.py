"""Acervo Upload — Two-phase upload workflow."""

from acervo.upload.coordinator import (
    UploadAttempt,
    UploadItem,
    UploadState,
    UploadWorkflowCoordinator,
)

__all__ = ["UploadAttempt", "UploadItem", "UploadState", "UploadWorkflowCoordinator"]
