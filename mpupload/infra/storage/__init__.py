"""Object storage abstraction layer.

This module provides a protocol-based abstraction for object storage backends,
enabling support for S3, MinIO, and other S3-compatible services.
"""

from .client import (
    AbortResult,
    CommitResult,
    CompletedPart,
    ObjectStorageService,
    Page,
    PartSummary,
    StorageError,
    UploadedPart,
    UploadSummary,
)

__all__ = [
    "AbortResult",
    "CommitResult",
    "CompletedPart",
    "ObjectStorageService",
    "Page",
    "PartSummary",
    "StorageError",
    "UploadedPart",
    "UploadSummary",
]
