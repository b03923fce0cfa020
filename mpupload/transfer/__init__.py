"""Multipart upload orchestration.

The assembler drives one multipart upload session; the manifest records the
outcome of every part; the upload manager splits whole payloads into parts.
"""

from .assembler import MultipartObjectAssembler, SessionState
from .errors import InvalidSessionStateError, UploadNotFoundError
from .manifest import MultipartManifest, PartRecord, PartStatus
from .upload_manager import (
    MultipartUploadError,
    UploadManager,
    UploadRequest,
    UploadResult,
)

__all__ = [
    "InvalidSessionStateError",
    "MultipartManifest",
    "MultipartObjectAssembler",
    "MultipartUploadError",
    "PartRecord",
    "PartStatus",
    "SessionState",
    "UploadManager",
    "UploadNotFoundError",
    "UploadRequest",
    "UploadResult",
]
