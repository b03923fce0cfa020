"""Object storage service port and data types.

This module defines the abstract interface the multipart transfer layer uses
for every network operation: creating, listing, uploading parts to, committing
and aborting multipart uploads.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Generic, Mapping, Protocol, Sequence, TypeVar

T = TypeVar("T")


class StorageError(RuntimeError):
    """Raised when object storage operations fail."""


@dataclass(frozen=True, slots=True)
class CompletedPart:
    """Represents a completed part in a multipart upload."""

    part_number: int
    etag: str


@dataclass(frozen=True, slots=True)
class UploadSummary:
    """An in-progress multipart upload as reported by a listing."""

    upload_id: str
    object_name: str | None = None


@dataclass(frozen=True, slots=True)
class PartSummary:
    """A part already stored under an in-progress multipart upload."""

    part_number: int
    etag: str
    size_bytes: int | None = None


@dataclass(frozen=True, slots=True)
class Page(Generic[T]):
    """One page of a paginated listing."""

    items: Sequence[T] = field(default_factory=tuple)
    next_page_token: str | None = None


@dataclass(frozen=True, slots=True)
class UploadedPart:
    """Result of uploading a single part."""

    etag: str


@dataclass(frozen=True, slots=True)
class CommitResult:
    """Result of committing a multipart upload."""

    etag: str | None = None
    location: str | None = None
    request_id: str | None = None


@dataclass(frozen=True, slots=True)
class AbortResult:
    """Result of aborting a multipart upload."""

    request_id: str | None = None


class ObjectStorageService(Protocol):
    """Protocol defining the multipart operations of an object storage backend.

    Implementations are expected to be safe to call from several worker
    threads at once; no connection state is coordinated by callers.
    """

    def create_multipart_upload(
        self,
        *,
        namespace: str,
        bucket: str,
        object_name: str,
        content_type: str | None = None,
        content_language: str | None = None,
        content_encoding: str | None = None,
        metadata: Mapping[str, str] | None = None,
    ) -> str:
        """Create a multipart upload session.

        Args:
            namespace: Storage namespace owning the bucket.
            bucket: Target bucket name.
            object_name: Object key (path) in the bucket.
            content_type: MIME type of the assembled object.
            content_language: Content-Language of the assembled object.
            content_encoding: Content-Encoding of the assembled object.
            metadata: Custom metadata to attach to the object.

        Returns:
            The upload id assigned by the service.

        Raises:
            StorageError: If the operation fails.
        """
        ...

    def list_multipart_uploads(
        self,
        *,
        namespace: str,
        bucket: str,
        page: str | None = None,
        limit: int,
    ) -> Page[UploadSummary]:
        """List in-progress multipart uploads of a bucket.

        Args:
            namespace: Storage namespace owning the bucket.
            bucket: Bucket to enumerate.
            page: Token returned by the previous page, or None for the first.
            limit: Maximum number of items to return.

        Returns:
            A page of upload summaries and the token of the next page.

        Raises:
            StorageError: If the operation fails.
        """
        ...

    def list_multipart_upload_parts(
        self,
        *,
        namespace: str,
        bucket: str,
        object_name: str,
        upload_id: str,
        page: str | None = None,
        limit: int,
    ) -> Page[PartSummary]:
        """List the parts already stored for an upload.

        Args:
            namespace: Storage namespace owning the bucket.
            bucket: Bucket of the upload.
            object_name: Object key of the upload.
            upload_id: Multipart upload id.
            page: Token returned by the previous page, or None for the first.
            limit: Maximum number of items to return.

        Returns:
            A page of part summaries and the token of the next page.

        Raises:
            StorageError: If the operation fails.
        """
        ...

    def upload_part(
        self,
        *,
        namespace: str,
        bucket: str,
        object_name: str,
        upload_id: str,
        part_number: int,
        body: bytes,
        content_md5: str | None = None,
        if_none_match: str | None = None,
    ) -> UploadedPart:
        """Upload one part.

        Args:
            namespace: Storage namespace owning the bucket.
            bucket: Bucket of the upload.
            object_name: Object key of the upload.
            upload_id: Multipart upload id.
            part_number: Part number (1-based).
            body: Full part payload.
            content_md5: Caller-supplied digest the service verifies.
            if_none_match: ``"*"`` to fail when the part number already exists.

        Returns:
            UploadedPart carrying the part's ETag.

        Raises:
            StorageError: On digest mismatch, conflicting part or any failure.
        """
        ...

    def commit_multipart_upload(
        self,
        *,
        namespace: str,
        bucket: str,
        object_name: str,
        upload_id: str,
        parts: Sequence[CompletedPart],
        if_none_match: str | None = None,
    ) -> CommitResult:
        """Assemble the object from its parts.

        Args:
            namespace: Storage namespace owning the bucket.
            bucket: Bucket of the upload.
            object_name: Object key of the upload.
            upload_id: Multipart upload id.
            parts: Parts in assembly order.
            if_none_match: ``"*"`` to fail when the object already exists.

        Raises:
            StorageError: If the operation fails.
        """
        ...

    def abort_multipart_upload(
        self,
        *,
        namespace: str,
        bucket: str,
        object_name: str,
        upload_id: str,
    ) -> AbortResult:
        """Abort a multipart upload and discard its parts.

        Raises:
            StorageError: If the operation fails.
        """
        ...
