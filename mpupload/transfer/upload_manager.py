"""High-level uploads built on the multipart assembler.

This module splits a file or stream into fixed-size parts, runs them through a
:class:`MultipartObjectAssembler` on a private thread pool and commits the
result, aborting the server-side upload on failure when configured to.
"""

from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import IO, Mapping, Sequence

from mpupload.common.config import Settings
from mpupload.infra.storage.client import AbortResult, ObjectStorageService, StorageError
from mpupload.transfer.assembler import MultipartObjectAssembler
from mpupload.transfer.errors import InvalidSessionStateError

logger = logging.getLogger("transfer")

# Parts read ahead of the workers, per worker; bounds memory held by queued parts
PENDING_PARTS_PER_WORKER = 2


class _BoundedExecutor(Executor):
    """Executor wrapper whose ``submit`` blocks while ``max_pending`` tasks are unfinished."""

    def __init__(self, executor: Executor, max_pending: int) -> None:
        self._executor = executor
        self._slots = threading.BoundedSemaphore(max_pending)

    def submit(self, fn, /, *args, **kwargs) -> Future:
        self._slots.acquire()
        try:
            future = self._executor.submit(fn, *args, **kwargs)
        except BaseException:
            self._slots.release()
            raise
        future.add_done_callback(self._release)
        return future

    def shutdown(self, wait: bool = True, *, cancel_futures: bool = False) -> None:
        self._executor.shutdown(wait=wait, cancel_futures=cancel_futures)

    def _release(self, _future: Future) -> None:
        self._slots.release()


class MultipartUploadError(Exception):
    """Raised when an upload could not be committed.

    Carries the upload id and the part numbers that did not succeed. When the
    upload was not aborted, the id can be passed to ``resume_request``.
    """

    def __init__(
        self,
        message: str,
        *,
        upload_id: str,
        failed_parts: Sequence[int] = (),
        aborted: bool = False,
    ) -> None:
        super().__init__(message)
        self.upload_id = upload_id
        self.failed_parts = list(failed_parts)
        self.aborted = aborted


@dataclass(frozen=True, slots=True)
class UploadRequest:
    """Target and metadata of an upload."""

    bucket: str
    object_name: str
    namespace: str = ""
    content_type: str | None = None
    content_language: str | None = None
    content_encoding: str | None = None
    metadata: Mapping[str, str] = field(default_factory=dict)
    allow_overwrite: bool = True


@dataclass(frozen=True, slots=True)
class UploadResult:
    """Outcome of a committed upload."""

    upload_id: str
    etag: str | None
    part_count: int


class UploadManager:
    """Uploads whole payloads as multipart uploads.

    Args:
        service: Object storage service.
        part_size_bytes: Size of every part but the last.
        max_workers: Number of parts uploaded concurrently.
        abort_on_failure: Abort the server-side upload when the commit is
            refused or fails.
    """

    def __init__(
        self,
        service: ObjectStorageService,
        *,
        part_size_bytes: int,
        max_workers: int = 4,
        abort_on_failure: bool = True,
    ) -> None:
        if part_size_bytes < 1:
            raise ValueError("part_size_bytes must be at least 1")
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self._service = service
        self._part_size = part_size_bytes
        self._max_workers = max_workers
        self._abort_on_failure = abort_on_failure

    @classmethod
    def from_settings(
        cls, settings: Settings, *, service: ObjectStorageService | None = None
    ) -> "UploadManager":
        """Build a manager from settings, creating an S3 service if none given."""
        if service is None:
            from mpupload.infra.storage.s3_client import S3StorageService

            service = S3StorageService(settings=settings)
        return cls(
            service,
            part_size_bytes=settings.TRANSFER_PART_SIZE_BYTES,
            max_workers=settings.TRANSFER_MAX_WORKERS,
            abort_on_failure=settings.TRANSFER_ABORT_ON_FAILURE,
        )

    def upload_file(
        self, request: UploadRequest, path: str | os.PathLike[str]
    ) -> UploadResult:
        """Upload a local file."""
        size = os.path.getsize(path)
        with open(path, "rb") as stream:
            return self.upload_stream(request, stream, size)

    def upload_stream(
        self, request: UploadRequest, stream: IO[bytes], content_length: int
    ) -> UploadResult:
        """Upload exactly ``content_length`` bytes read from ``stream``.

        Raises:
            MultipartUploadError: If any part failed or the commit failed.
            ValueError: If the stream is shorter than ``content_length``.
            StorageError: If the upload could not be created.
        """
        if content_length < 0:
            raise ValueError("content_length must not be negative")

        with ThreadPoolExecutor(
            max_workers=self._max_workers, thread_name_prefix="mpupload-part"
        ) as executor:
            assembler = MultipartObjectAssembler(
                self._service,
                namespace=request.namespace,
                bucket=request.bucket,
                object_name=request.object_name,
                executor=_BoundedExecutor(
                    executor, self._max_workers * PENDING_PARTS_PER_WORKER
                ),
                allow_overwrite=request.allow_overwrite,
            )
            manifest = assembler.new_request(
                content_type=request.content_type,
                content_language=request.content_language,
                content_encoding=request.content_encoding,
                metadata=request.metadata,
            )

            try:
                for length in self._part_lengths(content_length):
                    assembler.add_part(stream, length)
            except (ValueError, OSError):
                self._abort_quietly(assembler)
                raise

            try:
                result = assembler.commit()
            except (InvalidSessionStateError, StorageError) as exc:
                aborted = self._abort_after_failed_commit(assembler)
                raise MultipartUploadError(
                    f"Upload {manifest.upload_id} of {request.object_name!r} failed: {exc}",
                    upload_id=manifest.upload_id,
                    failed_parts=manifest.list_failed_parts(),
                    aborted=aborted,
                ) from exc

        parts = manifest.list_completed_parts()
        logger.info(
            "upload_finished bucket=%s object=%s upload_id=%s parts=%s bytes=%s",
            request.bucket,
            request.object_name,
            manifest.upload_id,
            len(parts),
            content_length,
        )
        return UploadResult(
            upload_id=manifest.upload_id, etag=result.etag, part_count=len(parts)
        )

    def abort_upload(
        self, *, bucket: str, object_name: str, upload_id: str, namespace: str = ""
    ) -> AbortResult:
        """Abort an upload left open by an earlier, failed run.

        Raises:
            UploadNotFoundError: If the upload is not in progress.
        """
        with ThreadPoolExecutor(max_workers=1) as executor:
            assembler = MultipartObjectAssembler(
                self._service,
                namespace=namespace,
                bucket=bucket,
                object_name=object_name,
                executor=executor,
            )
            assembler.resume_request(upload_id)
            return assembler.abort()

    def _part_lengths(self, content_length: int) -> list[int]:
        if content_length == 0:
            return [0]
        full, rest = divmod(content_length, self._part_size)
        lengths = [self._part_size] * full
        if rest:
            lengths.append(rest)
        return lengths

    def _abort_after_failed_commit(self, assembler: MultipartObjectAssembler) -> bool:
        if not self._abort_on_failure:
            return False
        # The assembler is finalized by a refused commit; abort via the service.
        try:
            self._service.abort_multipart_upload(
                namespace=assembler.namespace,
                bucket=assembler.bucket,
                object_name=assembler.object_name,
                upload_id=assembler.upload_id or "",
            )
        except StorageError:
            logger.exception(
                "upload_abort_failed upload_id=%s", assembler.upload_id
            )
            return False
        return True

    def _abort_quietly(self, assembler: MultipartObjectAssembler) -> None:
        try:
            assembler.abort()
        except StorageError:
            logger.exception(
                "upload_abort_failed upload_id=%s", assembler.upload_id
            )
