"""Multipart upload session controller.

The assembler binds to one target object, starts or resumes a multipart upload,
fans part uploads out to a caller-supplied executor and finalizes the upload
exactly once, either by committing the collected parts or by aborting.
"""

from __future__ import annotations

import logging
import os
import time
from concurrent.futures import Executor, Future, wait
from enum import Enum
from pathlib import Path
from typing import IO, Callable, Iterator, Mapping, TypeVar, Union

from mpupload.infra.observability.metrics import PART_LATENCY, PARTS, SESSIONS
from mpupload.infra.storage.client import (
    AbortResult,
    CommitResult,
    CompletedPart,
    ObjectStorageService,
    Page,
)
from mpupload.transfer.errors import InvalidSessionStateError, UploadNotFoundError
from mpupload.transfer.manifest import MultipartManifest

logger = logging.getLogger("transfer")

# Page size used when enumerating uploads and parts during resume
LIST_PAGE_SIZE = 100
# Conditional-write value meaning "only if nothing exists yet"
IF_NONE_MATCH_ANY = "*"

T = TypeVar("T")
PartSource = Union[str, "os.PathLike[str]", IO[bytes]]


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    ACTIVE = "active"
    FINALIZED = "finalized"


def _read_exactly(stream: IO[bytes], length: int) -> bytes:
    chunks: list[bytes] = []
    remaining = length
    while remaining > 0:
        chunk = stream.read(remaining)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    if remaining:
        raise ValueError(
            f"Stream ended after {length - remaining} of {length} bytes"
        )
    return b"".join(chunks)


class MultipartObjectAssembler:
    """Drives one multipart upload of one object.

    Lifecycle calls (``new_request``/``resume_request``, ``add_part``,
    ``commit``, ``abort``) are meant to be made from a single thread. Part
    uploads run on ``executor``; their outcomes land in the manifest and are
    only reconciled in :meth:`commit`.

    Args:
        service: Object storage service used for every network call.
        namespace: Storage namespace owning the bucket.
        bucket: Target bucket.
        object_name: Target object key.
        executor: Executor running part uploads. It is not shut down here.
        allow_overwrite: When False, the commit only succeeds if the object
            does not exist yet.
    """

    def __init__(
        self,
        service: ObjectStorageService,
        *,
        namespace: str,
        bucket: str,
        object_name: str,
        executor: Executor,
        allow_overwrite: bool = True,
    ) -> None:
        self._service = service
        self._namespace = namespace
        self._bucket = bucket
        self._object_name = object_name
        self._executor = executor
        self._allow_overwrite = allow_overwrite

        self._state = SessionState.UNINITIALIZED
        self._manifest: MultipartManifest | None = None
        self._futures: list[Future[None]] = []

    @property
    def namespace(self) -> str:
        return self._namespace

    @property
    def bucket(self) -> str:
        return self._bucket

    @property
    def object_name(self) -> str:
        return self._object_name

    @property
    def allow_overwrite(self) -> bool:
        return self._allow_overwrite

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def manifest(self) -> MultipartManifest | None:
        return self._manifest

    @property
    def upload_id(self) -> str | None:
        return self._manifest.upload_id if self._manifest else None

    def new_request(
        self,
        content_type: str | None = None,
        content_language: str | None = None,
        content_encoding: str | None = None,
        metadata: Mapping[str, str] | None = None,
    ) -> MultipartManifest:
        """Create a new multipart upload and activate the session.

        Returns:
            The manifest tracking the new upload.

        Raises:
            InvalidSessionStateError: If a session was already started.
            StorageError: If the service fails to create the upload.
        """
        self._require_state(SessionState.UNINITIALIZED, "new_request")

        upload_id = self._service.create_multipart_upload(
            namespace=self._namespace,
            bucket=self._bucket,
            object_name=self._object_name,
            content_type=content_type,
            content_language=content_language,
            content_encoding=content_encoding,
            metadata=metadata,
        )
        logger.info(
            "multipart_created bucket=%s object=%s upload_id=%s",
            self._bucket,
            self._object_name,
            upload_id,
            extra={"extra": self._log_context(upload_id)},
        )
        return self._activate(MultipartManifest(upload_id))

    def resume_request(self, upload_id: str) -> MultipartManifest:
        """Resume an in-progress upload, seeding the manifest with its parts.

        Returns:
            The manifest tracking the resumed upload; the next part number is
            one past the highest part already stored.

        Raises:
            InvalidSessionStateError: If a session was already started.
            UploadNotFoundError: If no in-progress upload of the bucket has
                this id, or the upload belongs to another object.
            StorageError: If a listing call fails.
        """
        self._require_state(SessionState.UNINITIALIZED, "resume_request")

        uploads = self._paginate(
            lambda page: self._service.list_multipart_uploads(
                namespace=self._namespace,
                bucket=self._bucket,
                page=page,
                limit=LIST_PAGE_SIZE,
            )
        )
        if not any(
            upload.upload_id == upload_id
            and upload.object_name in (None, self._object_name)
            for upload in uploads
        ):
            raise UploadNotFoundError(
                f"No in-progress multipart upload {upload_id!r} "
                f"of {self._object_name!r} in bucket {self._bucket!r}"
            )

        parts = [
            CompletedPart(part_number=part.part_number, etag=part.etag)
            for part in self._paginate(
                lambda page: self._service.list_multipart_upload_parts(
                    namespace=self._namespace,
                    bucket=self._bucket,
                    object_name=self._object_name,
                    upload_id=upload_id,
                    page=page,
                    limit=LIST_PAGE_SIZE,
                )
            )
        ]
        logger.info(
            "multipart_resumed bucket=%s object=%s upload_id=%s existing_parts=%s",
            self._bucket,
            self._object_name,
            upload_id,
            len(parts),
            extra={"extra": self._log_context(upload_id)},
        )
        return self._activate(MultipartManifest(upload_id, existing_parts=parts))

    def add_part(
        self,
        source: PartSource,
        content_length: int | None = None,
        content_md5: str | None = None,
    ) -> int:
        """Queue one part for upload.

        Args:
            source: Path of a file holding the whole part, or a binary stream.
            content_length: Number of bytes to take from ``source``; required
                for streams and ignored for paths.
            content_md5: Digest passed through to the service for verification.

        Returns:
            The part number reserved for this part.

        Raises:
            InvalidSessionStateError: If the session is not active.
            ValueError: If a stream has no length, is shorter than
                ``content_length``, or a path is not a file.
        """
        manifest = self._active_manifest("add_part")

        path: Path | None = None
        payload: bytes | None = None
        if isinstance(source, (str, os.PathLike)):
            path = Path(source)
            if not path.is_file():
                raise ValueError(f"Part source {str(path)!r} is not a file")
        else:
            if content_length is None:
                raise ValueError("content_length is required when uploading a stream")
            if content_length < 0:
                raise ValueError("content_length must not be negative")
            payload = _read_exactly(source, content_length)

        part_number = manifest.next_part_number()
        try:
            future = self._executor.submit(
                self._upload_part, manifest, part_number, path, payload, content_md5
            )
        except Exception:
            manifest.record_failure(part_number)
            raise
        self._futures.append(future)
        return part_number

    def commit(self) -> CommitResult:
        """Wait for all submitted parts, then commit the upload.

        Returns:
            The service's commit result.

        Raises:
            InvalidSessionStateError: If the session is not active, or if any
                part did not succeed. In the latter case the session is
                finalized and the server-side upload is left open.
            StorageError: If the commit call fails.
        """
        manifest = self._active_manifest("commit")

        futures, self._futures = self._futures, []
        wait(futures)
        self._state = SessionState.FINALIZED
        for future in futures:
            if future.cancelled():
                continue
            exc = future.exception()
            if exc is not None:
                logger.error(
                    "part_task_crashed upload_id=%s",
                    manifest.upload_id,
                    exc_info=exc,
                )

        if not manifest.is_upload_successful():
            failed = manifest.list_failed_parts()
            pending = manifest.list_in_progress_parts()
            SESSIONS.labels(outcome="commit_refused").inc()
            logger.warning(
                "multipart_commit_refused upload_id=%s failed_parts=%s pending_parts=%s",
                manifest.upload_id,
                failed,
                pending,
                extra={
                    "extra": {
                        **self._log_context(manifest.upload_id),
                        "failed_parts": failed,
                        "pending_parts": pending,
                    }
                },
            )
            raise InvalidSessionStateError(
                f"Upload {manifest.upload_id} cannot be committed: "
                f"failed parts {failed}, unfinished parts {pending}"
            )

        parts = manifest.list_completed_parts()
        result = self._service.commit_multipart_upload(
            namespace=self._namespace,
            bucket=self._bucket,
            object_name=self._object_name,
            upload_id=manifest.upload_id,
            parts=parts,
            if_none_match=None if self._allow_overwrite else IF_NONE_MATCH_ANY,
        )
        SESSIONS.labels(outcome="committed").inc()
        logger.info(
            "multipart_committed upload_id=%s parts=%s",
            manifest.upload_id,
            len(parts),
            extra={"extra": self._log_context(manifest.upload_id)},
        )
        return result

    def abort(self) -> AbortResult:
        """Abort the upload without waiting for in-flight parts.

        Raises:
            InvalidSessionStateError: If the session is not active.
            StorageError: If the abort call fails; the session stays active.
        """
        manifest = self._active_manifest("abort")

        result = self._service.abort_multipart_upload(
            namespace=self._namespace,
            bucket=self._bucket,
            object_name=self._object_name,
            upload_id=manifest.upload_id,
        )
        manifest.mark_aborted()
        self._state = SessionState.FINALIZED
        self._futures = []
        SESSIONS.labels(outcome="aborted").inc()
        logger.info(
            "multipart_aborted upload_id=%s in_flight_parts=%s",
            manifest.upload_id,
            len(manifest.list_in_progress_parts()),
            extra={"extra": self._log_context(manifest.upload_id)},
        )
        return result

    def _upload_part(
        self,
        manifest: MultipartManifest,
        part_number: int,
        path: Path | None,
        payload: bytes | None,
        content_md5: str | None,
    ) -> None:
        start = time.perf_counter()
        try:
            body = path.read_bytes() if path is not None else payload or b""
            uploaded = self._service.upload_part(
                namespace=self._namespace,
                bucket=self._bucket,
                object_name=self._object_name,
                upload_id=manifest.upload_id,
                part_number=part_number,
                body=body,
                content_md5=content_md5,
                if_none_match=IF_NONE_MATCH_ANY,
            )
        except Exception:
            manifest.record_failure(part_number)
            PARTS.labels(status="failed").inc()
            logger.warning(
                "part_upload_failed upload_id=%s part=%s",
                manifest.upload_id,
                part_number,
                exc_info=True,
                extra={
                    "extra": {
                        **self._log_context(manifest.upload_id),
                        "part_number": part_number,
                    }
                },
            )
            return

        PART_LATENCY.observe(time.perf_counter() - start)
        manifest.record_success(part_number, uploaded.etag)
        PARTS.labels(status="succeeded").inc()
        logger.debug(
            "part_uploaded upload_id=%s part=%s bytes=%s",
            manifest.upload_id,
            part_number,
            len(body),
        )

    def _activate(self, manifest: MultipartManifest) -> MultipartManifest:
        self._manifest = manifest
        self._state = SessionState.ACTIVE
        return manifest

    def _require_state(self, expected: SessionState, operation: str) -> None:
        if self._state is not expected:
            raise InvalidSessionStateError(
                f"Cannot {operation}: session is {self._state.value}, "
                f"expected {expected.value}"
            )

    def _active_manifest(self, operation: str) -> MultipartManifest:
        self._require_state(SessionState.ACTIVE, operation)
        if self._manifest is None:
            raise InvalidSessionStateError(
                f"Cannot {operation}: active session has no manifest"
            )
        return self._manifest

    def _log_context(self, upload_id: str) -> dict[str, str]:
        return {
            "namespace": self._namespace,
            "bucket": self._bucket,
            "object": self._object_name,
            "upload_id": upload_id,
        }

    @staticmethod
    def _paginate(fetch: Callable[[str | None], Page[T]]) -> Iterator[T]:
        page: str | None = None
        while True:
            result = fetch(page)
            yield from result.items
            page = result.next_page_token
            if not page:
                return
