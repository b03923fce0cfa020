"""Mock object storage service for testing multipart transfers."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from mpupload.infra.storage.client import (
    AbortResult,
    CommitResult,
    CompletedPart,
    Page,
    PartSummary,
    StorageError,
    UploadedPart,
    UploadSummary,
)


@dataclass
class MockStorageService:
    """In-memory, thread-safe mock of ObjectStorageService for testing."""

    uploads: dict[str, dict[str, Any]] = field(default_factory=dict)
    objects: dict[str, dict[str, Any]] = field(default_factory=dict)
    fail_parts: set[int] = field(default_factory=set)
    part_delays: dict[int, float] = field(default_factory=dict)
    completion_order: list[int] = field(default_factory=list)
    _upload_counter: int = field(default=0)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

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
        with self._lock:
            self._upload_counter += 1
            upload_id = f"mock-upload-{self._upload_counter}"
            self.uploads[upload_id] = {
                "namespace": namespace,
                "bucket": bucket,
                "object_name": object_name,
                "content_type": content_type,
                "content_language": content_language,
                "content_encoding": content_encoding,
                "metadata": dict(metadata or {}),
                "parts": {},
                "completed": False,
                "aborted": False,
            }
        return upload_id

    def list_multipart_uploads(
        self,
        *,
        namespace: str,
        bucket: str,
        page: str | None = None,
        limit: int,
    ) -> Page[UploadSummary]:
        with self._lock:
            items = [
                UploadSummary(upload_id=upload_id, object_name=upload["object_name"])
                for upload_id, upload in self.uploads.items()
                if upload["bucket"] == bucket
                and not upload["completed"]
                and not upload["aborted"]
            ]
        return self._slice(items, page, limit)

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
        with self._lock:
            parts = self._get_upload(upload_id)["parts"]
            items = [
                PartSummary(part_number=number, etag=part["etag"], size_bytes=part["size"])
                for number, part in sorted(parts.items())
            ]
        return self._slice(items, page, limit)

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
        delay = self.part_delays.get(part_number)
        if delay:
            time.sleep(delay)
        with self._lock:
            self.completion_order.append(part_number)
            if part_number in self.fail_parts:
                raise StorageError(f"injected failure for part {part_number}")
            upload = self._get_upload(upload_id)
            if if_none_match == "*" and part_number in upload["parts"]:
                raise StorageError(f"Part {part_number} already exists")
            etag = f"etag{part_number}"
            upload["parts"][part_number] = {
                "etag": etag,
                "size": len(body),
                "body": bytes(body),
                "content_md5": content_md5,
            }
        return UploadedPart(etag=etag)

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
        with self._lock:
            upload = self._get_upload(upload_id)
            key = f"{bucket}/{object_name}"
            if if_none_match == "*" and key in self.objects:
                raise StorageError(f"Object {key} already exists")
            body = b"".join(upload["parts"][p.part_number]["body"] for p in parts)
            upload["completed"] = True
            upload["committed_parts"] = list(parts)
            self.objects[key] = {"body": body, "etag": f"mock-etag-{upload_id}"}
        return CommitResult(etag=f"mock-etag-{upload_id}", request_id="req-commit")

    def abort_multipart_upload(
        self,
        *,
        namespace: str,
        bucket: str,
        object_name: str,
        upload_id: str,
    ) -> AbortResult:
        with self._lock:
            self._get_upload(upload_id)["aborted"] = True
        return AbortResult(request_id="req-abort")

    def _get_upload(self, upload_id: str) -> dict[str, Any]:
        if upload_id not in self.uploads:
            raise StorageError(f"Upload {upload_id} not found")
        return self.uploads[upload_id]

    @staticmethod
    def _slice(items: list[Any], page: str | None, limit: int) -> Page[Any]:
        start = int(page) if page else 0
        end = start + limit
        next_page = str(end) if end < len(items) else None
        return Page(items=items[start:end], next_page_token=next_page)
