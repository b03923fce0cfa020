"""Part-tracking ledger of a single multipart upload session."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from mpupload.infra.storage.client import CompletedPart
from mpupload.transfer.errors import InvalidSessionStateError

logger = logging.getLogger("transfer")


class PartStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(slots=True)
class PartRecord:
    part_number: int
    status: PartStatus = PartStatus.PENDING
    etag: str | None = None


class MultipartManifest:
    """Thread-safe ledger of part outcomes for one upload.

    Part numbers are handed out by :meth:`next_part_number` in call order and
    never reused. Every read and write goes through one lock, so reserving a
    number and inserting its pending record is a single step from the point of
    view of any other thread.
    """

    def __init__(
        self, upload_id: str, *, existing_parts: Iterable[CompletedPart] = ()
    ) -> None:
        self._upload_id = upload_id
        self._lock = threading.Lock()
        self._parts: dict[int, PartRecord] = {}
        self._aborted = False

        for part in sorted(existing_parts, key=lambda p: p.part_number):
            self._parts[part.part_number] = PartRecord(
                part_number=part.part_number,
                status=PartStatus.SUCCEEDED,
                etag=part.etag,
            )
        self._next_part_number = max(self._parts, default=0) + 1

    @property
    def upload_id(self) -> str:
        return self._upload_id

    def next_part_number(self) -> int:
        """Reserve the next unused part number and register it as pending."""
        with self._lock:
            part_number = self._next_part_number
            self._next_part_number += 1
            self._parts[part_number] = PartRecord(part_number=part_number)
            return part_number

    def record_success(self, part_number: int, etag: str) -> None:
        with self._lock:
            record = self._pending_record(part_number)
            if record is None:
                return
            record.status = PartStatus.SUCCEEDED
            record.etag = etag

    def record_failure(self, part_number: int) -> None:
        with self._lock:
            record = self._pending_record(part_number)
            if record is None:
                return
            record.status = PartStatus.FAILED

    def _pending_record(self, part_number: int) -> PartRecord | None:
        # Caller holds the lock. Late outcomes after an abort are dropped.
        if self._aborted:
            logger.debug(
                "part_outcome_ignored upload_id=%s part=%s reason=aborted",
                self._upload_id,
                part_number,
            )
            return None
        record = self._parts.get(part_number)
        if record is None:
            raise InvalidSessionStateError(
                f"Part {part_number} was never reserved for upload {self._upload_id}"
            )
        if record.status is not PartStatus.PENDING:
            raise InvalidSessionStateError(
                f"Part {part_number} is already {record.status.value}"
            )
        return record

    def list_completed_parts(self) -> list[CompletedPart]:
        """Succeeded parts ordered by part number."""
        with self._lock:
            return [
                CompletedPart(part_number=record.part_number, etag=record.etag or "")
                for record in sorted(self._parts.values(), key=lambda r: r.part_number)
                if record.status is PartStatus.SUCCEEDED
            ]

    def list_failed_parts(self) -> list[int]:
        with self._lock:
            return self._numbers_with(PartStatus.FAILED)

    def list_in_progress_parts(self) -> list[int]:
        with self._lock:
            return self._numbers_with(PartStatus.PENDING)

    def _numbers_with(self, status: PartStatus) -> list[int]:
        return sorted(n for n, r in self._parts.items() if r.status is status)

    def is_upload_complete(self) -> bool:
        with self._lock:
            return self._is_complete()

    def _is_complete(self) -> bool:
        return all(r.status is not PartStatus.PENDING for r in self._parts.values())

    def is_upload_successful(self) -> bool:
        with self._lock:
            return (
                not self._aborted
                and self._is_complete()
                and all(r.status is PartStatus.SUCCEEDED for r in self._parts.values())
            )

    def is_upload_aborted(self) -> bool:
        with self._lock:
            return self._aborted

    def mark_aborted(self) -> None:
        with self._lock:
            self._aborted = True

    def __repr__(self) -> str:
        with self._lock:
            return (
                f"MultipartManifest(upload_id={self._upload_id!r}, "
                f"parts={len(self._parts)}, aborted={self._aborted})"
            )
