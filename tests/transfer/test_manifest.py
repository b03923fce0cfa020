"""Tests for MultipartManifest."""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from mpupload.infra.storage.client import CompletedPart
from mpupload.transfer.errors import InvalidSessionStateError
from mpupload.transfer.manifest import MultipartManifest


class TestPartNumbers:
    def test_starts_at_one(self):
        manifest = MultipartManifest("upload-1")

        assert manifest.next_part_number() == 1
        assert manifest.next_part_number() == 2
        assert manifest.list_in_progress_parts() == [1, 2]

    def test_resumed_manifest_continues_after_highest_part(self):
        manifest = MultipartManifest(
            "upload-1",
            existing_parts=[
                CompletedPart(part_number=3, etag="etag3"),
                CompletedPart(part_number=1, etag="etag1"),
            ],
        )

        assert manifest.next_part_number() == 4
        assert manifest.list_completed_parts() == [
            CompletedPart(part_number=1, etag="etag1"),
            CompletedPart(part_number=3, etag="etag3"),
        ]

    def test_concurrent_reservations_are_unique(self):
        manifest = MultipartManifest("upload-1")
        barrier = threading.Barrier(8)

        def reserve():
            barrier.wait()
            return [manifest.next_part_number() for _ in range(50)]

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = [f.result() for f in [pool.submit(reserve) for _ in range(8)]]

        numbers = [n for batch in results for n in batch]
        assert sorted(numbers) == list(range(1, 401))
        for batch in results:
            assert batch == sorted(batch)


class TestOutcomes:
    def test_completed_parts_sorted_regardless_of_completion_order(self):
        manifest = MultipartManifest("upload-1")
        numbers = [manifest.next_part_number() for _ in range(3)]

        for number in reversed(numbers):
            manifest.record_success(number, f"etag{number}")

        assert [p.part_number for p in manifest.list_completed_parts()] == [1, 2, 3]
        assert manifest.is_upload_complete()
        assert manifest.is_upload_successful()
        assert manifest.list_failed_parts() == []

    def test_failure_makes_upload_unsuccessful(self):
        manifest = MultipartManifest("upload-1")
        first = manifest.next_part_number()
        second = manifest.next_part_number()

        manifest.record_success(first, "etag1")
        assert not manifest.is_upload_complete()

        manifest.record_failure(second)

        assert manifest.is_upload_complete()
        assert not manifest.is_upload_successful()
        assert manifest.list_completed_parts() == [
            CompletedPart(part_number=1, etag="etag1")
        ]
        assert manifest.list_failed_parts() == [2]

    def test_empty_manifest_is_complete(self):
        manifest = MultipartManifest("upload-1")

        assert manifest.is_upload_complete()
        assert manifest.is_upload_successful()

    def test_recording_unknown_part_is_a_logic_fault(self):
        manifest = MultipartManifest("upload-1")

        with pytest.raises(InvalidSessionStateError, match="never reserved"):
            manifest.record_success(7, "etag7")
        with pytest.raises(InvalidSessionStateError, match="never reserved"):
            manifest.record_failure(7)

    def test_recording_resolved_part_is_a_logic_fault(self):
        manifest = MultipartManifest("upload-1")
        number = manifest.next_part_number()
        manifest.record_success(number, "etag1")

        with pytest.raises(InvalidSessionStateError, match="already succeeded"):
            manifest.record_failure(number)

    def test_seeded_parts_cannot_be_recorded_again(self):
        manifest = MultipartManifest(
            "upload-1", existing_parts=[CompletedPart(part_number=1, etag="etag1")]
        )

        with pytest.raises(InvalidSessionStateError):
            manifest.record_success(1, "other")


class TestAbort:
    def test_abort_is_irreversible_and_freezes_pending_parts(self):
        manifest = MultipartManifest("upload-1")
        done = manifest.next_part_number()
        pending = manifest.next_part_number()
        manifest.record_success(done, "etag1")

        manifest.mark_aborted()
        manifest.record_success(pending, "late")
        manifest.record_failure(pending)

        assert manifest.is_upload_aborted()
        assert manifest.list_in_progress_parts() == [pending]
        assert not manifest.is_upload_complete()
        assert not manifest.is_upload_successful()

    def test_aborted_manifest_is_never_successful(self):
        manifest = MultipartManifest("upload-1")
        number = manifest.next_part_number()
        manifest.record_success(number, "etag1")

        manifest.mark_aborted()

        assert manifest.is_upload_complete()
        assert not manifest.is_upload_successful()


def test_upload_id_and_repr():
    manifest = MultipartManifest("upload-xyz")
    manifest.next_part_number()

    assert manifest.upload_id == "upload-xyz"
    assert "upload-xyz" in repr(manifest)
    assert "parts=1" in repr(manifest)
