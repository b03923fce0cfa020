from __future__ import annotations

import pytest

from mpupload.common.config import Settings
from mpupload.transfer.upload_manager import MultipartUploadError
from scripts.upload_object import upload_object


def test_upload_object_guesses_content_type(mock_storage, tmp_path):
    path = tmp_path / "report.json"
    path.write_bytes(b'{"ok": true}')
    settings = Settings(TRANSFER_PART_SIZE_BYTES=5, STORAGE_NAMESPACE="tenant-a")

    result = upload_object(
        path, bucket="docs", key="reports/r.json", settings=settings, service=mock_storage
    )

    assert result.part_count == 3
    upload = mock_storage.uploads[result.upload_id]
    assert upload["namespace"] == "tenant-a"
    assert upload["content_type"] == "application/json"
    assert mock_storage.objects["docs/reports/r.json"]["body"] == b'{"ok": true}'


def test_upload_object_no_overwrite(mock_storage, tmp_path):
    path = tmp_path / "a.bin"
    path.write_bytes(b"new")
    mock_storage.objects["docs/a.bin"] = {"body": b"old", "etag": "x"}

    with pytest.raises(MultipartUploadError):
        upload_object(
            path,
            bucket="docs",
            key="a.bin",
            settings=Settings(),
            no_overwrite=True,
            service=mock_storage,
        )

    assert mock_storage.objects["docs/a.bin"]["body"] == b"old"
