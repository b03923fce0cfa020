#!/usr/bin/env python3
"""Upload a local file as a multipart upload.

Usage:
  .venv/bin/python scripts/upload_object.py --bucket media --key videos/a.mp4 ./a.mp4
  .venv/bin/python scripts/upload_object.py --bucket media --key a.bin --part-size-mib 16 ./a.bin

Connection and transfer defaults come from the environment (see .env).
"""

from __future__ import annotations

import argparse
import mimetypes
import sys
from dataclasses import replace
from pathlib import Path

from mpupload.common.config import MIB, Settings, get_settings
from mpupload.common.logging import setup_logging
from mpupload.infra.storage.client import ObjectStorageService
from mpupload.transfer.upload_manager import (
    MultipartUploadError,
    UploadManager,
    UploadRequest,
    UploadResult,
)


def upload_object(
    path: Path,
    *,
    bucket: str,
    key: str,
    settings: Settings,
    content_type: str | None = None,
    no_overwrite: bool = False,
    service: ObjectStorageService | None = None,
) -> UploadResult:
    manager = UploadManager.from_settings(settings, service=service)
    request = UploadRequest(
        namespace=settings.STORAGE_NAMESPACE,
        bucket=bucket,
        object_name=key,
        content_type=content_type or mimetypes.guess_type(path.name)[0],
        allow_overwrite=settings.TRANSFER_ALLOW_OVERWRITE and not no_overwrite,
    )
    return manager.upload_file(request, path)


def main() -> None:
    parser = argparse.ArgumentParser(description="Upload a file as a multipart upload")
    parser.add_argument("path", type=Path, help="Local file to upload")
    parser.add_argument("--bucket", required=True, help="Target bucket")
    parser.add_argument("--key", default=None, help="Object key (default: file name)")
    parser.add_argument("--content-type", default=None, help="MIME type override")
    parser.add_argument(
        "--part-size-mib",
        type=int,
        default=None,
        help="Part size in MiB (default: TRANSFER_PART_SIZE_BYTES)",
    )
    parser.add_argument(
        "--no-overwrite",
        action="store_true",
        help="Fail the commit if the object already exists",
    )
    args = parser.parse_args()

    settings = get_settings()
    if args.part_size_mib is not None:
        settings = replace(
            settings, TRANSFER_PART_SIZE_BYTES=args.part_size_mib * MIB
        )
    setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)

    try:
        result = upload_object(
            args.path,
            bucket=args.bucket,
            key=args.key or args.path.name,
            settings=settings,
            content_type=args.content_type,
            no_overwrite=args.no_overwrite,
        )
    except MultipartUploadError as exc:
        print(f"Upload failed: {exc}", file=sys.stderr)
        if not exc.aborted:
            print(f"Upload id left open: {exc.upload_id}", file=sys.stderr)
        sys.exit(1)
    print(f"Uploaded {result.part_count} parts, upload id {result.upload_id}")


if __name__ == "__main__":
    main()
