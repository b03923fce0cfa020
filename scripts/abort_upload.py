#!/usr/bin/env python3
"""Abort a multipart upload left open by a failed run.

Usage:
  .venv/bin/python scripts/abort_upload.py --bucket media --key videos/a.mp4 UPLOAD_ID
"""

from __future__ import annotations

import argparse
import sys

from mpupload.common.config import get_settings
from mpupload.common.logging import setup_logging
from mpupload.transfer.errors import UploadNotFoundError
from mpupload.transfer.upload_manager import UploadManager


def main() -> None:
    parser = argparse.ArgumentParser(description="Abort an in-progress multipart upload")
    parser.add_argument("upload_id", help="Upload id to abort")
    parser.add_argument("--bucket", required=True, help="Bucket of the upload")
    parser.add_argument("--key", required=True, help="Object key of the upload")
    args = parser.parse_args()

    settings = get_settings()
    setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)
    manager = UploadManager.from_settings(settings)
    try:
        manager.abort_upload(
            namespace=settings.STORAGE_NAMESPACE,
            bucket=args.bucket,
            object_name=args.key,
            upload_id=args.upload_id,
        )
    except UploadNotFoundError as exc:
        print(str(exc), file=sys.stderr)
        sys.exit(1)
    print(f"Aborted {args.upload_id}")


if __name__ == "__main__":
    main()
