"""S3-compatible storage service implementation.

This module provides an S3-compatible implementation of the object storage
service port that works with AWS S3, MinIO, and other S3-compatible services.

Dependencies:
    - boto3
    - botocore
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, Mapping, Sequence

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

if TYPE_CHECKING:
    from mpupload.common.config import Settings

logger = logging.getLogger("storage")


def _request_id(response: Mapping[str, Any]) -> str | None:
    meta = response.get("ResponseMetadata") or {}
    return meta.get("RequestId")


def _encode_upload_marker(key_marker: str | None, upload_id_marker: str | None) -> str:
    return json.dumps([key_marker or "", upload_id_marker or ""])


def _decode_upload_marker(page: str) -> tuple[str, str]:
    try:
        key_marker, upload_id_marker = json.loads(page)
    except (ValueError, TypeError) as exc:
        raise StorageError(f"Invalid multipart upload page token: {page!r}") from exc
    return str(key_marker), str(upload_id_marker)


class S3StorageService:
    """S3-compatible object storage service.

    Supports AWS S3, MinIO, and other S3-compatible services.
    Uses boto3 for all storage operations. S3 has no namespace tier, so the
    ``namespace`` argument of every operation is accepted and ignored.
    """

    def __init__(self, *, settings: "Settings") -> None:
        """Initialize the S3 client with configuration from settings.

        Args:
            settings: Application settings containing S3 configuration.

        Raises:
            StorageError: If boto3 is not installed.
        """
        self._settings = settings
        self._client = self._build_client(settings)

    @staticmethod
    def _build_client(settings: "Settings") -> Any:
        """Create a boto3 S3 client from settings."""
        try:
            import boto3
            from botocore.config import Config
        except ImportError as exc:
            raise StorageError(
                "boto3 and botocore are required for S3 storage backend. "
                "Install with: pip install boto3"
            ) from exc

        addressing_style = (settings.S3_ADDRESSING_STYLE or "path").strip().lower()
        config = Config(s3={"addressing_style": addressing_style})

        return boto3.client(
            "s3",
            endpoint_url=settings.S3_ENDPOINT_URL,
            region_name=settings.S3_REGION,
            aws_access_key_id=settings.S3_ACCESS_KEY_ID,
            aws_secret_access_key=settings.S3_SECRET_ACCESS_KEY,
            use_ssl=bool(settings.S3_USE_SSL),
            config=config,
        )

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
        """Initialize a multipart upload session."""
        params: dict[str, Any] = {"Bucket": bucket, "Key": object_name}
        if content_type:
            params["ContentType"] = content_type
        if content_language:
            params["ContentLanguage"] = content_language
        if content_encoding:
            params["ContentEncoding"] = content_encoding
        if metadata:
            params["Metadata"] = dict(metadata)

        try:
            response = self._client.create_multipart_upload(**params)
        except Exception as exc:
            raise StorageError(f"Failed to create multipart upload: {exc}") from exc

        upload_id = response.get("UploadId")
        if not upload_id:
            raise StorageError("S3 response missing UploadId")
        return str(upload_id)

    def list_multipart_uploads(
        self,
        *,
        namespace: str,
        bucket: str,
        page: str | None = None,
        limit: int,
    ) -> Page[UploadSummary]:
        """List in-progress multipart uploads of a bucket."""
        params: dict[str, Any] = {"Bucket": bucket, "MaxUploads": int(limit)}
        if page:
            key_marker, upload_id_marker = _decode_upload_marker(page)
            if key_marker:
                params["KeyMarker"] = key_marker
            if upload_id_marker:
                params["UploadIdMarker"] = upload_id_marker

        try:
            response = self._client.list_multipart_uploads(**params)
        except Exception as exc:
            raise StorageError(f"Failed to list multipart uploads: {exc}") from exc

        items = [
            UploadSummary(upload_id=str(item["UploadId"]), object_name=item.get("Key"))
            for item in response.get("Uploads") or []
        ]
        next_page = None
        if response.get("IsTruncated"):
            next_page = _encode_upload_marker(
                response.get("NextKeyMarker"), response.get("NextUploadIdMarker")
            )
        return Page(items=items, next_page_token=next_page)

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
        """List the parts already stored for an upload."""
        params: dict[str, Any] = {
            "Bucket": bucket,
            "Key": object_name,
            "UploadId": upload_id,
            "MaxParts": int(limit),
        }
        if page:
            params["PartNumberMarker"] = int(page)

        try:
            response = self._client.list_parts(**params)
        except Exception as exc:
            raise StorageError(f"Failed to list multipart upload parts: {exc}") from exc

        items = [
            PartSummary(
                part_number=int(item["PartNumber"]),
                etag=str(item["ETag"]),
                size_bytes=int(item["Size"]) if item.get("Size") is not None else None,
            )
            for item in response.get("Parts") or []
        ]
        next_page = None
        if response.get("IsTruncated") and response.get("NextPartNumberMarker"):
            next_page = str(response["NextPartNumberMarker"])
        return Page(items=items, next_page_token=next_page)

    def _part_exists(
        self, *, bucket: str, object_name: str, upload_id: str, part_number: int
    ) -> bool:
        # UploadPart has no conditional header on S3; probe the listing instead.
        try:
            response = self._client.list_parts(
                Bucket=bucket,
                Key=object_name,
                UploadId=upload_id,
                PartNumberMarker=int(part_number) - 1,
                MaxParts=1,
            )
        except Exception as exc:
            raise StorageError(f"Failed to list multipart upload parts: {exc}") from exc
        parts = response.get("Parts") or []
        return bool(parts) and int(parts[0]["PartNumber"]) == int(part_number)

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
        """Upload one part of a multipart upload."""
        if if_none_match == "*" and self._part_exists(
            bucket=bucket,
            object_name=object_name,
            upload_id=upload_id,
            part_number=part_number,
        ):
            raise StorageError(
                f"Part {part_number} already exists for upload {upload_id}"
            )

        params: dict[str, Any] = {
            "Bucket": bucket,
            "Key": object_name,
            "UploadId": upload_id,
            "PartNumber": int(part_number),
            "Body": body,
        }
        if content_md5:
            params["ContentMD5"] = content_md5

        try:
            response = self._client.upload_part(**params)
        except Exception as exc:
            raise StorageError(f"Failed to upload part {part_number}: {exc}") from exc

        etag = response.get("ETag")
        if not etag:
            raise StorageError("S3 response missing ETag")
        return UploadedPart(etag=str(etag))

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
        """Complete a multipart upload by combining all parts."""
        params: dict[str, Any] = {
            "Bucket": bucket,
            "Key": object_name,
            "UploadId": upload_id,
            "MultipartUpload": {
                "Parts": [
                    {"ETag": part.etag, "PartNumber": int(part.part_number)}
                    for part in sorted(parts, key=lambda p: p.part_number)
                ]
            },
        }
        if if_none_match:
            params["IfNoneMatch"] = if_none_match

        try:
            response = self._client.complete_multipart_upload(**params)
        except Exception as exc:
            raise StorageError(f"Failed to complete multipart upload: {exc}") from exc

        logger.debug(
            "multipart_committed bucket=%s key=%s upload_id=%s parts=%s",
            bucket,
            object_name,
            upload_id,
            len(parts),
        )
        return CommitResult(
            etag=response.get("ETag"),
            location=response.get("Location"),
            request_id=_request_id(response),
        )

    def abort_multipart_upload(
        self,
        *,
        namespace: str,
        bucket: str,
        object_name: str,
        upload_id: str,
    ) -> AbortResult:
        """Abort a multipart upload and clean up uploaded parts."""
        try:
            response = self._client.abort_multipart_upload(
                Bucket=bucket,
                Key=object_name,
                UploadId=upload_id,
            )
        except Exception as exc:
            raise StorageError(f"Failed to abort multipart upload: {exc}") from exc

        return AbortResult(request_id=_request_id(response or {}))
