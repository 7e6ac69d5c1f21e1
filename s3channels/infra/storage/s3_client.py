"""S3-compatible transfer backend implementation.

This module provides an S3-compatible backend that works with
AWS S3, MinIO, and other S3-compatible object storage services.

Dependencies:
    - boto3
    - botocore
"""

from __future__ import annotations

import io
import logging
from concurrent.futures import CancelledError
from os import PathLike, fspath
from typing import TYPE_CHECKING, Any, BinaryIO, Mapping, Sequence

from s3channels.infra.storage.client import (
    CompletedPart,
    MultipartUpload,
    ObjectHead,
    PutResult,
    StorageError,
)

if TYPE_CHECKING:
    from s3channels.common.config import Settings

logger = logging.getLogger(__name__)

_MISSING_OBJECT_CODES = frozenset({"404", "NoSuchKey", "NotFound"})


def _error_code(exc: Exception) -> str | None:
    response = getattr(exc, "response", None)
    if not isinstance(response, dict):
        return None
    code = response.get("Error", {}).get("Code")
    return str(code) if code is not None else None


class S3StorageClient:
    """S3-compatible transfer backend.

    Supports AWS S3, MinIO, and other S3-compatible services.
    Uses boto3 for all storage operations and the boto3 transfer manager
    for parallel uploads.
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

    def _write_params(
        self,
        *,
        content_type: str | None,
        metadata: Mapping[str, str] | None,
        storage_class: str | None,
    ) -> dict[str, Any]:
        """Build the optional arguments shared by PUT, initiate and upload_file."""
        params: dict[str, Any] = {}
        if content_type:
            params["ContentType"] = content_type
        if metadata:
            params["Metadata"] = dict(metadata)
        storage_class = storage_class or self._settings.S3_STORAGE_CLASS
        if storage_class:
            params["StorageClass"] = storage_class
        if self._settings.S3_SSE_ENABLED:
            params["ServerSideEncryption"] = "aws:kms"
            if self._settings.S3_SSE_KMS_KEY_ID:
                params["SSEKMSKeyId"] = self._settings.S3_SSE_KMS_KEY_ID
        return params

    def put_object(
        self,
        *,
        bucket: str,
        object_key: str,
        body: bytes | BinaryIO,
        content_length: int,
        content_type: str | None = None,
        metadata: Mapping[str, str] | None = None,
        storage_class: str | None = None,
    ) -> PutResult:
        """Store a whole object with a single PUT."""
        params = self._write_params(
            content_type=content_type, metadata=metadata, storage_class=storage_class
        )
        try:
            response = self._client.put_object(
                Bucket=bucket,
                Key=object_key,
                Body=body,
                ContentLength=int(content_length),
                **params,
            )
        except Exception as exc:
            raise StorageError(f"Failed to put object: {exc}") from exc

        return PutResult(
            etag=response.get("ETag"),
            version_id=response.get("VersionId"),
        )

    def get_object(
        self,
        *,
        bucket: str,
        object_key: str,
        byte_range: tuple[int, int] | None = None,
    ) -> BinaryIO:
        """Open a stream over the whole object or over ``[start, end)``."""
        params: dict[str, Any] = {"Bucket": bucket, "Key": object_key}
        if byte_range is not None:
            start, end = byte_range
            if end <= start:
                return io.BytesIO(b"")
            params["Range"] = f"bytes={start}-{end - 1}"

        try:
            response = self._client.get_object(**params)
        except Exception as exc:
            if byte_range is not None and _error_code(exc) == "InvalidRange":
                return io.BytesIO(b"")
            raise StorageError(f"Failed to get object: {exc}") from exc

        return response["Body"]

    def head_object(self, *, bucket: str, object_key: str) -> ObjectHead:
        """Get object metadata without downloading the content."""
        try:
            response = self._client.head_object(Bucket=bucket, Key=object_key)
        except Exception as exc:
            if _error_code(exc) in _MISSING_OBJECT_CODES:
                return ObjectHead(exists=False)
            raise StorageError(f"Failed to get object metadata: {exc}") from exc

        size = response.get("ContentLength")
        return ObjectHead(
            exists=True,
            size_bytes=int(size) if size is not None else 0,
            etag=response.get("ETag"),
            content_type=response.get("ContentType"),
            metadata=dict(response.get("Metadata") or {}),
        )

    def delete_object(self, *, bucket: str, object_key: str) -> None:
        """Delete an object from storage."""
        try:
            self._client.delete_object(Bucket=bucket, Key=object_key)
        except Exception as exc:
            raise StorageError(f"Failed to delete object: {exc}") from exc

    def init_multipart_upload(
        self,
        *,
        bucket: str,
        object_key: str,
        content_type: str | None = None,
        metadata: Mapping[str, str] | None = None,
        storage_class: str | None = None,
    ) -> MultipartUpload:
        """Initialize a multipart upload session."""
        params = self._write_params(
            content_type=content_type, metadata=metadata, storage_class=storage_class
        )
        try:
            response = self._client.create_multipart_upload(
                Bucket=bucket, Key=object_key, **params
            )
        except Exception as exc:
            raise StorageError(f"Failed to create multipart upload: {exc}") from exc

        upload_id = response.get("UploadId")
        if not upload_id:
            raise StorageError("S3 response missing UploadId")

        return MultipartUpload(
            upload_id=str(upload_id),
            bucket=bucket,
            object_key=object_key,
        )

    def upload_part(
        self,
        *,
        bucket: str,
        object_key: str,
        upload_id: str,
        part_number: int,
        body: bytes,
        content_length: int,
        is_last: bool = False,
    ) -> CompletedPart:
        """Upload a single part of a multipart upload."""
        try:
            response = self._client.upload_part(
                Bucket=bucket,
                Key=object_key,
                UploadId=upload_id,
                PartNumber=int(part_number),
                Body=body,
                ContentLength=int(content_length),
            )
        except Exception as exc:
            raise StorageError(f"Failed to upload part {part_number}: {exc}") from exc

        etag = response.get("ETag")
        if not etag:
            raise StorageError("S3 response missing ETag")

        return CompletedPart(part_number=int(part_number), etag=str(etag))

    def complete_multipart_upload(
        self,
        *,
        bucket: str,
        object_key: str,
        upload_id: str,
        parts: Sequence[CompletedPart],
    ) -> None:
        """Complete a multipart upload by combining all parts."""
        multipart_payload = {
            "Parts": [
                {"ETag": part.etag, "PartNumber": int(part.part_number)}
                for part in sorted(parts, key=lambda p: p.part_number)
            ]
        }

        try:
            self._client.complete_multipart_upload(
                Bucket=bucket,
                Key=object_key,
                UploadId=upload_id,
                MultipartUpload=multipart_payload,
            )
        except Exception as exc:
            raise StorageError(f"Failed to complete multipart upload: {exc}") from exc

    def abort_multipart_upload(
        self,
        *,
        bucket: str,
        object_key: str,
        upload_id: str,
    ) -> None:
        """Abort a multipart upload and clean up uploaded parts."""
        try:
            self._client.abort_multipart_upload(
                Bucket=bucket,
                Key=object_key,
                UploadId=upload_id,
            )
        except Exception as exc:
            raise StorageError(f"Failed to abort multipart upload: {exc}") from exc

    def parallel_upload(
        self,
        *,
        bucket: str,
        object_key: str,
        path: str | PathLike[str],
        workers: int,
        content_type: str | None = None,
        metadata: Mapping[str, str] | None = None,
    ) -> None:
        """Upload a local file through a transfer manager scoped to this call."""
        from boto3.s3.transfer import TransferConfig

        config = TransferConfig(max_concurrency=int(workers), use_threads=True)
        extra_args = self._write_params(
            content_type=content_type, metadata=metadata, storage_class=None
        )
        logger.debug(
            "Parallel upload of %s to s3://%s/%s with %d workers",
            fspath(path),
            bucket,
            object_key,
            workers,
        )
        try:
            self._client.upload_file(
                Filename=fspath(path),
                Bucket=bucket,
                Key=object_key,
                ExtraArgs=extra_args or None,
                Config=config,
            )
        except CancelledError:
            raise
        except Exception as exc:
            raise StorageError(f"Failed to upload file: {exc}") from exc
