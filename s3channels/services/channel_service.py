"""Channel service choosing a channel implementation per access pattern.

This module wires settings, the S3 backend and the three channel types
together so callers only deal with object keys.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Mapping

from s3channels.channels.mirrored import MirroredRandomAccessChannel
from s3channels.channels.multipart_writer import BufferedMultipartWriter
from s3channels.channels.options import OpenOption
from s3channels.channels.range_reader import RangeReadChannel
from s3channels.common.config import Settings, get_settings
from s3channels.common.errors import TransferFailureError
from s3channels.infra.observability.metrics import start_metrics_server
from s3channels.infra.storage.client import ObjectId, TransferBackend
from s3channels.infra.storage.s3_client import S3StorageClient

startup_logger = logging.getLogger("s3channels.startup")


class ServiceConfigurationError(Exception):
    """Raised when the storage backend is not properly configured."""


class ChannelService:
    """Opens channels against one bucket of the configured object store.

    The backend is shared by every channel the service opens; channels
    themselves are never shared.
    """

    def __init__(
        self,
        *,
        backend: TransferBackend | None = None,
        settings: Settings | None = None,
        bucket: str | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        bucket = bucket or self._settings.S3_BUCKET
        if not bucket:
            raise ServiceConfigurationError("S3_BUCKET is required")
        self._bucket = bucket
        self._backend = backend or self._build_backend(self._settings)
        startup_logger.info(
            "Channel service ready for bucket %s (%s)",
            self._bucket,
            type(self._backend).__name__,
        )

    @staticmethod
    def _build_backend(settings: Settings) -> TransferBackend:
        """Build the S3 backend from configuration."""
        if bool(settings.S3_ACCESS_KEY_ID) != bool(settings.S3_SECRET_ACCESS_KEY):
            raise ServiceConfigurationError(
                "S3_ACCESS_KEY_ID and S3_SECRET_ACCESS_KEY must be set together"
            )
        return S3StorageClient(settings=settings)

    @property
    def backend(self) -> TransferBackend:
        return self._backend

    @property
    def bucket(self) -> str:
        return self._bucket

    def object_id(self, key: str) -> ObjectId:
        key = key.lstrip("/")
        if not key:
            raise ValueError("object key must not be empty")
        return ObjectId(bucket=self._bucket, key=key)

    def start_metrics_server(self) -> bool:
        """Start the metrics endpoint when enabled and a port is configured."""
        if not self._settings.ENABLE_METRICS or self._settings.METRICS_PORT is None:
            return False
        start_metrics_server(self._settings.METRICS_PORT)
        startup_logger.info("Metrics exposed on port %d", self._settings.METRICS_PORT)
        return True

    def open_writer(
        self,
        key: str,
        *,
        content_type: str | None = None,
        metadata: Mapping[str, str] | None = None,
    ) -> BufferedMultipartWriter:
        """Open a sequential write-only channel; the object appears on close."""
        return BufferedMultipartWriter(
            self._backend,
            self.object_id(key),
            content_type=content_type,
            metadata=metadata,
            storage_class=self._settings.S3_STORAGE_CLASS,
        )

    def open_reader(self, key: str, *, position: int = 0) -> RangeReadChannel:
        """Open a read-only channel fetching each read with a ranged GET."""
        return RangeReadChannel(self._backend, self.object_id(key), position=position)

    def open_channel(
        self,
        key: str,
        options: Iterable[OpenOption] = (OpenOption.READ,),
        *,
        metadata: Mapping[str, str] | None = None,
        last_modified: datetime | None = None,
    ) -> MirroredRandomAccessChannel:
        """Open a random-access channel mirrored in a local temporary file."""
        return MirroredRandomAccessChannel(
            self._backend,
            self.object_id(key),
            options,
            metadata=metadata,
            temp_dir=self._settings.CHANNEL_TEMP_DIR,
            detect_content_type=self._settings.CHANNEL_DETECT_CONTENT_TYPE,
            last_modified=last_modified,
        )

    def exists(self, key: str) -> bool:
        object_id = self.object_id(key)
        try:
            head = self._backend.head_object(
                bucket=object_id.bucket, object_key=object_id.key
            )
        except Exception as exc:
            raise TransferFailureError(f"Failed to probe {object_id}") from exc
        return head.exists

    def delete(self, key: str) -> None:
        object_id = self.object_id(key)
        try:
            self._backend.delete_object(bucket=object_id.bucket, object_key=object_id.key)
        except Exception as exc:
            raise TransferFailureError(f"Failed to delete {object_id}") from exc
