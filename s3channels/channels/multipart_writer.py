"""Sequential write sink that buffers in memory and escalates to multipart upload.

Bytes written to a :class:`BufferedMultipartWriter` are accumulated until at
least ``MIN_PART_SIZE`` bytes are pending, at which point the pending bytes
are sent as one part of a multipart upload (initiated lazily on the first
part). Objects that never reach that size are stored with a single PUT on
close. Nothing is ever staged on local disk.

The remote object is either absent or completely assembled: a failed part
upload aborts the multipart upload and leaves the writer permanently closed.
"""

from __future__ import annotations

import logging
import threading
from types import TracebackType
from typing import Mapping

from s3channels.channels.options import MAX_PARTS, MIN_PART_SIZE
from s3channels.common.errors import (
    AlreadyClosedError,
    PartLimitExceededError,
    TransferFailureError,
)
from s3channels.infra.observability import metrics
from s3channels.infra.storage.client import CompletedPart, ObjectId, TransferBackend

logger = logging.getLogger(__name__)


class BufferedMultipartWriter:
    """Write-only channel producing exactly one remote object on close.

    ``write`` and ``close`` are safe to call from several threads: every
    transition of the buffer and upload session happens under one lock, so
    parts are numbered in the order their writes acquired it.
    """

    MIN_PART_SIZE = MIN_PART_SIZE
    MAX_PARTS = MAX_PARTS

    def __init__(
        self,
        backend: TransferBackend,
        object_id: ObjectId,
        *,
        content_type: str | None = None,
        metadata: Mapping[str, str] | None = None,
        storage_class: str | None = None,
    ) -> None:
        self._backend = backend
        self._object_id = object_id
        self._content_type = content_type
        self._metadata = dict(metadata or {})
        self._storage_class = storage_class
        self._lock = threading.Lock()
        # Read without the lock for cheap rejection; only written under it.
        self._closed = False
        self._buffer = bytearray()
        self._upload_id: str | None = None
        self._parts: list[CompletedPart] = []

    @property
    def object_id(self) -> ObjectId:
        return self._object_id

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def upload_id(self) -> str | None:
        return self._upload_id

    @property
    def part_count(self) -> int:
        return len(self._parts)

    def writable(self) -> bool:
        return True

    def readable(self) -> bool:
        return False

    def seekable(self) -> bool:
        return False

    def write(self, data: bytes | bytearray | memoryview) -> int:
        """Append ``data`` to the object, uploading a part once enough is pending."""
        if self._closed:
            raise AlreadyClosedError(f"Already closed: {self._object_id}")

        view = memoryview(data)
        length = view.nbytes
        if length == 0:
            return 0

        with self._lock:
            if self._closed:
                raise AlreadyClosedError(f"Already closed: {self._object_id}")

            if self._upload_id is not None and len(self._parts) >= self.MAX_PARTS:
                self._closed = True
                self._buffer = bytearray()
                self._abort_upload()
                raise PartLimitExceededError(
                    f"Maximum number of upload parts ({self.MAX_PARTS}) reached "
                    f"for {self._object_id}"
                )

            if length >= self.MIN_PART_SIZE or len(self._buffer) + length >= self.MIN_PART_SIZE:
                block = b"".join((self._buffer, view))
                self._buffer = bytearray()
                self._upload_part(block, is_last=False)
            else:
                self._buffer += view

        return length

    def close(self) -> None:
        """Publish the object. Calling ``close`` again is a no-op."""
        if self._closed:
            return

        with self._lock:
            if self._closed:
                return
            try:
                if self._upload_id is None:
                    self._put_object()
                else:
                    # At the part limit the buffer is necessarily empty, so
                    # the upload is complete as it stands.
                    if len(self._parts) < self.MAX_PARTS:
                        self._upload_part(bytes(self._buffer), is_last=True)
                    self._complete_upload()
            finally:
                self._buffer = bytearray()
                self._closed = True

    def discard(self) -> None:
        """Close without publishing anything, aborting an open multipart upload."""
        if self._closed:
            return

        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._buffer = bytearray()
            if self._upload_id is not None:
                self._abort_upload()

    def __enter__(self) -> "BufferedMultipartWriter":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if exc_type is None:
            self.close()
        else:
            self.discard()

    # --- transfers; callers hold self._lock ---

    def _init_upload(self) -> None:
        logger.debug("Initiating multipart upload for %s", self._object_id)
        try:
            upload = self._backend.init_multipart_upload(
                bucket=self._object_id.bucket,
                object_key=self._object_id.key,
                content_type=self._content_type,
                metadata=self._metadata,
                storage_class=self._storage_class,
            )
        except Exception as exc:
            self._closed = True
            raise TransferFailureError(
                f"Failed to initiate multipart upload for {self._object_id}"
            ) from exc

        self._upload_id = upload.upload_id
        self._parts = []

    def _upload_part(self, block: bytes, *, is_last: bool) -> None:
        if self._upload_id is None:
            self._init_upload()
        assert self._upload_id is not None

        part_number = len(self._parts) + 1
        logger.debug(
            "Uploading part %d with length %d for %s",
            part_number,
            len(block),
            self._object_id,
        )
        try:
            part = self._backend.upload_part(
                bucket=self._object_id.bucket,
                object_key=self._object_id.key,
                upload_id=self._upload_id,
                part_number=part_number,
                body=block,
                content_length=len(block),
                is_last=is_last,
            )
        except Exception as exc:
            self._closed = True
            self._abort_upload()
            raise TransferFailureError(
                f"Failed to upload part {part_number} for {self._object_id}"
            ) from exc

        self._parts.append(part)
        metrics.PARTS_UPLOADED.inc()
        metrics.BYTES_UPLOADED.labels(strategy="multipart").inc(len(block))
        logger.debug(
            "Uploaded part %d with length %d for %s: %s",
            part.part_number,
            len(block),
            self._object_id,
            part.etag,
        )

    def _complete_upload(self) -> None:
        assert self._upload_id is not None
        part_count = len(self._parts)
        logger.debug(
            "Completing upload to %s consisting of %d parts",
            self._object_id,
            part_count,
        )
        try:
            self._backend.complete_multipart_upload(
                bucket=self._object_id.bucket,
                object_key=self._object_id.key,
                upload_id=self._upload_id,
                parts=list(self._parts),
            )
        except Exception as exc:
            self._abort_upload()
            raise TransferFailureError(
                f"Failed to complete multipart upload for {self._object_id}"
            ) from exc

        logger.debug(
            "Completed upload to %s consisting of %d parts",
            self._object_id,
            part_count,
        )
        self._upload_id = None
        self._parts = []

    def _abort_upload(self) -> None:
        """Best-effort abort; a failure is logged and otherwise ignored."""
        upload_id = self._upload_id
        if upload_id is None:
            return
        logger.debug("Aborting multipart upload %s for %s", upload_id, self._object_id)
        metrics.MULTIPART_ABORTS.inc()
        try:
            self._backend.abort_multipart_upload(
                bucket=self._object_id.bucket,
                object_key=self._object_id.key,
                upload_id=upload_id,
            )
        except Exception as exc:
            logger.warning(
                "Failed to abort multipart upload %s: %s",
                upload_id,
                exc,
                extra={"extra": {"object": str(self._object_id), "upload_id": upload_id}},
            )
        finally:
            self._upload_id = None
            self._parts = []

    def _put_object(self) -> None:
        body = bytes(self._buffer)
        try:
            self._backend.put_object(
                bucket=self._object_id.bucket,
                object_key=self._object_id.key,
                body=body,
                content_length=len(body),
                content_type=self._content_type,
                metadata=self._metadata,
                storage_class=self._storage_class,
            )
        except Exception as exc:
            raise TransferFailureError(
                f"Failed to put data into {self._object_id}"
            ) from exc

        metrics.BYTES_UPLOADED.labels(strategy="put").inc(len(body))
