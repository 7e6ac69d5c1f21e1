"""Transfer backend protocol and data types.

This module defines the capability set the channel layer needs from an
object store: whole-object PUT/GET/HEAD, the multipart upload protocol and
a parallel bulk upload of a local file.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from os import PathLike
from typing import BinaryIO, Mapping, Protocol, Sequence


class StorageError(RuntimeError):
    """Raised when object storage operations fail."""


@dataclass(frozen=True, slots=True)
class ObjectId:
    """Identifies a remote object by container (bucket) and key."""

    bucket: str
    key: str

    def __str__(self) -> str:
        return f"s3://{self.bucket}/{self.key}"


@dataclass(frozen=True, slots=True)
class CompletedPart:
    """Represents a completed part in a multipart upload."""

    part_number: int
    etag: str


@dataclass(frozen=True, slots=True)
class MultipartUpload:
    """Result of initiating a multipart upload."""

    upload_id: str
    bucket: str
    object_key: str


@dataclass(frozen=True, slots=True)
class ObjectHead:
    """Metadata from a HEAD object request."""

    exists: bool
    size_bytes: int | None = None
    etag: str | None = None
    content_type: str | None = None
    metadata: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class PutResult:
    """Result of a whole-object PUT."""

    etag: str | None
    version_id: str | None = None


class TransferBackend(Protocol):
    """Protocol defining the object store capabilities used by channels.

    Implementations are shared across channels and must be reentrant.
    Every failing call raises :class:`StorageError`.
    """

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
        """Store ``content_length`` bytes from ``body`` as a whole object."""
        ...

    def get_object(
        self,
        *,
        bucket: str,
        object_key: str,
        byte_range: tuple[int, int] | None = None,
    ) -> BinaryIO:
        """Open a stream over the object, or over ``[start, end)`` of it.

        A range starting at or beyond the end of the object yields an empty
        stream. Callers must close the returned stream.
        """
        ...

    def head_object(self, *, bucket: str, object_key: str) -> ObjectHead:
        """Probe existence and metadata. A missing object is not an error."""
        ...

    def delete_object(self, *, bucket: str, object_key: str) -> None:
        ...

    def init_multipart_upload(
        self,
        *,
        bucket: str,
        object_key: str,
        content_type: str | None = None,
        metadata: Mapping[str, str] | None = None,
        storage_class: str | None = None,
    ) -> MultipartUpload:
        ...

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
        """Upload one part. Part numbers are 1-based, max 10000."""
        ...

    def complete_multipart_upload(
        self,
        *,
        bucket: str,
        object_key: str,
        upload_id: str,
        parts: Sequence[CompletedPart],
    ) -> None:
        ...

    def abort_multipart_upload(
        self,
        *,
        bucket: str,
        object_key: str,
        upload_id: str,
    ) -> None:
        ...

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
        """Upload a local file using ``workers`` concurrent part uploads.

        Blocks until every part has been uploaded and the object assembled.
        The worker pool lives only for the duration of the call.
        """
        ...
