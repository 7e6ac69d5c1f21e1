"""Random-access channel backed by a local mirror of the remote object.

On open the remote object is downloaded into a temporary file (unless it is
absent or being truncated); every read, write, seek and truncate then goes to
that file. On close the mirror is uploaded back as a whole, with a single PUT
for small files and a parallel multipart upload above
``PARALLEL_UPLOAD_THRESHOLD``. The temporary file is removed on every exit
path.
"""

from __future__ import annotations

import contextlib
import io
import logging
import os
import posixpath
import shutil
import tempfile
from concurrent.futures import CancelledError
from datetime import datetime
from types import TracebackType
from typing import Iterable, Mapping

from s3channels.channels.attributes import set_metadata_times
from s3channels.channels.content_type import detect_file_content_type
from s3channels.channels.options import (
    PARALLEL_UPLOAD_THRESHOLD,
    PARALLEL_UPLOAD_WORKERS,
    OpenOption,
    is_read_only,
    normalize_options,
)
from s3channels.common.errors import (
    AlreadyClosedError,
    AlreadyExistsError,
    InterruptedTransferError,
    NotFoundError,
    TransferFailureError,
)
from s3channels.infra.observability import metrics
from s3channels.infra.storage.client import ObjectId, PutResult, TransferBackend

logger = logging.getLogger(__name__)

MIRROR_PREFIX = "s3channels-"
_COPY_CHUNK = 1024 * 1024


def _local_open_params(options: frozenset[OpenOption]) -> tuple[int, str]:
    """Translate open options into ``os.open`` flags and a ``FileIO`` mode."""
    readable = OpenOption.READ in options
    appending = OpenOption.APPEND in options
    writable = appending or OpenOption.WRITE in options
    if not writable:
        readable = True

    if readable and writable:
        flags, mode = os.O_RDWR, "a+" if appending else "r+"
    elif writable:
        flags, mode = os.O_WRONLY, "a" if appending else "w"
    else:
        flags, mode = os.O_RDONLY, "r"

    if appending:
        flags |= os.O_APPEND
    if writable and OpenOption.TRUNCATE_EXISTING in options:
        flags |= os.O_TRUNC
    return flags | getattr(os, "O_BINARY", 0), mode


class MirroredRandomAccessChannel:
    """Read/write/seek channel over a remote object, synchronised on close.

    Not safe for concurrent use of one instance from several threads.
    """

    PARALLEL_UPLOAD_THRESHOLD = PARALLEL_UPLOAD_THRESHOLD
    PARALLEL_UPLOAD_WORKERS = PARALLEL_UPLOAD_WORKERS

    def __init__(
        self,
        backend: TransferBackend,
        object_id: ObjectId,
        options: Iterable[OpenOption] | None = None,
        *,
        metadata: Mapping[str, str] | None = None,
        temp_dir: str | None = None,
        detect_content_type: bool = True,
        last_modified: datetime | None = None,
    ) -> None:
        self._backend = backend
        self._object_id = object_id
        self._options = normalize_options(options)
        self._metadata = dict(metadata or {})
        self._detect_content_type = detect_content_type
        self.last_modified = last_modified
        self.put_result: PutResult | None = None

        exists = False
        if OpenOption.TRUNCATE_EXISTING not in self._options:
            exists = self._probe_exists()
            if exists and OpenOption.CREATE_NEW in self._options:
                raise AlreadyExistsError(f"target already exists: {object_id}")
            if not exists and not (
                self._options & {OpenOption.CREATE, OpenOption.CREATE_NEW}
            ):
                raise NotFoundError(f"target does not exist: {object_id}")

        fd, self._mirror_path = tempfile.mkstemp(prefix=MIRROR_PREFIX, dir=temp_dir)
        os.close(fd)
        try:
            if exists:
                self._download()
            flags, mode = _local_open_params(self._options - {OpenOption.CREATE_NEW})
            self._local = io.FileIO(os.open(self._mirror_path, flags), mode, closefd=True)
        except BaseException:
            self._remove_mirror()
            raise

    @property
    def object_id(self) -> ObjectId:
        return self._object_id

    @property
    def options(self) -> frozenset[OpenOption]:
        return self._options

    @property
    def mirror_path(self) -> str:
        return self._mirror_path

    @property
    def is_open(self) -> bool:
        return not self._local.closed

    @property
    def closed(self) -> bool:
        return self._local.closed

    def _probe_exists(self) -> bool:
        try:
            head = self._backend.head_object(
                bucket=self._object_id.bucket, object_key=self._object_id.key
            )
        except Exception as exc:
            raise TransferFailureError(
                f"Failed to probe {self._object_id}"
            ) from exc
        return head.exists

    def _download(self) -> None:
        logger.debug("Mirroring %s into %s", self._object_id, self._mirror_path)
        try:
            stream = self._backend.get_object(
                bucket=self._object_id.bucket, object_key=self._object_id.key
            )
            with contextlib.closing(stream), open(self._mirror_path, "wb") as fh:
                shutil.copyfileobj(stream, fh, _COPY_CHUNK)
                downloaded = fh.tell()
        except Exception as exc:
            raise TransferFailureError(
                f"Failed to download {self._object_id}"
            ) from exc
        metrics.BYTES_DOWNLOADED.labels(channel="mirrored").inc(downloaded)

    def _remove_mirror(self) -> None:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(self._mirror_path)

    def _check_open(self) -> None:
        if self._local.closed:
            raise AlreadyClosedError(f"Already closed: {self._object_id}")

    # --- delegated file operations ---

    def readable(self) -> bool:
        self._check_open()
        return self._local.readable()

    def writable(self) -> bool:
        self._check_open()
        return self._local.writable()

    def seekable(self) -> bool:
        return True

    def read(self, size: int = -1) -> bytes:
        self._check_open()
        return self._local.read(size)

    def readinto(self, buffer: bytearray | memoryview) -> int:
        self._check_open()
        return self._local.readinto(buffer)

    def write(self, data: bytes | bytearray | memoryview) -> int:
        self._check_open()
        return self._local.write(data)

    def truncate(self, size: int | None = None) -> int:
        self._check_open()
        return self._local.truncate(size)

    def size(self) -> int:
        self._check_open()
        return os.fstat(self._local.fileno()).st_size

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        self._check_open()
        return self._local.seek(offset, whence)

    def tell(self) -> int:
        self._check_open()
        return self._local.tell()

    @property
    def position(self) -> int:
        return self.tell()

    @position.setter
    def position(self, new_position: int) -> None:
        self.seek(new_position)

    # --- close and synchronisation ---

    def close(self) -> None:
        """Close the mirror and push it back to the store when it may have changed."""
        if self._local.closed:
            return
        try:
            self._local.close()

            if OpenOption.DELETE_ON_CLOSE in self._options:
                self._delete_remote()
                return

            if is_read_only(self._options):
                return

            self._sync()
        finally:
            self._remove_mirror()

    def _delete_remote(self) -> None:
        try:
            self._backend.delete_object(
                bucket=self._object_id.bucket, object_key=self._object_id.key
            )
        except Exception as exc:
            raise TransferFailureError(
                f"Failed to delete {self._object_id}"
            ) from exc

    def _sync_metadata(self) -> dict[str, str]:
        metadata = dict(self._metadata)
        if self.last_modified is not None:
            set_metadata_times(metadata, last_modified=self.last_modified)
        return metadata

    def _sync(self) -> None:
        """Upload the full mirror content to the remote object."""
        size = os.path.getsize(self._mirror_path)
        metadata = self._sync_metadata()
        content_type = None
        if self._detect_content_type:
            content_type = detect_file_content_type(
                self._mirror_path, posixpath.basename(self._object_id.key)
            )

        if size > self.PARALLEL_UPLOAD_THRESHOLD:
            strategy = "parallel"
            logger.debug(
                "Synchronising %d bytes to %s with %d workers",
                size,
                self._object_id,
                self.PARALLEL_UPLOAD_WORKERS,
            )
            with metrics.SYNC_LATENCY.labels(strategy=strategy).time():
                self._parallel_upload(content_type, metadata)
        else:
            strategy = "put"
            logger.debug("Synchronising %d bytes to %s with a single PUT", size, self._object_id)
            with metrics.SYNC_LATENCY.labels(strategy=strategy).time():
                self._put(size, content_type, metadata)

        metrics.BYTES_UPLOADED.labels(strategy=strategy).inc(size)

    def _parallel_upload(self, content_type: str | None, metadata: dict[str, str]) -> None:
        try:
            self._backend.parallel_upload(
                bucket=self._object_id.bucket,
                object_key=self._object_id.key,
                path=self._mirror_path,
                workers=self.PARALLEL_UPLOAD_WORKERS,
                content_type=content_type,
                metadata=metadata,
            )
        except (KeyboardInterrupt, CancelledError) as exc:
            raise InterruptedTransferError(
                f"Interrupted while uploading {self._object_id}"
            ) from exc
        except Exception as exc:
            raise TransferFailureError(
                f"Failed to upload {self._object_id}"
            ) from exc

    def _put(self, size: int, content_type: str | None, metadata: dict[str, str]) -> None:
        try:
            with open(self._mirror_path, "rb") as fh:
                self.put_result = self._backend.put_object(
                    bucket=self._object_id.bucket,
                    object_key=self._object_id.key,
                    body=fh,
                    content_length=size,
                    content_type=content_type,
                    metadata=metadata,
                )
        except Exception as exc:
            raise TransferFailureError(
                f"Failed to put data into {self._object_id}"
            ) from exc

    def __enter__(self) -> "MirroredRandomAccessChannel":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()
