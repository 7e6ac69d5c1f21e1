"""Read-only channel issuing one ranged GET per read call."""

from __future__ import annotations

import contextlib
import logging
import os
from types import TracebackType

from s3channels.common.errors import (
    AlreadyClosedError,
    TransferFailureError,
    UnsupportedChannelOperation,
)
from s3channels.infra.observability import metrics
from s3channels.infra.storage.client import ObjectId, TransferBackend

logger = logging.getLogger(__name__)

DEFAULT_READ_SIZE = 1024 * 1024


class RangeReadChannel:
    """Sparse reader over a remote object; nothing is stored locally.

    Seeking is lazy: it only moves the cursor, the next read fetches
    ``[position, position + len(buffer))``.
    """

    def __init__(
        self,
        backend: TransferBackend,
        object_id: ObjectId,
        *,
        position: int = 0,
    ) -> None:
        if position < 0:
            raise ValueError("position must not be negative")
        self._backend = backend
        self._object_id = object_id
        self._position = position
        self._closed = False

    @property
    def object_id(self) -> ObjectId:
        return self._object_id

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def is_open(self) -> bool:
        return not self._closed

    def readable(self) -> bool:
        return True

    def writable(self) -> bool:
        return False

    def seekable(self) -> bool:
        return True

    def _check_open(self) -> None:
        if self._closed:
            raise AlreadyClosedError(f"Already closed: {self._object_id}")

    def readinto(self, buffer: bytearray | memoryview) -> int:
        """Fill ``buffer`` from the current position; return the byte count, 0 at end of object."""
        self._check_open()
        view = memoryview(buffer).cast("B")
        capacity = view.nbytes
        if capacity == 0:
            return 0

        start = self._position
        logger.debug("Range GET [%d, %d) of %s", start, start + capacity, self._object_id)
        try:
            stream = self._backend.get_object(
                bucket=self._object_id.bucket,
                object_key=self._object_id.key,
                byte_range=(start, start + capacity),
            )
            index = 0
            with contextlib.closing(stream):
                # Network streams return short reads; keep going until full or drained.
                while index < capacity:
                    chunk = stream.read(capacity - index)
                    if not chunk:
                        break
                    view[index : index + len(chunk)] = chunk
                    index += len(chunk)
                    self._position += len(chunk)
        except Exception as exc:
            raise TransferFailureError(
                f"Failed to read range of {self._object_id}"
            ) from exc

        metrics.BYTES_DOWNLOADED.labels(channel="range").inc(index)
        return index

    def read(self, size: int = -1) -> bytes:
        """Read up to ``size`` bytes, or everything up to the end of the object."""
        if size is not None and size >= 0:
            buffer = bytearray(size)
            count = self.readinto(buffer)
            return bytes(buffer[:count])

        chunks = []
        buffer = bytearray(DEFAULT_READ_SIZE)
        while True:
            count = self.readinto(buffer)
            if count == 0:
                break
            chunks.append(bytes(buffer[:count]))
        return b"".join(chunks)

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        self._check_open()
        if whence == os.SEEK_SET:
            new_position = offset
        elif whence == os.SEEK_CUR:
            new_position = self._position + offset
        else:
            raise UnsupportedChannelOperation(
                "seeking relative to the end requires the object size"
            )
        if new_position < 0:
            raise ValueError("position must not be negative")
        self._position = new_position
        return new_position

    def tell(self) -> int:
        self._check_open()
        return self._position

    @property
    def position(self) -> int:
        return self.tell()

    @position.setter
    def position(self, new_position: int) -> None:
        self.seek(new_position)

    def write(self, data: bytes) -> int:
        raise UnsupportedChannelOperation("range read channels are read-only")

    def truncate(self, size: int | None = None) -> int:
        raise UnsupportedChannelOperation("range read channels are read-only")

    def size(self) -> int:
        raise UnsupportedChannelOperation("object size is not available on range read channels")

    def close(self) -> None:
        self._closed = True

    def __enter__(self) -> "RangeReadChannel":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()
