"""File-like channels over remote objects.

- :class:`BufferedMultipartWriter` for write-once sequential output,
- :class:`MirroredRandomAccessChannel` for random access through a local copy,
- :class:`RangeReadChannel` for sparse reads without a local copy.
"""

from .mirrored import MirroredRandomAccessChannel
from .multipart_writer import BufferedMultipartWriter
from .options import (
    MAX_PARTS,
    MIN_PART_SIZE,
    PARALLEL_UPLOAD_THRESHOLD,
    PARALLEL_UPLOAD_WORKERS,
    OpenOption,
)
from .range_reader import RangeReadChannel

__all__ = [
    "BufferedMultipartWriter",
    "MAX_PARTS",
    "MIN_PART_SIZE",
    "MirroredRandomAccessChannel",
    "OpenOption",
    "PARALLEL_UPLOAD_THRESHOLD",
    "PARALLEL_UPLOAD_WORKERS",
    "RangeReadChannel",
]
