"""Object storage abstraction layer.

This module provides a protocol-based abstraction for the object store
capabilities the channels build on, with an S3-compatible implementation.
"""

from .client import (
    CompletedPart,
    MultipartUpload,
    ObjectHead,
    ObjectId,
    PutResult,
    StorageError,
    TransferBackend,
)

__all__ = [
    "CompletedPart",
    "MultipartUpload",
    "ObjectHead",
    "ObjectId",
    "PutResult",
    "StorageError",
    "TransferBackend",
]
