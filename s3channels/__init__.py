"""s3channels - file-like channels over S3-compatible object storage."""

from .channels import (
    BufferedMultipartWriter,
    MirroredRandomAccessChannel,
    OpenOption,
    RangeReadChannel,
)
from .common.errors import (
    AlreadyClosedError,
    AlreadyExistsError,
    ChannelError,
    ErrorKind,
    InterruptedTransferError,
    NotFoundError,
    PartLimitExceededError,
    TransferFailureError,
    UnsupportedChannelOperation,
)
from .infra.storage import ObjectId, StorageError, TransferBackend
from .services import ChannelService, ServiceConfigurationError

__version__ = "0.1.0"

__all__ = [
    "AlreadyClosedError",
    "AlreadyExistsError",
    "BufferedMultipartWriter",
    "ChannelError",
    "ChannelService",
    "ErrorKind",
    "InterruptedTransferError",
    "MirroredRandomAccessChannel",
    "NotFoundError",
    "ObjectId",
    "OpenOption",
    "PartLimitExceededError",
    "RangeReadChannel",
    "ServiceConfigurationError",
    "StorageError",
    "TransferBackend",
    "TransferFailureError",
    "UnsupportedChannelOperation",
]
