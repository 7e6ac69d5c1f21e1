"""Error taxonomy for the channel layer.

Every channel failure is a :class:`ChannelError` carrying an :class:`ErrorKind`.
Callers that only care about the category can branch on ``exc.kind``; the
subclasses additionally derive from the matching builtin so that ordinary
``except FileNotFoundError`` style handling keeps working.
"""

from __future__ import annotations

import enum
import io


class ErrorKind(str, enum.Enum):
    ALREADY_EXISTS = "already_exists"
    NOT_FOUND = "not_found"
    ALREADY_CLOSED = "already_closed"
    PART_LIMIT_EXCEEDED = "part_limit_exceeded"
    TRANSFER_FAILURE = "transfer_failure"
    INTERRUPTED_TRANSFER = "interrupted_transfer"
    UNSUPPORTED_OPERATION = "unsupported_operation"


class ChannelError(OSError):
    """Base class for channel layer failures."""

    kind: ErrorKind

    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        super().__init__(message)
        if cause is not None:
            self.__cause__ = cause

    @property
    def cause(self) -> BaseException | None:
        return self.__cause__

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else self.kind.value


class AlreadyExistsError(ChannelError, FileExistsError):
    """Raised when CREATE_NEW is requested and the target object exists."""

    kind = ErrorKind.ALREADY_EXISTS


class NotFoundError(ChannelError, FileNotFoundError):
    """Raised when the target is absent and neither CREATE nor CREATE_NEW was requested."""

    kind = ErrorKind.NOT_FOUND


class AlreadyClosedError(ChannelError):
    kind = ErrorKind.ALREADY_CLOSED


class PartLimitExceededError(ChannelError):
    kind = ErrorKind.PART_LIMIT_EXCEEDED


class TransferFailureError(ChannelError):
    """Raised when a PUT, part upload, completion or download call failed."""

    kind = ErrorKind.TRANSFER_FAILURE


class InterruptedTransferError(ChannelError):
    """Raised when waiting on a parallel upload was interrupted."""

    kind = ErrorKind.INTERRUPTED_TRANSFER


class UnsupportedChannelOperation(ChannelError, io.UnsupportedOperation):
    kind = ErrorKind.UNSUPPORTED_OPERATION
