from __future__ import annotations

import enum
from typing import Iterable

MIN_PART_SIZE = 5 * 1024 * 1024
MAX_PARTS = 10_000
PARALLEL_UPLOAD_THRESHOLD = 16 * 1024 * 1024
PARALLEL_UPLOAD_WORKERS = 3


class OpenOption(enum.Enum):
    READ = "read"
    WRITE = "write"
    APPEND = "append"
    CREATE = "create"
    CREATE_NEW = "create_new"
    TRUNCATE_EXISTING = "truncate_existing"
    DELETE_ON_CLOSE = "delete_on_close"


def normalize_options(options: Iterable[OpenOption] | None) -> frozenset[OpenOption]:
    """Freeze an option iterable; an empty set means READ."""
    normalized = frozenset(options or ())
    for option in normalized:
        if not isinstance(option, OpenOption):
            raise TypeError(f"Unsupported open option: {option!r}")
    if not normalized:
        return frozenset({OpenOption.READ})
    return normalized


def is_read_only(options: frozenset[OpenOption]) -> bool:
    return options == frozenset({OpenOption.READ})
