"""Logical file timestamps stored as user metadata.

The object store keeps its own ``Last-Modified`` and offers no way to set
it, so timestamps supplied by callers travel as epoch milliseconds in user
metadata.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Mapping, MutableMapping

LAST_MODIFIED_KEY = "s3channels-last-modified"
LAST_ACCESS_KEY = "s3channels-last-access"
CREATE_TIME_KEY = "s3channels-create-time"


def _to_millis(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return str(int(value.timestamp() * 1000))


def _from_millis(value: str | None) -> datetime | None:
    if value is None:
        return None
    try:
        return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)
    except ValueError:
        return None


def set_metadata_times(
    metadata: MutableMapping[str, str],
    *,
    last_modified: datetime | None = None,
    last_access: datetime | None = None,
    create_time: datetime | None = None,
) -> MutableMapping[str, str]:
    """Overwrite the given timestamps in ``metadata`` and return it."""
    if last_modified is not None:
        metadata[LAST_MODIFIED_KEY] = _to_millis(last_modified)
    if last_access is not None:
        metadata[LAST_ACCESS_KEY] = _to_millis(last_access)
    if create_time is not None:
        metadata[CREATE_TIME_KEY] = _to_millis(create_time)
    return metadata


def read_metadata_times(
    metadata: Mapping[str, str],
) -> tuple[datetime | None, datetime | None, datetime | None]:
    """Return ``(last_modified, last_access, create_time)``; unset or invalid is None."""
    return (
        _from_millis(metadata.get(LAST_MODIFIED_KEY)),
        _from_millis(metadata.get(LAST_ACCESS_KEY)),
        _from_millis(metadata.get(CREATE_TIME_KEY)),
    )
