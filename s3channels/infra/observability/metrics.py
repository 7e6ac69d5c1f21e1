from prometheus_client import Counter, Histogram, start_http_server

# Labels stay low-cardinality: strategy/channel names only, never object keys.
BYTES_UPLOADED = Counter(
    "s3channels_bytes_uploaded_total",
    "Bytes sent to the object store",
    ["strategy"],
)

PARTS_UPLOADED = Counter(
    "s3channels_parts_uploaded_total",
    "Multipart upload parts sent by buffered writers",
)

MULTIPART_ABORTS = Counter(
    "s3channels_multipart_aborts_total",
    "Multipart uploads aborted after a failure",
)

BYTES_DOWNLOADED = Counter(
    "s3channels_bytes_downloaded_total",
    "Bytes fetched from the object store",
    ["channel"],
)

SYNC_LATENCY = Histogram(
    "s3channels_sync_duration_seconds",
    "Mirrored channel synchronisation latency in seconds",
    ["strategy"],
)


def start_metrics_server(port: int) -> None:
    """Expose the default registry over HTTP on ``port``."""
    start_http_server(int(port))
