"""Command line entry point.

Usage:
  s3channels upload ./local.bin path/in/bucket
  s3channels download path/in/bucket ./local.bin
  s3channels read-range path/in/bucket --offset 1024 --length 64
"""

from __future__ import annotations

import argparse
import shutil
import sys
from typing import Sequence

from s3channels.channels.options import OpenOption
from s3channels.common.config import get_settings
from s3channels.common.errors import ChannelError
from s3channels.common.logging import setup_logging
from s3channels.services.channel_service import ChannelService

COPY_CHUNK = 1024 * 1024


def upload(service: ChannelService, source: str, key: str) -> int:
    total = 0
    with open(source, "rb") as fh, service.open_writer(key) as writer:
        while chunk := fh.read(COPY_CHUNK):
            total += writer.write(chunk)
    return total


def download(service: ChannelService, key: str, target: str) -> int:
    with service.open_channel(key, {OpenOption.READ}) as channel, open(target, "wb") as fh:
        shutil.copyfileobj(channel, fh, COPY_CHUNK)
        return fh.tell()


def read_range(service: ChannelService, key: str, offset: int, length: int) -> bytes:
    with service.open_reader(key, position=offset) as reader:
        return reader.read(length)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="s3channels", description="Move data through object store channels"
    )
    parser.add_argument("--bucket", default=None, help="Bucket (default: S3_BUCKET)")
    commands = parser.add_subparsers(dest="command", required=True)

    upload_cmd = commands.add_parser("upload", help="Stream a local file to an object")
    upload_cmd.add_argument("source")
    upload_cmd.add_argument("key")

    download_cmd = commands.add_parser("download", help="Copy an object to a local file")
    download_cmd.add_argument("key")
    download_cmd.add_argument("target")

    range_cmd = commands.add_parser("read-range", help="Print a byte range of an object")
    range_cmd.add_argument("key")
    range_cmd.add_argument("--offset", type=int, default=0)
    range_cmd.add_argument("--length", type=int, required=True)
    return parser


def main(argv: Sequence[str] | None = None, *, service: ChannelService | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)
    service = service or ChannelService(settings=settings, bucket=args.bucket)
    service.start_metrics_server()

    try:
        if args.command == "upload":
            count = upload(service, args.source, args.key)
            print(f"Uploaded {count} bytes to {service.object_id(args.key)}")
        elif args.command == "download":
            count = download(service, args.key, args.target)
            print(f"Downloaded {count} bytes from {service.object_id(args.key)}")
        else:
            sys.stdout.buffer.write(read_range(service, args.key, args.offset, args.length))
            sys.stdout.buffer.flush()
    except ChannelError as exc:
        print(f"error ({exc.kind.value}): {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
