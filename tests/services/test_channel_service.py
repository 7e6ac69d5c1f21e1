"""Tests for ChannelService."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from s3channels.channels.mirrored import MirroredRandomAccessChannel
from s3channels.channels.multipart_writer import BufferedMultipartWriter
from s3channels.channels.options import OpenOption
from s3channels.channels.range_reader import RangeReadChannel
from s3channels.common.config import Settings
from s3channels.common.errors import TransferFailureError
from s3channels.infra.storage.client import ObjectId
from s3channels.infra.storage.s3_client import S3StorageClient
from s3channels.services.channel_service import ChannelService, ServiceConfigurationError
from tests.channels.mock_storage import MockStorageClient


@pytest.fixture()
def settings(tmp_path):
    return Settings(
        S3_BUCKET="assets",
        S3_STORAGE_CLASS="STANDARD_IA",
        CHANNEL_TEMP_DIR=str(tmp_path),
        CHANNEL_DETECT_CONTENT_TYPE=False,
    )


@pytest.fixture()
def backend():
    return MockStorageClient()


@pytest.fixture()
def service(backend, settings):
    return ChannelService(backend=backend, settings=settings)


class TestConfiguration:
    def test_requires_bucket(self, backend):
        with pytest.raises(ServiceConfigurationError, match="S3_BUCKET"):
            ChannelService(backend=backend, settings=Settings())

    def test_requires_complete_credentials(self):
        settings = Settings(S3_BUCKET="assets", S3_ACCESS_KEY_ID="only-key")

        with pytest.raises(ServiceConfigurationError, match="must be set together"):
            ChannelService(settings=settings)

    def test_builds_s3_backend(self):
        settings = Settings(
            S3_BUCKET="assets", S3_ACCESS_KEY_ID="key", S3_SECRET_ACCESS_KEY="secret"
        )

        with patch.object(S3StorageClient, "_build_client") as build_client:
            service = ChannelService(settings=settings)

        assert isinstance(service.backend, S3StorageClient)
        build_client.assert_called_once_with(settings)

    def test_explicit_bucket_overrides_settings(self, backend, settings):
        service = ChannelService(backend=backend, settings=settings, bucket="other")

        assert service.object_id("/a/b") == ObjectId(bucket="other", key="a/b")

    def test_empty_key_rejected(self, service):
        with pytest.raises(ValueError):
            service.object_id("/")


class TestOpening:
    def test_open_writer(self, service, backend):
        writer = service.open_writer("out/data.csv", content_type="text/csv")

        assert isinstance(writer, BufferedMultipartWriter)
        writer.write(b"a,b\n")
        writer.close()

        put = backend.calls_of("put_object")[0]
        assert put["storage_class"] == "STANDARD_IA"
        assert put["content_type"] == "text/csv"
        assert backend.get_data("assets", "out/data.csv") == b"a,b\n"

    def test_open_reader(self, service, backend):
        backend.set_object("assets", "in/data.bin", b"0123456789")

        with service.open_reader("in/data.bin", position=3) as reader:
            assert isinstance(reader, RangeReadChannel)
            assert reader.read(4) == b"3456"

    def test_open_channel_uses_settings(self, service, backend, tmp_path):
        with service.open_channel(
            "doc.txt", {OpenOption.WRITE, OpenOption.CREATE}
        ) as channel:
            assert isinstance(channel, MirroredRandomAccessChannel)
            assert channel.mirror_path.startswith(str(tmp_path))
            channel.write(b"text")

        assert backend.calls_of("put_object")[0]["content_type"] is None
        assert backend.get_data("assets", "doc.txt") == b"text"

    def test_exists_and_delete(self, service, backend):
        backend.set_object("assets", "k", b"v")

        assert service.exists("k") is True
        service.delete("k")
        assert service.exists("k") is False

    def test_probe_failure_is_transfer_failure(self, service, backend):
        backend.fail_on.add("head_object")

        with pytest.raises(TransferFailureError):
            service.exists("k")


class TestMetricsServer:
    def test_not_started_without_port(self, service):
        assert service.start_metrics_server() is False

    def test_started_with_port(self, backend, settings):
        settings.METRICS_PORT = 9400
        service = ChannelService(backend=backend, settings=settings)

        with patch(
            "s3channels.services.channel_service.start_metrics_server"
        ) as start:
            assert service.start_metrics_server() is True

        start.assert_called_once_with(9400)

    def test_disabled_metrics(self, backend, settings):
        settings.METRICS_PORT = 9400
        settings.ENABLE_METRICS = False
        service = ChannelService(backend=backend, settings=settings)

        assert service.start_metrics_server() is False
