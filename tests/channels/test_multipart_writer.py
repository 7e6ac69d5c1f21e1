"""Tests for BufferedMultipartWriter."""

from __future__ import annotations

import logging
import os
import random
import threading

import pytest

from s3channels.channels.multipart_writer import BufferedMultipartWriter
from s3channels.common.errors import (
    AlreadyClosedError,
    ErrorKind,
    PartLimitExceededError,
    TransferFailureError,
)
from s3channels.infra.storage.client import ObjectId
from tests.channels.mock_storage import MockStorageClient

BUCKET = "test-bucket"
KEY = "dir/object.bin"


@pytest.fixture()
def backend():
    return MockStorageClient()


@pytest.fixture()
def object_id():
    return ObjectId(bucket=BUCKET, key=KEY)


@pytest.fixture()
def writer(backend, object_id):
    return BufferedMultipartWriter(backend, object_id)


@pytest.fixture()
def small_parts(monkeypatch):
    """Shrink the part size so multipart behaviour is cheap to exercise."""
    monkeypatch.setattr(BufferedMultipartWriter, "MIN_PART_SIZE", 4)


def _uploaded_parts(backend):
    return sorted(backend.calls_of("upload_part"), key=lambda c: c["part_number"])


class TestSmallObjects:
    def test_open_and_close_produces_empty_object(self, writer, backend):
        writer.close()

        puts = backend.calls_of("put_object")
        assert len(puts) == 1
        assert puts[0]["content_length"] == 0
        assert puts[0]["body"] == b""
        assert backend.get_data(BUCKET, KEY) == b""

    def test_zero_length_write_is_noop(self, writer, backend):
        assert writer.write(b"") == 0
        writer.close()

        assert backend.call_names() == ["put_object"]
        assert backend.get_data(BUCKET, KEY) == b""

    def test_small_data_uses_put_object(self, writer, backend):
        data = os.urandom(64)
        writer.write(data[:10])
        writer.write(data[10:])
        writer.close()

        assert backend.call_names() == ["put_object"]
        put = backend.calls_of("put_object")[0]
        assert put["content_length"] == 64
        assert put["body"] == data

    def test_accepts_bytearray_and_memoryview(self, writer, backend):
        writer.write(bytearray(b"abc"))
        writer.write(memoryview(b"def"))
        writer.close()

        assert backend.get_data(BUCKET, KEY) == b"abcdef"

    def test_metadata_forwarded_to_put(self, backend, object_id):
        writer = BufferedMultipartWriter(
            backend,
            object_id,
            content_type="text/plain",
            metadata={"owner": "u1"},
            storage_class="STANDARD_IA",
        )
        writer.write(b"hello")
        writer.close()

        put = backend.calls_of("put_object")[0]
        assert put["content_type"] == "text/plain"
        assert put["metadata"] == {"owner": "u1"}
        assert put["storage_class"] == "STANDARD_IA"


class TestMultipart:
    def test_big_data_uses_multipart_upload(self, writer, backend):
        six_mib = 6 * 1024 * 1024
        three_mib = 3 * 1024 * 1024
        data = os.urandom(six_mib)

        writer.write(data[:three_mib])
        writer.write(data[three_mib:])
        writer.close()

        parts = _uploaded_parts(backend)
        assert [p["part_number"] for p in parts] == [1, 2]
        assert parts[0]["body"] == data
        assert parts[0]["is_last"] is False
        assert parts[1]["body"] == b""
        assert parts[1]["is_last"] is True
        assert "put_object" not in backend.call_names()
        assert backend.call_names()[-1] == "complete_multipart_upload"
        assert backend.get_data(BUCKET, KEY) == data

    def test_arbitrary_chunks_reassemble(self, writer, backend, small_parts):
        rng = random.Random(7)
        data = bytes(rng.getrandbits(8) for _ in range(157))
        offset = 0
        while offset < len(data):
            size = rng.randint(1, 9)
            writer.write(data[offset : offset + size])
            offset += size
        writer.close()

        parts = _uploaded_parts(backend)
        assert [p["part_number"] for p in parts] == list(range(1, len(parts) + 1))
        assert b"".join(p["body"] for p in parts) == data
        assert all(len(p["body"]) >= 4 for p in parts[:-1])
        assert [p["is_last"] for p in parts] == [False] * (len(parts) - 1) + [True]

        completes = backend.calls_of("complete_multipart_upload")
        assert len(completes) == 1
        assert backend.call_names()[-1] == "complete_multipart_upload"
        assert [p.part_number for p in completes[0]["parts"]] == list(
            range(1, len(parts) + 1)
        )
        assert backend.get_data(BUCKET, KEY) == data

    def test_upload_initiated_lazily_with_metadata(self, backend, object_id, small_parts):
        writer = BufferedMultipartWriter(
            backend, object_id, content_type="application/x-test", metadata={"a": "b"}
        )
        writer.write(b"ab")
        assert backend.calls == []

        writer.write(b"cd")
        init = backend.calls_of("init_multipart_upload")
        assert len(init) == 1
        assert init[0]["content_type"] == "application/x-test"
        assert init[0]["metadata"] == {"a": "b"}
        assert writer.part_count == 1
        assert writer.upload_id == "mock-upload-1"

        writer.close()
        assert writer.upload_id is None

    def test_concurrent_writes_number_parts_in_order(self, backend, object_id, monkeypatch):
        monkeypatch.setattr(BufferedMultipartWriter, "MIN_PART_SIZE", 8)
        writer = BufferedMultipartWriter(backend, object_id)
        blocks = [bytes([i]) * 8 for i in range(40)]

        def worker(chunk):
            for block in chunk:
                writer.write(block)

        threads = [threading.Thread(target=worker, args=(blocks[i::4],)) for i in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        writer.close()

        parts = backend.calls_of("upload_part")
        assert [p["part_number"] for p in parts] == list(range(1, 42))
        assert sorted(p["body"] for p in parts[:-1]) == sorted(blocks)
        assert parts[-1]["body"] == b"" and parts[-1]["is_last"] is True


class TestPartLimit:
    def test_exceeding_part_limit_aborts(self, writer, backend, small_parts, monkeypatch):
        monkeypatch.setattr(BufferedMultipartWriter, "MAX_PARTS", 3)
        for _ in range(3):
            writer.write(b"1234")

        with pytest.raises(PartLimitExceededError) as excinfo:
            writer.write(b"5678")

        assert excinfo.value.kind is ErrorKind.PART_LIMIT_EXCEEDED
        assert len(backend.calls_of("abort_multipart_upload")) == 1
        assert backend.calls_of("complete_multipart_upload") == []
        assert backend.uploads["mock-upload-1"]["aborted"] is True
        assert backend.get_data(BUCKET, KEY) is None
        assert writer.closed

        with pytest.raises(AlreadyClosedError):
            writer.write(b"x")

    def test_close_at_part_limit_completes_without_extra_part(
        self, writer, backend, small_parts, monkeypatch
    ):
        monkeypatch.setattr(BufferedMultipartWriter, "MAX_PARTS", 2)
        writer.write(b"aaaa")
        writer.write(b"bbbb")
        writer.close()

        assert len(backend.calls_of("upload_part")) == 2
        assert len(backend.calls_of("complete_multipart_upload")) == 1
        assert backend.get_data(BUCKET, KEY) == b"aaaabbbb"


class TestFailures:
    def test_failed_part_upload_aborts_and_closes(self, writer, backend, small_parts):
        backend.fail_part_number = 2
        writer.write(b"1234")

        with pytest.raises(TransferFailureError) as excinfo:
            writer.write(b"5678")

        assert excinfo.value.kind is ErrorKind.TRANSFER_FAILURE
        assert excinfo.value.cause is not None
        assert backend.uploads["mock-upload-1"]["aborted"] is True
        assert backend.calls_of("complete_multipart_upload") == []
        assert writer.closed

        with pytest.raises(AlreadyClosedError):
            writer.write(b"more")
        writer.close()
        assert backend.calls_of("complete_multipart_upload") == []
        assert backend.get_data(BUCKET, KEY) is None

    def test_failed_abort_is_logged_not_raised(self, writer, backend, small_parts, caplog):
        backend.fail_part_number = 1
        backend.fail_on.add("abort_multipart_upload")

        with caplog.at_level(logging.WARNING):
            with pytest.raises(TransferFailureError):
                writer.write(b"1234")

        assert "Failed to abort multipart upload mock-upload-1" in caplog.text

    def test_failed_initiate_closes_writer(self, writer, backend, small_parts):
        backend.fail_on.add("init_multipart_upload")

        with pytest.raises(TransferFailureError):
            writer.write(b"1234")

        assert writer.closed
        assert backend.calls_of("upload_part") == []

    def test_failed_put_surfaces_and_closes(self, writer, backend):
        backend.fail_on.add("put_object")
        writer.write(b"data")

        with pytest.raises(TransferFailureError):
            writer.close()

        assert writer.closed
        writer.close()
        assert len(backend.calls_of("put_object")) == 1

    def test_failed_complete_surfaces_and_aborts(self, writer, backend, small_parts):
        backend.fail_on.add("complete_multipart_upload")
        writer.write(b"12345678")

        with pytest.raises(TransferFailureError):
            writer.close()

        assert writer.closed
        assert backend.uploads["mock-upload-1"]["aborted"] is True
        assert backend.get_data(BUCKET, KEY) is None


class TestLifecycle:
    def test_close_is_idempotent(self, writer, backend):
        writer.write(b"abc")
        writer.close()
        writer.close()

        assert len(backend.calls_of("put_object")) == 1

    def test_write_after_close_fails(self, writer):
        writer.close()

        with pytest.raises(AlreadyClosedError) as excinfo:
            writer.write(b"late")
        assert excinfo.value.kind is ErrorKind.ALREADY_CLOSED

    def test_context_manager_publishes_on_success(self, backend, object_id):
        with BufferedMultipartWriter(backend, object_id) as writer:
            writer.write(b"payload")

        assert backend.get_data(BUCKET, KEY) == b"payload"

    def test_context_manager_discards_on_error(self, backend, object_id, small_parts):
        with pytest.raises(RuntimeError):
            with BufferedMultipartWriter(backend, object_id) as writer:
                writer.write(b"12345")
                raise RuntimeError("boom")

        assert backend.calls_of("put_object") == []
        assert backend.calls_of("complete_multipart_upload") == []
        assert backend.uploads["mock-upload-1"]["aborted"] is True
        assert writer.closed
