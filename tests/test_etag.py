"""Tests for the Qiniu etag content hash."""

import base64
import hashlib

import pytest
from qiniu import etag as sdk_etag

from cdnflow.etag import BLOCK_SIZE, etag_file, qiniu_etag


def _prefix(value: str) -> int:
    return base64.urlsafe_b64decode(value)[0]


class TestQiniuEtag:
    def test_empty_input_matches_known_value(self):
        assert qiniu_etag(b"") == "Fto5o-5ea0sNMlW_75VgGJCv2AcJ"

    def test_small_input_is_prefixed_sha1(self):
        data = b"hello world"
        expected = base64.urlsafe_b64encode(b"\x16" + hashlib.sha1(data).digest()).decode()
        assert qiniu_etag(data) == expected

    def test_exactly_one_block_uses_single_mode(self):
        assert _prefix(qiniu_etag(b"a" * BLOCK_SIZE)) == 0x16

    def test_one_byte_over_block_uses_chunked_mode(self):
        data = b"a" * (BLOCK_SIZE + 1)
        digests = hashlib.sha1(data[:BLOCK_SIZE]).digest() + hashlib.sha1(data[BLOCK_SIZE:]).digest()
        expected = base64.urlsafe_b64encode(b"\x96" + hashlib.sha1(digests).digest()).decode()
        assert qiniu_etag(data) == expected
        assert _prefix(qiniu_etag(data)) == 0x96

    def test_concatenation_crossing_boundary_switches_mode(self):
        first = b"x" * (BLOCK_SIZE - 10)
        second = b"y" * 20
        assert _prefix(qiniu_etag(first)) == 0x16
        assert _prefix(qiniu_etag(second)) == 0x16
        assert _prefix(qiniu_etag(first + second)) == 0x96

    def test_uses_url_safe_alphabet(self):
        for seed in range(64):
            value = qiniu_etag(bytes([seed]) * 37)
            assert "+" not in value
            assert "/" not in value

    def test_deterministic(self):
        assert qiniu_etag(b"same bytes") == qiniu_etag(b"same bytes")
        assert qiniu_etag(b"same bytes") != qiniu_etag(b"other bytes")


class TestEtagFile:
    @pytest.mark.parametrize("size", [0, 1, BLOCK_SIZE, BLOCK_SIZE + 1, 2 * BLOCK_SIZE + 7])
    def test_streaming_matches_in_memory(self, tmp_path, size):
        data = (bytes(range(251)) * (size // 251 + 1))[:size]
        path = tmp_path / "blob.bin"
        path.write_bytes(data)
        assert etag_file(path) == qiniu_etag(data)

    def test_matches_sdk_etag(self, tmp_path):
        path = tmp_path / "app.js"
        path.write_bytes(b"console.log('hi');\n" * 1000)
        assert etag_file(path) == sdk_etag(str(path))

    def test_reports_chunk_progress(self, tmp_path):
        path = tmp_path / "blob.bin"
        path.write_bytes(b"z" * (BLOCK_SIZE + 5))
        seen = []
        etag_file(path, on_chunk=seen.append)
        assert seen == [BLOCK_SIZE, 5]
