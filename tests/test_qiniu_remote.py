"""Tests for the Qiniu SDK wrapper. The SDK calls are mocked."""

from unittest.mock import MagicMock, patch

import httpx
import pytest

from cdnflow.errors import TransportError
from cdnflow.models import FileRecord
from cdnflow.qiniu_remote import CDN_BATCH_SIZE, DELETE_BATCH_SIZE, QiniuRemote, remove_prefix


def _info(status_code=200, error=None):
    return MagicMock(status_code=status_code, error=error, text_body="")


@pytest.fixture
def remote():
    client = QiniuRemote(access_key="ak", secret_key="sk", bucket="assets", prefix="static/")
    client.bucket_manager = MagicMock()
    client.cdn_manager = MagicMock()
    return client


class TestRemovePrefix:
    def test_strips_matching_prefix(self):
        assert remove_prefix("static/app.js", "static/") == "app.js"

    def test_leaves_other_names(self):
        assert remove_prefix("other/app.js", "static/") == "other/app.js"
        assert remove_prefix("app.js", "") == "app.js"


class TestListFiles:
    def test_follows_markers(self, remote):
        remote.bucket_manager.list.side_effect = [
            ({"items": [{"key": "static/a.js", "hash": "h1"}], "marker": "m1"}, False, _info()),
            ({"items": [{"key": "static/b/c.css", "hash": "h2"}]}, True, _info()),
        ]
        assert remote.list_files() == [FileRecord("a.js", "h1"), FileRecord("b/c.css", "h2")]
        second_call = remote.bucket_manager.list.call_args_list[1]
        assert second_call.kwargs["marker"] == "m1"
        assert second_call.kwargs["prefix"] == "static/"

    def test_error_status_raises(self, remote):
        remote.bucket_manager.list.return_value = ({"error": "no such bucket"}, True, _info(631))
        with pytest.raises(TransportError, match="631"):
            remote.list_files()


class TestUpload:
    def test_returns_remote_hash(self, remote):
        with patch("cdnflow.qiniu_remote.put_data", return_value=({"hash": "Fabc", "key": "static/a.js"}, _info())) as put:
            assert remote.upload("a.js", b"data") == "Fabc"
        token, key, data = put.call_args.args
        assert key == "static/a.js"
        assert data == b"data"
        assert token

    def test_failure_names_key(self, remote):
        with patch("cdnflow.qiniu_remote.put_data", return_value=(None, _info(401, "bad token"))):
            with pytest.raises(TransportError, match="static/a.js"):
                remote.upload("a.js", b"data")


class TestBatchDelete:
    def test_splits_large_batches(self, remote):
        remote.bucket_manager.batch.return_value = ([], _info())
        remote.batch_delete([f"f{index}.js" for index in range(DELETE_BATCH_SIZE + 1)])
        assert remote.bucket_manager.batch.call_count == 2

    def test_partial_failure_raises(self, remote):
        remote.bucket_manager.batch.return_value = ([{"code": 612}], _info(298))
        with pytest.raises(TransportError, match="static/old.js"):
            remote.batch_delete(["old.js"])


class TestCdn:
    def test_refresh_batches_urls(self, remote):
        remote.cdn_manager.refresh_urls.return_value = ({"code": 200}, _info())
        urls = [f"https://cdn.example.com/{index}.js" for index in range(CDN_BATCH_SIZE + 5)]
        remote.refresh(urls)
        batches = [call.args[0] for call in remote.cdn_manager.refresh_urls.call_args_list]
        assert [len(batch) for batch in batches] == [CDN_BATCH_SIZE, 5]

    def test_prefetch_failure_raises(self, remote):
        remote.cdn_manager.prefetch_urls.return_value = ({"error": "quota"}, _info(400))
        with pytest.raises(TransportError, match="prefetch"):
            remote.prefetch(["https://cdn.example.com/a.js"])


class TestFetch:
    def test_returns_status_and_body(self):
        def handler(request):
            assert "q" in request.url.params
            return httpx.Response(404, text="missing")

        http = httpx.Client(transport=httpx.MockTransport(handler))
        client = QiniuRemote(access_key="ak", secret_key="sk", bucket="b", http_client=http)
        result = client.fetch("https://cdn.example.com/upload-log.json")
        assert result.status_code == 404
        assert result.text == "missing"

    def test_network_error_is_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        http = httpx.Client(transport=httpx.MockTransport(handler))
        client = QiniuRemote(access_key="ak", secret_key="sk", bucket="b", http_client=http)
        with pytest.raises(TransportError, match="upload-log.json"):
            client.fetch("https://cdn.example.com/upload-log.json")
