from __future__ import annotations

import json
import logging
import random
from dataclasses import dataclass
from typing import Any

import httpx
from qiniu import Auth, BucketManager, CdnManager, build_batch_delete, put_data

from cdnflow.errors import TransportError
from cdnflow.filters import normalize_filename
from cdnflow.models import FileRecord
from cdnflow.pool import run_jobs, split_list

logger = logging.getLogger(__name__)

CDN_BATCH_SIZE = 100
DELETE_BATCH_SIZE = 1000
LIST_PAGE_SIZE = 1000
UPLOAD_TOKEN_EXPIRES = 3600


@dataclass(slots=True, frozen=True)
class FetchResult:
    status_code: int
    text: str


def remove_prefix(name: str, prefix: str) -> str:
    if prefix and name.startswith(prefix):
        return name[len(prefix):]
    return name


def _describe(ret: Any, info: Any) -> str:
    error = getattr(info, "error", None)
    if error:
        return str(error)
    if ret is not None:
        try:
            return json.dumps(ret)
        except (TypeError, ValueError):
            return repr(ret)
    return getattr(info, "text_body", None) or "no response body"


def _check(operation: str, ret: Any, info: Any) -> None:
    status_code = getattr(info, "status_code", None)
    if status_code != 200:
        raise TransportError(operation, _describe(ret, info), status_code=status_code)


class QiniuRemote:
    """Thin wrapper around the Qiniu SDK for one bucket and key prefix."""

    def __init__(
        self,
        *,
        access_key: str,
        secret_key: str,
        bucket: str,
        prefix: str = "",
        http_client: httpx.Client | None = None,
    ) -> None:
        self.auth = Auth(access_key, secret_key)
        self.bucket_manager = BucketManager(self.auth)
        self.cdn_manager = CdnManager(self.auth)
        self.bucket = bucket
        self.prefix = prefix
        self._http = http_client

    def key_for(self, filename: str) -> str:
        return f"{self.prefix}{normalize_filename(filename)}"

    def list_files(self) -> list[FileRecord]:
        files: list[FileRecord] = []
        marker: str | None = None
        while True:
            ret, _, info = self.bucket_manager.list(
                self.bucket, prefix=self.prefix or None, marker=marker, limit=LIST_PAGE_SIZE
            )
            _check(f"list {self.bucket}:{self.prefix}", ret, info)
            for item in ret.get("items") or []:
                files.append(
                    FileRecord(
                        filename=remove_prefix(str(item["key"]), self.prefix),
                        hash=str(item["hash"]),
                    )
                )
            marker = ret.get("marker")
            if not marker:
                break
        logger.debug("Listed %d remote file(s) under %r", len(files), self.prefix)
        return files

    def fetch(self, url: str) -> FetchResult:
        # Random query defeats CDN caching of the log file.
        params = {"q": str(random.random()).replace(".", "")}
        try:
            if self._http is not None:
                response = self._http.get(url, params=params)
            else:
                response = httpx.get(url, params=params)
        except httpx.HTTPError as exc:
            raise TransportError(f"fetch {url}", str(exc)) from exc
        return FetchResult(status_code=response.status_code, text=response.text)

    def upload(self, filename: str, data: bytes) -> str:
        key = self.key_for(filename)
        # Key-scoped token allows overwriting an existing object.
        token = self.auth.upload_token(self.bucket, key, UPLOAD_TOKEN_EXPIRES)
        ret, info = put_data(token, key, data)
        _check(f"upload {key}", ret, info)
        return str(ret.get("hash", "")) if ret else ""

    def batch_delete(self, filenames: list[str]) -> None:
        for chunk in split_list(filenames, DELETE_BATCH_SIZE):
            keys = [self.key_for(filename) for filename in chunk]
            ret, info = self.bucket_manager.batch(build_batch_delete(self.bucket, keys))
            _check(f"delete {', '.join(keys)}", ret, info)

    def refresh(self, urls: list[str]) -> None:
        self._run_cdn("refresh", self.cdn_manager.refresh_urls, urls)

    def prefetch(self, urls: list[str]) -> None:
        self._run_cdn("prefetch", self.cdn_manager.prefetch_urls, urls)

    def _run_cdn(self, operation: str, call, urls: list[str]) -> None:
        def make_job(batch: list[str]):
            def _job() -> None:
                ret, info = call(batch)
                _check(f"CDN {operation}", ret, info)

            return f"{operation}:{batch[0]}", _job

        # CDN calls already batch many URLs, so they go one at a time.
        run_jobs([make_job(batch) for batch in split_list(urls, CDN_BATCH_SIZE)], max_workers=1)
