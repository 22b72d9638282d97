"""Qiniu ``etag`` content hash.

Kodo reports this hash for every stored object, so computing it locally lets
unchanged files be detected without downloading anything.
"""

from __future__ import annotations

import base64
import hashlib
from pathlib import Path
from typing import Callable, Iterable


BLOCK_SIZE = 4 * 1024 * 1024
SINGLE_BLOCK_PREFIX = b"\x16"
MULTI_BLOCK_PREFIX = b"\x96"


def _sha1(data: bytes) -> bytes:
    return hashlib.sha1(data).digest()


def _encode(digest: bytes) -> str:
    return base64.urlsafe_b64encode(digest).decode("ascii")


def etag_from_block_digests(digests: Iterable[bytes]) -> str:
    digests = list(digests)
    if not digests:
        digests = [_sha1(b"")]
    if len(digests) == 1:
        return _encode(SINGLE_BLOCK_PREFIX + digests[0])
    return _encode(MULTI_BLOCK_PREFIX + _sha1(b"".join(digests)))


def qiniu_etag(data: bytes) -> str:
    if len(data) <= BLOCK_SIZE:
        return _encode(SINGLE_BLOCK_PREFIX + _sha1(data))
    view = memoryview(data)
    return etag_from_block_digests(
        _sha1(view[offset : offset + BLOCK_SIZE]) for offset in range(0, len(data), BLOCK_SIZE)
    )


def etag_file(
    path: Path,
    *,
    on_chunk: Callable[[int], None] | None = None,
) -> str:
    digests: list[bytes] = []
    with path.open("rb") as fh:
        while True:
            chunk = fh.read(BLOCK_SIZE)
            if not chunk:
                break
            digests.append(_sha1(chunk))
            if on_chunk is not None:
                on_chunk(len(chunk))
    return etag_from_block_digests(digests)
