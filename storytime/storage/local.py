"""
Filesystem-backed object store for local runs.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable
from urllib.parse import urlencode

from storytime.book.models import ObjectRef

from .base import ObjectStore


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class LocalObjectStore(ObjectStore):
    """
    Stores objects under ``root/<bucket>/<path>``.

    Signed URLs are ``file://`` URIs carrying an ``expires`` query parameter
    (UNIX seconds). Local files are not access controlled, so the expiry is
    informational only.
    """

    def __init__(
        self,
        root: str | Path,
        *,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._root = Path(root).expanduser().resolve()
        self._clock = clock

    def _file(self, ref: ObjectRef) -> Path:
        candidate = (self._root / ref.bucket / ref.path).resolve()
        if self._root not in candidate.parents:
            raise ValueError(f"Object path escapes the store root: {ref.uri}")
        return candidate

    def put(self, bucket: str, path: str, data: bytes, *, content_type: str) -> ObjectRef:
        ref = ObjectRef(bucket=bucket, path=path)
        target = self._file(ref)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        return ref

    def read(self, ref: ObjectRef) -> bytes:
        target = self._file(ref)
        if not target.exists():
            raise FileNotFoundError(f"No object stored at {ref.uri}.")
        return target.read_bytes()

    def exists(self, ref: ObjectRef) -> bool:
        return self._file(ref).exists()

    def sign_url(self, ref: ObjectRef, ttl: timedelta) -> str:
        expires = int((self._clock() + ttl).timestamp())
        return f"{self._file(ref).as_uri()}?{urlencode({'expires': expires})}"
