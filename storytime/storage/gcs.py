"""
Google Cloud Storage backed object store.
"""

from __future__ import annotations

import logging
import os
from datetime import timedelta

from google.cloud import storage

from storytime.book.models import ObjectRef

from .base import ObjectStore

logger = logging.getLogger(__name__)


class GCSObjectStore(ObjectStore):
    """
    Object store over one or more GCS buckets.

    Parameters
    ----------
    client:
        Optional pre-configured :class:`google.cloud.storage.Client`. Mainly useful for testing.
    project:
        GCP project id. Falls back to ``GCP_PROJECT_ID``.
    """

    def __init__(
        self,
        *,
        client: storage.Client | None = None,
        project: str | None = None,
    ) -> None:
        self._client = client or storage.Client(project=project or os.getenv("GCP_PROJECT_ID"))

    def _blob(self, ref: ObjectRef) -> storage.Blob:
        return self._client.bucket(ref.bucket).blob(ref.path)

    def put(self, bucket: str, path: str, data: bytes, *, content_type: str) -> ObjectRef:
        ref = ObjectRef(bucket=bucket, path=path)
        self._blob(ref).upload_from_string(data, content_type=content_type)
        logger.info("Uploaded %s (%d KB).", ref.uri, len(data) // 1024)
        return ref

    def read(self, ref: ObjectRef) -> bytes:
        return self._blob(ref).download_as_bytes()

    def exists(self, ref: ObjectRef) -> bool:
        return self._blob(ref).exists()

    def sign_url(self, ref: ObjectRef, ttl: timedelta) -> str:
        return self._blob(ref).generate_signed_url(
            version="v4",
            expiration=ttl,
            method="GET",
        )
