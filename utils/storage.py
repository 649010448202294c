"""Album persistence: one JSON document per album, keyed by slug.

Two interchangeable backends share the same read/write-by-key contract:

  FileSystemStore  <data_dir>/albums/<slug>.json
  BlobStore        s3://<bucket>/<prefix>/<slug>.json (any S3-compatible store)

`select_store()` picks one from the settings once at process start. Only a
missing key is reported as None by `read()`; every other storage error
propagates to the caller.
"""
import logging
from pathlib import Path

import boto3
from botocore.exceptions import ClientError

from settings import Settings

logger = logging.getLogger(__name__)

_MISSING_KEY_CODES = frozenset({"NoSuchKey", "404", "NotFound"})


class FileSystemStore:
    def __init__(self, root: Path) -> None:
        self.root = root

    def _path(self, slug: str) -> Path:
        return self.root / f"{slug}.json"

    def write(self, slug: str, text: str) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        path = self._path(slug)
        path.write_text(text, encoding="utf-8")
        logger.debug("Wrote %s", path)

    def read(self, slug: str) -> str | None:
        try:
            return self._path(slug).read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def exists(self, slug: str) -> bool:
        return self._path(slug).is_file()

    def __repr__(self) -> str:
        return f"FileSystemStore({self.root})"


class BlobStore:
    def __init__(self, bucket: str, prefix: str = "albums", client=None) -> None:
        self.bucket = bucket
        self.prefix = prefix.strip("/")
        self.client = client if client is not None else boto3.client("s3")

    def _key(self, slug: str) -> str:
        return f"{self.prefix}/{slug}.json" if self.prefix else f"{slug}.json"

    def write(self, slug: str, text: str) -> None:
        self.client.put_object(
            Bucket=self.bucket,
            Key=self._key(slug),
            Body=text.encode("utf-8"),
            ContentType="application/json",
        )
        logger.debug("Uploaded s3://%s/%s", self.bucket, self._key(slug))

    def read(self, slug: str) -> str | None:
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=self._key(slug))
        except ClientError as exc:
            if _is_missing_key(exc):
                return None
            raise
        return response["Body"].read().decode("utf-8")

    def exists(self, slug: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=self._key(slug))
        except ClientError as exc:
            if _is_missing_key(exc):
                return False
            raise
        return True

    def __repr__(self) -> str:
        return f"BlobStore(s3://{self.bucket}/{self.prefix})"


def _is_missing_key(exc: ClientError) -> bool:
    return exc.response.get("Error", {}).get("Code") in _MISSING_KEY_CODES


def select_store(settings: Settings) -> FileSystemStore | BlobStore:
    if settings.uses_blob_storage:
        client = boto3.client("s3", endpoint_url=settings.blob_endpoint_url)
        store = BlobStore(settings.blob_bucket, settings.blob_prefix, client=client)
    else:
        store = FileSystemStore(settings.albums_dir)
    logger.info("Album storage: %r", store)
    return store
