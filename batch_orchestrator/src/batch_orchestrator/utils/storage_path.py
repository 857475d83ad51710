"""Parsing of composite storage paths into bucket and key."""

from typing import NamedTuple
from urllib.parse import urlsplit

S3_SCHEME = "s3://"


class StorageLocation(NamedTuple):
    bucket: str
    key: str


def parse_storage_path(path: str | None) -> StorageLocation:
    """
    Split a storage path into bucket and key.

    Accepts ``s3://bucket/key`` (scheme matched case-insensitively) or the
    bare ``bucket/key`` form. A path without ``/`` is all bucket. Never
    raises: malformed input yields an empty bucket and the original string
    as key.

    Args:
        path: Composite storage path.

    Returns:
        StorageLocation with bucket and key.
    """
    if not path:
        return StorageLocation("", "")

    try:
        if path[: len(S3_SCHEME)].lower() == S3_SCHEME:
            parts = urlsplit(path)
            bucket = parts.netloc
            if not bucket:
                raise ValueError(f"No bucket in {path!r}")
            return StorageLocation(bucket, parts.path.lstrip("/"))

        bucket, _, key = path.partition("/")
        return StorageLocation(bucket, key)
    except ValueError:
        return StorageLocation("", path)
