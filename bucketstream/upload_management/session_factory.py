"""Pick an object-store session by inspecting a destination URL."""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import urlparse

import aiohttp

from bucketstream.config_manager.uploader_config import UploaderConfig
from bucketstream.exceptions import InvalidDestinationError

from .gcs_session import GCSObjectStoreSession
from .in_memory_session import InMemoryObjectStoreSession
from .object_store_session import ObjectStoreSession
from .s3_session import S3ObjectStoreSession

SUPPORTED_SCHEMES = ("s3", "gs", "memory")

_memory_sessions: dict[str, InMemoryObjectStoreSession] = {}


@dataclass(frozen=True)
class Destination:
    """A parsed `scheme://bucket/key` destination."""

    scheme: str
    bucket: str
    key: str


def parse_destination(url: str) -> Destination:
    """Split a destination URL into scheme, bucket and key.

    Raises:
        InvalidDestinationError: If the scheme is unsupported or the bucket or
            key is missing.
    """
    parsed = urlparse(url)
    scheme = (parsed.scheme or "").lower()
    if scheme not in SUPPORTED_SCHEMES:
        raise InvalidDestinationError(
            f"Unsupported destination scheme {scheme!r} in {url!r}; "
            f"expected one of {', '.join(SUPPORTED_SCHEMES)}"
        )
    bucket = parsed.netloc
    key = parsed.path.lstrip("/")
    if not bucket or not key:
        raise InvalidDestinationError(f"Destination {url!r} needs a bucket and a key")
    return Destination(scheme=scheme, bucket=bucket, key=key)


def make_object_store_session(
    destination: Destination,
    config: UploaderConfig,
    *,
    client_session: aiohttp.ClientSession | None = None,
) -> ObjectStoreSession:
    """Choose the session implementation for `destination`.

    Args:
        destination: Parsed destination.
        config: Effective configuration.
        client_session: aiohttp session, required for `gs://` destinations.
    """
    if destination.scheme == "s3":
        return S3ObjectStoreSession(
            destination.bucket,
            region_name=config.s3_region,
            endpoint_url=config.s3_endpoint_url,
        )
    if destination.scheme == "gs":
        if client_session is None:
            raise ValueError("gs:// destinations need an aiohttp client session")
        return GCSObjectStoreSession(
            destination.bucket,
            client_session,
            access_token=config.gcs_access_token,
        )
    return get_memory_session(destination.bucket)


def get_memory_session(bucket: str) -> InMemoryObjectStoreSession:
    """Return the process-wide in-memory store for `bucket`.

    Every `memory://` destination naming the same bucket shares one store, so
    objects stay readable after the upload call returns.
    """
    if bucket not in _memory_sessions:
        _memory_sessions[bucket] = InMemoryObjectStoreSession(bucket)
    return _memory_sessions[bucket]
