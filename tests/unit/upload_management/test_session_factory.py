"""Tests for destination parsing and session selection."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from bucketstream.config_manager.uploader_config import UploaderConfig
from bucketstream.exceptions import InvalidDestinationError
from bucketstream.upload_management import session_factory
from bucketstream.upload_management.gcs_session import GCSObjectStoreSession
from bucketstream.upload_management.in_memory_session import (
    InMemoryObjectStoreSession,
)
from bucketstream.upload_management.session_factory import (
    Destination,
    get_memory_session,
    make_object_store_session,
    parse_destination,
)


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("s3://bucket/a/b.bin", Destination("s3", "bucket", "a/b.bin")),
        ("GS://media/video.mp4", Destination("gs", "media", "video.mp4")),
        ("memory://local/obj", Destination("memory", "local", "obj")),
    ],
)
def test_parse_destination(url: str, expected: Destination) -> None:
    assert parse_destination(url) == expected


@pytest.mark.parametrize(
    "url",
    ["ftp://bucket/key", "bucket/key", "s3://bucket", "s3://bucket/", "s3:///key"],
)
def test_parse_destination_rejects_invalid_urls(url: str) -> None:
    with pytest.raises(InvalidDestinationError):
        parse_destination(url)


def test_s3_destination_builds_client_from_config() -> None:
    config = UploaderConfig(s3_region="eu-west-1", s3_endpoint_url="http://minio:9000")

    with patch.object(session_factory, "S3ObjectStoreSession") as s3_cls:
        session = make_object_store_session(
            Destination("s3", "bucket", "key"), config
        )

    assert session is s3_cls.return_value
    s3_cls.assert_called_once_with(
        "bucket", region_name="eu-west-1", endpoint_url="http://minio:9000"
    )


def test_gs_destination_uses_client_session_and_token() -> None:
    client_session = MagicMock()
    config = UploaderConfig(gcs_access_token="token")

    session = make_object_store_session(
        Destination("gs", "bucket", "key"), config, client_session=client_session
    )

    assert isinstance(session, GCSObjectStoreSession)
    assert session.bucket == "bucket"


def test_gs_destination_requires_client_session() -> None:
    with pytest.raises(ValueError, match="aiohttp client session"):
        make_object_store_session(Destination("gs", "bucket", "key"), UploaderConfig())


def test_memory_destination() -> None:
    session = make_object_store_session(
        Destination("memory", "local", "key"), UploaderConfig()
    )

    assert isinstance(session, InMemoryObjectStoreSession)
    assert session.bucket == "local"


def test_memory_destinations_share_one_store_per_bucket() -> None:
    first = make_object_store_session(
        Destination("memory", "shared-factory", "a"), UploaderConfig()
    )
    second = make_object_store_session(
        Destination("memory", "shared-factory", "b"), UploaderConfig()
    )
    other = make_object_store_session(
        Destination("memory", "other-factory", "a"), UploaderConfig()
    )

    assert first is second
    assert first is get_memory_session("shared-factory")
    assert other is not first
