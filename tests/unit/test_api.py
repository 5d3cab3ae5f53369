"""Tests for the upload_stream / consume_stream entry points."""

from __future__ import annotations

from collections.abc import AsyncIterator

import pytest

from bucketstream.api import consume_stream, upload_stream
from bucketstream.config_manager.uploader_config import UploaderConfig
from bucketstream.event_emitter import Emitter
from bucketstream.exceptions import EmptyUploadError, InvalidDestinationError
from bucketstream.models import UploadSettings
from bucketstream.upload_management.in_memory_session import (
    InMemoryObjectStoreSession,
)
from bucketstream.upload_management.session_factory import get_memory_session

MIB = 1024 * 1024


async def _chunks(count: int, size: int = MIB) -> AsyncIterator[bytes]:
    for index in range(count):
        yield bytes([index]) * size


@pytest.mark.asyncio
async def test_upload_stream_to_given_session() -> None:
    store = InMemoryObjectStoreSession(bucket="local")
    config = UploaderConfig(chunk_size=5 * MIB)

    info = await upload_stream(
        "memory://local/episodes/1.bin",
        _chunks(12),
        settings=UploadSettings(content_type="application/octet-stream"),
        config=config,
        session=store,
    )

    stored = store.objects["episodes/1.bin"]
    assert len(stored.data) == 12 * MIB
    assert stored.settings.content_type == "application/octet-stream"
    assert info.parts == 3
    assert info.total_bytes == 12 * MIB


@pytest.mark.asyncio
async def test_consume_stream_returns_nothing() -> None:
    store = InMemoryObjectStoreSession(bucket="local")

    result = await consume_stream(
        "memory://local/obj",
        [b"abc", b"def"],
        config=UploaderConfig(),
        session=store,
    )

    assert result is None
    assert store.objects["obj"].data == b"abcdef"


@pytest.mark.asyncio
async def test_memory_destination_without_session_keeps_object() -> None:
    info = await upload_stream(
        "memory://api-shared/clips/a.bin",
        [b"abc", b"def"],
        config=UploaderConfig(),
    )

    stored = get_memory_session("api-shared").objects["clips/a.bin"]
    assert stored.data == b"abcdef"
    assert info.total_bytes == 6


@pytest.mark.asyncio
async def test_empty_stream_uses_configured_policy() -> None:
    store = InMemoryObjectStoreSession(bucket="local")

    with pytest.raises(EmptyUploadError):
        await upload_stream(
            "memory://local/obj", [], config=UploaderConfig(), session=store
        )

    info = await upload_stream(
        "memory://local/obj",
        [],
        config=UploaderConfig(empty_upload_policy="complete"),
        session=store,
    )
    assert info.parts == 0
    assert store.objects["obj"].data == b""
    assert store.open_uploads == []


@pytest.mark.asyncio
async def test_bandwidth_limit_and_emitter_are_wired() -> None:
    store = InMemoryObjectStoreSession(bucket="local", min_part_size=0)
    emitter = Emitter()
    parts: list[int] = []
    emitter.on(Emitter.PART_UPLOADED, lambda *args: parts.append(args[2]))

    await upload_stream(
        "memory://local/obj",
        [b"x" * 64, b"y" * 64],
        config=UploaderConfig(chunk_size=64, bandwidth_limit=10 * MIB),
        session=store,
        emitter=emitter,
    )

    assert parts == [1, 2]


@pytest.mark.asyncio
async def test_invalid_destination_is_rejected_before_upload() -> None:
    with pytest.raises(InvalidDestinationError):
        await upload_stream("ftp://host/file", [b"data"], config=UploaderConfig())
