"""Tests for InMemoryObjectStoreSession validation rules."""

from __future__ import annotations

import pytest

from bucketstream.exceptions import AbortError, UploadError
from bucketstream.models import CompletedPart, UploadSettings
from bucketstream.upload_management.in_memory_session import (
    InMemoryObjectStoreSession,
)


@pytest.fixture
def store() -> InMemoryObjectStoreSession:
    return InMemoryObjectStoreSession(bucket="local", min_part_size=4)


async def _upload_parts(store, upload_id, *payloads: bytes) -> list[CompletedPart]:
    parts = []
    for number, payload in enumerate(payloads, start=1):
        etag = await store.upload_part(upload_id, number, payload)
        parts.append(CompletedPart(part_number=number, etag=etag, size=len(payload)))
    return parts


@pytest.mark.asyncio
async def test_complete_assembles_parts_in_order(store) -> None:
    upload_id = await store.create_multipart_upload("obj", UploadSettings())
    parts = await _upload_parts(store, upload_id, b"aaaa", b"bbbb", b"c")

    info = await store.complete_multipart_upload(upload_id, parts)

    assert store.objects["obj"].data == b"aaaabbbbc"
    assert info.location == "memory://local/obj"
    assert info.etag.endswith('-3"')
    assert info.total_bytes == 9
    assert store.open_uploads == []


@pytest.mark.asyncio
async def test_undersized_non_final_part_is_rejected(store) -> None:
    upload_id = await store.create_multipart_upload("obj", UploadSettings())
    parts = await _upload_parts(store, upload_id, b"aa", b"bbbb")

    with pytest.raises(UploadError, match="EntityTooSmall"):
        await store.complete_multipart_upload(upload_id, parts)


@pytest.mark.asyncio
async def test_out_of_order_part_list_is_rejected(store) -> None:
    upload_id = await store.create_multipart_upload("obj", UploadSettings())
    parts = await _upload_parts(store, upload_id, b"aaaa", b"bbbb")

    with pytest.raises(UploadError, match="InvalidPartOrder"):
        await store.complete_multipart_upload(upload_id, list(reversed(parts)))


@pytest.mark.asyncio
async def test_mismatched_etag_is_rejected(store) -> None:
    upload_id = await store.create_multipart_upload("obj", UploadSettings())
    await _upload_parts(store, upload_id, b"aaaa")

    with pytest.raises(UploadError, match="InvalidPart"):
        await store.complete_multipart_upload(
            upload_id, [CompletedPart(part_number=1, etag='"bogus"')]
        )


@pytest.mark.asyncio
async def test_abort_discards_parts(store) -> None:
    upload_id = await store.create_multipart_upload("obj", UploadSettings())
    await _upload_parts(store, upload_id, b"aaaa")

    await store.abort_multipart_upload(upload_id)

    assert store.open_uploads == []
    assert "obj" not in store.objects
    with pytest.raises(UploadError, match="NoSuchUpload"):
        await store.upload_part(upload_id, 2, b"bbbb")


@pytest.mark.asyncio
async def test_abort_of_unknown_upload_raises(store) -> None:
    with pytest.raises(AbortError):
        await store.abort_multipart_upload("missing")


@pytest.mark.asyncio
@pytest.mark.parametrize("part_number", [0, 10001])
async def test_part_number_out_of_range_is_rejected(store, part_number: int) -> None:
    upload_id = await store.create_multipart_upload("obj", UploadSettings())

    with pytest.raises(UploadError, match="Invalid part number"):
        await store.upload_part(upload_id, part_number, b"aaaa")
