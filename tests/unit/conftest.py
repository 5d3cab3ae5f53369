"""Shared fixtures for bucketstream unit tests."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import Any

import pytest

from bucketstream.exceptions import AbortError, UploadError
from bucketstream.models import CompletedPart, CompletionInfo, UploadSettings
from bucketstream.upload_management.in_memory_session import (
    InMemoryObjectStoreSession,
)

MIB = 1024 * 1024


class RecordingSession(InMemoryObjectStoreSession):
    """In-memory session that records every call and fails on demand."""

    def __init__(self, min_part_size: int = 0) -> None:
        super().__init__(bucket="test-bucket", min_part_size=min_part_size)
        self.calls: list[tuple[Any, ...]] = []
        self.uploaded_parts: list[tuple[int, bytes]] = []
        self.created_settings: list[UploadSettings] = []
        self.fail_create = False
        self.fail_parts: set[int] = set()
        self.fail_complete = False
        self.fail_abort = False
        # When set, the matching call blocks until the gate opens
        self.create_gate: asyncio.Event | None = None
        self.gate: asyncio.Event | None = None
        self.complete_gate: asyncio.Event | None = None
        self.create_started = asyncio.Event()
        self.part_started = asyncio.Event()
        self.complete_started = asyncio.Event()

    def call_names(self) -> list[str]:
        return [call[0] for call in self.calls]

    async def create_multipart_upload(self, key: str, settings: UploadSettings) -> str:
        self.calls.append(("create", key))
        self.create_started.set()
        if self.create_gate is not None:
            await self.create_gate.wait()
        if self.fail_create:
            raise UploadError("injected create failure")
        self.created_settings.append(settings)
        return await super().create_multipart_upload(key, settings)

    async def upload_part(self, upload_id: str, part_number: int, data: bytes) -> str:
        self.calls.append(("upload_part", part_number, len(data)))
        self.part_started.set()
        if self.gate is not None:
            await self.gate.wait()
        if part_number in self.fail_parts:
            raise UploadError(f"injected failure for part {part_number}")
        etag = await super().upload_part(upload_id, part_number, data)
        self.uploaded_parts.append((part_number, bytes(data)))
        self.calls.append(("upload_part_done", part_number))
        return etag

    async def complete_multipart_upload(
        self, upload_id: str, parts: Sequence[CompletedPart]
    ) -> CompletionInfo:
        self.calls.append(("complete", [part.part_number for part in parts]))
        self.complete_started.set()
        if self.complete_gate is not None:
            await self.complete_gate.wait()
        if self.fail_complete:
            raise UploadError("injected complete failure")
        return await super().complete_multipart_upload(upload_id, parts)

    async def abort_multipart_upload(self, upload_id: str) -> None:
        self.calls.append(("abort", upload_id))
        if self.fail_abort:
            raise AbortError("injected abort failure")
        await super().abort_multipart_upload(upload_id)


@pytest.fixture
def session() -> RecordingSession:
    """Recording session enforcing the 5 MiB S3 minimum part size."""
    return RecordingSession(min_part_size=5 * MIB)


@pytest.fixture
def small_session() -> RecordingSession:
    """Recording session without a minimum part size."""
    return RecordingSession(min_part_size=0)
