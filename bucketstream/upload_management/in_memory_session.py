"""Process-local object store enforcing S3 multipart rules.

Useful for local runs and tests: objects live in a dict, and completion is
validated the way S3 validates it (ascending part numbers, matching ETags,
minimum size for every part but the last).
"""

import hashlib
import logging
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field

from bucketstream.const import AWS_MAX_PART_NUMBER, AWS_MIN_PART_SIZE
from bucketstream.exceptions import AbortError, UploadError
from bucketstream.models import CompletedPart, CompletionInfo, UploadSettings

from .object_store_session import ObjectStoreSession

logger = logging.getLogger(__name__)


@dataclass
class StoredObject:
    """A finished object."""

    data: bytes
    etag: str
    settings: UploadSettings


@dataclass
class _MultipartState:
    key: str
    settings: UploadSettings
    parts: dict[int, tuple[bytes, str]] = field(default_factory=dict)


def _md5_etag(data: bytes) -> str:
    return f'"{hashlib.md5(data).hexdigest()}"'


class InMemoryObjectStoreSession(ObjectStoreSession):
    """Multipart uploads into a dict, validated like S3."""

    def __init__(self, bucket: str = "memory", min_part_size: int = AWS_MIN_PART_SIZE):
        """Initialize the in-memory store.

        Args:
            bucket: Name reported in completion locations.
            min_part_size: Minimum size for every part but the last.
        """
        self.bucket = bucket
        self.min_part_size = min_part_size
        self.objects: dict[str, StoredObject] = {}
        self._uploads: dict[str, _MultipartState] = {}

    @property
    def open_uploads(self) -> list[str]:
        """Upload ids neither completed nor aborted."""
        return list(self._uploads)

    def _get_upload(self, upload_id: str) -> _MultipartState:
        try:
            return self._uploads[upload_id]
        except KeyError:
            raise UploadError(f"NoSuchUpload: {upload_id}") from None

    async def create_multipart_upload(self, key: str, settings: UploadSettings) -> str:
        """Open a new upload for `key`."""
        upload_id = uuid.uuid4().hex
        self._uploads[upload_id] = _MultipartState(key=key, settings=settings)
        return upload_id

    async def upload_part(self, upload_id: str, part_number: int, data: bytes) -> str:
        """Store a part, replacing any earlier part with the same number."""
        state = self._get_upload(upload_id)
        if not 1 <= part_number <= AWS_MAX_PART_NUMBER:
            raise UploadError(f"Invalid part number: {part_number}")
        etag = _md5_etag(data)
        state.parts[part_number] = (bytes(data), etag)
        return etag

    async def complete_multipart_upload(
        self, upload_id: str, parts: Sequence[CompletedPart]
    ) -> CompletionInfo:
        """Validate the part list and assemble the object."""
        state = self._get_upload(upload_id)

        numbers = [part.part_number for part in parts]
        if numbers != sorted(set(numbers)):
            raise UploadError("InvalidPartOrder: parts must be strictly ascending")

        chunks: list[bytes] = []
        digests = b""
        for index, part in enumerate(parts):
            stored = state.parts.get(part.part_number)
            if stored is None or stored[1] != part.etag:
                raise UploadError(f"InvalidPart: part {part.part_number}")
            data = stored[0]
            is_last = index == len(parts) - 1
            if not is_last and len(data) < self.min_part_size:
                raise UploadError(
                    f"EntityTooSmall: part {part.part_number} is {len(data)} bytes"
                )
            chunks.append(data)
            digests += hashlib.md5(data).digest()

        body = b"".join(chunks)
        etag = f'"{hashlib.md5(digests).hexdigest()}-{len(parts)}"'
        self.objects[state.key] = StoredObject(
            data=body, etag=etag, settings=state.settings
        )
        del self._uploads[upload_id]
        logger.debug("Stored %s (%d bytes, %d parts)", state.key, len(body), len(parts))

        return CompletionInfo(
            key=state.key,
            upload_id=upload_id,
            etag=etag,
            location=f"memory://{self.bucket}/{state.key}",
            parts=len(parts),
            total_bytes=len(body),
        )

    async def abort_multipart_upload(self, upload_id: str) -> None:
        """Drop the upload and its parts."""
        if self._uploads.pop(upload_id, None) is None:
            raise AbortError(f"NoSuchUpload: {upload_id}")
