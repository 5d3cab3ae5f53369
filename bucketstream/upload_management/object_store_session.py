"""Abstract capability the chunk uploader drives.

One implementation exists per provider. The uploader is written once against
this interface and never sees vendor request or response types.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence

from bucketstream.models import CompletedPart, CompletionInfo, UploadSettings


class ObjectStoreSession(ABC):
    """Strategy interface for provider-side multipart uploads.

    Implementations must:
      - Return an opaque upload id from `create_multipart_upload` and accept it
        in every later call for the same upload.
      - Keep per-upload state keyed by upload id so that independent uploads
        through one session never interfere.
      - Raise on failure rather than returning a status flag.
    """

    # Smallest size accepted for any part that is not the last one
    min_part_size: int = 0

    @abstractmethod
    async def create_multipart_upload(self, key: str, settings: UploadSettings) -> str:
        """Open a multipart upload for `key` and return its upload id."""

    @abstractmethod
    async def upload_part(self, upload_id: str, part_number: int, data: bytes) -> str:
        """Upload one part and return the provider acknowledgement tag."""

    @abstractmethod
    async def complete_multipart_upload(
        self, upload_id: str, parts: Sequence[CompletedPart]
    ) -> CompletionInfo:
        """Stitch the acknowledged parts, listed in ascending order, together."""

    @abstractmethod
    async def abort_multipart_upload(self, upload_id: str) -> None:
        """Discard the upload and every part uploaded for it."""
