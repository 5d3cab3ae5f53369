"""Google Cloud Storage uploads over the resumable upload protocol.

GCS has no S3-style part list; a resumable session accepts consecutive byte
ranges instead. This session maps the multipart capability onto it:

- the resumable session URI is the upload id,
- each part is sent as `Content-Range` PUTs, in multiples of 256 KiB; bytes
  past the last 256 KiB boundary are held back and sent with the next part,
- completion sends the held-back tail together with the total object size,
- abort deletes the session URI,
- a customer-supplied key travels as `x-goog-encryption-*` headers on every
  request; encryption settings with no GCS equivalent are rejected.

The acknowledgement tag of a part is the object offset right after it.
"""

import asyncio
import base64
import hashlib
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import aiohttp

from bucketstream.const import GCS_CHUNK_MULTIPLE, GCS_UPLOAD_URL
from bucketstream.exceptions import AbortError, UploadError
from bucketstream.models import (
    CompletedPart,
    CompletionInfo,
    ObjectCannedAcl,
    UploadSettings,
)

from .object_store_session import ObjectStoreSession

logger = logging.getLogger(__name__)

_PREDEFINED_ACL = {
    ObjectCannedAcl.PRIVATE: "private",
    ObjectCannedAcl.PUBLIC_READ: "publicRead",
    ObjectCannedAcl.AUTHENTICATED_READ: "authenticatedRead",
    ObjectCannedAcl.BUCKET_OWNER_READ: "bucketOwnerRead",
    ObjectCannedAcl.BUCKET_OWNER_FULL_CONTROL: "bucketOwnerFullControl",
}


@dataclass
class _ResumableState:
    key: str
    session_uri: str
    # Bytes committed by the server
    offset: int = 0
    # Bytes received but not yet sent (not a multiple of 256 KiB)
    tail: bytearray = field(default_factory=bytearray)
    # Sent with every PUT of the session (customer-supplied key)
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def received(self) -> int:
        return self.offset + len(self.tail)


def _content_range(start: int, length: int, total: int | None) -> str:
    total_str = "*" if total is None else str(total)
    if length == 0:
        return f"bytes */{total_str}"
    return f"bytes {start}-{start + length - 1}/{total_str}"


def _encryption_headers(settings: UploadSettings) -> dict[str, str]:
    """Translate encryption settings into GCS request headers.

    GCS encrypts every object at rest, so ``AES256`` needs no header and
    ``aws:kms`` maps onto ``kmsKeyName``. A customer-supplied key is sent as
    base64 together with its SHA-256 digest on every request of the upload.

    Raises:
        UploadError: If a setting has no GCS equivalent.
    """
    sse = settings.server_side_encryption
    if sse not in (None, "AES256", "aws:kms"):
        raise UploadError(f"Server-side encryption {sse} is not supported by GCS")
    if sse == "aws:kms" and not settings.ssekms_key_id:
        raise UploadError("aws:kms encryption on GCS needs ssekms_key_id")
    if settings.ssekms_encryption_context:
        raise UploadError("KMS encryption context is not supported by GCS")

    if settings.sse_customer_key is None:
        if settings.sse_customer_algorithm or settings.sse_customer_key_md5:
            raise UploadError("Customer key settings need sse_customer_key")
        return {}
    algorithm = settings.sse_customer_algorithm or "AES256"
    if algorithm != "AES256":
        raise UploadError(f"Customer key algorithm {algorithm} is not supported by GCS")
    if settings.ssekms_key_id:
        raise UploadError("A customer-supplied key cannot be combined with a KMS key")

    raw_key = settings.sse_customer_key.encode()
    return {
        "x-goog-encryption-algorithm": algorithm,
        "x-goog-encryption-key": base64.b64encode(raw_key).decode(),
        "x-goog-encryption-key-sha256": base64.b64encode(
            hashlib.sha256(raw_key).digest()
        ).decode(),
    }


class GCSObjectStoreSession(ObjectStoreSession):
    """Resumable uploads into one GCS bucket."""

    min_part_size = GCS_CHUNK_MULTIPLE

    MAX_RETRIES = 5
    MAX_BACKOFF_SECONDS = 300
    RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}
    FINAL_SUCCESS_CODES = {200, 201}
    RESUME_INCOMPLETE_CODE = 308
    # GCS answers a successful session cancellation with 499
    CANCELLED_CODES = {499, 204, 200}

    def __init__(
        self,
        bucket: str,
        client_session: aiohttp.ClientSession,
        *,
        access_token: str | None = None,
        upload_url: str = GCS_UPLOAD_URL,
    ) -> None:
        """Initialize the session.

        Args:
            bucket: Target bucket.
            client_session: aiohttp ClientSession for HTTP requests.
            access_token: OAuth2 bearer token sent with every request.
            upload_url: Base URL of the JSON upload API.
        """
        self.bucket = bucket
        self._session = client_session
        self._access_token = access_token
        self._upload_url = upload_url.rstrip("/")
        self._uploads: dict[str, _ResumableState] = {}

    def _headers(self, **extra: str) -> dict[str, str]:
        headers = dict(extra)
        if self._access_token:
            headers["Authorization"] = f"Bearer {self._access_token}"
        return headers

    def _get_upload(self, upload_id: str) -> _ResumableState:
        try:
            return self._uploads[upload_id]
        except KeyError:
            raise UploadError(f"Unknown upload id: {upload_id}") from None

    async def _sleep_backoff(self, attempt: int) -> None:
        """Sleep with exponential backoff, capped at MAX_BACKOFF_SECONDS."""
        delay = min(2**attempt, self.MAX_BACKOFF_SECONDS)
        await asyncio.sleep(delay)

    async def create_multipart_upload(self, key: str, settings: UploadSettings) -> str:
        """Open a resumable session and return its URI.

        Raises:
            UploadError: If the ACL or encryption settings have no GCS
                equivalent, or the request fails.
        """
        params = {"uploadType": "resumable", "name": key}
        if settings.acl is not None:
            if settings.acl not in _PREDEFINED_ACL:
                raise UploadError(f"ACL {settings.acl.value} is not supported by GCS")
            params["predefinedAcl"] = _PREDEFINED_ACL[settings.acl]
        if settings.ssekms_key_id:
            params["kmsKeyName"] = settings.ssekms_key_id

        resource: dict[str, Any] = {"name": key}
        if settings.storage_class is not None:
            resource["storageClass"] = settings.storage_class.value
        if settings.content_type:
            resource["contentType"] = settings.content_type
        if settings.metadata:
            resource["metadata"] = dict(settings.metadata)

        encryption = _encryption_headers(settings)
        extra = dict(encryption)
        if settings.content_type:
            extra["X-Upload-Content-Type"] = settings.content_type

        timeout = aiohttp.ClientTimeout(total=30)
        async with self._session.post(
            f"{self._upload_url}/{self.bucket}/o",
            params=params,
            json=resource,
            headers=self._headers(**extra),
            timeout=timeout,
        ) as response:
            if response.status not in self.FINAL_SUCCESS_CODES:
                text = await response.text()
                raise UploadError(
                    f"Failed to open resumable session: HTTP {response.status} "
                    f"{text[:200]}"
                )
            session_uri = response.headers.get("Location")

        if not session_uri:
            raise UploadError("GCS did not return a resumable session URI")

        self._uploads[session_uri] = _ResumableState(
            key=key, session_uri=session_uri, headers=encryption
        )
        logger.debug(
            "Resumable session opened: key=%s uri=%s",
            key,
            session_uri[:80] + "..." if len(session_uri) > 80 else session_uri,
        )
        return session_uri

    async def upload_part(self, upload_id: str, part_number: int, data: bytes) -> str:
        """Send every whole 256 KiB block received so far; hold the rest."""
        state = self._get_upload(upload_id)
        state.tail.extend(data)

        aligned = len(state.tail) - len(state.tail) % GCS_CHUNK_MULTIPLE
        if aligned:
            await self._send(state, bytes(state.tail[:aligned]), total=None)
            del state.tail[:aligned]
        return str(state.received)

    async def complete_multipart_upload(
        self, upload_id: str, parts: Sequence[CompletedPart]
    ) -> CompletionInfo:
        """Send the held-back tail and the total size, finalizing the object."""
        state = self._get_upload(upload_id)
        expected = parts[-1].etag if parts else "0"
        if expected != str(state.received):
            raise UploadError(
                f"Part list ends at offset {expected} but {state.received} bytes "
                "were received"
            )

        total = state.received
        # Forgotten even on failure: no abort follows a complete call
        try:
            body = await self._send(state, bytes(state.tail), total=total) or {}
        finally:
            del self._uploads[upload_id]
        state.tail.clear()

        return CompletionInfo(
            key=state.key,
            upload_id=upload_id,
            etag=body.get("etag") or body.get("md5Hash"),
            location=body.get("selfLink") or body.get("mediaLink"),
            parts=len(parts),
            total_bytes=total,
            raw=body,
        )

    async def abort_multipart_upload(self, upload_id: str) -> None:
        """Cancel the resumable session."""
        state = self._get_upload(upload_id)
        timeout = aiohttp.ClientTimeout(total=30)
        try:
            async with self._session.delete(
                state.session_uri,
                headers=self._headers(**{"Content-Length": "0"}),
                timeout=timeout,
            ) as response:
                if response.status not in self.CANCELLED_CODES:
                    raise AbortError(
                        f"Failed to cancel resumable session: HTTP {response.status}"
                    )
        except aiohttp.ClientError as e:
            raise AbortError(f"Failed to cancel resumable session: {e}") from e
        finally:
            del self._uploads[upload_id]

    async def _send(
        self, state: _ResumableState, payload: bytes, *, total: int | None
    ) -> dict[str, Any] | None:
        """PUT one byte range, retrying transient failures.

        After a failed attempt the committed offset is re-read from the server
        and the payload trimmed so that no byte is sent twice.

        Args:
            state: Resumable session state.
            payload: Bytes starting at `state.offset`.
            total: Final object size, or None for a non-final range.

        Returns:
            The object resource when the range finalized the upload, else None.
        """
        for attempt in range(self.MAX_RETRIES):
            if attempt > 0:
                await self._sleep_backoff(attempt - 1)
                committed = await self._check_status(state)
                if committed is None:
                    if total is None:
                        raise UploadError("Upload finalized before all parts were sent")
                    state.offset = total
                    return {}
                skip = committed - state.offset
                if skip < 0 or skip > len(payload):
                    raise UploadError(
                        "Upload position mismatch: "
                        f"Local={state.offset}, Server={committed}"
                    )
                payload = payload[skip:]
                state.offset = committed
                if not payload and total is None:
                    return None

            headers = self._headers(
                **state.headers,
                **{
                    "Content-Length": str(len(payload)),
                    "Content-Range": _content_range(state.offset, len(payload), total),
                }
            )
            try:
                timeout = aiohttp.ClientTimeout(total=300)
                async with self._session.put(
                    state.session_uri, headers=headers, data=payload, timeout=timeout
                ) as response:
                    status = response.status
                    logger.debug(
                        "PUT %s: status=%d key=%s attempt=%d",
                        headers["Content-Range"],
                        status,
                        state.key,
                        attempt + 1,
                    )

                    if status in self.FINAL_SUCCESS_CODES:
                        if total is None:
                            raise UploadError(
                                "Upload finalized before all parts were sent"
                            )
                        state.offset = total
                        try:
                            return await response.json()
                        except (aiohttp.ContentTypeError, ValueError):
                            return {}

                    if status == self.RESUME_INCOMPLETE_CODE:
                        committed = _committed_bytes(response.headers)
                        if total is None and committed == state.offset + len(payload):
                            state.offset = committed
                            return None
                        logger.warning(
                            "Partial range persisted: key=%s committed=%d expected=%d",
                            state.key,
                            committed,
                            state.offset + len(payload),
                        )
                        continue

                    if status in self.RETRYABLE_STATUS_CODES:
                        logger.warning(
                            f"Upload range failed "
                            f"(attempt {attempt + 1}/{self.MAX_RETRIES}): "
                            f"HTTP {status}"
                        )
                        continue

                    text = await response.text()
                    raise UploadError(
                        f"Upload failed with HTTP {status}: {text[:200]}"
                    )

            except (aiohttp.ClientConnectionError, asyncio.TimeoutError) as e:
                logger.warning(
                    f"Network error uploading range (attempt {attempt + 1}): {e}"
                )

        raise UploadError(f"Upload range failed after {self.MAX_RETRIES} attempts")

    async def _check_status(self, state: _ResumableState) -> int | None:
        """Return the committed byte count, or None if the upload is finished."""
        headers = self._headers(
            **state.headers, **{"Content-Length": "0", "Content-Range": "bytes */*"}
        )
        timeout = aiohttp.ClientTimeout(total=30)
        async with self._session.put(
            state.session_uri, headers=headers, data=b"", timeout=timeout
        ) as response:
            if response.status in self.FINAL_SUCCESS_CODES:
                return None
            if response.status == self.RESUME_INCOMPLETE_CODE:
                return _committed_bytes(response.headers)
            raise UploadError(
                f"Unexpected status checking upload: HTTP {response.status}"
            )


def _committed_bytes(headers: Any) -> int:
    """Parse the `Range: bytes=0-N` header of a 308 response."""
    range_header = headers.get("Range")
    if not range_header:
        return 0
    return int(range_header.split("-")[1]) + 1
