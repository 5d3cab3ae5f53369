"""Streaming sink turning a sequence of byte chunks into a multipart upload.

The uploader buffers incoming chunks until the buffer reaches the configured
part size, uploads the whole buffer as the next part, and on end of input
flushes the remainder and completes the upload. Any failure after the session
exists aborts it, so every session ends in exactly one of complete or abort.
"""

import asyncio
import logging
from collections.abc import AsyncIterable, AsyncIterator, Awaitable, Iterable
from contextlib import aclosing
from typing import Literal, TypeVar, Union

from bucketstream.const import DEFAULT_CHUNK_SIZE
from bucketstream.event_emitter import Emitter
from bucketstream.exceptions import (
    CompletionError,
    EmptyUploadError,
    PartUploadError,
    SessionCreationError,
)
from bucketstream.models import (
    DEFAULT_UPLOAD_SETTINGS,
    CompletedPart,
    CompletionInfo,
    PendingUpload,
    UploadSettings,
    UploadState,
)

from .bandwidth_limiter import BandwidthLimiter
from .object_store_session import ObjectStoreSession

logger = logging.getLogger(__name__)

T = TypeVar("T")

Chunk = Union[bytes, bytearray, memoryview]
ChunkSource = Union[Iterable[Chunk], AsyncIterable[Chunk]]
EmptyUploadPolicy = Literal["abort", "complete"]


async def _iterate_chunks(chunks: ChunkSource) -> AsyncIterator[Chunk]:
    """Iterate a sync or async chunk source, closing it when iteration stops."""
    if isinstance(chunks, AsyncIterable):
        async_iterator = aiter(chunks)
        try:
            async for chunk in async_iterator:
                yield chunk
        finally:
            aclose = getattr(async_iterator, "aclose", None)
            if aclose is not None:
                await aclose()
    else:
        iterator = iter(chunks)
        try:
            for chunk in iterator:
                yield chunk
        finally:
            close = getattr(iterator, "close", None)
            if close is not None:
                close()


async def _settle(awaitable: Awaitable[T]) -> T:
    """Await a provider call, letting it finish if the caller is cancelled.

    The in-flight call is shielded from cancellation; the cancellation is
    re-raised only once the call has resolved, so an abort issued afterwards
    never races it.
    """
    task = asyncio.ensure_future(awaitable)
    try:
        return await asyncio.shield(task)
    except asyncio.CancelledError:
        await asyncio.wait({task})
        if not task.cancelled() and task.exception() is not None:
            logger.warning(
                "Provider call failed after cancellation: %r", task.exception()
            )
        raise


class ChunkAccumulatingUploader:
    """Upload an unbounded sequence of byte chunks as one multipart object.

    One instance owns one upload session and is single-use. Chunks are
    processed strictly in arrival order with at most one provider call in
    flight.
    """

    def __init__(
        self,
        session: ObjectStoreSession,
        key: str,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        settings: UploadSettings | None = None,
        empty_upload_policy: EmptyUploadPolicy = "abort",
        bandwidth_limiter: BandwidthLimiter | None = None,
        emitter: Emitter | None = None,
    ) -> None:
        """Initialize the uploader.

        Args:
            session: Provider capability that performs the upload calls.
            key: Target object identifier.
            chunk_size: Buffered bytes that trigger a part upload. Must not be
                below the session's minimum part size.
            settings: Options passed through unchanged to the session.
            empty_upload_policy: What to do when the input holds no bytes:
                "abort" aborts the session and raises EmptyUploadError,
                "complete" completes the upload with zero parts.
            bandwidth_limiter: Optional limiter consulted before each part.
            emitter: Optional emitter receiving lifecycle events.

        Raises:
            ValueError: If chunk_size is not positive or below the provider
                minimum part size.
        """
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        if chunk_size < session.min_part_size:
            raise ValueError(
                f"chunk_size {chunk_size} is below the provider minimum part size "
                f"of {session.min_part_size} bytes"
            )
        if empty_upload_policy not in ("abort", "complete"):
            raise ValueError(f"Unknown empty upload policy: {empty_upload_policy!r}")

        self._session = session
        self._key = key
        self._chunk_size = chunk_size
        self._settings = settings or DEFAULT_UPLOAD_SETTINGS
        self._empty_upload_policy = empty_upload_policy
        self._bandwidth_limiter = bandwidth_limiter
        self._emitter = emitter

        self.state = UploadState.NOT_STARTED
        self._pending: PendingUpload | None = None

    @property
    def key(self) -> str:
        """Target object identifier."""
        return self._key

    @property
    def chunk_size(self) -> int:
        """Buffered bytes that trigger a part upload."""
        return self._chunk_size

    @property
    def pending(self) -> PendingUpload | None:
        """The in-progress session, once created."""
        return self._pending

    async def upload(self, chunks: ChunkSource) -> CompletionInfo:
        """Consume `chunks` and upload them as a single object.

        An empty chunk ends the input early; the remaining chunks are never
        pulled.

        Args:
            chunks: Sync or async iterable of byte chunks.

        Returns:
            The provider's completion result.

        Raises:
            SessionCreationError: If the session could not be opened.
            PartUploadError: If a part upload failed. The session is aborted.
            CompletionError: If the final complete call failed.
            EmptyUploadError: If no bytes arrived under the "abort" policy.
            RuntimeError: If the uploader was already used.
        """
        if self.state is not UploadState.NOT_STARTED:
            raise RuntimeError(
                f"Uploader for {self._key} already used (state={self.state.value})"
            )

        pending = await self._start()

        try:
            async with aclosing(_iterate_chunks(chunks)) as stream:
                async for chunk in stream:
                    if len(chunk) == 0:
                        logger.debug("Empty chunk ends input for %s", self._key)
                        break
                    pending.buffer.extend(chunk)
                    if len(pending.buffer) >= self._chunk_size:
                        await self._flush(pending)

            if pending.buffer:
                await self._flush(pending)
        except asyncio.CancelledError:
            await self._abort(pending, "cancelled")
            raise
        except Exception as exc:
            await self._abort(pending, str(exc))
            raise

        if not pending.completed_parts and self._empty_upload_policy == "abort":
            await self._abort(pending, "no bytes received")
            raise EmptyUploadError(f"No bytes received for {self._key}")

        return await self._complete(pending)

    async def consume(self, chunks: ChunkSource) -> None:
        """Upload `chunks`, discarding the completion result."""
        await self.upload(chunks)

    async def _start(self) -> PendingUpload:
        task = asyncio.ensure_future(
            self._session.create_multipart_upload(self._key, self._settings)
        )
        try:
            upload_id = await _settle(task)
        except asyncio.CancelledError:
            if not task.cancelled() and task.exception() is None:
                # The session opened after all; it must not leak.
                self._pending = PendingUpload(upload_id=task.result(), key=self._key)
                await self._abort(self._pending, "cancelled")
            else:
                self.state = UploadState.FAILED
            raise
        except Exception as exc:
            self.state = UploadState.FAILED
            logger.error("Failed to create multipart upload for %s: %s", self._key, exc)
            raise SessionCreationError(
                f"Failed to create multipart upload for {self._key}: {exc}"
            ) from exc

        self._pending = PendingUpload(upload_id=upload_id, key=self._key)
        self.state = UploadState.ACCUMULATING
        logger.info(
            "Multipart upload started: key=%s upload_id=%s chunk_size=%d",
            self._key,
            upload_id,
            self._chunk_size,
        )
        return self._pending

    async def _flush(self, pending: PendingUpload) -> None:
        """Upload the whole buffer as the next part."""
        data = bytes(pending.buffer)
        part_number = pending.next_part_number
        pending.next_part_number += 1

        try:
            if self._bandwidth_limiter is not None:
                await self._bandwidth_limiter.acquire(len(data))
            etag = await _settle(
                self._session.upload_part(pending.upload_id, part_number, data)
            )
        except Exception as exc:
            logger.error(
                "Part %d upload failed: key=%s upload_id=%s bytes=%d error=%s",
                part_number,
                pending.key,
                pending.upload_id,
                len(data),
                exc,
            )
            raise PartUploadError(part_number, str(exc)) from exc

        pending.completed_parts.append(
            CompletedPart(part_number=part_number, etag=etag, size=len(data))
        )
        pending.bytes_uploaded += len(data)
        pending.buffer.clear()

        logger.debug(
            "Uploaded part %d: key=%s bytes=%d total=%d",
            part_number,
            pending.key,
            len(data),
            pending.bytes_uploaded,
        )
        if self._emitter is not None:
            self._emitter.emit(
                Emitter.PART_UPLOADED,
                pending.key,
                pending.upload_id,
                part_number,
                len(data),
                pending.bytes_uploaded,
            )

    async def _complete(self, pending: PendingUpload) -> CompletionInfo:
        self.state = UploadState.COMPLETING
        task = asyncio.ensure_future(
            self._session.complete_multipart_upload(
                pending.upload_id, tuple(pending.completed_parts)
            )
        )
        try:
            info = await _settle(task)
        except asyncio.CancelledError:
            if not task.cancelled() and task.exception() is None:
                # The object exists on the provider even though we were cancelled
                self._finish(pending, task.result())
            else:
                self.state = UploadState.FAILED
            raise
        except Exception as exc:
            self.state = UploadState.FAILED
            logger.error(
                "Failed to complete multipart upload %s for %s: %s",
                pending.upload_id,
                pending.key,
                exc,
            )
            raise CompletionError(
                f"Failed to complete multipart upload for {pending.key}: {exc}"
            ) from exc

        self._finish(pending, info)
        return info

    def _finish(self, pending: PendingUpload, info: CompletionInfo) -> None:
        self.state = UploadState.DONE
        logger.info(
            "Multipart upload complete: key=%s upload_id=%s parts=%d bytes=%d",
            pending.key,
            pending.upload_id,
            len(pending.completed_parts),
            pending.bytes_uploaded,
        )
        if self._emitter is not None:
            self._emitter.emit(
                Emitter.UPLOAD_COMPLETE, pending.key, pending.upload_id, info
            )

    async def _abort(self, pending: PendingUpload, reason: str) -> None:
        """Abort the session; a failed abort is logged, never raised."""
        self.state = UploadState.ABORTING
        logger.warning(
            "Aborting multipart upload %s for %s: %s",
            pending.upload_id,
            pending.key,
            reason,
        )
        try:
            await _settle(self._session.abort_multipart_upload(pending.upload_id))
        except Exception:
            logger.error(
                "Failed to abort multipart upload %s for %s",
                pending.upload_id,
                pending.key,
                exc_info=True,
            )
        else:
            if self._emitter is not None:
                self._emitter.emit(
                    Emitter.UPLOAD_ABORTED, pending.key, pending.upload_id, reason
                )
        finally:
            self.state = UploadState.FAILED
