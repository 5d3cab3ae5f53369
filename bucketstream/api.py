"""High-level entry points for streaming bytes into an object store."""

from contextlib import AsyncExitStack

import aiohttp

from bucketstream.config_manager.config import ConfigManager
from bucketstream.config_manager.uploader_config import UploaderConfig
from bucketstream.event_emitter import Emitter
from bucketstream.models import CompletionInfo, UploadSettings
from bucketstream.upload_management.bandwidth_limiter import BandwidthLimiter
from bucketstream.upload_management.chunk_accumulating_uploader import (
    ChunkAccumulatingUploader,
    ChunkSource,
)
from bucketstream.upload_management.object_store_session import ObjectStoreSession
from bucketstream.upload_management.session_factory import (
    make_object_store_session,
    parse_destination,
)


async def upload_stream(
    destination: str,
    chunks: ChunkSource,
    *,
    settings: UploadSettings | None = None,
    config: UploaderConfig | None = None,
    session: ObjectStoreSession | None = None,
    emitter: Emitter | None = None,
) -> CompletionInfo:
    """Stream `chunks` into the object named by `destination`.

    Args:
        destination: ``s3://bucket/key``, ``gs://bucket/key`` or
            ``memory://bucket/key``.
        chunks: Sync or async iterable of byte chunks. An empty chunk ends
            the input.
        settings: Options passed through to the provider.
        config: Effective configuration. Resolved from the environment when
            omitted.
        session: Session to use instead of one built from the destination
            scheme; only the key is taken from `destination`.
        emitter: Optional emitter receiving lifecycle events.

    Returns:
        The provider's completion result.
    """
    effective = config or ConfigManager().resolve_effective_config()
    target = parse_destination(destination)
    limiter = (
        BandwidthLimiter(effective.bandwidth_limit)
        if effective.bandwidth_limit
        else None
    )

    async with AsyncExitStack() as stack:
        if session is None:
            client_session = None
            if target.scheme == "gs":
                client_session = await stack.enter_async_context(
                    aiohttp.ClientSession()
                )
            session = make_object_store_session(
                target, effective, client_session=client_session
            )

        uploader = ChunkAccumulatingUploader(
            session,
            target.key,
            chunk_size=effective.chunk_size,
            settings=settings,
            empty_upload_policy=effective.empty_upload_policy,
            bandwidth_limiter=limiter,
            emitter=emitter,
        )
        return await uploader.upload(chunks)


async def consume_stream(
    destination: str,
    chunks: ChunkSource,
    *,
    settings: UploadSettings | None = None,
    config: UploaderConfig | None = None,
    session: ObjectStoreSession | None = None,
    emitter: Emitter | None = None,
) -> None:
    """Fire-and-forget variant of `upload_stream`."""
    await upload_stream(
        destination,
        chunks,
        settings=settings,
        config=config,
        session=session,
        emitter=emitter,
    )
