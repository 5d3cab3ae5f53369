"""Shared event emitter for upload lifecycle signaling."""

import asyncio
import logging
from typing import Any

from pyee.asyncio import AsyncIOEventEmitter

logger = logging.getLogger(__name__)


class Emitter(AsyncIOEventEmitter):
    """Shared event emitter for upload lifecycle signaling."""

    # Uploader -> listeners
    PART_UPLOADED = "PART_UPLOADED"
    # (key, upload_id, part_number, part_size, bytes_uploaded)

    # Uploader -> listeners
    UPLOAD_COMPLETE = "UPLOAD_COMPLETE"
    # (key, upload_id, completion_info)

    # Uploader -> listeners
    UPLOAD_ABORTED = "UPLOAD_ABORTED"
    # (key, upload_id, reason)

    def __init__(self, *, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Initialize the event emitter.

        Args:
            loop: The event loop to use for async event handlers.
        """
        super().__init__(loop=loop)

    def emit(self, event: str, *args: Any, **kwargs: Any) -> bool:
        """Emit an event with logging.

        Args:
            event: The event name to emit.
            *args: Positional arguments to pass to handlers.
            **kwargs: Keyword arguments to pass to handlers.

        Returns:
            True if the event had listeners, False otherwise.
        """
        formatted_args = []
        for arg in args:
            r = repr(arg)
            formatted_args.append(f"{r[:100]}..." if len(r) > 100 else r)
        logger.debug("EVENT %s: %s", event, ", ".join(formatted_args))
        return super().emit(event, *args, **kwargs)
