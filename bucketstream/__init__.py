from .api import consume_stream, upload_stream
from .exceptions import (
    AbortError,
    CompletionError,
    EmptyUploadError,
    InvalidDestinationError,
    PartUploadError,
    SessionCreationError,
    UploadError,
)
from .models import CompletedPart, CompletionInfo, UploadSettings, UploadState
from .upload_management.chunk_accumulating_uploader import ChunkAccumulatingUploader
from .upload_management.object_store_session import ObjectStoreSession

__version__ = "0.1.0"

__all__ = [
    "upload_stream",
    "consume_stream",
    "ChunkAccumulatingUploader",
    "ObjectStoreSession",
    "UploadSettings",
    "UploadState",
    "CompletedPart",
    "CompletionInfo",
    "UploadError",
    "SessionCreationError",
    "PartUploadError",
    "CompletionError",
    "AbortError",
    "EmptyUploadError",
    "InvalidDestinationError",
]
