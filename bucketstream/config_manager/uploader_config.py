"""Pydantic models for bucketstream configuration."""

from typing import Literal

from pydantic import BaseModel, field_validator

from bucketstream.const import DEFAULT_CHUNK_SIZE


class UploaderConfig(BaseModel):
    """Configuration options for streaming uploads.

    Attributes:
        chunk_size: buffered bytes that trigger a part upload.
        bandwidth_limit: maximum upload bandwidth, in bytes per second.
        empty_upload_policy: "abort" or "complete" for streams without bytes.
        gcs_access_token: OAuth2 bearer token for gs:// destinations.
        s3_endpoint_url: endpoint override for s3:// destinations.
        s3_region: region for s3:// destinations.
    """

    chunk_size: int = DEFAULT_CHUNK_SIZE
    bandwidth_limit: int | None = None
    empty_upload_policy: Literal["abort", "complete"] = "abort"
    gcs_access_token: str | None = None
    s3_endpoint_url: str | None = None
    s3_region: str | None = None

    @field_validator("chunk_size")
    @classmethod
    def _positive_chunk_size(cls, value: int) -> int:
        if value <= 0:
            raise ValueError(f"chunk_size must be positive, got {value}")
        return value

    @field_validator("bandwidth_limit")
    @classmethod
    def _positive_bandwidth(cls, value: int | None) -> int | None:
        if value is not None and value <= 0:
            raise ValueError(f"bandwidth_limit must be positive, got {value}")
        return value
