"""S3 multipart uploads through boto3.

boto3 is blocking, so every SDK call runs in the event loop's default
executor and the uploader keeps suspending rather than blocking the loop.
"""

import asyncio
import functools
import logging
from collections.abc import Sequence
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from bucketstream.const import AWS_MAX_PART_NUMBER, AWS_MIN_PART_SIZE
from bucketstream.exceptions import AbortError, UploadError
from bucketstream.models import CompletedPart, CompletionInfo, UploadSettings

from .object_store_session import ObjectStoreSession

logger = logging.getLogger(__name__)

_CREATE_PARAMS = {
    "acl": "ACL",
    "grant_full_control": "GrantFullControl",
    "grant_read": "GrantRead",
    "grant_read_acp": "GrantReadACP",
    "grant_write_acp": "GrantWriteACP",
    "server_side_encryption": "ServerSideEncryption",
    "sse_customer_algorithm": "SSECustomerAlgorithm",
    "sse_customer_key": "SSECustomerKey",
    "sse_customer_key_md5": "SSECustomerKeyMD5",
    "ssekms_encryption_context": "SSEKMSEncryptionContext",
    "ssekms_key_id": "SSEKMSKeyId",
    "request_payer": "RequestPayer",
    "storage_class": "StorageClass",
    "tagging": "Tagging",
    "content_type": "ContentType",
}

# Options S3 expects again on every UploadPart / CompleteMultipartUpload call
_PART_PARAMS = {
    "sse_customer_algorithm": "SSECustomerAlgorithm",
    "sse_customer_key": "SSECustomerKey",
    "sse_customer_key_md5": "SSECustomerKeyMD5",
    "request_payer": "RequestPayer",
}

_ABORT_PARAMS = {"request_payer": "RequestPayer"}


def _to_params(settings: UploadSettings, mapping: dict[str, str]) -> dict[str, Any]:
    params: dict[str, Any] = {}
    for field_name, param_name in mapping.items():
        value = getattr(settings, field_name)
        if value is None:
            continue
        params[param_name] = getattr(value, "value", value)
    return params


class S3ObjectStoreSession(ObjectStoreSession):
    """Multipart uploads into one S3 bucket."""

    min_part_size = AWS_MIN_PART_SIZE

    def __init__(
        self,
        bucket: str,
        client: Any = None,
        *,
        region_name: str | None = None,
        endpoint_url: str | None = None,
    ) -> None:
        """Initialize the session.

        Args:
            bucket: Target bucket.
            client: Preconfigured boto3 S3 client. Built from the default
                credential chain when omitted.
            region_name: Region used when building the client.
            endpoint_url: Endpoint override (e.g. MinIO, LocalStack).
        """
        self.bucket = bucket
        self._client = client or boto3.client(
            "s3", region_name=region_name, endpoint_url=endpoint_url
        )
        self._uploads: dict[str, tuple[str, UploadSettings]] = {}

    async def _call(self, method_name: str, **kwargs: Any) -> dict[str, Any]:
        loop = asyncio.get_running_loop()
        method = getattr(self._client, method_name)
        logger.debug(
            "S3 %s: bucket=%s key=%s", method_name, self.bucket, kwargs.get("Key")
        )
        return await loop.run_in_executor(None, functools.partial(method, **kwargs))

    def _get_upload(self, upload_id: str) -> tuple[str, UploadSettings]:
        try:
            return self._uploads[upload_id]
        except KeyError:
            raise UploadError(f"Unknown upload id: {upload_id}") from None

    async def create_multipart_upload(self, key: str, settings: UploadSettings) -> str:
        """Start a multipart upload with the creation-time options applied."""
        params = _to_params(settings, _CREATE_PARAMS)
        if settings.metadata:
            params["Metadata"] = dict(settings.metadata)
        response = await self._call(
            "create_multipart_upload", Bucket=self.bucket, Key=key, **params
        )
        upload_id = response["UploadId"]
        self._uploads[upload_id] = (key, settings)
        return upload_id

    async def upload_part(self, upload_id: str, part_number: int, data: bytes) -> str:
        """Upload one part and return its ETag."""
        if part_number > AWS_MAX_PART_NUMBER:
            raise UploadError(
                f"Part number {part_number} exceeds the S3 limit "
                f"of {AWS_MAX_PART_NUMBER}"
            )
        key, settings = self._get_upload(upload_id)
        response = await self._call(
            "upload_part",
            Bucket=self.bucket,
            Key=key,
            UploadId=upload_id,
            PartNumber=part_number,
            Body=data,
            **_to_params(settings, _PART_PARAMS),
        )
        return response["ETag"]

    async def complete_multipart_upload(
        self, upload_id: str, parts: Sequence[CompletedPart]
    ) -> CompletionInfo:
        """Complete the upload; S3 rejects an empty part list."""
        key, settings = self._get_upload(upload_id)
        # Forgotten even on failure: no abort follows a complete call
        try:
            response = await self._call(
                "complete_multipart_upload",
                Bucket=self.bucket,
                Key=key,
                UploadId=upload_id,
                MultipartUpload={
                    "Parts": [
                        {"PartNumber": part.part_number, "ETag": part.etag}
                        for part in parts
                    ]
                },
                **_to_params(settings, _PART_PARAMS),
            )
        finally:
            del self._uploads[upload_id]
        return CompletionInfo(
            key=key,
            upload_id=upload_id,
            etag=response.get("ETag"),
            location=response.get("Location"),
            parts=len(parts),
            total_bytes=sum(part.size for part in parts),
            raw=dict(response),
        )

    async def abort_multipart_upload(self, upload_id: str) -> None:
        """Abort the upload so S3 discards the stored parts."""
        key, settings = self._get_upload(upload_id)
        try:
            await self._call(
                "abort_multipart_upload",
                Bucket=self.bucket,
                Key=key,
                UploadId=upload_id,
                **_to_params(settings, _ABORT_PARAMS),
            )
        except (BotoCoreError, ClientError) as e:
            raise AbortError(f"Failed to abort upload {upload_id}: {e}") from e
        finally:
            del self._uploads[upload_id]
