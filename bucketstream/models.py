"""Models shared by the uploader and the object-store sessions."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class UploadState(str, Enum):
    """Lifecycle states for a multipart upload.

    State transitions:
    - NOT_STARTED + session created       -> ACCUMULATING
    - NOT_STARTED + session create failed -> FAILED
    - ACCUMULATING + part uploaded        -> ACCUMULATING
    - ACCUMULATING + part/upstream failed -> ABORTING -> FAILED
    - ACCUMULATING + end of input         -> COMPLETING
    - COMPLETING + complete ok            -> DONE
    - COMPLETING + complete failed        -> FAILED
    - COMPLETING + cancelled              -> DONE if the complete call went
      through, else FAILED
    """

    NOT_STARTED = "not_started"
    ACCUMULATING = "accumulating"
    ABORTING = "aborting"
    COMPLETING = "completing"
    DONE = "done"
    FAILED = "failed"


class ObjectCannedAcl(str, Enum):
    """Canned access control lists applied at object creation."""

    PRIVATE = "private"
    PUBLIC_READ = "public-read"
    PUBLIC_READ_WRITE = "public-read-write"
    AUTHENTICATED_READ = "authenticated-read"
    AWS_EXEC_READ = "aws-exec-read"
    BUCKET_OWNER_READ = "bucket-owner-read"
    BUCKET_OWNER_FULL_CONTROL = "bucket-owner-full-control"


class StorageClass(str, Enum):
    """Storage classes understood by the supported providers."""

    STANDARD = "STANDARD"
    REDUCED_REDUNDANCY = "REDUCED_REDUNDANCY"
    STANDARD_IA = "STANDARD_IA"
    ONEZONE_IA = "ONEZONE_IA"
    INTELLIGENT_TIERING = "INTELLIGENT_TIERING"
    GLACIER = "GLACIER"
    DEEP_ARCHIVE = "DEEP_ARCHIVE"
    NEARLINE = "NEARLINE"
    COLDLINE = "COLDLINE"
    ARCHIVE = "ARCHIVE"


class RequestPayer(str, Enum):
    """Confirms the requester pays for requests against the bucket."""

    REQUESTER = "requester"


class UploadSettings(BaseModel):
    """Per-destination options captured once when an upload starts.

    Every field defaults to ``None`` (provider default). The uploader never
    reads these values; sessions translate the ones they understand into
    provider request parameters.

    Attributes:
        acl: canned ACL to apply to the object.
        grant_full_control: grantee for READ, READ_ACP and WRITE_ACP.
        grant_read: grantee allowed to read the object data and metadata.
        grant_read_acp: grantee allowed to read the object ACL.
        grant_write_acp: grantee allowed to write the object ACL.
        server_side_encryption: algorithm used at rest (e.g. AES256, aws:kms).
        sse_customer_algorithm: algorithm for a customer-provided key.
        sse_customer_key: customer-provided encryption key, raw (not base64).
        sse_customer_key_md5: MD5 digest of the customer-provided key.
        ssekms_encryption_context: KMS encryption context.
        ssekms_key_id: KMS key id (GCS: kmsKeyName).
        request_payer: confirms the requester is charged for the request.
        storage_class: storage class for the finished object.
        tagging: URL-encoded tag set, e.g. ``"team=data&env=prod"``.
        content_type: MIME type of the finished object.
        metadata: user metadata stored with the object.
    """

    model_config = ConfigDict(frozen=True)

    acl: ObjectCannedAcl | None = None
    grant_full_control: str | None = None
    grant_read: str | None = None
    grant_read_acp: str | None = None
    grant_write_acp: str | None = None
    server_side_encryption: str | None = None
    sse_customer_algorithm: str | None = None
    sse_customer_key: str | None = None
    sse_customer_key_md5: str | None = None
    ssekms_encryption_context: str | None = None
    ssekms_key_id: str | None = None
    request_payer: RequestPayer | None = None
    storage_class: StorageClass | None = None
    tagging: str | None = None
    content_type: str | None = None
    metadata: dict[str, str] = Field(default_factory=dict)


DEFAULT_UPLOAD_SETTINGS = UploadSettings()


@dataclass(frozen=True)
class CompletedPart:
    """A part acknowledged by the provider."""

    part_number: int
    etag: str
    size: int = 0


@dataclass
class CompletionInfo:
    """Result of a successful multipart upload."""

    key: str
    upload_id: str
    etag: str | None = None
    location: str | None = None
    parts: int = 0
    total_bytes: int = 0
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass
class PendingUpload:
    """In-progress multipart session owned by a single uploader."""

    upload_id: str
    key: str
    next_part_number: int = 1
    buffer: bytearray = field(default_factory=bytearray)
    completed_parts: list[CompletedPart] = field(default_factory=list)
    bytes_uploaded: int = 0
