"""Constants for bucketstream."""

BYTES_PER_KIB = 1024
BYTES_PER_MIB = 1024 * 1024

# Minimum part size for every non-final part of an S3 multipart upload.
# https://docs.aws.amazon.com/AmazonS3/latest/userguide/qfacts.html
AWS_MIN_PART_SIZE = 5 * BYTES_PER_MIB
AWS_MAX_PART_NUMBER = 10000

DEFAULT_CHUNK_SIZE = AWS_MIN_PART_SIZE

# GCS resumable uploads accept non-final chunks in multiples of 256 KiB only
GCS_CHUNK_MULTIPLE = 256 * BYTES_PER_KIB
GCS_UPLOAD_URL = "https://storage.googleapis.com/upload/storage/v1/b"

ENV_PREFIX = "BSTREAM_"
