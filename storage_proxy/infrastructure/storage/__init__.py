"""
Object storage integration.

Supports S3-compatible backends (S3, R2, MinIO) via boto3.
Includes an in-memory mode for local development without credentials.
"""

from .client import (
    BucketHandle,
    MockBucketHandle,
    ObjectAttributes,
    ObjectHandle,
    ObjectNotFoundError,
    ObjectReader,
    ObjectWriter,
    S3BucketHandle,
    StorageConfig,
    StorageError,
    create_bucket_handle,
)

__all__ = [
    "BucketHandle",
    "MockBucketHandle",
    "ObjectAttributes",
    "ObjectHandle",
    "ObjectNotFoundError",
    "ObjectReader",
    "ObjectWriter",
    "S3BucketHandle",
    "StorageConfig",
    "StorageError",
    "create_bucket_handle",
]
