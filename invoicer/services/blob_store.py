"""Blob store adapter over a versioned S3 bucket"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional
import boto3
from botocore.exceptions import BotoCoreError, ClientError
from botocore.config import Config

from invoicer.config import settings

logger = logging.getLogger(__name__)

# delete_objects accepts at most 1000 keys per request
DELETE_BATCH_SIZE = 1000

NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound", "NoSuchVersion"}


class BlobStoreError(Exception):
    """Base exception for blob store errors"""
    pass


class BlobNotFoundError(BlobStoreError):
    """No live version exists for the requested key"""
    pass


@dataclass(frozen=True)
class BlobVersion:
    """One stored revision (or delete marker) of a key"""

    key: str
    version_id: str
    is_delete_marker: bool = False
    is_latest: bool = False


@dataclass(frozen=True)
class BlobObject:
    """Bytes and metadata of the live version of a key"""

    key: str
    data: bytes
    content_type: str
    version_id: Optional[str] = None


def _error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "Unknown")


class BlobStore:
    """
    Adapter for a versioned object store.

    Deleting a key in a versioned bucket only adds a delete marker, so every
    delete here is enumerate-then-purge: list all versions under the key or
    prefix, then remove each key+VersionId pair in batched calls.
    """

    def __init__(self, s3_client, bucket: str):
        self.s3_client = s3_client
        self.bucket = bucket

    @classmethod
    def from_settings(cls) -> "BlobStore":
        """Build an adapter with a boto3 client configured from settings"""
        retry_config = Config(
            retries={
                "max_attempts": settings.s3_max_attempts,
                "mode": "standard",
            },
            connect_timeout=settings.s3_connect_timeout,
            read_timeout=settings.s3_read_timeout,
        )

        client_kwargs = {
            "region_name": settings.aws_region,
            "config": retry_config,
        }

        # Add credentials if provided (not needed for IAM roles)
        if settings.aws_access_key_id and settings.aws_secret_access_key:
            client_kwargs["aws_access_key_id"] = settings.aws_access_key_id
            client_kwargs["aws_secret_access_key"] = settings.aws_secret_access_key

        # Use custom endpoint for local development (MinIO)
        if settings.aws_endpoint_url:
            client_kwargs["endpoint_url"] = settings.aws_endpoint_url

        try:
            s3_client = boto3.client("s3", **client_kwargs)
        except Exception as e:
            logger.error(f"Failed to initialize S3 client: {e}")
            raise BlobStoreError(f"Failed to initialize S3 client: {e}")

        logger.info(f"Blob store initialized for bucket: {settings.s3_bucket}")
        return cls(s3_client, settings.s3_bucket)

    def put(self, key: str, data: bytes, content_type: str) -> Optional[str]:
        """
        Upload bytes under a key.

        Returns:
            Version id assigned by the store, if any

        Raises:
            BlobStoreError: If the store rejects the upload
        """
        try:
            response = self.s3_client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except ClientError as e:
            error_code = _error_code(e)
            logger.error(f"Error uploading {key}: {error_code} - {e}")
            raise BlobStoreError(f"Failed to upload {key}: {error_code}")
        except BotoCoreError as e:
            logger.error(f"Error uploading {key}: {e}")
            raise BlobStoreError(f"Failed to upload {key}: {e}")

        logger.info(f"Uploaded {len(data)} bytes to {key}")
        return response.get("VersionId")

    def get(self, key: str) -> BlobObject:
        """
        Read the live version of a key.

        Raises:
            BlobNotFoundError: If the key has no live version
            BlobStoreError: If the read fails
        """
        try:
            response = self.s3_client.get_object(Bucket=self.bucket, Key=key)
            data = response["Body"].read()
        except ClientError as e:
            error_code = _error_code(e)
            if error_code in NOT_FOUND_CODES:
                raise BlobNotFoundError(f"Blob not found: {key}")
            logger.error(f"Error downloading {key}: {error_code} - {e}")
            raise BlobStoreError(f"Failed to download {key}: {error_code}")
        except BotoCoreError as e:
            logger.error(f"Error downloading {key}: {e}")
            raise BlobStoreError(f"Failed to download {key}: {e}")

        logger.debug(f"Downloaded {len(data)} bytes from {key}")
        return BlobObject(
            key=key,
            data=data,
            content_type=response.get("ContentType") or "application/octet-stream",
            version_id=response.get("VersionId"),
        )

    def exists(self, key: str) -> bool:
        """Check whether a key has a live version"""
        try:
            self.s3_client.head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError as e:
            if _error_code(e) in NOT_FOUND_CODES:
                return False
            logger.error(f"Error checking if object exists: {e}")
            raise BlobStoreError(f"Failed to check object existence: {e}")

    def list_versions(self, prefix: str) -> List[BlobVersion]:
        """
        List every version and delete marker under a prefix.

        Raises:
            BlobStoreError: If the listing fails
        """
        versions: List[BlobVersion] = []
        try:
            paginator = self.s3_client.get_paginator("list_object_versions")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                for entry in page.get("Versions", []):
                    versions.append(
                        BlobVersion(
                            key=entry["Key"],
                            version_id=entry["VersionId"],
                            is_latest=entry.get("IsLatest", False),
                        )
                    )
                for entry in page.get("DeleteMarkers", []):
                    versions.append(
                        BlobVersion(
                            key=entry["Key"],
                            version_id=entry["VersionId"],
                            is_delete_marker=True,
                            is_latest=entry.get("IsLatest", False),
                        )
                    )
        except ClientError as e:
            error_code = _error_code(e)
            logger.error(f"Error listing versions under {prefix}: {error_code} - {e}")
            raise BlobStoreError(f"Failed to list versions under {prefix}: {error_code}")
        except BotoCoreError as e:
            logger.error(f"Error listing versions under {prefix}: {e}")
            raise BlobStoreError(f"Failed to list versions under {prefix}: {e}")

        return versions

    def delete_versions(self, versions: Iterable[BlobVersion]) -> int:
        """
        Permanently delete the given versions in batched calls.

        Returns:
            Number of versions deleted

        Raises:
            BlobStoreError: If any version could not be deleted
        """
        objects = [{"Key": v.key, "VersionId": v.version_id} for v in versions]
        if not objects:
            return 0

        for start in range(0, len(objects), DELETE_BATCH_SIZE):
            chunk = objects[start:start + DELETE_BATCH_SIZE]
            try:
                response = self.s3_client.delete_objects(
                    Bucket=self.bucket,
                    Delete={"Objects": chunk, "Quiet": True},
                )
            except ClientError as e:
                error_code = _error_code(e)
                logger.error(f"Error deleting {len(chunk)} versions: {error_code} - {e}")
                raise BlobStoreError(f"Failed to delete versions: {error_code}")
            except BotoCoreError as e:
                logger.error(f"Error deleting {len(chunk)} versions: {e}")
                raise BlobStoreError(f"Failed to delete versions: {e}")

            errors = response.get("Errors", [])
            if errors:
                first = errors[0]
                raise BlobStoreError(
                    f"Failed to delete {len(errors)} versions, first: "
                    f"{first.get('Key')} ({first.get('Code')})"
                )

        return len(objects)

    def purge_key(self, key: str) -> int:
        """
        Remove every version of exactly one key.

        The listing is by prefix, so versions of longer keys sharing the
        prefix are filtered out. A key with no versions is already purged.
        """
        versions = [v for v in self.list_versions(key) if v.key == key]
        deleted = self.delete_versions(versions)
        logger.info(f"Purged {deleted} versions of {key}")
        return deleted

    def purge_prefix(self, prefix: str) -> int:
        """Remove every version of every key under a prefix"""
        deleted = self.delete_versions(self.list_versions(prefix))
        logger.info(f"Purged {deleted} versions under {prefix}")
        return deleted
